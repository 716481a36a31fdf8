"""
Audit Service
Business logic for auditing every write to the billing records
"""
import json
from typing import Any

from core.repositories.audit_repository import AuditRepository
from db.record_store import RecordStore

class AuditService:
    """Service class for auditing critical billing actions"""

    def __init__(self, store: RecordStore):
        self.repo = AuditRepository(store)

    def log(self, actor: str, action: str, details: Any = None):
        """Log a billing action with optional structured details"""
        details_str = json.dumps(details, default=str) if details else None
        return self.repo.log_action(actor, action, details_str)

    def get_latest_activity(self, count: int = 15):
        """Fetch latest activity for the admin dashboard"""
        return self.repo.get_recent_logs(count)
