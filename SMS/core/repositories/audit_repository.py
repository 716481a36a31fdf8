"""
Audit Repository
Handles storage of the audit_log collection
"""
from typing import List, Dict, Any
from datetime import datetime

from core.repositories.base_repository import BaseRepository
from db.record_store import RecordStore
from utils.helpers import StringUtils

class AuditRepository(BaseRepository):
    """Repository for audit_log collection operations"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'audit_log', 'audit_id')

    def log_action(self, actor: str, action: str, details: str = None) -> str:
        """Create a new audit log entry"""
        log_data = {
            'audit_id': StringUtils.generate_id('audit'),
            'actor': actor,
            'action': action,
            'details': details,
            'created_at': datetime.now().isoformat()
        }
        return self.create(log_data)

    def get_recent_logs(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Get recent audit logs for admin display"""
        rows = sorted(self.find_all(), key=lambda row: row['created_at'], reverse=True)
        return rows[:limit]
