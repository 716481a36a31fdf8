"""
Notification Service
Hands typed billing events to whoever displays them
"""
import logging
from collections import deque
from typing import Callable, List, Optional

from core.models.results import BillingEvent, Outcome
from utils.exceptions import SocietyBillingException

logger = logging.getLogger(__name__)

ERROR_OUTCOMES = {
    'VALIDATION_ERROR': Outcome.VALIDATION_ERROR,
    'HEAD_BREAKDOWN_MISMATCH': Outcome.VALIDATION_ERROR,
    'MISSING_HEAD_BREAKDOWN': Outcome.VALIDATION_ERROR,
    'DUPLICATE_PERIOD': Outcome.DUPLICATE_PERIOD,
    'ORDERING_VIOLATION': Outcome.ORDERING_VIOLATION,
    'MISSING_CONFIGURATION': Outcome.MISSING_CONFIGURATION,
    'UNMATCHED_PAYMENT': Outcome.UNMATCHED_PAYMENT,
}

class NotificationService:
    def __init__(self, history_size: int = 50):
        self._subscribers: List[Callable[[BillingEvent], None]] = []
        self.recent = deque(maxlen=history_size)

    def subscribe(self, callback: Callable[[BillingEvent], None]):
        """Register a sink (e.g. a page that shows toasts)"""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[BillingEvent], None]):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, event: BillingEvent):
        self.recent.append(event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                # A broken display must not undo a committed operation
                logger.error(f"Notification subscriber failed: {e}")

    def success(self, message: str, flat_number: str = None, period: str = None) -> BillingEvent:
        event = BillingEvent(Outcome.OK, message, flat_number=flat_number, period=period)
        self.publish(event)
        return event

    def warning(self, outcome: Outcome, message: str, flat_number: str = None,
                period: str = None) -> BillingEvent:
        event = BillingEvent(outcome, message, flat_number=flat_number, period=period)
        self.publish(event)
        return event

    def failure(self, error: SocietyBillingException) -> BillingEvent:
        """Map a billing exception to its typed event"""
        event = BillingEvent(
            outcome=self.outcome_for(error),
            message=error.message,
            flat_number=error.flat_number,
            period=error.period,
            head=error.head,
        )
        self.publish(event)
        return event

    @staticmethod
    def outcome_for(error: SocietyBillingException) -> Outcome:
        return ERROR_OUTCOMES.get(error.error_code, Outcome.VALIDATION_ERROR)

    def latest(self) -> Optional[BillingEvent]:
        return self.recent[-1] if self.recent else None
