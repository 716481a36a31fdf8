"""
Helper Utilities
Common utility functions for billing operations
"""

import re
import uuid
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, date, timedelta
from typing import Optional, Dict, Any, Iterable
import logging

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

PERIOD_PATTERN = re.compile(r'^(\d{4})-(0[1-9]|1[0-2])$')

class NumberUtils:
    """Utility functions for number operations"""

    @staticmethod
    def round_currency(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places for currency"""
        return amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @staticmethod
    def to_decimal(value: Any) -> Decimal:
        """Convert stored numbers (str/int/float/Decimal) to Decimal"""
        if value is None:
            return ZERO
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))

    @staticmethod
    def total(amounts: Iterable[Decimal]) -> Decimal:
        """Sum of amounts, starting from a Decimal zero"""
        return sum(amounts, ZERO)

    @staticmethod
    def clamp(amount: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
        """Clamp amount into [lower, upper]"""
        return max(lower, min(amount, upper))

class PeriodUtils:
    """Billing period (YYYY-MM) helpers"""

    @staticmethod
    def is_valid(period: str) -> bool:
        return bool(period) and isinstance(period, str) and PERIOD_PATTERN.match(period) is not None

    @staticmethod
    def first_day(period: str) -> date:
        """First calendar day of a period"""
        match = PERIOD_PATTERN.match(period or '')
        if not match:
            raise ValueError(f"Invalid period '{period}', expected YYYY-MM")
        return date(int(match.group(1)), int(match.group(2)), 1)

    @staticmethod
    def from_date(value: date) -> str:
        """Period a date falls in"""
        return value.strftime("%Y-%m")

    @staticmethod
    def add_months(period: str, months: int) -> str:
        return PeriodUtils.from_date(PeriodUtils.first_day(period) + relativedelta(months=months))

    @staticmethod
    def due_date(period: str, due_day: int) -> date:
        """First day of the period plus due_day - 1 days"""
        return PeriodUtils.first_day(period) + timedelta(days=due_day - 1)

class StringUtils:
    """Utility functions for string operations"""

    @staticmethod
    def generate_id(prefix: str) -> str:
        """Generate unique record id"""
        return f"{prefix}_{uuid.uuid4().hex[:12]}"

    @staticmethod
    def format_sequence_number(prefix: str, period: str, sequence: int) -> str:
        """Format BILL-YYYY-MM-NNN style numbers"""
        return f"{prefix}-{period}-{sequence:03d}"

    @staticmethod
    def sequence_suffix(number: str) -> int:
        """Numeric suffix of a sequence number, 0 if it has none"""
        if not number:
            return 0
        tail = number.rsplit('-', 1)[-1]
        return int(tail) if tail.isdigit() else 0

    @staticmethod
    def format_currency(amount: Decimal, currency_symbol: str = "₹") -> str:
        """Format amount as currency string"""
        amount_str = f"{amount:,.2f}"
        return f"{currency_symbol}{amount_str}"

    @staticmethod
    def clean_string(text: str) -> str:
        """Clean and normalize string input"""
        if not text:
            return ""

        # Remove extra whitespace and normalize
        return " ".join(text.strip().split())

class LoggingUtils:
    """Logging utility functions"""

    @staticmethod
    def log_payment(event_type: str, flat_number: str, amount: Decimal,
                    payment_id: str = None, details: Dict[str, Any] = None):
        """Log payment events for audit trail"""
        log_data = {
            'payment_event': event_type,
            'flat_number': flat_number,
            'amount': str(amount),
            'payment_id': payment_id,
            'timestamp': datetime.now().isoformat(),
            'details': details or {}
        }

        logger.info(f"Payment: {event_type}", extra=log_data)

    @staticmethod
    def log_business_event(event_type: str, entity_type: str, entity_id: Optional[str],
                          flat_number: str = None, details: Dict[str, Any] = None):
        """Log business events"""
        log_data = {
            'event_type': event_type,
            'entity_type': entity_type,
            'entity_id': entity_id,
            'flat_number': flat_number,
            'timestamp': datetime.now().isoformat(),
            'details': details or {}
        }

        logger.info(f"Business Event: {event_type}", extra=log_data)

    @staticmethod
    def log_diagnostic(event_type: str, flat_number: str = None, details: Dict[str, Any] = None):
        """Log reconciliation diagnostics that need a human look"""
        log_data = {
            'event_type': event_type,
            'flat_number': flat_number,
            'timestamp': datetime.now().isoformat(),
            'details': details or {}
        }

        logger.warning(f"Diagnostic: {event_type}", extra=log_data)
