"""
Input Validation Utilities
Provides validation functions for billing inputs
"""

import re
from decimal import Decimal
from typing import Iterable, Optional

from utils.exceptions import ValidationException, HeadBreakdownMismatchException
from utils.helpers import PeriodUtils, StringUtils, NumberUtils

class BillingValidator:
    """Validation utilities for billing operations"""

    @staticmethod
    def validate_amount(amount: Decimal, min_amount: Decimal = None, max_amount: Decimal = None,
                        allow_zero: bool = False, field_name: str = "Amount") -> bool:
        """Validate monetary amount"""
        if not isinstance(amount, Decimal):
            raise ValidationException(f"{field_name} must be a Decimal")

        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValidationException(f"{field_name} must be positive")

        if min_amount is not None and amount < min_amount:
            raise ValidationException(f"{field_name} must be at least {min_amount}")

        if max_amount is not None and amount > max_amount:
            raise ValidationException(f"{field_name} cannot exceed {max_amount}")

        # Check decimal places (max 2 for currency)
        if amount.as_tuple().exponent < -2:
            raise ValidationException(f"{field_name} cannot have more than 2 decimal places")

        return True

    @staticmethod
    def validate_period(period: str, field_name: str = "Period") -> bool:
        """Validate YYYY-MM billing period"""
        if not period:
            raise ValidationException(f"{field_name} is required")

        if not PeriodUtils.is_valid(period):
            raise ValidationException(f"{field_name} '{period}' must be in YYYY-MM format", period=str(period))

        return True

    @staticmethod
    def validate_period_range(start: str, end: str, field_name: str = "Period range") -> bool:
        BillingValidator.validate_period(start, f"{field_name} start")
        BillingValidator.validate_period(end, f"{field_name} end")
        if start > end:
            raise ValidationException(f"{field_name} starts ({start}) after it ends ({end})", period=start)
        return True

    @staticmethod
    def validate_flat_number(flat_number: str) -> bool:
        """Validate flat number format"""
        if not flat_number:
            raise ValidationException("Flat number is required")

        if not isinstance(flat_number, str):
            raise ValidationException("Flat number must be a string")

        # Alphanumeric with optional separators, e.g. 101, A-101, B/12
        if not re.match(r'^[A-Za-z0-9][A-Za-z0-9\-/]{0,19}$', flat_number):
            raise ValidationException(f"Flat number '{flat_number}' must be 1-20 alphanumeric characters",
                                      flat_number=flat_number)

        return True

    @staticmethod
    def validate_mobile(mobile: Optional[str]) -> bool:
        """Validate mobile number"""
        if not mobile:
            return True  # Mobile is optional

        # Indian mobile number format: 10 digits
        if not re.match(r'^[6-9]\d{9}$', mobile):
            raise ValidationException("Mobile number must be 10 digits starting with 6-9")

        return True

    @staticmethod
    def validate_name(name: str, field_name: str = "Name") -> bool:
        """Validate an owner or member name (joint owners and firms included)"""
        if not name:
            raise ValidationException(f"{field_name} is required")

        if not isinstance(name, str):
            raise ValidationException(f"{field_name} must be a string")

        if len(name.strip()) < 2:
            raise ValidationException(f"{field_name} must be at least 2 characters")

        if len(name.strip()) > 100:
            raise ValidationException(f"{field_name} cannot exceed 100 characters")

        # "A. Rao & S. Rao", "M/s Shah Traders", "Owner 2"
        if not re.match(r"^[\w\s.'&/,()-]+$", name.strip()):
            raise ValidationException(f"{field_name} contains characters that are not allowed")

        return True

    @staticmethod
    def validate_slot_count(count: int, field_name: str) -> bool:
        if not isinstance(count, int) or isinstance(count, bool):
            raise ValidationException(f"{field_name} must be a whole number")

        if count < 0:
            raise ValidationException(f"{field_name} cannot be negative")

        return True

    @staticmethod
    def validate_due_day(due_day: int) -> bool:
        if not isinstance(due_day, int) or not 1 <= due_day <= 31:
            raise ValidationException("Due day must be between 1 and 31")

        return True

    @staticmethod
    def validate_head_breakdown(amount: Decimal, entries: Iterable, flat_number: str = None,
                                period: str = None) -> bool:
        """Breakdown entries (objects with head/amount) must add up to the payment amount"""
        entries = list(entries)
        if not entries:
            return True

        for entry in entries:
            BillingValidator.validate_amount(entry.amount, field_name=f"{entry.head.value} amount")

        breakdown_total = NumberUtils.total(entry.amount for entry in entries)
        if breakdown_total != amount:
            difference = amount - breakdown_total
            heads = ", ".join(
                f"{entry.head.value} {StringUtils.format_currency(entry.amount)}" for entry in entries
            )
            raise HeadBreakdownMismatchException(
                f"Head breakdown for flat {flat_number} totals {StringUtils.format_currency(breakdown_total)} "
                f"({heads}) but the payment is {StringUtils.format_currency(amount)} "
                f"(difference {StringUtils.format_currency(difference)})",
                flat_number=flat_number, period=period,
                head=entries[-1].head.value
            )

        return True
