"""
Custom Exceptions for SocietyCore Billing System
"""

class SocietyBillingException(Exception):
    """Base exception for all society billing errors"""
    error_code = "ERROR"

    def __init__(self, message: str, error_code: str = None, flat_number: str = None,
                 period: str = None, head: str = None):
        self.message = message
        self.error_code = error_code or self.error_code
        self.flat_number = flat_number
        self.period = period
        self.head = head
        super().__init__(self.message)

    def context(self) -> dict:
        """Flat / period / head the failure refers to"""
        return {
            'flat_number': self.flat_number,
            'period': self.period,
            'head': self.head,
        }

class ValidationException(SocietyBillingException):
    """Raised when input validation fails"""
    error_code = "VALIDATION_ERROR"

class MissingConfigurationException(SocietyBillingException):
    """Raised when bills are generated without a charge configuration"""
    error_code = "MISSING_CONFIGURATION"

class DuplicatePeriodException(SocietyBillingException):
    """Raised when a bill already exists for the flat and period"""
    error_code = "DUPLICATE_PERIOD"

class OutOfOrderGenerationException(SocietyBillingException):
    """Raised when an earlier period is generated after a later one"""
    error_code = "ORDERING_VIOLATION"

class HeadBreakdownMismatchException(ValidationException):
    """Raised when a payment's head breakdown does not add up to its amount"""
    error_code = "HEAD_BREAKDOWN_MISMATCH"

class UnmatchedPaymentException(SocietyBillingException):
    """Raised when no bill matches a payment and unmatched payments are refused"""
    error_code = "UNMATCHED_PAYMENT"

class MissingHeadBreakdownException(SocietyBillingException):
    """Raised when a bill has no base charges and no explicit defaults were given"""
    error_code = "MISSING_HEAD_BREAKDOWN"

class FlatNotFoundException(SocietyBillingException):
    """Raised when referenced flat does not exist"""
    error_code = "FLAT_NOT_FOUND"

class BillNotFoundException(SocietyBillingException):
    """Raised when referenced bill does not exist"""
    error_code = "BILL_NOT_FOUND"

class PaymentNotFoundException(SocietyBillingException):
    """Raised when referenced payment does not exist"""
    error_code = "PAYMENT_NOT_FOUND"

class AllocationException(SocietyBillingException):
    """Raised when an allocation would break money conservation"""
    error_code = "ALLOCATION_ERROR"

class DatabaseException(SocietyBillingException):
    """Raised when database operations fail"""
    error_code = "DATABASE_ERROR"
