"""
Custom exceptions for LashClub business logic.

These exceptions provide more specific error handling than generic Exception,
allowing for better error messages and appropriate HTTP status codes.
"""


class LashClubError(Exception):
    """Base exception for all LashClub business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "LASHCLUB_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(LashClubError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self, identifier=None):
        super().__init__("User", identifier)


class TierNotFoundError(NotFoundError):
    """Tier not found."""

    def __init__(self, identifier=None):
        super().__init__("Tier", identifier)


class ValidationError(LashClubError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InsufficientPointsError(LashClubError):
    """Not enough points for the operation."""

    status_code = 422

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_POINTS")


class BenefitExhaustedError(LashClubError):
    """Monthly free-service allowance already used up."""

    status_code = 422

    def __init__(self, benefit: str, allowance: int, used: int):
        self.benefit = benefit
        self.allowance = allowance
        self.used = used
        message = f"No free {benefit.replace('_', ' ')}s left this period. Allowance: {allowance}, Used: {used}"
        super().__init__(message, "BENEFIT_EXHAUSTED")


class MembershipInactiveError(LashClubError):
    """Operation needs an active membership."""

    status_code = 403

    def __init__(self, status: str = None):
        self.status = status
        message = "No active membership"
        if status:
            message = f"No active membership (status: {status})"
        super().__init__(message, "MEMBERSHIP_INACTIVE")


class InvalidStatusTransitionError(LashClubError):
    """Invalid status transition for a resource."""

    status_code = 409

    def __init__(self, resource: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Cannot change {resource} status from '{from_status}' to '{to_status}'"
        super().__init__(message, "INVALID_STATUS_TRANSITION")


class PaymentProviderError(LashClubError):
    """Error communicating with Stripe."""

    status_code = 502

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "PAYMENT_PROVIDER_ERROR")


class ConfigurationError(LashClubError):
    """Application configuration error."""

    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")
