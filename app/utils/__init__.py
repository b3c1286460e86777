"""
Utility modules for LashClub.
"""
from .logging_config import setup_logging, get_logger
from .serialization import json_safe
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    forbidden,
    not_found,
    service_unavailable,
    internal_error
)
from .exceptions import (
    LashClubError,
    NotFoundError,
    UserNotFoundError,
    TierNotFoundError,
    ValidationError,
    InsufficientPointsError,
    BenefitExhaustedError,
    MembershipInactiveError,
    InvalidStatusTransitionError,
    PaymentProviderError,
    ConfigurationError
)
