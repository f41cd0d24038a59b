"""
Referral Program

This module provides:
- Applications with payment proof, reviewed by an admin
- Referral earnings credited to the referrer and the business on approval
- Withdrawals reserved on request, then paid out or refunded
- Program settings with first-run defaults
- A bounded poll for an applicant waiting on review
- Pluggable key-value storage with per-operation transactions
"""

from .errors import (
    ReferralProgramError,
    ValidationError,
    DuplicateError,
    NotFoundError,
    DataIntegrityError,
    InsufficientFundsError,
    PolicyError,
    InvalidStateTransitionError,
    AuthenticationError,
)
from .models import (
    Application,
    ApplicationStatus,
    User,
    UserStatus,
    ReferralRecord,
    WithdrawalRequest,
    WithdrawalRecord,
    WithdrawalStatus,
    ProgramSettings,
    SubmitApplicationRequest,
)
from .poller import ApprovalPoller
from .service import ReferralProgram
from .storage import KeyValueStore, InMemoryStorage, JsonFileStorage

__all__ = [
    "ReferralProgramError",
    "ValidationError",
    "DuplicateError",
    "NotFoundError",
    "DataIntegrityError",
    "InsufficientFundsError",
    "PolicyError",
    "InvalidStateTransitionError",
    "AuthenticationError",
    "Application",
    "ApplicationStatus",
    "User",
    "UserStatus",
    "ReferralRecord",
    "WithdrawalRequest",
    "WithdrawalRecord",
    "WithdrawalStatus",
    "ProgramSettings",
    "SubmitApplicationRequest",
    "ReferralProgram",
    "ApprovalPoller",
    "KeyValueStore",
    "InMemoryStorage",
    "JsonFileStorage",
]
