class ReferralProgramError(Exception):
    pass


class ValidationError(ReferralProgramError):
    pass


class DuplicateError(ReferralProgramError):
    pass


class NotFoundError(ReferralProgramError):
    pass


class DataIntegrityError(NotFoundError):
    """A record that must exist alongside another one is missing."""


class InsufficientFundsError(ReferralProgramError):
    pass


class PolicyError(ReferralProgramError):
    pass


class InvalidStateTransitionError(ReferralProgramError):
    pass


class AuthenticationError(ReferralProgramError):
    pass
