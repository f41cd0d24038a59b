import time
from typing import Callable, Optional, TYPE_CHECKING

from loguru import logger

from .errors import NotFoundError
from .models import ApplicationStatus, PollOutcome, PollResult

if TYPE_CHECKING:
    from .service import ReferralProgram


class ApprovalPoller:
    """Waits for an admin decision on an application, giving up after a fixed number of checks."""

    def __init__(
        self,
        program: "ReferralProgram",
        interval_seconds: float = 5.0,
        max_attempts: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.program = program
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.sleep = sleep

    def wait_for_decision(self, email: Optional[str] = None) -> PollResult:
        email = email or self.program.current_session()
        if not email:
            raise NotFoundError("No application to wait for")

        for attempt in range(1, self.max_attempts + 1):
            application = self.program.find_application_by_email(email)
            if application.status == ApplicationStatus.APPROVED:
                return PollResult(outcome=PollOutcome.APPROVED, attempts=attempt, application=application)
            if application.status == ApplicationStatus.REJECTED:
                return PollResult(outcome=PollOutcome.REJECTED, attempts=attempt, application=application)
            if attempt < self.max_attempts:
                self.sleep(self.interval_seconds)

        logger.info("Gave up waiting for a decision on {} after {} checks", email, self.max_attempts)
        return PollResult(outcome=PollOutcome.TIMEOUT, attempts=self.max_attempts, application=application)
