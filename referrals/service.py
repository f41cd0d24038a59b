from typing import Any, Mapping, Optional
from uuid import UUID

from .applications import ApplicationService
from .errors import NotFoundError
from .models import (
    Application,
    ApplicationStatus,
    ApplicationStatusResponse,
    DashboardResponse,
    ProgramSettings,
    ProgramStats,
    SettingsUpdateResult,
    SubmitApplicationRequest,
    User,
    UserStatus,
    WithdrawalRecord,
    WithdrawalRequest,
)
from .records import load_users, save_users, load_withdrawals, load_applications, find_user_by_email
from .referral_ledger import ReferralLedger, generate_referral_code, referral_link
from .settings import SettingsService
from .storage import KeyValueStore, InMemoryStorage
from .withdrawals import WithdrawalService


DEFAULT_REFERRAL_BASE_URL = "http://localhost:8000/apply"


class ReferralProgram:
    """Entry point wiring every component of the program over one store."""

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        defaults: Optional[ProgramSettings] = None,
        referral_base_url: str = DEFAULT_REFERRAL_BASE_URL,
    ):
        self.storage = storage or InMemoryStorage()
        self.referral_base_url = referral_base_url
        self.settings = SettingsService(self.storage, defaults)
        self.referral_ledger = ReferralLedger(self.settings)
        self.applications = ApplicationService(self.storage, self.settings, self.referral_ledger)
        self.withdrawals = WithdrawalService(self.storage, self.settings)

    # Applications

    def submit_application(self, request: SubmitApplicationRequest) -> Application:
        return self.applications.submit(request)

    def approve_application(self, application_id: UUID) -> Application:
        return self.applications.approve(application_id)

    def reject_application(self, application_id: UUID, reason: Optional[str] = None) -> Application:
        return self.applications.reject(application_id, reason)

    def get_application(self, application_id: UUID) -> Application:
        return self.applications.get(application_id)

    def list_applications(self, status: Optional[ApplicationStatus] = None) -> list[Application]:
        return self.applications.list_applications(status)

    def find_application_by_email(self, email: str) -> Application:
        return self.applications.find_by_email(email)

    def application_status(self, email: Optional[str] = None) -> ApplicationStatusResponse:
        email = email or self.current_session()
        if not email:
            raise NotFoundError("No application to check")
        application = self.applications.find_by_email(email)
        return ApplicationStatusResponse(
            application_id=application.id,
            email=application.email,
            status=application.status,
            rejection_reason=application.rejection_reason,
            reviewed_at=application.reviewed_at,
        )

    def current_session(self) -> Optional[str]:
        """Email of the most recent submitter.

        Single-client only: one shared pointer per store, so a server with
        several applicants must pass an explicit email instead.
        """
        return self.applications.current_session()

    # Users

    def get_user(self, email: str) -> User:
        with self.storage.transaction() as tx:
            user = find_user_by_email(load_users(tx), email)
        if user is None:
            raise NotFoundError(f"User {email} not found")
        return user

    def list_users(self) -> list[User]:
        with self.storage.transaction() as tx:
            return load_users(tx)

    def dashboard(self, email: str) -> DashboardResponse:
        with self.storage.transaction() as tx:
            users = load_users(tx)
            user = find_user_by_email(users, email)
            if user is None:
                raise NotFoundError(f"User {email} not found")
            if user.status == UserStatus.APPROVED and not user.referral_code:
                user.referral_code = generate_referral_code(users)
                save_users(tx, users)
            settings = self.settings.load(tx)

        return DashboardResponse(
            user=user,
            referral_link=referral_link(self.referral_base_url, user.referral_code),
            pending_withdrawals=self.withdrawals.pending(user.email),
            min_withdrawal=settings.min_withdrawal,
        )

    # Withdrawals

    def request_withdrawal(self, email: str, amount: int, payout_phone: str) -> WithdrawalRequest:
        return self.withdrawals.request(email, amount, payout_phone)

    def process_withdrawal(self, withdrawal_id: UUID) -> WithdrawalRecord:
        return self.withdrawals.approve_and_process(withdrawal_id)

    def refund_withdrawal(self, withdrawal_id: UUID) -> WithdrawalRecord:
        return self.withdrawals.reject(withdrawal_id)

    def pending_withdrawals(self, email: Optional[str] = None) -> list[WithdrawalRequest]:
        return self.withdrawals.pending(email)

    def withdrawal_history(self, email: Optional[str] = None) -> list[WithdrawalRecord]:
        return self.withdrawals.history(email)

    # Settings and reporting

    def get_settings(self) -> ProgramSettings:
        return self.settings.get()

    def update_settings(self, changes: Mapping[str, Any]) -> SettingsUpdateResult:
        return self.settings.update(changes)

    def stats(self) -> ProgramStats:
        with self.storage.transaction() as tx:
            applications = load_applications(tx)
            users = load_users(tx)
            withdrawals = load_withdrawals(tx)
            settings = self.settings.load(tx)

        def count(status: ApplicationStatus) -> int:
            return sum(1 for a in applications if a.status == status)

        return ProgramStats(
            total_applications=len(applications),
            pending_applications=count(ApplicationStatus.PENDING),
            approved_applications=count(ApplicationStatus.APPROVED),
            rejected_applications=count(ApplicationStatus.REJECTED),
            total_users=len(users),
            pending_withdrawals=len(withdrawals),
            pending_withdrawal_amount=sum(w.amount for w in withdrawals),
            total_business_earnings=settings.total_business_earnings,
            total_referral_payouts=settings.total_referral_payouts,
            total_user_balances=sum(u.balance for u in users),
        )
