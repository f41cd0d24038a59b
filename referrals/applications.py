import re
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from loguru import logger

from .errors import (
    ValidationError,
    DuplicateError,
    NotFoundError,
    DataIntegrityError,
    InvalidStateTransitionError,
)
from .models import (
    Application,
    ApplicationStatus,
    SubmitApplicationRequest,
    User,
    UserStatus,
)
from .records import (
    load_applications,
    save_applications,
    load_users,
    save_users,
    load_session,
    save_session,
    normalize_email,
    find_user_by_email,
    find_user_for_application,
)
from .referral_ledger import ReferralLedger, generate_referral_code
from .settings import SettingsService
from .storage import KeyValueStore


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DEFAULT_REJECTION_REASON = "Rejected by admin"


class ApplicationService:
    def __init__(self, storage: KeyValueStore, settings: SettingsService, referral_ledger: ReferralLedger):
        self.storage = storage
        self.settings = settings
        self.referral_ledger = referral_ledger

    def submit(self, request: SubmitApplicationRequest) -> Application:
        name = (request.name or "").strip()
        email = normalize_email(request.email)
        phone = (request.phone or "").strip()
        proof = request.payment_proof

        if not name or not email or not phone:
            raise ValidationError("Name, email and phone are required")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(f"Invalid email address: {request.email}")
        if not proof or not proof.strip():
            raise ValidationError("Payment proof is required")

        with self.storage.transaction() as tx:
            applications = load_applications(tx)
            users = load_users(tx)

            if any(normalize_email(a.email) == email for a in applications) or find_user_by_email(users, email):
                raise DuplicateError(f"An application for {email} already exists")

            referral_identifier = (request.referral_code or "").strip() or None
            referrer = self.referral_ledger.resolve(users, referral_identifier)
            if referral_identifier and referrer is None:
                logger.info("Referral identifier {!r} from {} did not match any user", referral_identifier, email)

            now = datetime.now(timezone.utc)
            application = Application(
                id=uuid4(),
                name=name,
                email=email,
                phone=phone,
                referral_code_used=referral_identifier,
                referrer_id=referrer.id if referrer else None,
                payment_proof=proof,
                status=ApplicationStatus.PENDING,
                submitted_at=now,
            )
            user = User(
                id=uuid4(),
                application_id=application.id,
                name=name,
                email=email,
                phone=phone,
                status=UserStatus.PENDING,
                balance=0,
                referred_by=application.referrer_id,
                created_at=now,
            )

            applications.append(application)
            users.append(user)
            save_applications(tx, applications)
            save_users(tx, users)
            save_session(tx, email)

        logger.info("Application {} submitted by {}", application.id, email)
        return application

    def approve(self, application_id: UUID) -> Application:
        with self.storage.transaction() as tx:
            applications = load_applications(tx)
            application = self._find(applications, application_id)

            if application.status == ApplicationStatus.APPROVED:
                logger.info("Application {} is already approved", application_id)
                return application
            if application.status == ApplicationStatus.REJECTED:
                raise InvalidStateTransitionError(f"Application {application_id} was already rejected")

            users = load_users(tx)
            user = find_user_for_application(users, application)
            if user is None:
                logger.error("Application {} has no paired user", application_id)
                raise DataIntegrityError(f"No user found for application {application_id}")

            settings = self.settings.load(tx)
            now = datetime.now(timezone.utc)

            application.status = ApplicationStatus.APPROVED
            application.reviewed_at = now
            user.status = UserStatus.APPROVED
            user.approved_at = now
            user.balance += settings.starting_balance_on_approval
            if not user.referral_code:
                user.referral_code = generate_referral_code(users)

            self.referral_ledger.credit(tx, users, user, application.referrer_id)

            save_applications(tx, applications)
            save_users(tx, users)

        logger.info("Application {} approved for {}", application_id, application.email)
        return application

    def reject(self, application_id: UUID, reason: Optional[str] = None) -> Application:
        with self.storage.transaction() as tx:
            applications = load_applications(tx)
            application = self._find(applications, application_id)

            if application.status == ApplicationStatus.REJECTED:
                return application
            if application.status == ApplicationStatus.APPROVED:
                raise InvalidStateTransitionError(f"Application {application_id} was already approved")

            users = load_users(tx)
            user = find_user_for_application(users, application)

            application.status = ApplicationStatus.REJECTED
            application.rejection_reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
            application.reviewed_at = datetime.now(timezone.utc)
            if user is not None:
                user.status = UserStatus.REJECTED
                user.approved_at = None
                save_users(tx, users)
            else:
                logger.warning("Rejected application {} has no paired user", application_id)

            save_applications(tx, applications)

        logger.info("Application {} rejected: {}", application_id, application.rejection_reason)
        return application

    def get(self, application_id: UUID) -> Application:
        with self.storage.transaction() as tx:
            return self._find(load_applications(tx), application_id)

    def list_applications(self, status: Optional[ApplicationStatus] = None) -> list[Application]:
        with self.storage.transaction() as tx:
            applications = load_applications(tx)
        if status is not None:
            applications = [a for a in applications if a.status == status]
        return applications

    def find_by_email(self, email: str) -> Application:
        wanted = normalize_email(email)
        with self.storage.transaction() as tx:
            applications = load_applications(tx)
        for application in applications:
            if normalize_email(application.email) == wanted:
                return application
        raise NotFoundError(f"No application found for {email}")

    def current_session(self) -> Optional[str]:
        with self.storage.transaction() as tx:
            return load_session(tx)

    @staticmethod
    def _find(applications: list[Application], application_id: UUID) -> Application:
        for application in applications:
            if application.id == application_id:
                return application
        raise NotFoundError(f"Application {application_id} not found")
