"""
Unit Tests for the Application Lifecycle

Tests cover:
1. Submission and validation
2. Duplicate detection
3. Approval (balance, referral code, idempotency)
4. Rejection
5. Paired user integrity
"""

import pytest
from uuid import UUID

from referrals.errors import (
    ValidationError,
    DuplicateError,
    NotFoundError,
    DataIntegrityError,
    InvalidStateTransitionError,
)
from referrals.models import (
    ApplicationStatus,
    ProgramSettings,
    SubmitApplicationRequest,
    UserStatus,
)
from referrals.service import ReferralProgram
from referrals.storage import USERS_KEY


PROOF = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAAB"
MISSING_ID = UUID("00000000-0000-0000-0000-000000000000")


def make_request(email="jane@example.com", **overrides) -> SubmitApplicationRequest:
    fields = dict(name="Jane Applicant", email=email, phone="0700000000", payment_proof=PROOF)
    fields.update(overrides)
    return SubmitApplicationRequest(**fields)


class TestSubmitApplication:
    """Tests for application submission."""

    def test_submit_creates_pending_application_and_user(self):
        """A valid submission yields a pending application and a pending, empty user."""
        program = ReferralProgram()

        application = program.submit_application(make_request())

        stored = program.get_application(application.id)
        assert stored.status == ApplicationStatus.PENDING
        assert stored.payment_proof == PROOF
        assert stored.reviewed_at is None

        user = program.get_user("jane@example.com")
        assert user.status == UserStatus.PENDING
        assert user.balance == 0
        assert user.application_id == application.id
        assert user.referral_code is None

    def test_submit_sets_session_pointer(self):
        program = ReferralProgram()
        program.submit_application(make_request(email="Jane@Example.com"))
        assert program.current_session() == "jane@example.com"

    @pytest.mark.parametrize("field", ["name", "email", "phone"])
    def test_blank_required_field_rejected(self, field):
        """Blank name, email or phone fails validation."""
        program = ReferralProgram()
        with pytest.raises(ValidationError):
            program.submit_application(make_request(**{field: "   "}))
        assert program.list_applications() == []

    def test_malformed_email_rejected(self):
        program = ReferralProgram()
        with pytest.raises(ValidationError):
            program.submit_application(make_request(email="not-an-email"))

    def test_missing_proof_rejected(self):
        program = ReferralProgram()
        with pytest.raises(ValidationError):
            program.submit_application(make_request(payment_proof=None))
        assert program.list_users() == []

    def test_duplicate_email_rejected(self):
        """A second submission with the same email fails and leaves the first intact."""
        program = ReferralProgram()
        first = program.submit_application(make_request())

        with pytest.raises(DuplicateError):
            program.submit_application(make_request(email="JANE@example.com", name="Someone Else"))

        applications = program.list_applications()
        assert len(applications) == 1
        assert applications[0] == first
        assert len(program.list_users()) == 1
        assert program.get_user("jane@example.com").name == "Jane Applicant"

    def test_unknown_referral_code_is_kept_but_unresolved(self):
        program = ReferralProgram()
        application = program.submit_application(make_request(referral_code="NOPE123"))
        assert application.referral_code_used == "NOPE123"
        assert application.referrer_id is None


class TestApproveApplication:
    """Tests for approving applications."""

    def test_approve_credits_starting_balance(self):
        program = ReferralProgram(defaults=ProgramSettings(starting_balance_on_approval=750))
        application = program.submit_application(make_request())

        approved = program.approve_application(application.id)

        assert approved.status == ApplicationStatus.APPROVED
        assert approved.reviewed_at is not None
        user = program.get_user("jane@example.com")
        assert user.status == UserStatus.APPROVED
        assert user.approved_at is not None
        assert user.balance == 750

    def test_approve_generates_referral_code(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())
        program.approve_application(application.id)

        user = program.get_user("jane@example.com")
        assert user.referral_code is not None
        assert user.referral_code.startswith("REF")

    def test_approve_twice_is_a_no_op(self):
        """Re-approving does not credit the starting balance again."""
        program = ReferralProgram()
        application = program.submit_application(make_request())

        program.approve_application(application.id)
        program.approve_application(application.id)

        assert program.get_user("jane@example.com").balance == 500
        assert program.get_settings().total_business_earnings == 200

    def test_approve_unknown_application_fails(self):
        program = ReferralProgram()
        with pytest.raises(NotFoundError):
            program.approve_application(MISSING_ID)

    def test_approve_without_paired_user_is_integrity_error(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())
        program.storage.write(USERS_KEY, [])

        with pytest.raises(DataIntegrityError):
            program.approve_application(application.id)

        assert program.get_application(application.id).status == ApplicationStatus.PENDING

    def test_approve_rejected_application_fails(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())
        program.reject_application(application.id)

        with pytest.raises(InvalidStateTransitionError):
            program.approve_application(application.id)

    def test_legacy_user_found_by_email(self):
        """Users stored without an application id are paired by email."""
        program = ReferralProgram()
        application = program.submit_application(make_request())
        users = program.storage.read(USERS_KEY)
        users[0]["application_id"] = None
        program.storage.write(USERS_KEY, users)

        program.approve_application(application.id)

        assert program.get_user("jane@example.com").status == UserStatus.APPROVED


class TestRejectApplication:
    """Tests for rejecting applications."""

    def test_reject_with_default_reason(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())

        rejected = program.reject_application(application.id)

        assert rejected.status == ApplicationStatus.REJECTED
        assert rejected.rejection_reason == "Rejected by admin"
        assert rejected.reviewed_at is not None
        user = program.get_user("jane@example.com")
        assert user.status == UserStatus.REJECTED
        assert user.approved_at is None
        assert user.balance == 0

    def test_reject_with_reason_has_no_ledger_effects(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())

        rejected = program.reject_application(application.id, "Blurry screenshot")

        assert rejected.rejection_reason == "Blurry screenshot"
        settings = program.get_settings()
        assert settings.total_business_earnings == 0
        assert settings.total_referral_payouts == 0

    def test_reject_unknown_application_fails(self):
        program = ReferralProgram()
        with pytest.raises(NotFoundError):
            program.reject_application(MISSING_ID)

    def test_reject_approved_application_fails(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())
        program.approve_application(application.id)

        with pytest.raises(InvalidStateTransitionError):
            program.reject_application(application.id)


class TestApplicationQueries:
    """Tests for listing and status lookups."""

    def test_list_filters_by_status(self):
        program = ReferralProgram()
        a = program.submit_application(make_request(email="a@example.com"))
        program.submit_application(make_request(email="b@example.com"))
        program.approve_application(a.id)

        approved = program.list_applications(ApplicationStatus.APPROVED)
        pending = program.list_applications(ApplicationStatus.PENDING)

        assert [x.email for x in approved] == ["a@example.com"]
        assert [x.email for x in pending] == ["b@example.com"]

    def test_status_defaults_to_session(self):
        program = ReferralProgram()
        application = program.submit_application(make_request())

        status = program.application_status()

        assert status.application_id == application.id
        assert status.status == ApplicationStatus.PENDING

    def test_status_without_session_fails(self):
        program = ReferralProgram()
        with pytest.raises(NotFoundError):
            program.application_status()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
