from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Users mirror the status of the application they were created with.
UserStatus = ApplicationStatus


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class PollOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


class SubmitApplicationRequest(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    payment_proof: Optional[str] = Field(default=None, description="Encoded payment screenshot, stored as-is")
    referral_code: Optional[str] = Field(default=None, description="Referral code or referrer user id")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Jane Applicant",
            "email": "jane@example.com",
            "phone": "0700000000",
            "payment_proof": "data:image/png;base64,iVBORw0KGgo=",
            "referral_code": "REFAB12CD",
        }
    })


class RejectApplicationRequest(BaseModel):
    reason: Optional[str] = None


class WithdrawalCreateRequest(BaseModel):
    email: str
    amount: int
    payout_phone: str = ""

    model_config = ConfigDict(json_schema_extra={
        "example": {"email": "jane@example.com", "amount": 100, "payout_phone": "0700000000"}
    })


class AdminLogin(BaseModel):
    username: str
    password: str


class ChangeCredentialsRequest(BaseModel):
    new_username: str
    new_password: str


class ReferralRecord(BaseModel):
    referred_user_id: UUID
    referred_name: str
    joined_at: datetime
    amount: int


class Application(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str
    referral_code_used: Optional[str] = None
    referrer_id: Optional[UUID] = None
    payment_proof: str
    status: ApplicationStatus = ApplicationStatus.PENDING
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class User(BaseModel):
    id: UUID
    application_id: Optional[UUID] = None
    name: str
    email: str
    phone: str
    status: UserStatus = UserStatus.PENDING
    balance: int = 0
    total_earnings: int = 0
    pending_earnings: int = 0
    referral_code: Optional[str] = None
    referred_by: Optional[UUID] = None
    referrals: list[ReferralRecord] = Field(default_factory=list)
    created_at: datetime
    approved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WithdrawalRequest(BaseModel):
    id: UUID
    user_id: UUID
    user_email: str
    user_name: str
    amount: int
    payout_phone: str
    requested_at: datetime
    status: WithdrawalStatus = WithdrawalStatus.PENDING

    model_config = ConfigDict(from_attributes=True)


class WithdrawalRecord(WithdrawalRequest):
    resolved_at: datetime


class ProgramSettings(BaseModel):
    registration_fee: int = Field(default=500, ge=0)
    referral_earnings: int = Field(default=300, ge=0)
    business_share: int = Field(default=200, ge=0)
    min_withdrawal: int = Field(default=100, ge=0)
    starting_balance_on_approval: int = Field(default=500, ge=0)
    total_business_earnings: int = 0
    total_referral_payouts: int = 0


class AdminCredential(BaseModel):
    username: str
    password_hash: str
    updated_at: datetime


class AuthResult(BaseModel):
    ok: bool
    username: Optional[str] = None
    message: str = ""


class SettingsUpdateResult(BaseModel):
    settings: ProgramSettings
    updated: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)


class ApplicationStatusResponse(BaseModel):
    application_id: UUID
    email: str
    status: ApplicationStatus
    rejection_reason: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class PollResult(BaseModel):
    outcome: PollOutcome
    attempts: int
    application: Optional[Application] = None


class DashboardResponse(BaseModel):
    user: User
    referral_link: Optional[str] = None
    pending_withdrawals: list[WithdrawalRequest]
    min_withdrawal: int


class ProgramStats(BaseModel):
    total_applications: int
    pending_applications: int
    approved_applications: int
    rejected_applications: int
    total_users: int
    pending_withdrawals: int
    pending_withdrawal_amount: int
    total_business_earnings: int
    total_referral_payouts: int
    total_user_balances: int
