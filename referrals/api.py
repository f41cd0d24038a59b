from typing import Any, Optional
from uuid import UUID
from fastapi import Body, Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .auth import Authenticator, StoredCredentialAuthenticator
from .config import settings as config
from .errors import (
    ReferralProgramError, ValidationError, DuplicateError, NotFoundError,
    DataIntegrityError, InsufficientFundsError, PolicyError,
    InvalidStateTransitionError, AuthenticationError,
)
from .logging_setup import setup_logging
from .models import (
    AdminLogin, Application, ApplicationStatus, ApplicationStatusResponse,
    AuthResult, ChangeCredentialsRequest, DashboardResponse, ProgramSettings,
    ProgramStats, RejectApplicationRequest, SettingsUpdateResult,
    SubmitApplicationRequest, User, WithdrawalCreateRequest, WithdrawalRecord,
    WithdrawalRequest,
)
from .service import ReferralProgram
from .storage import InMemoryStorage, JsonFileStorage, KeyValueStore


def _status_for(error: ReferralProgramError) -> int:
    # DataIntegrityError first: it is also a NotFoundError.
    if isinstance(error, DataIntegrityError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, (DuplicateError, InvalidStateTransitionError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, (InsufficientFundsError, PolicyError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_400_BAD_REQUEST


def _http_error(error: ReferralProgramError) -> HTTPException:
    return HTTPException(status_code=_status_for(error), detail=str(error))


def build_storage() -> KeyValueStore:
    if config.STORAGE_BACKEND == "json":
        return JsonFileStorage(config.STORAGE_PATH)
    return InMemoryStorage()


def create_app(
    program: Optional[ReferralProgram] = None,
    authenticator: Optional[Authenticator] = None,
    root_path: str = "",
) -> FastAPI:
    if program is None:
        program = ReferralProgram(
            storage=build_storage(),
            defaults=config.program_defaults(),
            referral_base_url=config.REFERRAL_BASE_URL,
        )
    if authenticator is None:
        authenticator = StoredCredentialAuthenticator(
            program.storage, config.ADMIN_USERNAME, config.ADMIN_PASSWORD,
        )

    app = FastAPI(
        title="Referral Program API",
        description="Applications, referral earnings and withdrawals for a referral program",
        version="1.0.0",
        root_path=root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.program = program
    app.state.authenticator = authenticator

    basic = HTTPBasic()

    def require_admin(credentials: HTTPBasicCredentials = Depends(basic)) -> AdminLogin:
        login = AdminLogin(username=credentials.username, password=credentials.password)
        result = authenticator.authenticate(login)
        if not result.ok:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=result.message or "Invalid admin credentials",
                headers={"WWW-Authenticate": "Basic"},
            )
        return login

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "referral-program"}

    # Applicants

    @app.post("/applications", response_model=Application, status_code=status.HTTP_201_CREATED, tags=["Applications"])
    def submit_application(request: SubmitApplicationRequest) -> Application:
        try:
            return program.submit_application(request)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.get("/applications/status", response_model=ApplicationStatusResponse, tags=["Applications"])
    def application_status(email: str) -> ApplicationStatusResponse:
        try:
            return program.application_status(email)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.get("/applications/{application_id}", response_model=Application, tags=["Applications"])
    def get_application(application_id: UUID) -> Application:
        try:
            return program.get_application(application_id)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.get("/users/{email}/dashboard", response_model=DashboardResponse, tags=["Users"])
    def user_dashboard(email: str) -> DashboardResponse:
        try:
            return program.dashboard(email)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.post("/withdrawals", response_model=WithdrawalRequest, status_code=status.HTTP_201_CREATED, tags=["Withdrawals"])
    def request_withdrawal(request: WithdrawalCreateRequest) -> WithdrawalRequest:
        try:
            return program.request_withdrawal(request.email, request.amount, request.payout_phone)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.get("/settings", response_model=ProgramSettings, tags=["Settings"])
    def get_settings() -> ProgramSettings:
        return program.get_settings()

    # Admin

    @app.get("/admin/applications", response_model=list[Application], tags=["Admin"])
    def list_applications(
        status_filter: Optional[ApplicationStatus] = Query(default=None, alias="status"),
        admin: AdminLogin = Depends(require_admin),
    ) -> list[Application]:
        return program.list_applications(status_filter)

    @app.post("/admin/applications/{application_id}/approve", response_model=Application, tags=["Admin"])
    def approve_application(application_id: UUID, admin: AdminLogin = Depends(require_admin)) -> Application:
        try:
            return program.approve_application(application_id)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.post("/admin/applications/{application_id}/reject", response_model=Application, tags=["Admin"])
    def reject_application(
        application_id: UUID,
        request: Optional[RejectApplicationRequest] = None,
        admin: AdminLogin = Depends(require_admin),
    ) -> Application:
        try:
            return program.reject_application(application_id, request.reason if request else None)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.get("/admin/users", response_model=list[User], tags=["Admin"])
    def list_users(admin: AdminLogin = Depends(require_admin)) -> list[User]:
        return program.list_users()

    @app.get("/admin/withdrawals", response_model=list[WithdrawalRequest], tags=["Admin"])
    def pending_withdrawals(admin: AdminLogin = Depends(require_admin)) -> list[WithdrawalRequest]:
        return program.pending_withdrawals()

    @app.get("/admin/withdrawals/history", response_model=list[WithdrawalRecord], tags=["Admin"])
    def withdrawal_history(admin: AdminLogin = Depends(require_admin)) -> list[WithdrawalRecord]:
        return program.withdrawal_history()

    @app.post("/admin/withdrawals/{withdrawal_id}/process", response_model=WithdrawalRecord, tags=["Admin"])
    def process_withdrawal(withdrawal_id: UUID, admin: AdminLogin = Depends(require_admin)) -> WithdrawalRecord:
        try:
            return program.process_withdrawal(withdrawal_id)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.post("/admin/withdrawals/{withdrawal_id}/refund", response_model=WithdrawalRecord, tags=["Admin"])
    def refund_withdrawal(withdrawal_id: UUID, admin: AdminLogin = Depends(require_admin)) -> WithdrawalRecord:
        try:
            return program.refund_withdrawal(withdrawal_id)
        except ReferralProgramError as e:
            raise _http_error(e)

    @app.patch("/admin/settings", response_model=SettingsUpdateResult, tags=["Admin"])
    def update_settings(
        changes: dict[str, Any] = Body(...),
        admin: AdminLogin = Depends(require_admin),
    ) -> SettingsUpdateResult:
        return program.update_settings(changes)

    @app.get("/admin/stats", response_model=ProgramStats, tags=["Admin"])
    def program_stats(admin: AdminLogin = Depends(require_admin)) -> ProgramStats:
        return program.stats()

    @app.put("/admin/credentials", response_model=AuthResult, tags=["Admin"])
    def change_credentials(
        request: ChangeCredentialsRequest,
        admin: AdminLogin = Depends(require_admin),
    ) -> AuthResult:
        change = getattr(authenticator, "change_credentials", None)
        if change is None:
            raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="Credentials are managed externally")
        try:
            return change(admin, request.new_username, request.new_password)
        except ReferralProgramError as e:
            raise _http_error(e)

    return app


setup_logging(config.LOG_LEVEL, config.LOG_FILE)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
