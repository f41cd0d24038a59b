from datetime import datetime, timezone
from typing import Protocol

from loguru import logger
from pydantic import ValidationError as ModelValidationError
from werkzeug.security import generate_password_hash, check_password_hash

from .errors import AuthenticationError, ValidationError
from .models import AdminCredential, AdminLogin, AuthResult
from .storage import KeyValueStore, Transaction, ADMIN_CREDENTIALS_KEY


MIN_PASSWORD_LENGTH = 8


class Authenticator(Protocol):
    def authenticate(self, credentials: AdminLogin) -> AuthResult:
        ...


class StoredCredentialAuthenticator:
    """Checks admin logins against a single hashed credential kept in the store."""

    def __init__(self, storage: KeyValueStore, default_username: str, default_password: str):
        self.storage = storage
        self.default_username = default_username
        self.default_password = default_password

    def _load(self, tx: Transaction) -> AdminCredential:
        raw = tx.read(ADMIN_CREDENTIALS_KEY)
        if raw is not None:
            try:
                return AdminCredential.model_validate(raw)
            except ModelValidationError:
                logger.warning("Stored admin credential is malformed, reseeding defaults")
        credential = AdminCredential(
            username=self.default_username,
            password_hash=generate_password_hash(self.default_password),
            updated_at=datetime.now(timezone.utc),
        )
        tx.write(ADMIN_CREDENTIALS_KEY, credential.model_dump(mode="json"))
        return credential

    def authenticate(self, credentials: AdminLogin) -> AuthResult:
        with self.storage.transaction() as tx:
            stored = self._load(tx)
        if credentials.username == stored.username and check_password_hash(stored.password_hash, credentials.password):
            return AuthResult(ok=True, username=stored.username)
        logger.warning("Failed admin login for {!r}", credentials.username)
        return AuthResult(ok=False, message="Invalid admin credentials")

    def change_credentials(self, current: AdminLogin, new_username: str, new_password: str) -> AuthResult:
        username = (new_username or "").strip()
        if not username:
            raise ValidationError("Admin username cannot be blank")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Admin password must be at least {MIN_PASSWORD_LENGTH} characters")

        with self.storage.transaction() as tx:
            stored = self._load(tx)
            if current.username != stored.username or not check_password_hash(stored.password_hash, current.password):
                raise AuthenticationError("Current admin credentials are incorrect")
            updated = AdminCredential(
                username=username,
                password_hash=generate_password_hash(new_password),
                updated_at=datetime.now(timezone.utc),
            )
            tx.write(ADMIN_CREDENTIALS_KEY, updated.model_dump(mode="json"))

        logger.info("Admin credentials changed, username is now {!r}", username)
        return AuthResult(ok=True, username=username, message="Credentials updated")
