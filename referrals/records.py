"""Typed access to the stored entity collections.

Collections are kept as JSON lists of records; these helpers convert them to
and from the pydantic models inside a single store transaction.
"""

from typing import Optional, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError as ModelValidationError

from .models import Application, User, WithdrawalRequest, WithdrawalRecord
from .storage import (
    Transaction,
    APPLICATIONS_KEY,
    USERS_KEY,
    WITHDRAWALS_KEY,
    WITHDRAWAL_HISTORY_KEY,
    SESSION_KEY,
)

M = TypeVar("M", bound=BaseModel)


def _load(tx: Transaction, key: str, model: type[M]) -> list[M]:
    raw = tx.read(key, [])
    if not isinstance(raw, list):
        logger.warning("Ignoring malformed {} collection", key)
        return []
    items = []
    for entry in raw:
        try:
            items.append(model.model_validate(entry))
        except ModelValidationError as e:
            logger.warning("Skipping malformed {} record: {}", key, e.errors()[:1])
    return items


def _save(tx: Transaction, key: str, items: list[BaseModel]) -> None:
    tx.write(key, [item.model_dump(mode="json") for item in items])


def load_applications(tx: Transaction) -> list[Application]:
    return _load(tx, APPLICATIONS_KEY, Application)


def save_applications(tx: Transaction, applications: list[Application]) -> None:
    _save(tx, APPLICATIONS_KEY, applications)


def load_users(tx: Transaction) -> list[User]:
    return _load(tx, USERS_KEY, User)


def save_users(tx: Transaction, users: list[User]) -> None:
    _save(tx, USERS_KEY, users)


def load_withdrawals(tx: Transaction) -> list[WithdrawalRequest]:
    return _load(tx, WITHDRAWALS_KEY, WithdrawalRequest)


def save_withdrawals(tx: Transaction, withdrawals: list[WithdrawalRequest]) -> None:
    _save(tx, WITHDRAWALS_KEY, withdrawals)


def load_withdrawal_history(tx: Transaction) -> list[WithdrawalRecord]:
    return _load(tx, WITHDRAWAL_HISTORY_KEY, WithdrawalRecord)


def save_withdrawal_history(tx: Transaction, history: list[WithdrawalRecord]) -> None:
    _save(tx, WITHDRAWAL_HISTORY_KEY, history)


def load_session(tx: Transaction) -> Optional[str]:
    value = tx.read(SESSION_KEY)
    return value if isinstance(value, str) and value else None


def save_session(tx: Transaction, email: str) -> None:
    tx.write(SESSION_KEY, email)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def find_user_by_email(users: list[User], email: str) -> Optional[User]:
    wanted = normalize_email(email)
    for user in users:
        if normalize_email(user.email) == wanted:
            return user
    return None


def find_user_for_application(users: list[User], application: Application) -> Optional[User]:
    for user in users:
        if user.application_id == application.id:
            return user
    # Records created before users were linked by application id.
    for user in users:
        if user.application_id is None and normalize_email(user.email) == normalize_email(application.email):
            return user
    return None
