from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from loguru import logger

from .errors import (
    ValidationError,
    PolicyError,
    NotFoundError,
    InsufficientFundsError,
    DataIntegrityError,
)
from .models import (
    User,
    UserStatus,
    WithdrawalRequest,
    WithdrawalRecord,
    WithdrawalStatus,
)
from .records import (
    load_users,
    save_users,
    load_withdrawals,
    save_withdrawals,
    load_withdrawal_history,
    save_withdrawal_history,
    normalize_email,
    find_user_by_email,
)
from .settings import SettingsService
from .storage import KeyValueStore, Transaction


class WithdrawalService:
    """Reserves funds on request and settles them on the admin's decision.

    Active requests are always ``pending``; processing or refunding removes
    them from the active list and archives a resolved record.
    """

    def __init__(self, storage: KeyValueStore, settings: SettingsService):
        self.storage = storage
        self.settings = settings

    def request(self, email: str, amount: int, payout_phone: str) -> WithdrawalRequest:
        phone = (payout_phone or "").strip()
        if amount is None or amount <= 0:
            raise ValidationError("Withdrawal amount must be positive")
        if not phone:
            raise ValidationError("A payout phone number is required")

        with self.storage.transaction() as tx:
            settings = self.settings.load(tx)
            if amount < settings.min_withdrawal:
                raise PolicyError(f"Minimum withdrawal is {settings.min_withdrawal}")

            users = load_users(tx)
            user = find_user_by_email(users, email)
            if user is None:
                raise NotFoundError(f"User {email} not found")
            if user.status != UserStatus.APPROVED:
                raise PolicyError(f"User {email} is not approved for withdrawals")
            if amount > user.balance:
                raise InsufficientFundsError(
                    f"Requested {amount} but available balance is {user.balance}"
                )

            user.balance -= amount
            withdrawal = WithdrawalRequest(
                id=uuid4(),
                user_id=user.id,
                user_email=user.email,
                user_name=user.name,
                amount=amount,
                payout_phone=phone,
                requested_at=datetime.now(timezone.utc),
            )
            withdrawals = load_withdrawals(tx)
            withdrawals.append(withdrawal)

            save_users(tx, users)
            save_withdrawals(tx, withdrawals)

        logger.info("Withdrawal {} of {} requested by {}", withdrawal.id, amount, user.email)
        return withdrawal

    def approve_and_process(self, withdrawal_id: UUID) -> WithdrawalRecord:
        with self.storage.transaction() as tx:
            withdrawal = self._take(tx, withdrawal_id)
            record = self._archive(tx, withdrawal, WithdrawalStatus.COMPLETED)

        logger.info("Withdrawal {} of {} paid out to {}", withdrawal_id, withdrawal.amount, withdrawal.payout_phone)
        return record

    def reject(self, withdrawal_id: UUID) -> WithdrawalRecord:
        with self.storage.transaction() as tx:
            withdrawal = self._take(tx, withdrawal_id)

            users = load_users(tx)
            owner = self._owner(users, withdrawal)
            if owner is None:
                logger.error("Owner of withdrawal {} is missing, cannot refund", withdrawal_id)
                raise DataIntegrityError(f"No user found for withdrawal {withdrawal_id}")
            owner.balance += withdrawal.amount
            save_users(tx, users)

            record = self._archive(tx, withdrawal, WithdrawalStatus.REFUNDED)

        logger.info("Withdrawal {} rejected, refunded {} to {}", withdrawal_id, withdrawal.amount, owner.email)
        return record

    def pending(self, email: Optional[str] = None) -> list[WithdrawalRequest]:
        with self.storage.transaction() as tx:
            withdrawals = load_withdrawals(tx)
        if email:
            wanted = normalize_email(email)
            withdrawals = [w for w in withdrawals if normalize_email(w.user_email) == wanted]
        return withdrawals

    def history(self, email: Optional[str] = None) -> list[WithdrawalRecord]:
        with self.storage.transaction() as tx:
            records = load_withdrawal_history(tx)
        if email:
            wanted = normalize_email(email)
            records = [r for r in records if normalize_email(r.user_email) == wanted]
        return records

    @staticmethod
    def _take(tx: Transaction, withdrawal_id: UUID) -> WithdrawalRequest:
        withdrawals = load_withdrawals(tx)
        for index, withdrawal in enumerate(withdrawals):
            if withdrawal.id == withdrawal_id:
                del withdrawals[index]
                save_withdrawals(tx, withdrawals)
                return withdrawal
        raise NotFoundError(f"Withdrawal {withdrawal_id} not found")

    @staticmethod
    def _owner(users: list[User], withdrawal: WithdrawalRequest) -> Optional[User]:
        for user in users:
            if user.id == withdrawal.user_id:
                return user
        return find_user_by_email(users, withdrawal.user_email)

    @staticmethod
    def _archive(tx: Transaction, withdrawal: WithdrawalRequest, status: WithdrawalStatus) -> WithdrawalRecord:
        record = WithdrawalRecord(
            **withdrawal.model_dump(exclude={"status"}),
            status=status,
            resolved_at=datetime.now(timezone.utc),
        )
        history = load_withdrawal_history(tx)
        history.append(record)
        save_withdrawal_history(tx, history)
        return record
