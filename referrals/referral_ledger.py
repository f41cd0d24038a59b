import secrets
import string
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from loguru import logger

from .models import User, UserStatus, ReferralRecord
from .settings import SettingsService
from .storage import Transaction


CODE_PREFIX = "REF"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_referral_code(users: list[User]) -> str:
    taken = {u.referral_code for u in users if u.referral_code}
    while True:
        code = CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        if code not in taken:
            return code


def referral_link(base_url: str, code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}ref={code}"


class ReferralLedger:
    """Credits referrers and the business when an application is approved."""

    def __init__(self, settings: SettingsService):
        self.settings = settings

    @staticmethod
    def resolve(users: list[User], identifier: Optional[str]) -> Optional[User]:
        """Find the approved user a referral code or user id points at."""
        if not identifier or not identifier.strip():
            return None
        wanted = identifier.strip()
        users = [u for u in users if u.status == UserStatus.APPROVED]
        for user in users:
            if user.referral_code and user.referral_code.upper() == wanted.upper():
                return user
        try:
            user_id = UUID(wanted)
        except ValueError:
            return None
        return next((u for u in users if u.id == user_id), None)

    def credit(
        self,
        tx: Transaction,
        users: list[User],
        referred_user: User,
        referrer_id: Optional[UUID],
    ) -> Optional[User]:
        """Apply the earnings for one approved signup.

        ``users`` is mutated in place; the caller persists it. Returns the
        credited referrer, or None for a direct signup.
        """
        settings = self.settings.load(tx)

        referrer = None
        if referrer_id is not None and referrer_id != referred_user.id:
            referrer = next(
                (u for u in users if u.id == referrer_id and u.status == UserStatus.APPROVED),
                None,
            )

        if referrer is None:
            if referrer_id is not None:
                logger.warning("Referrer {} for {} is missing or not approved", referrer_id, referred_user.email)
            self.settings.record_business_earning(tx, settings.business_share)
            return None

        amount = settings.referral_earnings
        referrer.balance += amount
        referrer.total_earnings += amount
        referrer.referrals.append(ReferralRecord(
            referred_user_id=referred_user.id,
            referred_name=referred_user.name,
            joined_at=datetime.now(timezone.utc),
            amount=amount,
        ))
        self.settings.record_referral_payout(tx, amount)
        self.settings.record_business_earning(tx, settings.business_share)

        logger.info("Credited {} to {} for referring {}", amount, referrer.email, referred_user.email)
        return referrer
