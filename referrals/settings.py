from typing import Any, Mapping, Optional

from loguru import logger
from pydantic import ValidationError as ModelValidationError

from .models import ProgramSettings, SettingsUpdateResult
from .storage import KeyValueStore, Transaction, SETTINGS_KEY


EDITABLE_FIELDS = (
    "registration_fee",
    "referral_earnings",
    "business_share",
    "min_withdrawal",
    "starting_balance_on_approval",
)


def parse_amount(value: Any) -> Optional[int]:
    """Parse an admin-entered amount, returning None when it is not a whole non-negative number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            return int(text)
    return None


class SettingsService:
    def __init__(self, storage: KeyValueStore, defaults: Optional[ProgramSettings] = None):
        self.storage = storage
        self.defaults = defaults or ProgramSettings()

    def load(self, tx: Transaction) -> ProgramSettings:
        raw = tx.read(SETTINGS_KEY)
        if raw is None:
            settings = self.defaults.model_copy()
            self.save(tx, settings)
            return settings
        try:
            return ProgramSettings.model_validate(raw)
        except ModelValidationError:
            logger.warning("Stored settings are malformed, falling back to defaults")
            return self.defaults.model_copy()

    def save(self, tx: Transaction, settings: ProgramSettings) -> None:
        tx.write(SETTINGS_KEY, settings.model_dump(mode="json"))

    def get(self) -> ProgramSettings:
        with self.storage.transaction() as tx:
            return self.load(tx)

    def update(self, changes: Mapping[str, Any]) -> SettingsUpdateResult:
        updated: list[str] = []
        rejected: list[str] = []

        with self.storage.transaction() as tx:
            settings = self.load(tx)
            values = settings.model_dump()
            for field, raw_value in changes.items():
                if field not in EDITABLE_FIELDS:
                    rejected.append(field)
                    continue
                amount = parse_amount(raw_value)
                if amount is None:
                    logger.warning("Rejected setting {}={!r}, keeping {}", field, raw_value, values[field])
                    rejected.append(field)
                    continue
                if values[field] != amount:
                    values[field] = amount
                    updated.append(field)

            settings = ProgramSettings.model_validate(values)
            self.save(tx, settings)

        if updated:
            logger.info("Program settings updated: {}", {f: getattr(settings, f) for f in updated})
        if settings.referral_earnings + settings.business_share > settings.registration_fee:
            logger.warning(
                "Referral earnings ({}) plus business share ({}) exceed the registration fee ({})",
                settings.referral_earnings, settings.business_share, settings.registration_fee,
            )
        return SettingsUpdateResult(settings=settings, updated=updated, rejected=rejected)

    def record_referral_payout(self, tx: Transaction, amount: int) -> ProgramSettings:
        settings = self.load(tx)
        settings.total_referral_payouts += amount
        self.save(tx, settings)
        return settings

    def record_business_earning(self, tx: Transaction, amount: int) -> ProgramSettings:
        settings = self.load(tx)
        settings.total_business_earnings += amount
        self.save(tx, settings)
        return settings
