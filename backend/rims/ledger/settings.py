"""
Runtime settings for the ledger core.

Built once from Config and mutable afterwards (register settings screen).
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace

from rims.validation import ValidationError


SYNC_MODES = ("background", "inline")


@dataclass(frozen=True)
class LedgerSettings:
    store_name: str = "RIMS Retail"
    currency_symbol: str = "$"
    currency_code: str = "USD"
    support_email: str = "admin@rims.local"
    loyalty_enabled: bool = True
    loyalty_earn_rate_cents: int = 100
    loyalty_redeem_value_cents: int = 1
    default_user_name: str = "Admin"
    sync_mode: str = "background"
    sync_max_attempts: int = 5

    @classmethod
    def from_config(cls, config) -> "LedgerSettings":
        """Accepts the Config class, an instance of it, or a Flask config mapping."""
        def _get(key, default):
            if isinstance(config, dict):
                return config.get(key, default)
            return getattr(config, key, default)

        return cls(
            loyalty_enabled=bool(_get("LOYALTY_ENABLED", True)),
            loyalty_earn_rate_cents=int(_get("LOYALTY_EARN_RATE_CENTS", 100)),
            loyalty_redeem_value_cents=int(_get("LOYALTY_REDEEM_VALUE_CENTS", 1)),
            default_user_name=_get("DEFAULT_USER_NAME", "Admin"),
            sync_mode=_get("SYNC_MODE", "background"),
            sync_max_attempts=int(_get("SYNC_MAX_ATTEMPTS", 5)),
        )

    def validate(self) -> "LedgerSettings":
        if self.loyalty_earn_rate_cents <= 0:
            raise ValidationError("loyalty_earn_rate_cents must be positive")
        if self.loyalty_redeem_value_cents < 0:
            raise ValidationError("loyalty_redeem_value_cents must be >= 0")
        if self.sync_mode not in SYNC_MODES:
            raise ValidationError(f"sync_mode must be one of {', '.join(SYNC_MODES)}")
        if self.sync_max_attempts < 1:
            raise ValidationError("sync_max_attempts must be >= 1")
        return self


def update_settings(ledger, **changes) -> LedgerSettings:
    """Replace selected settings on a live ledger. Unknown keys are rejected."""
    known = {f.name for f in fields(LedgerSettings)}
    unknown = sorted(set(changes) - known)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(unknown)}")

    with ledger.lock:
        ledger.settings = replace(ledger.settings, **changes).validate()
        ledger.sync.mode = ledger.settings.sync_mode
        ledger.sync.max_attempts = ledger.settings.sync_max_attempts
        return ledger.settings
