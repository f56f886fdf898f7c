import os

from pydantic import BaseModel, ConfigDict

from .providers import PROVIDERS


def _flag(name: str) -> bool:
    # only the literal "true" enables a feature
    return os.getenv(name) == "true"


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)) or str(default))


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # secrets, one per trust relationship
    hmac_shared_secret: str | None = None  # HMAC_SHARED_SECRET (clients)
    ramp_webhook_secret: str | None = None  # RAMP_WEBHOOK_SECRET
    nium_webhook_secret: str | None = None  # NIUM_WEBHOOK_SECRET

    # feature flags
    ramp_enabled: bool = False  # RAMP_ENABLED
    nium_enabled: bool = False  # NIUM_ENABLED
    openpayd_enabled: bool = False  # OPENPAYD_ENABLED

    skew_window_ms: int = 300_000  # KEYSPAY_SKEW_WINDOW_MS
    webhook_tolerance: int | None = None  # KEYSPAY_WEBHOOK_TOLERANCE (seconds, off by default)

    max_body_bytes: int = 1_000_000  # KEYSPAY_MAX_BODY_BYTES

    # persistence
    event_log_path: str | None = None  # KEYSPAY_EVENT_LOG
    dedupe_cap: int = 10_000  # KEYSPAY_DEDUPE_CAP (max remembered webhook events)

    structured_logging: bool = True  # KEYSPAY_STRUCT_LOG ("0" to disable)

    @classmethod
    def from_env(cls) -> "Settings":
        tolerance = os.getenv("KEYSPAY_WEBHOOK_TOLERANCE")
        return cls(
            hmac_shared_secret=os.getenv("HMAC_SHARED_SECRET"),
            ramp_webhook_secret=os.getenv("RAMP_WEBHOOK_SECRET"),
            nium_webhook_secret=os.getenv("NIUM_WEBHOOK_SECRET"),
            ramp_enabled=_flag("RAMP_ENABLED"),
            nium_enabled=_flag("NIUM_ENABLED"),
            openpayd_enabled=_flag("OPENPAYD_ENABLED"),
            skew_window_ms=_int_env("KEYSPAY_SKEW_WINDOW_MS", 300_000),
            webhook_tolerance=int(tolerance) if tolerance else None,
            max_body_bytes=_int_env("KEYSPAY_MAX_BODY_BYTES", 1_000_000),
            event_log_path=os.getenv("KEYSPAY_EVENT_LOG") or None,
            dedupe_cap=_int_env("KEYSPAY_DEDUPE_CAP", 10_000),
            structured_logging=os.getenv("KEYSPAY_STRUCT_LOG", "1") != "0",
        )

    def enabled(self, provider: str) -> bool:
        return bool(getattr(self, PROVIDERS[provider].flag))

    def webhook_secret(self, provider: str) -> str:
        field = PROVIDERS[provider].secret_field
        return (getattr(self, field) if field else None) or ""

    def missing_secrets(self) -> list[str]:
        """Env names of secrets that an enabled feature needs but are unset or empty."""
        missing = []
        if any(self.enabled(name) for name in PROVIDERS) and not self.hmac_shared_secret:
            missing.append("HMAC_SHARED_SECRET")
        for name, spec in PROVIDERS.items():
            if spec.accepts_webhooks and self.enabled(name) and not self.webhook_secret(name):
                missing.append(spec.secret_field.upper())
        return missing
