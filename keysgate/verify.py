import time
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict

from .config import Settings
from .crypto import canonicalize, canonicalize_webhook, compare_digests, digest, now_ms
from .errors import ConfigError
from .providers import PROVIDERS, get_provider

SKEW_WINDOW_MS = 300_000
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

TIMESTAMP_HEADER = "x-timestamp"
SIGNATURE_HEADER = "x-signature"


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    reason: str | None = None


OK = VerificationResult(ok=True)
TIMESTAMP_SKEW = VerificationResult(ok=False, reason="timestamp_skew")
BAD_SIGNATURE = VerificationResult(ok=False, reason="bad_signature")


class ClientSignedRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["client"] = "client"
    method: str
    path: str
    timestamp: str = "0"  # raw header value, signed as sent
    body: bytes = b""
    signature: str = ""


class ProviderWebhook(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["webhook"] = "webhook"
    provider: str
    timestamp: str = ""
    body: bytes = b""
    signature: str = ""


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name) or headers.get(name.lower())
    if value is None:
        lname = name.lower()
        value = next((v for k, v in headers.items() if k.lower() == lname), None)
    return value or ""


def _parse_int(timestamp: str) -> int | None:
    try:
        return int(timestamp.strip())
    except ValueError:
        return None


def verify_client_request(
    request: ClientSignedRequest,
    secret: str,
    now: int | None = None,
    window_ms: int = SKEW_WINDOW_MS,
) -> VerificationResult:
    """Authenticate a client call signed over ``METHOD|PATH|TIMESTAMP|BODY``.

    The skew check runs first and reports ``timestamp_skew``; anything that
    gets past it and does not match reports ``bad_signature``. An unparseable
    timestamp counts as out of window.
    """
    ts = _parse_int(request.timestamp)
    now = now_ms() if now is None else now
    if ts is None or abs(now - ts) > window_ms:
        return TIMESTAMP_SKEW
    method = request.method.upper()
    body = request.body if method in BODY_METHODS else b""
    expected = digest(canonicalize(method, request.path, request.timestamp, body), secret)
    if compare_digests(expected, request.signature):
        return OK
    return BAD_SIGNATURE


def verify_webhook(
    headers: Mapping[str, str],
    body: bytes,
    secret: str,
    signature_header: str = SIGNATURE_HEADER,
    timestamp_header: str = TIMESTAMP_HEADER,
) -> bool:
    """Check a provider webhook signed over ``timestamp.rawBody``.

    Header names vary per provider. No timestamp window is applied here.
    """
    sig = _header(headers, signature_header)
    ts = _header(headers, timestamp_header)
    expected = digest(canonicalize_webhook(ts, body), secret)
    return compare_digests(expected, sig)


def verify_provider_webhook(
    webhook: ProviderWebhook,
    secret: str,
    tolerance: int | None = None,
    now: int | None = None,
) -> bool:
    """Typed webhook check; ``tolerance`` and ``now`` are epoch seconds, as providers send."""
    if tolerance is not None:
        ts = _parse_int(webhook.timestamp)
        now = int(time.time()) if now is None else now
        if ts is None or abs(now - ts) > tolerance:
            return False
    expected = digest(canonicalize_webhook(webhook.timestamp, webhook.body), secret)
    return compare_digests(expected, webhook.signature)


class ClientVerifier:
    def __init__(self, secret: str | None, window_ms: int = SKEW_WINDOW_MS):
        if not secret:
            raise ConfigError("HMAC_SHARED_SECRET is not set")
        self._secret = secret
        self.window_ms = window_ms

    def verify(self, request: ClientSignedRequest, now: int | None = None) -> VerificationResult:
        return verify_client_request(request, self._secret, now=now, window_ms=self.window_ms)


class WebhookVerifier:
    """Verifies webhooks for every provider in the provider table."""

    def __init__(self, settings: Settings):
        self._tolerance = settings.webhook_tolerance
        self._secrets: dict[str, str] = {}
        for name, spec in PROVIDERS.items():
            if spec.accepts_webhooks and settings.enabled(name):
                secret = settings.webhook_secret(name)
                if not secret:
                    raise ConfigError(f"{spec.secret_field.upper()} is not set")
                self._secrets[name] = secret

    def from_headers(self, provider: str, headers: Mapping[str, str], body: bytes) -> ProviderWebhook:
        spec = get_provider(provider)
        return ProviderWebhook(
            provider=spec.name,
            timestamp=_header(headers, spec.timestamp_header),
            body=body,
            signature=_header(headers, spec.signature_header),
        )

    def verify(self, provider: str, headers: Mapping[str, str], body: bytes) -> bool:
        secret = self._secrets.get(get_provider(provider).name)
        if secret is None:
            return False
        webhook = self.from_headers(provider, headers, body)
        return verify_provider_webhook(webhook, secret, tolerance=self._tolerance)
