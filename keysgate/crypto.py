import hashlib
import hmac
import json
import time
from typing import Any, NamedTuple


def _to_bytes(data: bytes | str) -> bytes:
    if isinstance(data, bytes):
        return data
    return data.encode("utf-8")


def canonicalize(method: str, path: str, timestamp: str | int, body: bytes | str = b"") -> bytes:
    # body goes in verbatim; callers must sign the exact bytes they send
    head = f"{method.upper()}|{path}|{timestamp}|".encode("utf-8")
    return head + _to_bytes(body)


def canonicalize_webhook(timestamp: str | int, body: bytes | str) -> bytes:
    return f"{timestamp}.".encode("utf-8") + _to_bytes(body)


def digest(payload: bytes | str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), _to_bytes(payload), hashlib.sha256).hexdigest()


def compare_digests(a: str, b: str) -> bool:
    ba = a.encode("utf-8")
    bb = b.encode("utf-8")
    if len(ba) != len(bb):
        return False
    return hmac.compare_digest(ba, bb)


def now_ms() -> int:
    return int(time.time() * 1000)


class SignedHeaders(NamedTuple):
    timestamp: str
    signature: str
    body: bytes

    def headers(self) -> dict[str, str]:
        return {"x-timestamp": self.timestamp, "x-signature": self.signature}


def sign_request(
    method: str,
    path: str,
    body: Any = None,
    secret: str = "",
    ts_ms: int | None = None,
) -> SignedHeaders:
    """Client half of the request-signing protocol.

    ``body`` may be raw bytes/str (signed as is) or a JSON-serializable object,
    which is serialized once here; the returned ``body`` must be sent unchanged.
    """
    ts = str(ts_ms if ts_ms is not None else now_ms())
    if body is None:
        raw = b""
    elif isinstance(body, (bytes, str)):
        raw = _to_bytes(body)
    else:
        raw = json.dumps(body, separators=(",", ":")).encode("utf-8")
    sig = digest(canonicalize(method, path, ts, raw), secret)
    return SignedHeaders(timestamp=ts, signature=sig, body=raw)


def sign_webhook(timestamp: str | int, body: bytes | str, secret: str) -> str:
    return digest(canonicalize_webhook(timestamp, body), secret)


def canonical_json(obj: Any) -> bytes:
    # surrogatepass: json.loads accepts lone "\ud800" escapes, keep them encodable
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8", "surrogatepass"
    )


def sha256_cid(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()
