import asyncio
import json
import logging
import os
import pathlib
import time
import uuid
from collections import OrderedDict
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from keysgate import metrics as M
from keysgate.config import Settings
from keysgate.crypto import canonical_json, sha256_cid
from keysgate.errors import ConfigError
from keysgate.providers import PROVIDERS
from keysgate.status import normalize
from keysgate.verify import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    ClientSignedRequest,
    ClientVerifier,
    VerificationResult,
    WebhookVerifier,
)

load_dotenv()

logger = logging.getLogger("keysgate")
if not logger.handlers:
    handler = logging.StreamHandler()
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

DISCLAIMER = "Keys Pay is an aggregator platform."


# Remembered webhook event keys, oldest evicted first
class _SeenEvents:
    def __init__(self, cap: int):
        self.cap = cap
        self.data: OrderedDict[str, None] = OrderedDict()

    def add(self, key: str) -> bool:
        """Remember ``key``; False if it was already known."""
        if key in self.data:
            self.data.move_to_end(key, last=True)
            return False
        if self.cap and len(self.data) >= self.cap:
            self.data.popitem(last=False)
        self.data[key] = None
        return True


SET = Settings.from_env()

_missing = SET.missing_secrets()
if _missing:
    raise ConfigError("missing secrets for enabled features: " + ", ".join(_missing))

CLIENT_VERIFIER = (
    ClientVerifier(SET.hmac_shared_secret, SET.skew_window_ms) if SET.hmac_shared_secret else None
)
WEBHOOK_VERIFIER = WebhookVerifier(SET)
_seen = _SeenEvents(cap=SET.dedupe_cap)

app = FastAPI(title="Keys Pay Signing Gate", version="0.1.0")


class Rejected(Exception):
    """Stops a request before the handler runs; ``response`` is sent as is."""

    def __init__(self, response: Response, reason: str):
        super().__init__(reason)
        self.response = response
        self.reason = reason


@app.exception_handler(Rejected)
async def _render_rejected(request: Request, exc: Rejected):
    return exc.response


@app.middleware("http")
async def request_id_middleware(request, call_next):  # type: ignore
    req_id = str(uuid.uuid4())
    request.state.request_id = req_id
    resp = await call_next(request)
    resp.headers["X-Request-ID"] = req_id
    return resp


def _log_outcome(request: Request, **fields: Any) -> None:
    if not SET.structured_logging:
        return
    fields["request_id"] = getattr(request.state, "request_id", None)
    logger.info(json.dumps({"event": "verification", **fields}))


def feature_gate(provider: str):
    def _gate() -> bool:
        if not SET.enabled(provider):
            raise Rejected(PlainTextResponse("disabled", status_code=403), "disabled")
        return True

    return _gate


async def _read_body(request: Request) -> bytes:
    # Starlette caches the bytes on the request, so handlers can read them again
    body = await request.body()
    if len(body) > SET.max_body_bytes:
        raise Rejected(
            JSONResponse({"detail": "payload too large"}, status_code=413), "payload_too_large"
        )
    return body


async def require_client_signature(request: Request) -> VerificationResult:
    if CLIENT_VERIFIER is None:
        raise ConfigError("HMAC_SHARED_SECRET is not set")
    body = await _read_body(request)
    signed = ClientSignedRequest(
        method=request.method,
        path=request.url.path,
        timestamp=request.headers.get(TIMESTAMP_HEADER) or "0",
        body=body,
        signature=request.headers.get(SIGNATURE_HEADER) or "",
    )
    result = CLIENT_VERIFIER.verify(signed)
    M.VERIFICATIONS.labels(
        kind="client", provider="-", outcome="ok" if result.ok else result.reason
    ).inc()
    _log_outcome(
        request,
        kind="client",
        path=signed.path,
        ok=result.ok,
        reason=result.reason,
        status_code=200 if result.ok else 401,
    )
    if not result.ok:
        raise Rejected(
            JSONResponse({"code": "UNAUTHENTICATED", "message": result.reason}, status_code=401),
            result.reason or "unauthenticated",
        )
    return result


async def _accept(request: Request, provider: str) -> JSONResponse:
    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
    except ValueError:
        return JSONResponse(
            {"code": "INVALID_PAYLOAD", "message": "body is not valid JSON"}, status_code=400
        )
    spec = PROVIDERS[provider]
    return JSONResponse(
        {
            "ok": True,
            "provider": spec.display_name,
            "payload": payload,
            "disclaimer": f"Powered by {spec.display_name.title()}. {DISCLAIMER}",
        }
    )


@app.post(
    "/api/ramp/session",
    dependencies=[Depends(feature_gate("ramp")), Depends(require_client_signature)],
)
async def ramp_session(request: Request):
    return await _accept(request, "ramp")


@app.post(
    "/api/payouts/quote",
    dependencies=[Depends(feature_gate("nium")), Depends(require_client_signature)],
)
async def payouts_quote(request: Request):
    return await _accept(request, "nium")


@app.post(
    "/api/openpayd/accounts/apply",
    dependencies=[Depends(feature_gate("openpayd")), Depends(require_client_signature)],
)
async def openpayd_apply(request: Request):
    return await _accept(request, "openpayd")


def _append_jsonl(path: pathlib.Path, entry: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry, separators=(",", ":")) + "\n")


async def _record_event(provider: str, body: bytes) -> bool:
    """Record a verified webhook once. Returns True for a replayed event."""
    try:
        payload = json.loads(body.decode("utf-8"))
    except ValueError:
        payload = {"raw": body.decode("utf-8", "ignore")}
    if not isinstance(payload, dict):
        payload = {"data": payload}
    cid = sha256_cid(canonical_json(payload))
    event_id = str(payload["id"]) if payload.get("id") is not None else cid
    if not _seen.add(f"{provider}:{event_id}"):
        M.WEBHOOK_DUPLICATES.labels(provider=provider).inc()
        return True

    raw_status = payload.get("status")
    if raw_status is None and isinstance(payload.get("data"), dict):
        raw_status = payload["data"].get("status")
    raw_status = raw_status if isinstance(raw_status, str) else None
    status = normalize(provider, raw_status)

    if SET.event_log_path:
        entry = {
            "ts": int(time.time()),
            "provider": provider,
            "event_id": event_id,
            "status": status.value,
            "raw_status": raw_status,
            "cid": cid,
        }
        try:
            await asyncio.to_thread(_append_jsonl, pathlib.Path(SET.event_log_path), entry)
        except OSError:
            logger.exception("event log write failed for %s:%s", provider, event_id)
    return False


@app.post("/api/{provider}/webhook")
async def receive_webhook(provider: str, request: Request):
    spec = PROVIDERS.get(provider.lower())
    if spec is None or not spec.accepts_webhooks:
        raise HTTPException(status_code=404, detail="unknown provider")
    if not SET.enabled(spec.name):
        return PlainTextResponse("disabled", status_code=403)

    body = await _read_body(request)
    ok = WEBHOOK_VERIFIER.verify(spec.name, request.headers, body)
    M.VERIFICATIONS.labels(
        kind="webhook", provider=spec.name, outcome="ok" if ok else "invalid"
    ).inc()
    if not ok:
        _log_outcome(request, kind="webhook", provider=spec.name, ok=False, status_code=401)
        return PlainTextResponse("invalid", status_code=401)

    duplicate = await _record_event(spec.name, body)
    _log_outcome(
        request,
        kind="webhook",
        provider=spec.name,
        ok=True,
        duplicate=duplicate,
        status_code=200,
    )
    return JSONResponse({"ok": True})


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def main():
    # Convenience CLI entrypoint: `keyspay-gate`
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8787"))
    uvicorn.run("services.gate.main:app", host=host, port=port, reload=False)
