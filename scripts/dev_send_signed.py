# Send a signed client call and a signed Ramp webhook to localhost:8787
import json
import os
import time

import httpx

from keysgate.crypto import sign_request, sign_webhook

base = os.getenv("KEYSPAY_GATE_URL", "http://127.0.0.1:8787")

secret = os.getenv("HMAC_SHARED_SECRET", "change-me")
signed = sign_request("POST", "/api/ramp/session", {"amount": 100, "asset": "BTC"}, secret)
headers = {**signed.headers(), "Content-Type": "application/json"}
url = base + "/api/ramp/session"
print("POST", url, "headers:", headers)
r = httpx.post(url, headers=headers, content=signed.body, timeout=10)
print(r.status_code, r.text)

ramp_secret = os.getenv("RAMP_WEBHOOK_SECRET", "change-me")
raw = json.dumps({"id": "evt_demo", "status": "completed"}, separators=(",", ":")).encode("utf-8")
ts = str(int(time.time()))
headers = {
    "x-ramp-signature": sign_webhook(ts, raw, ramp_secret),
    "x-ramp-timestamp": ts,
    "Content-Type": "application/json",
}
url = base + "/api/ramp/webhook"
print("POST", url, "headers:", headers)
r = httpx.post(url, headers=headers, content=raw, timeout=10)
print(r.status_code, r.text)
