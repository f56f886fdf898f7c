from prometheus_client import Counter

VERIFICATIONS = Counter(
    "keyspay_verifications_total",
    "Signature verifications by outcome",
    ["kind", "provider", "outcome"],
)
WEBHOOK_DUPLICATES = Counter(
    "keyspay_webhook_duplicates_total",
    "Verified webhooks acknowledged without being recorded again",
    ["provider"],
)
