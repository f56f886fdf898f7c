from typing import NamedTuple

from .errors import UnknownProviderError


class ProviderSpec(NamedTuple):
    name: str
    display_name: str
    flag: str  # Settings field gating every route of this provider
    signature_header: str | None = None
    timestamp_header: str | None = None
    secret_field: str | None = None  # Settings field holding the webhook secret
    canonical: str = "webhook"  # providers sign "timestamp.body", never method/path

    @property
    def accepts_webhooks(self) -> bool:
        return bool(self.signature_header and self.timestamp_header and self.secret_field)


PROVIDERS: dict[str, ProviderSpec] = {
    "ramp": ProviderSpec(
        name="ramp",
        display_name="RAMP",
        flag="ramp_enabled",
        signature_header="x-ramp-signature",
        timestamp_header="x-ramp-timestamp",
        secret_field="ramp_webhook_secret",
    ),
    "nium": ProviderSpec(
        name="nium",
        display_name="NIUM",
        flag="nium_enabled",
        signature_header="x-nium-signature",
        timestamp_header="x-nium-timestamp",
        secret_field="nium_webhook_secret",
    ),
    "openpayd": ProviderSpec(
        name="openpayd",
        display_name="OPENPAYD",
        flag="openpayd_enabled",
    ),
}


def get_provider(name: str) -> ProviderSpec:
    try:
        return PROVIDERS[name.lower()]
    except KeyError:
        raise UnknownProviderError(name) from None
