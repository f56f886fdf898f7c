from enum import Enum
from typing import NamedTuple

from .errors import UnknownProviderError


class ProviderStatus(str, Enum):
    CREATED = "created"
    AUTHORIZED = "authorized"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StatusMap(NamedTuple):
    known: dict[str, ProviderStatus]
    # unknown -> conservative in-flight status; new provider statuses need an explicit entry
    default: ProviderStatus


STATUS_MAPS: dict[str, StatusMap] = {
    "ramp": StatusMap(
        known={
            "completed": ProviderStatus.COMPLETED,
            "failed": ProviderStatus.FAILED,
            "cancelled": ProviderStatus.FAILED,
            "authorized": ProviderStatus.AUTHORIZED,
        },
        default=ProviderStatus.CREATED,
    ),
    "nium": StatusMap(
        known={
            "completed": ProviderStatus.COMPLETED,
            "success": ProviderStatus.COMPLETED,
            "failed": ProviderStatus.FAILED,
            "rejected": ProviderStatus.FAILED,
        },
        default=ProviderStatus.PROCESSING,
    ),
}


def normalize(provider: str, raw_status: str | None) -> ProviderStatus:
    """Map a provider's raw status string onto :class:`ProviderStatus`.

    Matching is case-insensitive and never fails on an unrecognized status;
    only a provider outside :data:`STATUS_MAPS` raises.
    """
    try:
        mapping = STATUS_MAPS[provider.lower()]
    except KeyError:
        raise UnknownProviderError(provider) from None
    key = (raw_status or "").strip().lower()
    return mapping.known.get(key, mapping.default)
