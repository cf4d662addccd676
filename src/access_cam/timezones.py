"""Time zone resolution used for clip names and clip metadata."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
import logging
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tzlocal.windows_tz import win_tz

logger = logging.getLogger(__name__)

CLIP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

DEFAULT_PLATFORM_TIME_ZONE = "Israel Standard Time"
DEFAULT_IANA_TIME_ZONE = "Asia/Jerusalem"


@dataclass(frozen=True, slots=True)
class ResolvedTimeZone:
    """A concrete time zone together with the identifier reported in metadata."""

    tz: tzinfo
    key: str
    source: str

    def localise(self, instant: datetime) -> datetime:
        """Render *instant* in this zone. Naive values are treated as UTC."""

        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def clip_stamp(self, instant: datetime) -> str:
        """Return the ``yyyyMMdd_HHmmss`` rendering used in clip file names."""

        return self.localise(instant).strftime(CLIP_TIMESTAMP_FORMAT)


def _lookup(identifier: str | None) -> ZoneInfo | None:
    if not identifier or not identifier.strip():
        return None
    name = identifier.strip()
    # Windows ids such as "Israel Standard Time" map onto their IANA equivalent.
    name = win_tz.get(name, name)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        logger.debug("Time zone %r unavailable: %s", identifier, exc)
        return None


def _local_zone() -> ResolvedTimeZone:
    local = datetime.now(timezone.utc).astimezone().tzinfo or timezone.utc
    key = getattr(local, "key", None) or local.tzname(None) or "UTC"
    return ResolvedTimeZone(tz=local, key=str(key), source="local")


def _candidates(
    explicit: str | None,
    platform_default: str | None,
    iana_default: str | None,
) -> Iterator[tuple[str, str | None]]:
    yield "explicit", explicit
    yield "platform", platform_default
    yield "iana", iana_default


def resolve_time_zone(
    explicit: str | None = None,
    *,
    platform_default: str | None = DEFAULT_PLATFORM_TIME_ZONE,
    iana_default: str | None = DEFAULT_IANA_TIME_ZONE,
) -> ResolvedTimeZone:
    """Resolve the recorder's time zone, first match wins.

    The chain is: the explicitly supplied identifier, the platform-style
    default, the IANA default and finally the process local zone. Resolution
    never raises; an unusable explicit identifier is logged and skipped.
    """

    for source, identifier in _candidates(explicit, platform_default, iana_default):
        zone = _lookup(identifier)
        if zone is not None:
            return ResolvedTimeZone(tz=zone, key=zone.key, source=source)
        if source == "explicit" and identifier:
            logger.warning("Configured time zone %r could not be resolved; falling back", identifier)
    return _local_zone()


__all__ = [
    "CLIP_TIMESTAMP_FORMAT",
    "DEFAULT_IANA_TIME_ZONE",
    "DEFAULT_PLATFORM_TIME_ZONE",
    "ResolvedTimeZone",
    "resolve_time_zone",
]
