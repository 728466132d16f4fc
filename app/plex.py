import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lastfm_client import NOW_PLAYING, SCROBBLE
from track import Track

log = logging.getLogger("plex")


class PayloadError(ValueError): ...


class Action(Enum):
    NOW_PLAYING = "now_playing"
    SCROBBLE = "scrobble"
    IGNORE = "ignore"        # pause/stop: nothing to tell Last.fm
    UNHANDLED = "unhandled"  # event we don't know about

    @property
    def lastfm_method(self) -> str | None:
        return _METHODS.get(self)


_METHODS = {
    Action.NOW_PLAYING: NOW_PLAYING,
    Action.SCROBBLE: SCROBBLE,
}

_EVENTS = {
    "media.play": Action.NOW_PLAYING,
    "media.resume": Action.NOW_PLAYING,
    "media.scrobble": Action.SCROBBLE,
    "media.pause": Action.IGNORE,
    "media.stop": Action.IGNORE,
}


@dataclass
class PlexEvent:
    event: str | None
    media_type: str | None
    title: str | None
    artist: str | None  # grandparentTitle
    album: str | None   # parentTitle

    @property
    def is_track(self) -> bool:
        return self.media_type == "track"

    @property
    def track(self) -> Track:
        return Track(title=self.title, artist=self.artist, album=self.album)

    def action(self) -> Action:
        return classify(self.event)


def classify(event: str | None) -> Action:
    return _EVENTS.get(event or "", Action.UNHANDLED)


def _text(md: dict[str, Any], key: str) -> str | None:
    v = md.get(key)
    if v is None:
        return None
    return v if isinstance(v, str) else str(v)


def parse_event(raw: str | bytes) -> PlexEvent:
    """
    Parse a Plex webhook JSON document.
    Only the fields we relay are kept; titles are copied verbatim (no trimming).
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise PayloadError(f"payload is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PayloadError(f"payload must be a JSON object, got {type(data).__name__}")

    md = data.get("Metadata")
    if not isinstance(md, dict):
        raise PayloadError("payload 'Metadata' must be an object")

    event = data.get("event")
    parsed = PlexEvent(
        event=event if isinstance(event, str) else None,
        media_type=_text(md, "type"),
        title=_text(md, "title"),
        artist=_text(md, "grandparentTitle"),
        album=_text(md, "parentTitle"),
    )
    log.debug("Parsed: event=%s type=%s artist=%s title=%s album=%s",
              parsed.event, parsed.media_type, parsed.artist, parsed.title, parsed.album)
    return parsed
