import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import pylast
import requests

from config import LASTFM_API_URL
from track import Track

log = logging.getLogger("lastfm")

# Last.fm error codes we branch on
SERVICE_OFFLINE = 11
TEMPORARILY_UNAVAILABLE = 16
RATE_LIMIT_EXCEEDED = 29
AUTH_ERRORS = (4, 9, 14)  # 4=Auth failed, 9=Invalid session, 14=Token unauthorized

TRANSIENT_ERRORS = (SERVICE_OFFLINE, TEMPORARILY_UNAVAILABLE)

NOW_PLAYING = "track.updateNowPlaying"
SCROBBLE = "track.scrobble"


class Outcome(Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"  # worth another try
    PERMANENT = "permanent"  # give up


@dataclass(frozen=True)
class AttemptResult:
    outcome: Outcome
    code: int | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


def sign(params: dict[str, Any], secret: str) -> str:
    """Last.fm api_sig: md5 of name+value pairs sorted by name, then the shared secret."""
    base = "".join(f"{key}{params[key]}" for key in sorted(params))
    return pylast.md5(base + secret)


def build_payload(*, method: str, track: str | None, artist: str | None, album: str | None,
                  api_key: str, session_key: str, secret: str, timestamp: int) -> dict[str, Any]:
    params = {
        "method": method,
        "artist": artist,
        "track": track,
        "album": album,
        "timestamp": timestamp,
        "api_key": api_key,
        "sk": session_key,
    }
    params = {k: v for k, v in params.items() if v is not None}
    # format is sent but never signed
    return {**params, "api_sig": sign(params, secret), "format": "json"}


class RequestsTransport:
    """Blocking form POST; LastFMClient runs it off the event loop.

    No shared requests.Session: concurrent webhooks post from separate worker threads.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def post(self, url: str, data: dict[str, Any]) -> requests.Response:
        return requests.post(
            url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )


def session_key_from_password(api_key: str, api_secret: str, username: str, password_md5: str) -> str:
    """Trade username + MD5 password for a session key (auth.getMobileSession via pylast)."""
    network = pylast.LastFMNetwork(
        api_key=api_key,
        api_secret=api_secret,
        username=username,
        password_hash=password_md5,
    )
    if not network.session_key:
        raise ValueError("Last.fm did not return a session key")
    return network.session_key


class LastFMClient:
    """Signed track.updateNowPlaying / track.scrobble calls with a bounded retry.

    dispatch() never raises: network, parse and API errors are logged and
    reported back as an AttemptResult.
    """

    def __init__(self, api_key: str, api_secret: str, session_key: str, *,
                 api_url: str = LASTFM_API_URL,
                 transport: Any = None,
                 max_retries: int = 5,
                 retry_delay: float = 2.0,
                 timeout: float = 10.0,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Callable[[], float] = time.time):
        self.api_key = api_key
        self.api_secret = api_secret
        self.session_key = session_key
        self.api_url = api_url
        self.transport = transport or RequestsTransport(timeout=timeout)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "LastFMClient":
        return cls(
            api_key=settings.lastfm_api_key,
            api_secret=settings.lastfm_api_secret,
            session_key=settings.lastfm_session_key,
            api_url=settings.lastfm_api_url,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            timeout=settings.request_timeout,
            **kwargs,
        )

    async def update_now_playing(self, track: Track) -> AttemptResult:
        return await self.dispatch(track.title, track.artist, track.album, NOW_PLAYING)

    async def scrobble(self, track: Track) -> AttemptResult:
        return await self.dispatch(track.title, track.artist, track.album, SCROBBLE)

    async def dispatch(self, track: str | None, artist: str | None, album: str | None,
                       method: str) -> AttemptResult:
        attempts = self.max_retries + 1
        result = AttemptResult(Outcome.PERMANENT, message="not attempted")
        for attempt in range(1, attempts + 1):
            try:
                result = await self._attempt(track, artist, album, method)
            except Exception as e:
                log.exception("Unexpected error calling Last.fm %s", method)
                return AttemptResult(Outcome.PERMANENT, message=str(e))

            if result.outcome is not Outcome.TRANSIENT:
                return result
            if attempt == attempts:
                break
            log.warning("Trying again in %ss for %s, error %s: %s. Attempt %s/%s",
                        self.retry_delay, method, result.code, result.message, attempt, attempts)
            await self._sleep(self.retry_delay)

        log.error("Max retries reached for %s. Last error: %s", method, result.message)
        return result

    async def _attempt(self, track, artist, album, method) -> AttemptResult:
        # Re-signed every attempt so the timestamp reflects send time
        payload = build_payload(
            method=method, track=track, artist=artist, album=album,
            api_key=self.api_key, session_key=self.session_key, secret=self.api_secret,
            timestamp=int(self._clock()),
        )
        try:
            response = await asyncio.to_thread(self.transport.post, self.api_url, payload)
        except requests.RequestException as e:
            log.error("Error reaching Last.fm for %s: %s", method, e)
            return AttemptResult(Outcome.PERMANENT, message=str(e))

        result = self._interpret(response, method)
        if result.ok:
            log.info("%s was likely successful. Track: %s - %s", method, artist, track)
        return result

    def _interpret(self, response, method: str) -> AttemptResult:
        status = response.status_code
        try:
            body = json.loads(response.text)
        except ValueError as e:
            log.error("Error parsing Last.fm response for %s (HTTP %s): %s", method, status, e)
            return AttemptResult(Outcome.PERMANENT, message=f"unparseable response: {e}")

        _warn_ignored(body, method)

        if 200 <= status < 300:
            return AttemptResult(Outcome.SUCCESS)

        code = body.get("error") if isinstance(body, dict) else None
        message = (body.get("message") if isinstance(body, dict) else None) or "No error message provided."
        if code in TRANSIENT_ERRORS:
            return AttemptResult(Outcome.TRANSIENT, code=code, message=message)

        if code in AUTH_ERRORS:
            log.error("%s failed, Last.fm auth error %s: %s", method, code, message)
        elif code == RATE_LIMIT_EXCEEDED:
            log.warning("%s failed, Last.fm rate limit exceeded: %s", method, message)
        else:
            log.warning("%s failed, Last.fm error %s (HTTP %s): %s", method, code, status, message)
        return AttemptResult(Outcome.PERMANENT, code=code, message=message)


def _warn_ignored(body: Any, method: str) -> None:
    if not isinstance(body, dict):
        return
    scrobbles = body.get("scrobbles")
    if not isinstance(scrobbles, dict):
        return
    attr = scrobbles.get("@attr") or {}
    try:
        ignored = int(attr.get("ignored") or 0)
    except (TypeError, ValueError):
        return
    if ignored > 0:
        log.warning("Last.fm ignored %s scrobble(s) for %s, check response: %s", ignored, method, body)
