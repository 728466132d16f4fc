"""
Plex webhook receiver.

POST /api/webhook?apikey=<WEBHOOK_API_KEY>
- body: multipart or urlencoded form with a `payload` field (what Plex sends),
  or the event JSON as the raw body.
- music play/resume -> track.updateNowPlaying, scrobble -> track.scrobble.
- everything else (pause/stop, movies, episodes, unknown events) -> 204.
"""

from __future__ import annotations
import hmac
import logging
from typing import Any
from urllib.parse import parse_qs

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from plex import Action, PayloadError, parse_event

log = logging.getLogger("plex-lastfm")

router = APIRouter()


def _authorized(given: str | None, expected: str) -> bool:
    if not given or not expected:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


async def _read_payload(request: Request) -> str | None:
    ct = (request.headers.get("content-type") or "").lower()
    if "multipart/form-data" in ct:
        form = await request.form()
        part: Any = form.get("payload")
        if part is None:
            return None
        if hasattr(part, "read"):
            data = await part.read()
            return data.decode("utf-8", errors="replace")
        return str(part)

    raw = await request.body()
    if "application/x-www-form-urlencoded" in ct:
        values = parse_qs(raw.decode("utf-8", errors="replace")).get("payload")
        return values[0] if values else None
    return raw.decode("utf-8", errors="replace") if raw else None


@router.post("/api/webhook")
async def plex_webhook(request: Request, apikey: str | None = Query(None)) -> Response:
    if not _authorized(apikey, request.app.state.settings.webhook_api_key):
        log.warning("Rejected webhook from %s: bad or missing apikey",
                    request.client.host if request.client else "?")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = await _read_payload(request)
    except Exception as e:
        log.warning("Could not read webhook body: %s", e)
        raise HTTPException(status_code=400, detail="Webhook payload is invalid.")

    if not payload or not payload.strip():
        raise HTTPException(status_code=400, detail="Webhook payload is missing.")

    try:
        event = parse_event(payload)

        # Only music; movies / episodes / photos are none of Last.fm's business
        if not event.is_track:
            log.debug("Skipping %s for media type %s", event.event, event.media_type)
            return Response(status_code=204)

        action = event.action()
        if action is Action.UNHANDLED:
            log.warning("Unhandled Plex event type: %s", event.event)
            return Response(status_code=204)
        if action is Action.IGNORE:
            return Response(status_code=204)

        track = event.track
        log.info("%s -> %s: %s", event.event, action.lastfm_method, track.describe())
        await request.app.state.lastfm.dispatch(track.title, track.artist, track.album,
                                                action.lastfm_method)
    except PayloadError as e:
        snippet = payload[:200]
        log.error("Error processing Plex webhook: %s | payload[:200]=%s", e, snippet)
        return JSONResponse({"detail": "Internal Server Error"}, status_code=500)
    except Exception:
        log.exception("Error processing Plex webhook")
        return JSONResponse({"detail": "Internal Server Error"}, status_code=500)

    return JSONResponse({"received": True, "event": event.event}, status_code=200)


def create_app(settings, lastfm) -> FastAPI:
    """Build the app around an already-configured LastFMClient (or anything with an async dispatch())."""
    app = FastAPI(title="Plex → Last.fm", docs_url=None, redoc_url=None)
    app.state.settings = settings
    app.state.lastfm = lastfm
    app.include_router(router)
    return app
