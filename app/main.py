import logging
from dataclasses import replace

import uvicorn

import config
from config import ConfigError, Settings
from lastfm_client import LastFMClient, session_key_from_password
from webhook import create_app

# -------------------------
# Logging setup
# -------------------------
logging.basicConfig(
    level=logging.INFO,  # replaced by Settings.log_level once config is read
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    force=True,  # ensure our config is used even if libs pre-configure logging
)
log = logging.getLogger("plex-lastfm")


def resolve_session_key(settings: Settings) -> Settings:
    if settings.lastfm_session_key:
        log.info("Using Last.fm session key auth")
        return settings

    log.info("Using Last.fm username + MD5 password auth")
    try:
        sk = session_key_from_password(
            settings.lastfm_api_key,
            settings.lastfm_api_secret,
            settings.lastfm_username,
            settings.lastfm_password_md5,
        )
    except Exception as e:
        raise SystemExit(f"Could not obtain a Last.fm session key: {e}")
    return replace(settings, lastfm_session_key=sk)


def build_app(settings: Settings):
    settings = resolve_session_key(settings)
    lfm = LastFMClient.from_settings(settings)
    return settings, create_app(settings, lfm)


def main():
    # Validate configuration up-front for clear errors
    try:
        settings = config.from_env()
    except ConfigError as e:
        raise SystemExit(str(e))
    logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))

    settings, app = build_app(settings)
    log.info("Starting Plex → Last.fm bridge on %s:%s", settings.host, settings.port)
    log.info("Last.fm endpoint: %s | retries=%s delay=%ss timeout=%ss",
             settings.lastfm_api_url, settings.max_retries, settings.retry_delay, settings.request_timeout)

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        log.info("Shutting down…")
