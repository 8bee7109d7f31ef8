"""
Spotify API integration for PartySkip.
Handles token refresh, the currently-playing poll and playback control.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import requests
import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from partyskip.core.errors import SkipCommandFailed, UpstreamTransient
from partyskip.core.transitions import TrackSnapshot

logger = logging.getLogger(__name__)

SCOPE = "user-read-playback-state user-read-currently-playing user-modify-playback-state"
EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class TokenState:
    access_token: Optional[str]
    refresh_token: str
    expires_at: Optional[int] = None

    def is_expired(self, now=None):
        if not self.access_token:
            return True
        if self.expires_at is None:
            return False
        return self.expires_at - (now or time.time()) < EXPIRY_MARGIN_SECONDS


class SpotifyTokenManager:
    """Owns the process's Spotify tokens.

    The refresh token comes from configuration and is long-lived; the
    access token is replaced on every refresh.
    """

    def __init__(self, client_id, client_secret, redirect_uri, refresh_token,
                 access_token=None, requests_timeout=5, oauth=None):
        if not refresh_token:
            raise ValueError("A Spotify refresh token is required")
        self._oauth = oauth or SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=SCOPE,
            cache_handler=MemoryCacheHandler(),
            requests_timeout=requests_timeout,
            open_browser=False,
        )
        self._state = TokenState(access_token=access_token, refresh_token=refresh_token)
        self._lock = threading.Lock()

    @property
    def state(self):
        return self._state

    def refresh(self):
        """Exchange the refresh token for a new access token"""
        refresh_token = self._state.refresh_token
        try:
            token_info = self._oauth.refresh_access_token(refresh_token)
        except (SpotifyOauthError, SpotifyException, requests.RequestException) as e:
            raise UpstreamTransient(f"Token refresh failed: {e}") from e

        if not token_info or not token_info.get("access_token"):
            raise UpstreamTransient("Token refresh returned no access token")

        new_state = TokenState(
            access_token=token_info["access_token"],
            refresh_token=token_info.get("refresh_token") or refresh_token,
            expires_at=token_info.get("expires_at"),
        )
        with self._lock:
            self._state = new_state
        logger.info("Refreshed Spotify access token")
        return new_state

    def get_access_token(self):
        """Current access token, refreshed first if missing or about to expire"""
        state = self._state
        if state.is_expired():
            state = self.refresh()
        return state.access_token


class SpotifyPlayback:
    """Playback client used by the coordinator.

    Every call is bounded by ``requests_timeout``; failures surface as
    UpstreamTransient so background cycles can log and move on.
    """

    def __init__(self, token_manager, requests_timeout=5):
        self.tokens = token_manager
        self.requests_timeout = requests_timeout
        self._client = None
        self._client_token = None

    def _spotify(self):
        access_token = self.tokens.get_access_token()
        if self._client is None or self._client_token != access_token:
            self._client = spotipy.Spotify(
                auth=access_token,
                requests_timeout=self.requests_timeout,
                retries=0,
                status_retries=0,
            )
            self._client_token = access_token
        return self._client

    def _call(self, description, operation):
        try:
            return operation(self._spotify())
        except SpotifyException as e:
            if e.http_status != 401:
                raise UpstreamTransient(f"Spotify {description} failed: {e.msg}") from e
            logger.info(f"Spotify rejected the access token during {description}, refreshing")
        except requests.RequestException as e:
            raise UpstreamTransient(f"Spotify {description} failed: {e}") from e

        self.tokens.refresh()
        try:
            return operation(self._spotify())
        except SpotifyException as e:
            raise UpstreamTransient(f"Spotify {description} failed: {e.msg}") from e
        except requests.RequestException as e:
            raise UpstreamTransient(f"Spotify {description} failed: {e}") from e

    def get_currently_playing(self):
        """Snapshot of the active track, or None when nothing is playing"""
        payload = self._call("currently-playing", lambda sp: sp.current_user_playing_track())
        return TrackSnapshot.from_spotify(payload)

    def skip_to_next(self):
        try:
            self._call("skip", lambda sp: sp.next_track())
        except UpstreamTransient as e:
            raise SkipCommandFailed(str(e)) from e
        return True

    def add_to_queue(self, track_id):
        self._call("add-to-queue", lambda sp: sp.add_to_queue(track_id))
        return True


def create_spotify_playback(config):
    """Build the playback client from app configuration"""
    missing = [
        key for key in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTIFY_REFRESH_TOKEN")
        if not config.get(key)
    ]
    if missing:
        raise ValueError(f"Missing Spotify configuration: {', '.join(missing)}")

    timeout = config["SPOTIFY_REQUEST_TIMEOUT"]
    token_manager = SpotifyTokenManager(
        client_id=config["SPOTIFY_CLIENT_ID"],
        client_secret=config["SPOTIFY_CLIENT_SECRET"],
        redirect_uri=config["SPOTIFY_REDIRECT_URI"],
        refresh_token=config["SPOTIFY_REFRESH_TOKEN"],
        access_token=config.get("SPOTIFY_ACCESS_TOKEN"),
        requests_timeout=timeout,
    )
    return SpotifyPlayback(token_manager, requests_timeout=timeout)
