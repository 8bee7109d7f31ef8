import pytest

from partyskip.app import create_app
from partyskip.core import PartyStore, VoteCoordinator
from partyskip.core.errors import SkipCommandFailed, UpstreamTransient
from partyskip.core.transitions import TrackSnapshot
from partyskip.models import init_db

PARTY_ID = "test-party"

TEST_CONFIG = {
    "PARTY_ID": PARTY_ID,
    "DATABASE_URL": "sqlite:///:memory:",
    "DOWNVOTE_THRESHOLD": 5,
    "START_SCHEDULER": False,
    "SPOTIFY_ACCESS_TOKEN": None,
    "SPOTIFY_REFRESH_TOKEN": None,
}


def make_snapshot(track_id="track-a", name=None, artist=None, added_by=None):
    suffix = track_id.split("-")[-1].upper()
    return TrackSnapshot(
        track_id=track_id,
        name=name or f"Song {suffix}",
        artist=artist or f"Artist {suffix}",
        added_by=added_by,
    )


class FakePlayback:
    """In-memory stand-in for the Spotify playback client"""

    def __init__(self):
        self.snapshot = None
        self.skip_calls = 0
        self.queued = []
        self.fail_poll = False
        self.fail_skip = False
        self.skip_error = None
        self.skip_result = True
        self.fail_queue = False

    def get_currently_playing(self):
        if self.fail_poll:
            raise UpstreamTransient("Spotify currently-playing failed: timed out")
        return self.snapshot

    def skip_to_next(self):
        self.skip_calls += 1
        if self.fail_skip:
            raise SkipCommandFailed("Spotify skip failed: no active device")
        if self.skip_error is not None:
            raise self.skip_error
        return self.skip_result

    def add_to_queue(self, track_id):
        if self.fail_queue:
            raise UpstreamTransient("Spotify add-to-queue failed: no active device")
        self.queued.append(track_id)
        return True


@pytest.fixture
def playback():
    return FakePlayback()


@pytest.fixture
def store():
    """A PartyStore over a fresh in-memory database"""
    init_db("sqlite:///:memory:")
    return PartyStore()


@pytest.fixture
def events():
    return []


@pytest.fixture
def coordinator(store, playback, events):
    return VoteCoordinator(
        party_id=PARTY_ID,
        store=store,
        playback=playback,
        downvote_threshold=5,
        notifier=lambda event, payload: events.append((event, payload)),
    )


@pytest.fixture
def app(playback):
    """Create a test app with the scheduler off and a fake playback client"""
    app = create_app(TEST_CONFIG, playback=playback)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def playing(app, playback):
    """Make the fake service report a track and run one poll"""
    def _play(track_id="track-a", **kwargs):
        playback.snapshot = make_snapshot(track_id, **kwargs)
        return app.coordinator.poll_once()
    return _play
