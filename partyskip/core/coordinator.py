"""Playback-to-vote coordination.

Two independent actors drive this module: the scheduler calls
``poll_once`` on a fixed interval and request handlers call ``cast_vote``.
Both may end the same track. Ending a play is idempotent: each path claims
the play with a conditional update on its play id before archiving, and the
history table accepts one entry per play id, so whichever path gets there
second does nothing.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .errors import InvalidInput, NoActiveTrack, SkipCommandFailed, UpstreamTransient
from .store import PartyStore
from .transitions import TrackSnapshot, TrackTransitionDetector, Transition

logger = logging.getLogger(__name__)

VOTE_DIRECTIONS = ("up", "down")
DEFAULT_DOWNVOTE_THRESHOLD = 5

Notifier = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class VoteResult:
    upvotes: int
    downvotes: int
    remaining_to_skip: int
    skipped: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class VoteCoordinator:
    """Keeps the current song, the vote ledger and the history in step."""

    def __init__(
        self,
        party_id: str,
        store: PartyStore,
        playback,
        downvote_threshold: int = DEFAULT_DOWNVOTE_THRESHOLD,
        notifier: Optional[Notifier] = None,
        detector: Optional[TrackTransitionDetector] = None,
    ):
        """Initialize the coordinator.

        Args:
            party_id: The party this process serves
            store: Shared store
            playback: Playback client with get_currently_playing(),
                skip_to_next() and add_to_queue()
            downvote_threshold: Downvotes that force a skip
            notifier: Optional callback(event, payload) for real-time clients
            detector: Transition detector, one per process
        """
        if downvote_threshold < 1:
            raise ValueError("downvote_threshold must be at least 1")
        self.party_id = party_id
        self.store = store
        self.playback = playback
        self.downvote_threshold = downvote_threshold
        self.notifier = notifier
        self.detector = detector or TrackTransitionDetector()

    # Reads

    def current_song(self) -> Optional[Dict[str, Any]]:
        return self.store.get_current_song(self.party_id)

    def history(self):
        return self.store.list_history(self.party_id)

    # Voting

    def cast_vote(self, device_id: Optional[str], direction: Optional[str]) -> VoteResult:
        """Record one device's vote on the active track and skip if warranted.

        Raises:
            InvalidInput: Missing device or party, or direction not up/down
            NoActiveTrack: Nothing has been projected yet
            AlreadyVoted: The device already voted on this track
        """
        if not self.party_id or not device_id or not isinstance(device_id, str):
            raise InvalidInput()
        if direction not in VOTE_DIRECTIONS:
            raise InvalidInput()

        current = self.store.get_current_song(self.party_id)
        if not current:
            raise NoActiveTrack()

        song = self.store.add_vote(self.party_id, current["spotify_track_id"], device_id, direction)
        logger.info(
            f"Vote '{direction}' from {device_id} on '{song['track_name']}' "
            f"({song['upvotes']} up / {song['downvotes']} down)"
        )
        self._notify("vote_updated", {
            "spotify_track_id": song["spotify_track_id"],
            "upvotes": song["upvotes"],
            "downvotes": song["downvotes"],
        })

        skipped = False
        if direction == "down" and song["downvotes"] >= self.downvote_threshold:
            skipped = self.skip_track(song)

        return VoteResult(
            upvotes=song["upvotes"],
            downvotes=song["downvotes"],
            remaining_to_skip=max(self.downvote_threshold - song["downvotes"], 0),
            skipped=skipped,
        )

    def skip_track(self, song: Dict[str, Any]) -> bool:
        """Force the current play to end.

        The play is claimed first; the external skip is best effort and a
        failure does not stop archival or the ledger reset.

        Returns:
            True if this call ended the play, False if another path already had
        """
        if not self.store.claim_track_end(self.party_id, song["play_id"]):
            logger.info(f"'{song['track_name']}' already ended, not skipping again")
            return False

        logger.info(f"Downvote threshold reached for '{song['track_name']}' ({song['downvotes']} down), skipping")
        try:
            if not self.playback.skip_to_next():
                raise SkipCommandFailed("playback service did not accept the skip")
        except Exception as e:
            failure = e if isinstance(e, SkipCommandFailed) else SkipCommandFailed(f"{type(e).__name__}: {e}")
            logger.error(f"Skip command failed for '{song['track_name']}': {failure}")

        self.end_track(song, skipped=True)
        self._notify("track_skipped", {
            "spotify_track_id": song["spotify_track_id"],
            "track_name": song["track_name"],
            "artist": song["artist"],
            "downvotes": song["downvotes"],
        })
        return True

    def end_track(self, song: Dict[str, Any], skipped: bool) -> bool:
        """Archive a finished play and clear its votes.

        Runs after a skip claim; the archive write is dropped when the play
        already has a history entry.
        """
        archived = self.store.archive(self.party_id, song, skipped)
        self.store.clear_votes(self.party_id, song["spotify_track_id"])
        if archived:
            logger.info(
                f"Archived '{song['track_name']}' by {song['artist']} "
                f"(downvotes: {song['downvotes']}, skipped: {skipped})"
            )
        return archived

    # Polling

    def poll_once(self) -> Optional[Dict[str, Any]]:
        """Run one poll cycle.

        Returns:
            The newly projected current song on a transition, else None

        Raises:
            UpstreamTransient: The playback service or the store failed
        """
        snapshot = self.playback.get_currently_playing()
        if snapshot is None:
            logger.debug("Nothing playing")
            return None
        return self.handle_snapshot(snapshot)

    def handle_snapshot(self, snapshot: Optional[TrackSnapshot]) -> Optional[Dict[str, Any]]:
        transition = self.detector.observe(snapshot)
        if transition is None:
            return None

        try:
            return self._apply_transition(transition)
        except SQLAlchemyError as e:
            self.detector.rewind(transition)
            raise UpstreamTransient(f"Store unavailable: {e}") from e
        except Exception:
            self.detector.rewind(transition)
            raise

    def _apply_transition(self, transition: Transition) -> Optional[Dict[str, Any]]:
        snapshot = transition.snapshot
        current = self.store.get_current_song(self.party_id)

        if transition.is_first_observation:
            if current and current["spotify_track_id"] == snapshot.track_id and current["play_id"]:
                logger.info(f"Resuming '{current['track_name']}' with existing votes")
                return current
            if current:
                # Ended while nobody was watching; its tallies are unknown to this process
                self.store.clear_votes(self.party_id, current["spotify_track_id"])
        elif current:
            ended = self.store.finish_play(self.party_id, current["play_id"]) if current["play_id"] else None
            if ended:
                logger.info(
                    f"Archived '{ended['track_name']}' by {ended['artist']} "
                    f"(downvotes: {ended['downvotes']}, skipped: False)"
                )
            else:
                # A skip already claimed this play and archives it itself
                self.store.clear_votes(self.party_id, current["spotify_track_id"])

        if snapshot.added_by is None:
            snapshot = snapshot.with_attribution(
                self.store.lookup_attribution(self.party_id, snapshot.track_id)
            )
        song = self.store.project_track(self.party_id, snapshot)
        logger.info(f"Now playing '{song['track_name']}' by {song['artist']}")
        self._notify("track_changed", song)
        return song

    # Queue attribution

    def queue_track(self, device_id: Optional[str], track_id: Optional[str], requested_by: Optional[str]):
        """Add a track to the playback queue and remember who asked for it"""
        if not device_id or not track_id or not requested_by:
            raise InvalidInput("device_id, track_id and requested_by are required")
        if not all(isinstance(value, str) for value in (device_id, track_id, requested_by)):
            raise InvalidInput("device_id, track_id and requested_by must be strings")

        self.playback.add_to_queue(track_id)
        request = self.store.record_queue_request(self.party_id, track_id, requested_by, device_id)
        logger.info(f"{requested_by} queued {track_id}")
        return request

    def _notify(self, event: str, payload: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(event, payload)
        except Exception as e:
            logger.warning(f"Failed to broadcast {event}: {e}")
