"""
Shared store for PartySkip.
Reads and writes the current song, the vote ledger and the song history.
"""

import logging
import uuid
from datetime import datetime
from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from partyskip.models import CurrentSong, HistoryEntry, QueueRequest, Vote, get_db
from partyskip.models.playback_models import utcnow
from .errors import AlreadyVoted, NoActiveTrack

logger = logging.getLogger(__name__)


def new_play_id():
    return uuid.uuid4().hex


class PartyStore:
    """Store operations keyed by party and track.

    Every method opens its own session so that one logical operation is
    one transaction. Rows are returned as plain dicts.
    """

    # Current song

    def get_current_song(self, party_id):
        with get_db() as db:
            song = db.get(CurrentSong, party_id)
            return song.to_dict() if song else None

    def project_track(self, party_id, snapshot):
        """Replace the party's current song with a freshly observed track"""
        with get_db() as db:
            song = db.get(CurrentSong, party_id)
            if song is None:
                song = CurrentSong(party_id=party_id)
                db.add(song)

            now = utcnow()
            song.spotify_track_id = snapshot.track_id
            song.track_name = snapshot.name
            song.artist = snapshot.artist
            song.added_by = snapshot.added_by
            song.upvotes = 0
            song.downvotes = 0
            song.play_id = new_play_id()
            song.archived = False
            song.started_at = now
            song.updated_at = now
            db.flush()
            return song.to_dict()

    def claim_track_end(self, party_id, play_id):
        """Reset counters and mark the play archived, if nobody else has.

        Returns True for the single caller whose update matched the play id.
        """
        with get_db() as db:
            result = db.execute(
                update(CurrentSong)
                .where(CurrentSong.party_id == party_id, CurrentSong.play_id == play_id)
                .values(
                    upvotes=0,
                    downvotes=0,
                    archived=True,
                    play_id=new_play_id(),
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def finish_play(self, party_id, play_id):
        """End a play that the service has moved past.

        Claims the play by clearing its play id, archives the final tallies
        and clears the ledger in one transaction. Until the next track is
        projected the row accepts no votes, so a skip can no longer claim it.

        Returns:
            The archived song dict, or None if the play was already claimed
        """
        with get_db() as db:
            result = db.execute(
                update(CurrentSong)
                .where(
                    CurrentSong.party_id == party_id,
                    CurrentSong.play_id == play_id,
                    CurrentSong.archived.is_(False),
                )
                .values(play_id=None, archived=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            song = db.get(CurrentSong, party_id, populate_existing=True).to_dict()
            song["play_id"] = play_id
            db.add(_history_entry(party_id, song, skipped=False))
            db.execute(
                delete(Vote)
                .where(Vote.party_id == party_id, Vote.spotify_track_id == song["spotify_track_id"])
                .execution_options(synchronize_session=False)
            )
            return song

    # Vote ledger

    def add_vote(self, party_id, track_id, device_id, direction):
        """Record a vote and bump the matching counter in one transaction.

        Args:
            party_id: Party the vote belongs to
            track_id: Track the device is voting on
            device_id: Voting device
            direction: 'up' or 'down'

        Returns:
            The current song dict with updated counters

        Raises:
            AlreadyVoted: The device already voted on this track
            NoActiveTrack: The party's current song moved on to another track
        """
        with get_db() as db:
            db.add(Vote(
                party_id=party_id,
                spotify_track_id=track_id,
                device_id=device_id,
                vote=direction,
            ))
            try:
                db.flush()
            except IntegrityError:
                raise AlreadyVoted() from None

            counter = "upvotes" if direction == "up" else "downvotes"
            column = getattr(CurrentSong, counter)
            result = db.execute(
                update(CurrentSong)
                .where(
                    CurrentSong.party_id == party_id,
                    CurrentSong.spotify_track_id == track_id,
                    CurrentSong.play_id.isnot(None),
                )
                .values({counter: column + 1, "archived": False, "updated_at": utcnow()})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NoActiveTrack("Track changed before the vote was recorded")

            song = db.get(CurrentSong, party_id, populate_existing=True)
            return song.to_dict()

    def count_votes(self, party_id, track_id):
        with get_db() as db:
            return db.query(func.count(Vote.id)).filter(
                Vote.party_id == party_id, Vote.spotify_track_id == track_id
            ).scalar()

    def clear_votes(self, party_id, track_id):
        with get_db() as db:
            result = db.execute(
                delete(Vote)
                .where(Vote.party_id == party_id, Vote.spotify_track_id == track_id)
                .execution_options(synchronize_session=False)
            )
            logger.debug(f"Cleared {result.rowcount} votes for {track_id}")
            return result.rowcount

    # History

    def archive(self, party_id, song, skipped):
        """Append a history entry for a finished play.

        Returns False when the play was already archived by another path.
        """
        try:
            with get_db() as db:
                db.add(_history_entry(party_id, song, skipped))
        except IntegrityError:
            logger.info(f"'{song['track_name']}' was already archived, ignoring duplicate")
            return False
        return True

    def list_history(self, party_id):
        with get_db() as db:
            entries = db.query(HistoryEntry).filter(
                HistoryEntry.party_id == party_id
            ).order_by(HistoryEntry.ended_at, HistoryEntry.id).all()
            return [entry.to_dict() for entry in entries]

    # Attribution

    def record_queue_request(self, party_id, track_id, requested_by, device_id=None):
        with get_db() as db:
            request = QueueRequest(
                party_id=party_id,
                spotify_track_id=track_id,
                requested_by=requested_by,
                device_id=device_id,
            )
            db.add(request)
            db.flush()
            return request.to_dict()

    def lookup_attribution(self, party_id, track_id):
        """Who most recently queued this track, if anyone"""
        with get_db() as db:
            request = db.query(QueueRequest).filter(
                QueueRequest.party_id == party_id,
                QueueRequest.spotify_track_id == track_id,
            ).order_by(QueueRequest.timestamp.desc(), QueueRequest.id.desc()).first()
            return request.requested_by if request else None


def _history_entry(party_id, song, skipped):
    return HistoryEntry(
        party_id=party_id,
        spotify_track_id=song["spotify_track_id"],
        track_name=song["track_name"],
        artist=song["artist"],
        added_by=song.get("added_by"),
        downvotes=song["downvotes"],
        skipped=skipped,
        play_id=song["play_id"],
        started_at=_parse_time(song.get("started_at")),
    )


def _parse_time(value):
    if value is None:
        return None
    return datetime.fromisoformat(value)
