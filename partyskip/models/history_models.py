"""
Song history model for PartySkip.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from .database_config import Base
from .playback_models import isoformat, utcnow


class HistoryEntry(Base):
    __tablename__ = "song_history"
    __table_args__ = (
        # A play instance is archived once, whichever path ends it first
        UniqueConstraint("party_id", "play_id", name="uq_song_history_play"),
    )

    id = Column(Integer, primary_key=True, index=True)
    party_id = Column(String, nullable=False, index=True)
    spotify_track_id = Column(String, nullable=False)
    track_name = Column(String, nullable=False)
    artist = Column(String, nullable=False)
    added_by = Column(String, nullable=True)
    downvotes = Column(Integer, nullable=False, default=0)
    skipped = Column(Boolean, nullable=False, default=False)
    play_id = Column(String(32), nullable=False)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            "spotify_track_id": self.spotify_track_id,
            "track_name": self.track_name,
            "artist": self.artist,
            "added_by": self.added_by,
            "downvotes": self.downvotes,
            "skipped": self.skipped,
            "started_at": isoformat(self.started_at),
            "ended_at": isoformat(self.ended_at),
        }

    def __repr__(self):
        return f"<HistoryEntry {self.track_name} ({'skipped' if self.skipped else 'played'})>"
