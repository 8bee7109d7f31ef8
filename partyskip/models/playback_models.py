"""
Now-playing projection model for PartySkip.
"""

from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from .database_config import Base


def utcnow():
    return datetime.now(timezone.utc)


def isoformat(value):
    return value.isoformat() if value else None


class CurrentSong(Base):
    __tablename__ = "current_song"

    # One live row per party
    party_id = Column(String, primary_key=True)
    spotify_track_id = Column(String, nullable=False)
    track_name = Column(String, nullable=False)
    artist = Column(String, nullable=False)
    upvotes = Column(Integer, nullable=False, default=0)
    downvotes = Column(Integer, nullable=False, default=0)
    added_by = Column(String, nullable=True)
    # Changes every time the row is projected or reset by a skip; NULL once the play has ended naturally
    play_id = Column(String(32), nullable=True)
    archived = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "party_id": self.party_id,
            "spotify_track_id": self.spotify_track_id,
            "track_name": self.track_name,
            "artist": self.artist,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "added_by": self.added_by,
            "play_id": self.play_id,
            "archived": self.archived,
            "started_at": isoformat(self.started_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<CurrentSong {self.track_name} ({self.upvotes} up / {self.downvotes} down)>"
