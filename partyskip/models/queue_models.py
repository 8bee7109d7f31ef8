"""
Voting and queue attribution models for PartySkip.
"""

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from .database_config import Base
from .playback_models import isoformat, utcnow


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("party_id", "spotify_track_id", "device_id", name="uq_votes_device_per_track"),
    )

    id = Column(Integer, primary_key=True, index=True)
    party_id = Column(String, nullable=False, index=True)
    spotify_track_id = Column(String, nullable=False)
    device_id = Column(String, nullable=False)
    vote = Column(String, nullable=False)  # 'up' or 'down'
    timestamp = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<Vote {self.vote} for {self.spotify_track_id} from {self.device_id}>"


class QueueRequest(Base):
    __tablename__ = "queue_requests"

    id = Column(Integer, primary_key=True, index=True)
    party_id = Column(String, nullable=False, index=True)
    spotify_track_id = Column(String, nullable=False)
    requested_by = Column(String, nullable=False)
    device_id = Column(String, nullable=True)
    timestamp = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            "party_id": self.party_id,
            "spotify_track_id": self.spotify_track_id,
            "requested_by": self.requested_by,
            "device_id": self.device_id,
            "timestamp": isoformat(self.timestamp),
        }

    def __repr__(self):
        return f"<QueueRequest {self.spotify_track_id} by {self.requested_by}>"
