"""
Database models for PartySkip
"""

from .database_config import Base, SessionLocal, get_db, init_db, init_engine, normalize_database_url
from .playback_models import CurrentSong
from .queue_models import QueueRequest, Vote
from .history_models import HistoryEntry

__all__ = [
    'Base', 'SessionLocal', 'get_db', 'init_db', 'init_engine', 'normalize_database_url',
    'CurrentSong', 'Vote', 'QueueRequest', 'HistoryEntry'
]
