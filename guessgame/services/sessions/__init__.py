"""Game session services: state machine, store and round timers.

This package contains the in-memory game logic that socket handlers and
HTTP routes call into, keeping transport concerns separated from core
game mechanics.
"""

from .engine import SessionEngine
from .state import ENDED, IN_PROGRESS, READY, STATUSES, WAITING, Player, Session
from .store import SessionNotFound, SessionStore
from .transport import SocketIOTransport

__all__ = [
    'SessionEngine',
    'SessionStore',
    'SessionNotFound',
    'SocketIOTransport',
    'Session',
    'Player',
    'STATUSES',
    'WAITING',
    'READY',
    'IN_PROGRESS',
    'ENDED',
]
