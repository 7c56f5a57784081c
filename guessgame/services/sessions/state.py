import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

WAITING = 'waiting'          # no question set
READY = 'ready'              # question set, round not started
IN_PROGRESS = 'in_progress'  # round timer running, guesses accepted
ENDED = 'ended'              # winner found or timed out

STATUSES = (WAITING, READY, IN_PROGRESS, ENDED)


@dataclass
class Player:
    connection_id: str
    user_id: int
    username: str
    attempts_remaining: int = 3
    is_winner: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'username': self.username,
            'attemptsRemaining': self.attempts_remaining,
            'isWinner': self.is_winner,
        }


@dataclass
class Session:
    session_id: str
    players: Dict[str, Player] = field(default_factory=dict)
    question: Optional[str] = None
    answer: Optional[str] = None
    status: str = WAITING
    round_timer: Optional[Any] = None
    # Set by the store once the session is removed; a holder of a stale
    # reference must not mutate it.
    deleted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def winner(self) -> Optional[Player]:
        return next((p for p in self.players.values() if p.is_winner), None)

    def clear_winners(self) -> None:
        for player in self.players.values():
            player.is_winner = False

    def to_dict(self) -> Dict[str, Any]:
        """Client-facing snapshot. Never includes the answer."""
        return {
            'sessionId': self.session_id,
            'status': self.status,
            'question': self.question,
            'players': {cid: p.to_dict() for cid, p in self.players.items()},
        }
