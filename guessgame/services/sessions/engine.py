import functools
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .state import ENDED, IN_PROGRESS, READY, WAITING, Player, Session
from .store import SessionNotFound, SessionStore

ROUND_DURATION_SEC = 60
INITIAL_ATTEMPTS = 3
CORRECT_GUESS_POINTS = 10


@dataclass
class Broadcast:
    session_id: str
    event: str
    payload: Dict[str, Any]


@dataclass
class Send:
    connection_id: str
    event: str
    payload: Dict[str, Any]


@dataclass
class AwardScore:
    user_id: int
    delta: int


def _run_inline(fn, *args):
    return fn(*args)


class SessionEngine:
    """Session state machine.

    Every transition runs under the session's lock via
    ``SessionStore.with_session`` and returns a list of effects. Effects are
    dispatched only after the lock is released, so transport and database
    I/O never hold up another transition on the same session.

    Events that reference an unknown session are dropped without error.
    """

    def __init__(
        self,
        store: SessionStore,
        transport,
        users,
        scheduler,
        spawn: Optional[Callable[..., Any]] = None,
        round_duration: float = ROUND_DURATION_SEC,
        initial_attempts: int = INITIAL_ATTEMPTS,
        correct_guess_points: int = CORRECT_GUESS_POINTS,
        logger=None,
    ):
        self.store = store
        self.transport = transport
        self.users = users
        self.scheduler = scheduler
        self.spawn = spawn or _run_inline
        self.round_duration = round_duration
        self.initial_attempts = initial_attempts
        self.correct_guess_points = correct_guess_points
        self.logger = logger or logging.getLogger(__name__)
        self._round_ids = itertools.count(1)

    # ---- inbound events ----

    def join(self, connection_id: str, username: str, session_id: str) -> Optional[Dict[str, Any]]:
        """Add (or reset) the connection's player in the session, creating it if needed.

        Returns the session snapshot, or None if the user could not be resolved.
        """
        try:
            user = self.users.upsert_user(username)
        except Exception:
            self.logger.exception(f"[join-failed] session={session_id} user={username} sid={connection_id}")
            return None

        # Room membership first so the joining connection receives its own update
        self.transport.subscribe(connection_id, session_id)

        def _join(session: Session):
            session.players[connection_id] = Player(
                connection_id=connection_id,
                user_id=user['id'],
                username=username,
                attempts_remaining=self.initial_attempts,
            )
            self.store.track(connection_id, session.session_id)
            snapshot = session.to_dict()
            return [Broadcast(session.session_id, 'session-update', snapshot)], snapshot

        effects, snapshot = self.store.with_session(session_id, _join, create=True)
        self._dispatch(effects)
        self.logger.info(f"[join] session={session_id} user={username} sid={connection_id}")
        return snapshot

    def set_question(self, session_id: str, question: str, answer: str) -> None:
        def _set_question(session: Session):
            # Replaces the question even mid-round
            session.question = question
            session.answer = answer.lower()
            session.status = READY
            session.clear_winners()
            self._cancel_timer(session)
            return [Broadcast(session.session_id, 'question-created', {'question': question})]

        self._apply(session_id, _set_question)

    def start_round(self, session_id: str) -> None:
        def _start(session: Session):
            if session.status == WAITING:
                return []
            session.status = IN_PROGRESS
            session.clear_winners()
            self._cancel_timer(session)
            timer_key = f"{session.session_id}#{next(self._round_ids)}"
            self.scheduler.schedule(
                timer_key,
                self.round_duration,
                functools.partial(self._expire_round, session.session_id, timer_key),
            )
            session.round_timer = timer_key
            return [Broadcast(session.session_id, 'game-started', {'question': session.question})]

        self._apply(session_id, _start)

    def guess(self, connection_id: str, session_id: str, guess: str) -> None:
        def _guess(session: Session):
            if session.status != IN_PROGRESS:
                return []
            player = session.players.get(connection_id)
            if player is None or player.attempts_remaining <= 0 or player.is_winner:
                return []

            player.attempts_remaining = max(0, player.attempts_remaining - 1)
            if guess.lower() != session.answer:
                return [Send(connection_id, 'wrong-guess', {'attemptsLeft': player.attempts_remaining})]

            session.status = ENDED
            player.is_winner = True
            self._cancel_timer(session)
            self.logger.info(f"[round-ended] session={session.session_id} winner={player.username}")
            return [
                Broadcast(session.session_id, 'game-ended', {'winner': player.username, 'answer': session.answer}),
                AwardScore(player.user_id, self.correct_guess_points),
            ]

        self._apply(session_id, _guess)

    def disconnect(self, connection_id: str) -> None:
        for session_id in sorted(self.store.forget(connection_id)):
            def _leave(session: Session):
                if session.players.pop(connection_id, None) is None:
                    return None, []
                if not session.players:
                    return 0, []
                return len(session.players), [Broadcast(session.session_id, 'session-update', session.to_dict())]

            try:
                remaining, effects = self.store.with_session(session_id, _leave)
            except SessionNotFound:
                continue
            if remaining == 0:
                removed = self.store.delete_if_empty(session_id)
                if removed is not None:
                    if removed.round_timer:
                        self.scheduler.cancel(removed.round_timer)
                    self.logger.info(f"[session-deleted] session={session_id}")
            self._dispatch(effects)

    # ---- read side / lifecycle ----

    def snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.store.with_session(session_id, lambda session: session.to_dict())
        except SessionNotFound:
            return None

    def shutdown(self) -> None:
        """Cancel pending round timers and drop every session."""
        sessions = self.store.clear()
        for session in sessions:
            if session.round_timer:
                self.scheduler.cancel(session.round_timer)
        self.logger.info(f"[shutdown] dropped {len(sessions)} session(s)")

    # ---- internals ----

    def _expire_round(self, session_id: str, timer_key: str) -> None:
        def _expire(session: Session):
            # A guess that ended the round first, or a restarted round, wins
            if session.status != IN_PROGRESS or session.round_timer != timer_key:
                self.logger.info(f"[timer-abort] session={session_id} status={session.status}")
                return []
            session.status = ENDED
            session.round_timer = None
            self.logger.info(f"[round-ended] session={session_id} winner=None")
            return [Broadcast(session.session_id, 'game-ended', {'winner': None, 'answer': session.answer})]

        self._apply(session_id, _expire)

    def _cancel_timer(self, session: Session) -> None:
        if session.round_timer:
            self.scheduler.cancel(session.round_timer)
            session.round_timer = None

    def _apply(self, session_id: str, fn: Callable[[Session], List[Any]]) -> bool:
        try:
            effects = self.store.with_session(session_id, fn)
        except SessionNotFound:
            self.logger.debug(f"[drop] session={session_id} not found")
            return False
        self._dispatch(effects)
        return True

    def _dispatch(self, effects: List[Any]) -> None:
        for effect in effects:
            try:
                if isinstance(effect, Broadcast):
                    self.transport.broadcast(effect.session_id, effect.event, effect.payload)
                elif isinstance(effect, Send):
                    self.transport.send(effect.connection_id, effect.event, effect.payload)
                elif isinstance(effect, AwardScore):
                    self.spawn(self._award_score, effect.user_id, effect.delta)
            except Exception:
                self.logger.exception(f"[effect-failed] {effect!r}")

    def _award_score(self, user_id: int, delta: int) -> None:
        try:
            self.users.add_score(user_id, delta)
        except Exception:
            self.logger.exception(f"[score-failed] user={user_id} delta={delta}")
