from flask_socketio import emit
from flask import current_app, request
from guessgame import socketio
from guessgame.services.sessions.transport import NAMESPACE


def _engine():
    return current_app.extensions['session_engine']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _require(data, *fields):
    """Return the payload values for ``fields``, or None if any is missing."""
    data = data if isinstance(data, dict) else {}
    values = [data.get(f) for f in fields]
    if any(v is None or v == '' for v in values):
        emit('error', {'message': f"{', '.join(fields)} required"})
        return None
    return [str(v) for v in values]


def handle_connect():
    current_app.logger.info(f"[connect] sid={_get_sid()}")


def handle_disconnect(reason=None):
    sid = _get_sid()
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason}")
    _engine().disconnect(sid)


def handle_join_session(data):
    values = _require(data, 'username', 'sessionId')
    if values is None:
        return
    username, session_id = values
    _engine().join(_get_sid(), username, session_id)


def handle_create_question(data):
    values = _require(data, 'sessionId', 'question', 'answer')
    if values is None:
        return
    session_id, question, answer = values
    _engine().set_question(session_id, question, answer)


def handle_start_game(data):
    values = _require(data, 'sessionId')
    if values is None:
        return
    _engine().start_round(values[0])


def handle_make_guess(data):
    values = _require(data, 'sessionId', 'guess')
    if values is None:
        return
    session_id, guess = values
    _engine().guess(_get_sid(), session_id, guess)


def register_socketio_handlers(namespace: str = NAMESPACE) -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('join-session', handle_join_session, namespace=namespace)
    socketio.on_event('create-question', handle_create_question, namespace=namespace)
    socketio.on_event('start-game', handle_start_game, namespace=namespace)
    socketio.on_event('make-guess', handle_make_guess, namespace=namespace)
