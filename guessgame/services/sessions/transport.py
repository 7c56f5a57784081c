from typing import Any, Dict

NAMESPACE = '/'


class SocketIOTransport:
    """Outbound side of the game: rooms are named after session ids."""

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def subscribe(self, connection_id: str, session_id: str) -> None:
        self.socketio.server.enter_room(connection_id, session_id, namespace=self.namespace)

    def broadcast(self, session_id: str, event: str, payload: Dict[str, Any]) -> None:
        # Use socketio.emit since this may be called from a background task
        self.socketio.emit(event, payload, to=session_id, namespace=self.namespace)

    def send(self, connection_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.socketio.emit(event, payload, to=connection_id, namespace=self.namespace)
