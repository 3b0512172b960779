from .state import normalize_code

NAMESPACE = '/ws'


def room_for(code: str) -> str:
    return f"session:{normalize_code(code)}"


class SocketIOEventBus:
    """Broadcast session events to every client in the session's room."""

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def publish(self, code: str, event: str, payload: dict) -> None:
        # Use socketio.emit since this may be called outside a socket handler
        self.socketio.emit(event, payload, to=room_for(code), namespace=self.namespace)
