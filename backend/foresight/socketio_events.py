from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from foresight import get_registry
from foresight.services.sessions.bus import room_for
from foresight.services.sessions.errors import SessionError, UnknownParticipant
from foresight.services.sessions.state import normalize_code


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Free the predictor slot once the participant's last socket is gone
    ctx = get_registry().release_connection(_get_sid())
    if ctx:
        _leave(*ctx)


def _leave(code, handle):
    try:
        get_registry().dispatch(code, 'leave', handle)
    except SessionError as exc:
        current_app.logger.info(f"[leave] session={code} ignored: {exc}")


def handle_join_session(data):
    code = normalize_code(_field(data, 'code'))
    if not code:
        emit('session_error', {'error': 'code is required', 'code': 'missing_field'})
        return
    handle = _field(data, 'handle')
    registry = get_registry()
    try:
        state = registry.dispatch(code, 'state').result
        if handle and not registry.dispatch(code, 'has_participant', handle).result:
            raise UnknownParticipant()
    except SessionError as exc:
        emit('session_error', exc.to_dict())
        return
    room = room_for(code)
    join_room(room)
    if handle:
        released = registry.bind_connection(_get_sid(), code, handle)
        if released:
            # This socket was the last one holding a participant elsewhere
            _leave(*released)
    emit('joined', {'room': room, 'state': state})


def handle_leave_session(data):
    code = normalize_code(_field(data, 'code'))
    if not code:
        emit('session_error', {'error': 'code is required', 'code': 'missing_field'})
        return
    room = room_for(code)
    leave_room(room)
    emit('left', {'room': room})
    # Explicit leave releases the slot just like a disconnect
    ctx = get_registry().connection(_get_sid())
    if ctx and ctx[0] == code:
        released = get_registry().release_connection(_get_sid())
        if released:
            _leave(*released)


def handle_request_predictions(data):
    code = normalize_code(_field(data, 'code'))
    try:
        state = get_registry().dispatch(code, 'state').result
    except SessionError as exc:
        emit('session_error', exc.to_dict())
        return
    emit('session_state', state)


def handle_ping(data):
    emit('pong', data or {})


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _field(data, name):
    # Clients may send the bare code string instead of an object
    if isinstance(data, str):
        return data if name == 'code' else None
    return (data or {}).get(name)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from foresight import socketio

    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_session', handle_join_session, namespace=namespace)
        socketio.on_event('leave_session', handle_leave_session, namespace=namespace)
        socketio.on_event('request_predictions', handle_request_predictions, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
