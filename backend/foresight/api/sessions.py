from flask import Blueprint, jsonify, request, current_app
from foresight import get_registry
from foresight.services.sessions.errors import MissingField, SessionError


sessions = Blueprint('sessions', __name__)


@sessions.errorhandler(SessionError)
def handle_session_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _respond(outcome, status=200):
    payload = dict(outcome.result)
    if outcome.degraded:
        payload['degraded'] = True
    return jsonify(payload), status


def _require(data, *names):
    """Return the first non-empty value among ``names`` or raise MissingField."""
    for name in names:
        value = data.get(name)
        if isinstance(value, str):
            value = value.strip()
        if value:
            return value
    raise MissingField(names[0])


@sessions.route('', methods=['POST'])
def create_session():
    """
    Creates a new session for a question. Capacity defaults to the configured value.
    """
    data = request.get_json(silent=True) or {}
    question = _require(data, 'question')
    outcome = get_registry().create(question, data.get('capacity'))
    return _respond(outcome, 201)


@sessions.route('/<string:code>/join', methods=['POST'])
def join_session(code):
    """
    Joins a session as a predictor, or as a spectator once every slot is taken.
    """
    data = request.get_json(silent=True) or {}
    display_name = _require(data, 'display_name', 'username')
    outcome = get_registry().dispatch(code, 'join', display_name)
    return _respond(outcome, 201)


@sessions.route('/<string:code>/predict', methods=['POST'])
def submit_prediction(code):
    data = request.get_json(silent=True) or {}
    handle = _require(data, 'handle', 'predictor_id')
    # Blank content reaches the actor so it is reported as empty_content
    content = data.get('content', data.get('prediction'))
    if content is None:
        raise MissingField('content')
    if not isinstance(content, str):
        content = str(content)
    outcome = get_registry().dispatch(code, 'predict', handle, content)
    if outcome.result.get('all_submitted'):
        current_app.logger.info(f"[predict] session={code.upper()} all predictions submitted")
    return _respond(outcome)


@sessions.route('/<string:code>/leave', methods=['POST'])
def leave_session(code):
    data = request.get_json(silent=True) or {}
    handle = _require(data, 'handle', 'predictor_id')
    outcome = get_registry().dispatch(code, 'leave', handle)
    return _respond(outcome)


@sessions.route('/<string:code>', methods=['GET'])
def get_session_state(code):
    outcome = get_registry().dispatch(code, 'state')
    return _respond(outcome)
