class SessionError(Exception):
    """Base class for rejections of a single session request.

    Each subclass carries the HTTP status and a stable machine-readable
    code so transport layers can map it without inspecting the message.
    """
    status_code = 400
    code = 'session_error'
    message = 'Session request rejected'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class SessionNotFound(SessionError):
    status_code = 404
    code = 'session_not_found'
    message = 'Session not found'


class SessionFull(SessionError):
    status_code = 409
    code = 'session_full'
    message = 'Session is full'


class NotAPredictor(SessionError):
    status_code = 403
    code = 'not_a_predictor'
    message = 'Not a valid predictor'


class UnknownParticipant(SessionError):
    status_code = 404
    code = 'unknown_participant'
    message = 'Handle is not a participant of this session'


class AlreadySubmitted(SessionError):
    status_code = 409
    code = 'already_submitted'
    message = 'Prediction already submitted'


class EmptyContent(SessionError):
    status_code = 400
    code = 'empty_content'
    message = 'Prediction content is required'


class AlreadyExists(SessionError):
    status_code = 409
    code = 'already_exists'
    message = 'Session code already in use'


class MissingField(SessionError):
    status_code = 400
    code = 'missing_field'

    def __init__(self, field):
        super().__init__(f'{field} is required')
        self.field = field


class InvalidCapacity(SessionError):
    status_code = 400
    code = 'invalid_capacity'
    message = 'Capacity is out of range'


class PersistenceDegraded(SessionError):
    # Warning only: the in-memory transition has already committed
    status_code = 200
    code = 'persistence_degraded'
    message = 'Session state could not be persisted'
