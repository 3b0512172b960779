from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from foresight import db
from foresight.models import SessionRecord
from .errors import PersistenceDegraded
from .state import normalize_code


class SqlSessionStore:
    """Session document persistence backed by Flask-SQLAlchemy.

    Each call pushes its own app context so it can run from request
    handlers, socket handlers and the reaper's background task alike.
    Database errors surface as PersistenceDegraded.
    """

    def __init__(self, app=None):
        self.app = app

    def init_app(self, app):
        self.app = app

    def load(self, code):
        with self.app.app_context():
            try:
                record = db.session.get(SessionRecord, normalize_code(code))
                return record.to_document() if record else None
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceDegraded(str(exc)) from exc

    def save(self, document):
        """Write ``document`` unless the stored row is already as new or newer.

        The version check happens inside a single UPDATE, so a slower
        snapshot can never land on top of a newer one.
        """
        values = SessionRecord.values_from_document(document)
        with self.app.app_context():
            try:
                written = self._update_if_newer(document['code'], values)
                if written is None:
                    written = self._insert(document['code'], values)
                if written is None:
                    # Another save created the row first; fall back to the guarded update
                    written = bool(self._update_if_newer(document['code'], values))
                return written
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceDegraded(str(exc)) from exc

    def _update_if_newer(self, code, values):
        """True if written, False if a newer row exists, None if there is no row."""
        result = db.session.execute(
            update(SessionRecord)
            .where(SessionRecord.code == code, SessionRecord.version < values['version'])
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            db.session.commit()
            return True
        exists = db.session.get(SessionRecord, code) is not None
        db.session.rollback()
        return False if exists else None

    def _insert(self, code, values):
        try:
            db.session.add(SessionRecord(code=code, **values))
            db.session.commit()
            return True
        except IntegrityError:
            db.session.rollback()
            return None

    def find_expired_candidates(self, cutoff):
        with self.app.app_context():
            try:
                records = SessionRecord.query.filter(
                    SessionRecord.oldest_pending_join.isnot(None),
                    SessionRecord.oldest_pending_join < cutoff,
                ).all()
                return [r.to_document() for r in records]
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceDegraded(str(exc)) from exc
