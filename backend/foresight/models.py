from foresight import db
import json


class SessionRecord(db.Model):
    """Durable mirror of one session document.

    The in-memory registry stays authoritative; rows are written after
    each committed transition and read back only to restore a session.
    """
    __tablename__ = 'session_record'
    code = db.Column(db.String(16), primary_key=True)
    question = db.Column(db.Text, nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=5)
    revealed = db.Column(db.Boolean, default=False, nullable=False)
    revealed_at = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.Float, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=0)
    # Earliest joined_at among predictors without a prediction; drives reaper lookups
    oldest_pending_join = db.Column(db.Float, nullable=True, index=True)
    participants = db.Column(db.Text, nullable=True)  # JSON list in join order
    predictions = db.Column(db.Text, nullable=True)  # JSON list in submission order

    @staticmethod
    def values_from_document(doc):
        """Column values for a session document, excluding the primary key."""
        return {
            'question': doc['question'],
            'capacity': doc['capacity'],
            'revealed': bool(doc.get('revealed')),
            'revealed_at': doc.get('revealed_at'),
            'created_at': doc['created_at'],
            'version': doc.get('version') or 0,
            'oldest_pending_join': doc.get('oldest_pending_join'),
            'participants': json.dumps(doc.get('participants') or []),
            'predictions': json.dumps(doc.get('predictions') or []),
        }

    def to_document(self):
        try:
            participants = json.loads(self.participants) if self.participants else []
        except Exception:
            participants = []
        try:
            predictions = json.loads(self.predictions) if self.predictions else []
        except Exception:
            predictions = []
        return {
            'code': self.code,
            'question': self.question,
            'capacity': self.capacity,
            'created_at': self.created_at,
            'revealed': self.revealed,
            'revealed_at': self.revealed_at,
            'version': self.version,
            'oldest_pending_join': self.oldest_pending_join,
            'participants': participants,
            'predictions': predictions,
        }
