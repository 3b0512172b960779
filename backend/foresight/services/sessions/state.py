import random
import string
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

AVATAR_PALETTE = ('#007bff', '#28a745', '#dc3545', '#ffc107', '#17a2b8')
CODE_ALPHABET = string.ascii_uppercase + string.digits


class Role(str, Enum):
    PREDICTOR = 'predictor'
    SPECTATOR = 'spectator'


def generate_session_code(length: int = 6) -> str:
    """Generate a short, shareable session code (not collision-checked)."""
    return ''.join(random.choices(CODE_ALPHABET, k=length))


def normalize_code(code: str) -> str:
    return (code or '').strip().upper()


def new_handle() -> str:
    return uuid.uuid4().hex


def avatar_for(predictor_index: int) -> str:
    return AVATAR_PALETTE[predictor_index % len(AVATAR_PALETTE)]


@dataclass
class Participant:
    handle: str
    display_name: str
    role: Role
    joined_at: float
    avatar_tag: Optional[str] = None

    @property
    def is_predictor(self) -> bool:
        return self.role == Role.PREDICTOR

    def public_dict(self):
        return {
            'handle': self.handle,
            'display_name': self.display_name,
            'avatar_tag': self.avatar_tag,
        }

    def to_dict(self):
        data = self.public_dict()
        data['role'] = self.role.value
        data['joined_at'] = self.joined_at
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            handle=data['handle'],
            display_name=data['display_name'],
            role=Role(data['role']),
            joined_at=float(data['joined_at']),
            avatar_tag=data.get('avatar_tag'),
        )


@dataclass(frozen=True)
class Prediction:
    content: str
    submitted_at: float

    def to_dict(self):
        return {'content': self.content, 'submitted_at': self.submitted_at}


@dataclass
class Session:
    """In-memory state of one prediction round.

    ``participants`` and ``predictions`` are plain dicts, so iteration
    follows join order and submission order respectively.
    """
    code: str
    question: str
    capacity: int
    created_at: float
    participants: Dict[str, Participant] = field(default_factory=dict)
    predictions: Dict[str, Prediction] = field(default_factory=dict)
    revealed: bool = False
    revealed_at: Optional[float] = None
    version: int = 0

    def predictors(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.is_predictor]

    @property
    def predictor_count(self) -> int:
        return len(self.predictors())

    @property
    def prediction_count(self) -> int:
        return len(self.predictions)

    def pending_predictors(self) -> List[Participant]:
        return [p for p in self.predictors() if p.handle not in self.predictions]

    def oldest_pending_join(self) -> Optional[float]:
        pending = [p.joined_at for p in self.pending_predictors()]
        return min(pending) if pending else None

    def reveal_payload(self):
        # sorted() is stable, so equal timestamps keep submission order
        ordered = sorted(self.predictions.items(), key=lambda item: item[1].submitted_at)
        return [
            {
                'participant': self.participants[handle].public_dict(),
                'prediction': prediction.to_dict(),
            }
            for handle, prediction in ordered
        ]

    def snapshot(self):
        data = {
            'code': self.code,
            'question': self.question,
            'capacity': self.capacity,
            'predictor_count': self.predictor_count,
            'prediction_count': self.prediction_count,
            'revealed': self.revealed,
            'status': 'revealed' if self.revealed else 'waiting',
        }
        if self.revealed:
            data['predictions'] = self.reveal_payload()
        return data

    def to_document(self):
        return {
            'code': self.code,
            'question': self.question,
            'capacity': self.capacity,
            'created_at': self.created_at,
            'revealed': self.revealed,
            'revealed_at': self.revealed_at,
            'version': self.version,
            'oldest_pending_join': self.oldest_pending_join(),
            'participants': [p.to_dict() for p in self.participants.values()],
            'predictions': [
                dict(handle=handle, **prediction.to_dict())
                for handle, prediction in self.predictions.items()
            ],
        }

    @classmethod
    def from_document(cls, doc):
        session = cls(
            code=normalize_code(doc['code']),
            question=doc['question'],
            capacity=int(doc['capacity']),
            created_at=float(doc['created_at']),
            revealed=bool(doc.get('revealed')),
            revealed_at=doc.get('revealed_at'),
            version=int(doc.get('version') or 0),
        )
        for item in doc.get('participants') or []:
            participant = Participant.from_dict(item)
            session.participants[participant.handle] = participant
        for item in doc.get('predictions') or []:
            # Drop rows that would break the predictor invariant
            owner = session.participants.get(item['handle'])
            if owner is None or not owner.is_predictor:
                continue
            session.predictions[item['handle']] = Prediction(
                content=item['content'], submitted_at=float(item['submitted_at'])
            )
        return session
