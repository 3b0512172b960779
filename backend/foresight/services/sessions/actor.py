import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from .errors import AlreadySubmitted, EmptyContent, NotAPredictor, SessionFull
from .state import Participant, Prediction, Role, Session, avatar_for, new_handle

logger = logging.getLogger(__name__)

PREDICTOR_UPDATE = 'predictor_update'
PREDICTION_UPDATE = 'prediction_update'
PREDICTIONS_REVEALED = 'all_predictions_revealed'


@dataclass
class Outcome:
    """Result of one committed transition plus the side effects it owes.

    ``document`` is set only when state changed and must be persisted.
    ``events`` are (event name, payload) pairs to broadcast to the room.
    """
    result: Any = None
    events: List[Tuple[str, dict]] = field(default_factory=list)
    document: Optional[dict] = None
    degraded: bool = False


class SessionActor:
    """Single writer for one session.

    Every operation runs under the actor's lock, validates before it
    mutates, and returns an Outcome. Persistence and broadcast are left to
    the caller so they happen after the lock is released.
    """

    def __init__(self, session: Session, spectator_fallback: bool = True, clock=time.time):
        self.session = session
        self.spectator_fallback = spectator_fallback
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def code(self) -> str:
        return self.session.code

    def _commit(self, outcome: Outcome) -> Outcome:
        self.session.version += 1
        outcome.document = self.session.to_document()
        return outcome

    def _count_event(self, name: str, count: int):
        return name, {'code': self.session.code, 'count': count, 'total': self.session.capacity}

    def join(self, display_name: str) -> Outcome:
        with self._lock:
            session = self.session
            now = self._clock()
            predictor_count = session.predictor_count
            if predictor_count < session.capacity:
                participant = Participant(
                    handle=new_handle(),
                    display_name=display_name,
                    role=Role.PREDICTOR,
                    joined_at=now,
                    avatar_tag=avatar_for(predictor_count),
                )
                session.participants[participant.handle] = participant
                outcome = Outcome(events=[self._count_event(PREDICTOR_UPDATE, predictor_count + 1)])
            else:
                if not self.spectator_fallback:
                    raise SessionFull()
                participant = Participant(
                    handle=new_handle(),
                    display_name=display_name,
                    role=Role.SPECTATOR,
                    joined_at=now,
                )
                session.participants[participant.handle] = participant
                outcome = Outcome()

            outcome.result = {
                'handle': participant.handle,
                'role': participant.role.value,
                'avatar_tag': participant.avatar_tag,
                'snapshot': session.snapshot(),
            }
            logger.info(f"[join] session={session.code} role={participant.role.value} predictors={session.predictor_count}/{session.capacity}")
            return self._commit(outcome)

    def predict(self, handle: str, content: str) -> Outcome:
        with self._lock:
            session = self.session
            participant = session.participants.get(handle)
            if participant is None or not participant.is_predictor:
                raise NotAPredictor()
            if handle in session.predictions:
                raise AlreadySubmitted()
            if session.revealed:
                raise AlreadySubmitted('Predictions are closed for this session')
            text = (content or '').strip()
            if not text:
                raise EmptyContent()

            now = self._clock()
            session.predictions[handle] = Prediction(content=text, submitted_at=now)
            count = session.prediction_count
            outcome = Outcome(events=[self._count_event(PREDICTION_UPDATE, count)])

            all_submitted = count == session.capacity
            if all_submitted and not session.revealed:
                session.revealed = True
                session.revealed_at = now
                outcome.events.append((PREDICTIONS_REVEALED, {
                    'code': session.code,
                    'predictions': session.reveal_payload(),
                }))
                logger.info(f"[reveal] session={session.code} predictions={count}")

            outcome.result = {'count': count, 'all_submitted': all_submitted}
            return self._commit(outcome)

    def leave(self, handle: str) -> Outcome:
        with self._lock:
            session = self.session
            participant = session.participants.get(handle)
            if participant is None:
                return Outcome(result={'left': False})

            if not participant.is_predictor:
                del session.participants[handle]
                return self._commit(Outcome(result={'left': True}))

            # A submitted prediction outlives the connection
            if handle in session.predictions:
                return Outcome(result={'left': False})

            del session.participants[handle]
            logger.info(f"[leave] session={session.code} predictors={session.predictor_count}/{session.capacity}")
            return self._commit(Outcome(
                result={'left': True},
                events=[self._count_event(PREDICTOR_UPDATE, session.predictor_count)],
            ))

    def reap_inactive(self, now: float, ttl: float) -> Outcome:
        with self._lock:
            session = self.session
            stale = [p.handle for p in session.pending_predictors() if now - p.joined_at > ttl]
            if not stale:
                return Outcome(result=0)
            for handle in stale:
                del session.participants[handle]
            logger.info(f"[reap] session={session.code} removed={len(stale)} predictors={session.predictor_count}/{session.capacity}")
            return self._commit(Outcome(
                result=len(stale),
                events=[self._count_event(PREDICTOR_UPDATE, session.predictor_count)],
            ))

    def state(self) -> Outcome:
        with self._lock:
            return Outcome(result=self.session.snapshot())

    def has_participant(self, handle: str) -> Outcome:
        with self._lock:
            return Outcome(result=handle in self.session.participants)

    def oldest_pending_join(self) -> Optional[float]:
        with self._lock:
            return self.session.oldest_pending_join()
