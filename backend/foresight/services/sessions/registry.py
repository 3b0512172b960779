import logging
import threading
import time
from typing import Dict, List, Optional, Set, Tuple

from .actor import Outcome, SessionActor
from .errors import AlreadyExists, InvalidCapacity, MissingField, PersistenceDegraded, SessionNotFound
from .state import Session, generate_session_code, normalize_code

logger = logging.getLogger(__name__)

OPERATIONS = frozenset({'join', 'predict', 'leave', 'reap_inactive', 'state', 'has_participant'})


class SessionRegistry:
    """In-memory authority for live sessions.

    Holds exactly one SessionActor per code. The registry lock only guards
    the code -> actor map and the connection index; actor work runs under
    each actor's own lock, so different sessions proceed in parallel.
    """

    def __init__(self, store, bus, default_capacity: int = 5, max_capacity: int = 12,
                 code_length: int = 6, code_attempts: int = 20,
                 spectator_fallback: bool = True, clock=time.time):
        self.store = store
        self.bus = bus
        self.default_capacity = default_capacity
        self.max_capacity = max_capacity
        self.code_length = code_length
        self.code_attempts = code_attempts
        self.spectator_fallback = spectator_fallback
        self.clock = clock
        self._actors: Dict[str, SessionActor] = {}
        self._connections: Dict[str, Tuple[str, str]] = {}
        self._sockets: Dict[Tuple[str, str], Set[str]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, store, bus, **kwargs):
        return cls(
            store,
            bus,
            default_capacity=int(config.get('DEFAULT_CAPACITY', 5)),
            max_capacity=int(config.get('MAX_CAPACITY', 12)),
            code_length=int(config.get('SESSION_CODE_LENGTH', 6)),
            code_attempts=int(config.get('SESSION_CODE_ATTEMPTS', 20)),
            spectator_fallback=bool(config.get('SPECTATOR_FALLBACK', True)),
            **kwargs,
        )

    # ---- Session lifecycle ----

    def create(self, question: str, capacity=None) -> Outcome:
        text = (question or '').strip()
        if not text:
            raise MissingField('question')
        if capacity is None:
            capacity = self.default_capacity
        else:
            try:
                capacity = int(capacity)
            except (TypeError, ValueError):
                raise InvalidCapacity()
            if not 1 <= capacity <= self.max_capacity:
                raise InvalidCapacity(f'Capacity must be between 1 and {self.max_capacity}')

        for _ in range(self.code_attempts):
            code = generate_session_code(self.code_length)
            try:
                actor = self._install_new(code, text, capacity)
            except AlreadyExists:
                logger.info(f"[create-collision] code={code}")
                continue
            logger.info(f"[create] session={code} capacity={capacity}")
            outcome = Outcome(
                result={'code': code, 'capacity': capacity},
                document=actor.session.to_document(),
            )
            return self._finish(code, outcome)
        raise AlreadyExists('Could not allocate a unique session code')

    def _install_new(self, code: str, question: str, capacity: int) -> SessionActor:
        if self._load_document(code) is not None:
            raise AlreadyExists()
        session = Session(code=code, question=question, capacity=capacity,
                          created_at=self.clock(), version=1)
        actor = SessionActor(session, spectator_fallback=self.spectator_fallback, clock=self.clock)
        with self._lock:
            if code in self._actors:
                raise AlreadyExists()
            self._actors[code] = actor
        return actor

    def _load_document(self, code: str) -> Optional[dict]:
        try:
            return self.store.load(code)
        except PersistenceDegraded as exc:
            logger.warning(f"[persist-degraded] load session={code}: {exc}")
            return None

    def get_actor(self, code: str) -> SessionActor:
        code = normalize_code(code)
        with self._lock:
            actor = self._actors.get(code)
        if actor is not None:
            return actor

        # Load outside the lock; setdefault keeps the first actor installed
        doc = self._load_document(code) if code else None
        if doc is None:
            raise SessionNotFound()
        candidate = SessionActor(Session.from_document(doc),
                                 spectator_fallback=self.spectator_fallback, clock=self.clock)
        with self._lock:
            actor = self._actors.setdefault(code, candidate)
        if actor is candidate:
            logger.info(f"[load] session={code} restored from store")
        return actor

    def dispatch(self, code: str, operation: str, *args) -> Outcome:
        """Run ``operation`` on the session's actor, then persist and broadcast."""
        if operation not in OPERATIONS:
            raise ValueError(f'Unknown session operation: {operation}')
        actor = self.get_actor(code)
        outcome = getattr(actor, operation)(*args)
        return self._finish(actor.code, outcome)

    def _finish(self, code: str, outcome: Outcome) -> Outcome:
        if outcome.document is not None:
            try:
                self.store.save(outcome.document)
            except PersistenceDegraded as exc:
                outcome.degraded = True
                logger.warning(f"[persist-degraded] save session={code} version={outcome.document.get('version')}: {exc}")
        for event, payload in outcome.events:
            try:
                self.bus.publish(code, event, payload)
            except Exception:
                logger.exception(f"[publish-failed] session={code} event={event}")
        return outcome

    def live_codes(self) -> List[str]:
        with self._lock:
            return list(self._actors)

    def live_actors(self) -> List[Tuple[str, SessionActor]]:
        with self._lock:
            return list(self._actors.items())

    # ---- Connection side index ----

    # A handle may be live on several sockets (reconnects, extra tabs); only
    # the release of its last socket is reported back for a leave.

    def bind_connection(self, sid: str, code: str, handle: str) -> Optional[Tuple[str, str]]:
        """Bind ``sid`` to (code, handle).

        Returns the sid's previous binding when rebinding dropped the last
        socket of that participant, so the caller can leave it.
        """
        ctx = (normalize_code(code), handle)
        with self._lock:
            previous = self._connections.get(sid)
            if previous == ctx:
                return None
            released = self._unbind(sid) if previous else None
            self._connections[sid] = ctx
            self._sockets.setdefault(ctx, set()).add(sid)
            return released

    def release_connection(self, sid: str) -> Optional[Tuple[str, str]]:
        """Drop ``sid``; return its (code, handle) only if no other socket holds it."""
        with self._lock:
            return self._unbind(sid)

    def _unbind(self, sid: str) -> Optional[Tuple[str, str]]:
        ctx = self._connections.pop(sid, None)
        if ctx is None:
            return None
        sids = self._sockets.get(ctx)
        if sids is not None:
            sids.discard(sid)
            if sids:
                return None
            del self._sockets[ctx]
        return ctx

    def socket_count(self, code: str, handle: str) -> int:
        with self._lock:
            return len(self._sockets.get((normalize_code(code), handle), ()))

    def connection(self, sid: str) -> Optional[Tuple[str, str]]:
        with self._lock:
            return self._connections.get(sid)
