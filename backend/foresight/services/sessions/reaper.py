import logging
import time
from typing import List

from .errors import PersistenceDegraded, SessionError
from .state import normalize_code

logger = logging.getLogger(__name__)


class InactivityReaper:
    """Periodically evict predictors who joined long ago and never predicted.

    Each sweep works from a snapshot of candidate codes and dispatches one
    ``reap_inactive`` per session, so joins and predictions on other
    sessions are never held up. A late or skipped sweep is harmless.
    """

    def __init__(self, registry, ttl: float = 120, interval: float = 60, clock=time.time):
        self.registry = registry
        self.ttl = ttl
        self.interval = interval
        self.clock = clock
        self._running = False
        self._socketio = None

    @classmethod
    def from_config(cls, config, registry, **kwargs):
        return cls(
            registry,
            ttl=int(config.get('INACTIVITY_TTL_SEC', 120)),
            interval=int(config.get('REAPER_INTERVAL_SEC', 60)),
            **kwargs,
        )

    def candidate_codes(self, cutoff: float) -> List[str]:
        live = self.registry.live_actors()
        codes = []
        for code, actor in live:
            oldest = actor.oldest_pending_join()
            if oldest is not None and oldest < cutoff:
                codes.append(code)

        # Persisted sessions that are not loaded yet
        loaded = {code for code, _ in live}
        try:
            docs = self.registry.store.find_expired_candidates(cutoff)
        except PersistenceDegraded as exc:
            logger.warning(f"[persist-degraded] reaper candidates: {exc}")
            docs = []
        for doc in docs:
            code = normalize_code(doc.get('code'))
            if code and code not in loaded and code not in codes:
                codes.append(code)
        return codes

    def sweep(self, now=None) -> int:
        now = self.clock() if now is None else now
        removed = 0
        for code in self.candidate_codes(now - self.ttl):
            try:
                outcome = self.registry.dispatch(code, 'reap_inactive', now, self.ttl)
            except SessionError as exc:
                logger.warning(f"[reap-skip] session={code}: {exc}")
                continue
            removed += outcome.result or 0
        if removed:
            logger.info(f"[reap-sweep] removed={removed} ttl={self.ttl}s")
        return removed

    @property
    def running(self) -> bool:
        return self._running

    def start(self, socketio) -> None:
        if self._running:
            return
        self._running = True
        self._socketio = socketio
        socketio.start_background_task(self._run)
        logger.info(f"[reaper-start] interval={self.interval}s ttl={self.ttl}s")

    def stop(self) -> None:
        self._running = False

    def _run(self) -> None:
        while self._running:
            self._socketio.sleep(self.interval)
            if not self._running:
                break
            try:
                self.sweep()
            except Exception:
                logger.exception("[reaper] sweep failed, retrying next interval")
