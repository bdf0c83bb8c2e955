"""In-memory store of analyzed CVs, keyed by CV id.

Observation status updates are serialized per CV. Other changes a caller
makes to a CV it fetched are not synchronized; the store only guarantees
that ``update_observation`` is atomic.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from functools import lru_cache

from cvlens.core.config import settings
from cvlens.core.errors import (
    CVNotFoundError,
    InvalidStatusTransitionError,
    ObservationNotFoundError,
    SectionNotFoundError,
)
from cvlens.schemas.cv import CV, TERMINAL_STATUSES, CVSection, Observation, ObservationStatus

logger = logging.getLogger(__name__)


class CVSessionStore:
    def __init__(self, max_cvs: int | None = None):
        self._max_cvs = max(1, max_cvs if max_cvs is not None else settings.session_store_max_cvs)
        self._cvs: OrderedDict[str, CV] = OrderedDict()
        self._locks: dict[str, threading.Lock] = {}
        self._store_lock = threading.Lock()

    def __len__(self) -> int:
        with self._store_lock:
            return len(self._cvs)

    def store(self, cv: CV) -> CV:
        with self._store_lock:
            self._cvs[cv.id] = cv
            self._cvs.move_to_end(cv.id)
            self._locks.setdefault(cv.id, threading.Lock())
            while len(self._cvs) > self._max_cvs:
                evicted_id, _ = self._cvs.popitem(last=False)
                self._locks.pop(evicted_id, None)
                logger.info("cv_session_evicted cv_id=%s", evicted_id)
        return cv

    def get(self, cv_id: str) -> CV:
        with self._store_lock:
            cv = self._cvs.get(cv_id)
        if cv is None:
            raise CVNotFoundError(f"CV '{cv_id}' not found")
        return cv

    def get_section(self, cv_id: str, section_id: str) -> CVSection:
        cv = self.get(cv_id)
        for section in cv.sections:
            if section.id == section_id:
                return section
        raise SectionNotFoundError(f"Section '{section_id}' not found")

    def _lock_for(self, cv_id: str) -> threading.Lock:
        with self._store_lock:
            if cv_id not in self._cvs:
                raise CVNotFoundError(f"CV '{cv_id}' not found")
            return self._locks.setdefault(cv_id, threading.Lock())

    def update_observation(self, cv_id: str, observation_id: str, status: ObservationStatus) -> Observation:
        """Move an observation to ``status``.

        Terminal states (accepted, declined, locked) are final: repeating the
        same terminal status returns the observation unchanged, any other
        change raises ``InvalidStatusTransitionError``.
        """
        with self._lock_for(cv_id):
            cv = self.get(cv_id)
            for index, observation in enumerate(cv.observations):
                if observation.id != observation_id:
                    continue
                if observation.status == status:
                    return observation
                if observation.status in TERMINAL_STATUSES:
                    raise InvalidStatusTransitionError(
                        f"Observation '{observation_id}' is already {observation.status}",
                        details=f"requested={status}",
                    )
                updated = observation.model_copy(update={"status": status})
                cv.observations[index] = updated
                logger.info(
                    "observation_status_updated cv_id=%s observation_id=%s status=%s",
                    cv_id,
                    observation_id,
                    status,
                )
                return updated
        raise ObservationNotFoundError(f"Observation '{observation_id}' not found")

    def list_ids(self) -> list[str]:
        with self._store_lock:
            return list(self._cvs)

    def clear(self) -> None:
        with self._store_lock:
            self._cvs.clear()
            self._locks.clear()


@lru_cache(maxsize=1)
def get_session_store() -> CVSessionStore:
    return CVSessionStore()
