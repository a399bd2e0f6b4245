"""Job table: store interface and in-memory implementation."""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from app.jobs.models import JobRecord


class JobStore(ABC):
    """Abstract job table owned by the orchestrator."""

    @abstractmethod
    def insert(self, job: JobRecord) -> None:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    def update(
        self, job_id: str, fn: Callable[[JobRecord], JobRecord]
    ) -> Optional[JobRecord]:
        """Atomically replace a record with fn(record). Returns None if absent."""
        ...

    @abstractmethod
    def delete(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    def delete_if(
        self, job_id: str, predicate: Callable[[JobRecord], bool]
    ) -> Optional[JobRecord]:
        """Atomically remove a record if predicate(current record) holds. Returns the removed record."""
        ...

    @abstractmethod
    def list(self) -> List[JobRecord]:
        ...


class InMemoryJobStore(JobStore):
    """Process-local job table.

    A threading lock rather than an asyncio one: retention sweeps run in an
    executor thread alongside the event loop.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def insert(self, job: JobRecord) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise KeyError(f"Duplicate job id: {job.id}")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id, fn):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            updated = fn(job)
            self._jobs[job_id] = updated
            return updated

    def delete(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def delete_if(self, job_id, predicate):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not predicate(job):
                return None
            return self._jobs.pop(job_id)

    def list(self) -> List[JobRecord]:
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
