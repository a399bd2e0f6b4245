"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Optional

from app.jobs.models import CompositionRequest, JobRecord


class JobDispatcher(ABC):
    """Abstract interface for accepting and tracking composition jobs."""

    @abstractmethod
    async def create(self, request: CompositionRequest) -> str:
        """Accept a request and start composing. Returns job_id immediately."""
        ...

    @abstractmethod
    async def status(self, job_id: str) -> Optional[JobRecord]:
        """Get current snapshot of a job."""
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher, cancelling in-flight work."""
        ...
