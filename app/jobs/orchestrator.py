"""Job orchestrator: accepts composition requests and drives them to a terminal state.

Each accepted job gets one background task. That task opens a bounded
channel, launches the engine as a producer on it, and applies events to
the job store until a terminal event arrives. Request handlers never wait
on composition.
"""

import asyncio
import os
from typing import Optional, Set

from app.composition.engine import (
    TERMINAL_EVENTS,
    CompositionEngine,
    Completed,
    EngineEvent,
    Failed,
    Progress,
    Started,
)
from app.composition.graph import GraphSpec, build_graph, describe
from app.errors import MissingInputError, ShuttingDownError
from app.jobs.dispatcher import JobDispatcher
from app.jobs.models import CompositionRequest, InvalidStateTransitionError, JobRecord
from app.jobs.store import InMemoryJobStore, JobStore
from app.log import get_logger, set_job_id
from app.storage.media_store import MediaStore

logger = get_logger("jobs.orchestrator")


class JobOrchestrator(JobDispatcher):
    """Owns the job table and the per-job composition tasks."""

    def __init__(
        self,
        engine: CompositionEngine,
        upload_store: MediaStore,
        output_store: MediaStore,
        store: Optional[JobStore] = None,
        channel_size: int = 64,
    ):
        self._engine = engine
        self._upload_store = upload_store
        self._output_store = output_store
        self._store = store if store is not None else InMemoryJobStore()
        self._channel_size = channel_size
        self._tasks: Set[asyncio.Task] = set()
        self._accepting = True

    @property
    def store(self) -> JobStore:
        return self._store

    async def create(self, request: CompositionRequest) -> str:
        """Validate, register and launch a composition. Returns before it runs.

        Raises:
            MissingInputError: inputA or inputB absent
            ValidationError: invalid per-input overrides
            NotFoundError: an input id does not resolve to an upload
            ShuttingDownError: called after stop()
        """
        if not self._accepting:
            raise ShuttingDownError("Job orchestrator is stopped")
        if not (request.input_a or "").strip():
            raise MissingInputError("inputA")
        if not (request.input_b or "").strip():
            raise MissingInputError("inputB")

        graph = build_graph(request.layout, request.per_input_settings, request.audio_mix_policy)
        input_a = self._upload_store.resolve(request.input_a)
        input_b = self._upload_store.resolve(request.input_b)

        output_ref = self._output_store.new_id(".mp4")
        job = JobRecord(
            layout=graph.layout.value,
            audio_mix_policy=graph.audio_mix_policy.value,
            input_a_path=input_a,
            input_b_path=input_b,
            output_path=self._output_store.path_for(output_ref),
        )
        self._store.insert(job)

        logger.info(
            f"Processing: {request.input_a} + {request.input_b}",
            extra={"created_job_id": job.id, **describe(graph)},
        )

        task = asyncio.create_task(self._run_job(job, graph), name=f"compose-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job.id

    async def status(self, job_id: str) -> Optional[JobRecord]:
        return self._store.get(job_id)

    async def start(self) -> None:
        self._accepting = True

    async def stop(self) -> None:
        """Cancel in-flight compositions. Their jobs stay processing until reaped."""
        self._accepting = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_job(self, job: JobRecord, graph: GraphSpec) -> None:
        set_job_id(job.id)
        channel: asyncio.Queue = asyncio.Queue(maxsize=self._channel_size)
        producer = asyncio.create_task(
            self._engine.run(job.input_a_path, job.input_b_path, graph, job.output_path, channel)
        )
        try:
            while True:
                event = await self._next_event(channel, producer)
                self._consume_event(job.id, event)
                if isinstance(event, TERMINAL_EVENTS):
                    break
            await producer
        except asyncio.CancelledError:
            await self._cancel_producer(producer)
            raise
        except Exception as e:
            # Engine contract broken (raised instead of emitting Failed)
            logger.exception("Composition task crashed")
            self._consume_event(job.id, Failed(f"{type(e).__name__}: {e}"))
            await self._cancel_producer(producer)

    @staticmethod
    async def _cancel_producer(producer: asyncio.Task) -> None:
        """Cancel the engine task and wait for its cleanup (killing the subprocess) to finish."""
        producer.cancel()
        await asyncio.gather(producer, return_exceptions=True)

    @staticmethod
    async def _next_event(channel: asyncio.Queue, producer: asyncio.Task) -> EngineEvent:
        """Next event from the channel; Failed if the producer ended without a terminal event."""
        while True:
            if not channel.empty():
                return channel.get_nowait()
            if producer.done():
                exc = producer.exception()
                if exc is not None:
                    raise exc
                return Failed("Engine stopped without reporting a result")
            getter = asyncio.ensure_future(channel.get())
            done, _ = await asyncio.wait({getter, producer}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                return getter.result()
            getter.cancel()

    def _consume_event(self, job_id: str, event: EngineEvent) -> None:
        """Apply one engine event to the job record."""
        if isinstance(event, Started):
            logger.debug(f"Engine started: {event.command}")
            return

        if isinstance(event, Progress):
            self._store.update(job_id, lambda j: j.with_progress(event.percent))
            return

        try:
            if isinstance(event, Completed):
                updated = self._store.update(
                    job_id, lambda j: j.complete(os.path.basename(event.output_path))
                )
            elif isinstance(event, Failed):
                updated = self._store.update(job_id, lambda j: j.fail(event.detail))
            else:
                logger.warning(f"Ignoring unknown engine event: {event!r}")
                return
        except InvalidStateTransitionError as e:
            logger.warning(f"Ignoring event for finished job {job_id}: {e}")
            return

        if updated is None:
            logger.warning(f"Job {job_id} was reaped before it finished")
        else:
            logger.info(f"Job {job_id} {updated.status.value}")

