"""
Pytest fixtures for composition service tests.
"""
import asyncio
import os
import stat
from pathlib import Path
from typing import List, Optional

import pytest

from app.composition.engine import CompositionEngine, Completed, EngineEvent
from app.jobs.models import JobRecord, JobStatus
from app.jobs.orchestrator import JobOrchestrator
from app.jobs.store import InMemoryJobStore
from app.storage.media_store import MediaStore


class ScriptedEngine(CompositionEngine):
    """Engine double that replays a fixed list of events.

    A Completed event in the script is rewritten to point at the real
    output path, and the output file is created first.
    """

    def __init__(
        self,
        script: Optional[List[EngineEvent]] = None,
        gate: Optional[asyncio.Event] = None,
        raise_exc: Optional[Exception] = None,
    ):
        self.script = script if script is not None else [Completed("")]
        self.gate = gate
        self.raise_exc = raise_exc
        self.calls = []

    async def run(self, input_a, input_b, graph, output_path, events):
        self.calls.append((input_a, input_b, graph, output_path))
        if self.gate is not None:
            await self.gate.wait()
        if self.raise_exc is not None:
            raise self.raise_exc
        for event in self.script:
            if isinstance(event, Completed):
                Path(output_path).write_bytes(b"composed")
                event = Completed(output_path)
            await events.put(event)


@pytest.fixture
def upload_store(tmp_path):
    return MediaStore(str(tmp_path / "uploads"), kind="upload")


@pytest.fixture
def output_store(tmp_path):
    return MediaStore(str(tmp_path / "output"), kind="output")


@pytest.fixture
def make_upload(upload_store):
    """Write a fake media file into the upload store and return its id."""
    def _make(content: bytes = b"\x00\x00\x00\x18ftypmp42") -> str:
        file_id = upload_store.new_id(".mp4")
        Path(upload_store.path_for(file_id)).write_bytes(content)
        return file_id
    return _make


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def make_orchestrator(upload_store, output_store, job_store):
    def _make(engine: CompositionEngine) -> JobOrchestrator:
        return JobOrchestrator(
            engine=engine,
            upload_store=upload_store,
            output_store=output_store,
            store=job_store,
            channel_size=8,
        )
    return _make


@pytest.fixture
def make_job(tmp_path):
    """Build a JobRecord directly (bypassing the orchestrator)."""
    def _make(**overrides) -> JobRecord:
        fields = dict(
            layout="Sequential",
            audio_mix_policy="shortest",
            input_a_path=str(tmp_path / "uploads" / "a.mp4"),
            input_b_path=str(tmp_path / "uploads" / "b.mp4"),
            output_path=str(tmp_path / "output" / "out.mp4"),
        )
        fields.update(overrides)
        return JobRecord(**fields)
    return _make


async def wait_for_terminal(orchestrator, job_id: str, timeout: float = 5.0) -> JobRecord:
    """Poll status until the job leaves processing."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        job = await orchestrator.status(job_id)
        if job is not None and job.status != JobStatus.PROCESSING:
            return job
        if loop.time() > deadline:
            raise AssertionError(f"Job {job_id} did not finish: {job}")
        await asyncio.sleep(0.01)


FAKE_FFMPEG = """#!/bin/sh
for last; do :; done
echo "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'a.mp4':" >&2
echo "  Duration: 00:00:02.00, start: 0.000000, bitrate: 512 kb/s" >&2
echo "Input #1, mov,mp4,m4a,3gp,3g2,mj2, from 'b.mp4':" >&2
echo "  Duration: 00:00:02.00, start: 0.000000, bitrate: 512 kb/s" >&2
sleep 0.2
echo "frame=24"
echo "out_time_us=1000000"
echo "progress=continue"
echo "out_time_ms=N/A"
echo "out_time_us=3000000"
echo "progress=continue"
echo "out_time_us=2000000"
echo "progress=continue"
{tail}
"""

_SUCCESS_TAIL = """echo "progress=end"
echo "composed" > "$last"
exit 0"""


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Write an executable stand-in for ffmpeg and return its path.

    By default it reports two 2 s inputs, streams progress and writes the
    output file. Pass exit_code != 0 to make it fail after printing stderr_line.
    """
    def _make(exit_code: int = 0, stderr_line: str = "", write_output: bool = True) -> str:
        if exit_code == 0:
            tail = _SUCCESS_TAIL if write_output else 'echo "progress=end"\nexit 0'
        else:
            tail = f'echo "{stderr_line}" >&2\nexit {exit_code}'
        script = tmp_path / f"ffmpeg-{exit_code}-{int(write_output)}"
        script.write_text(FAKE_FFMPEG.format(tail=tail))
        script.chmod(script.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)
    return _make


def age_file(path: str, seconds: float) -> None:
    """Push a file's mtime into the past."""
    st = os.stat(path)
    os.utime(path, (st.st_atime - seconds, st.st_mtime - seconds))
