"""
Composition engine adapter.

Runs the external processing engine (ffmpeg) against two inputs and one
output, reporting back over a bounded asyncio.Queue:

    Started(command)*  ->  Progress(percent)*  ->  Completed | Failed

Exactly one terminal event is emitted per run. No retries; a failed
attempt is final for the job.
"""

import asyncio
import os
import re
import shutil
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Union

from app.composition.graph import GraphSpec
from app.errors import EngineFailure
from app.log import get_logger

logger = get_logger("composition.engine")


@dataclass(frozen=True)
class Started:
    command: str


@dataclass(frozen=True)
class Progress:
    percent: int


@dataclass(frozen=True)
class Completed:
    output_path: str


@dataclass(frozen=True)
class Failed:
    detail: str


EngineEvent = Union[Started, Progress, Completed, Failed]
TERMINAL_EVENTS = (Completed, Failed)


class CompositionEngine(ABC):
    """Abstract interface for an engine that composes two inputs into one output."""

    @abstractmethod
    async def run(
        self,
        input_a: str,
        input_b: str,
        graph: GraphSpec,
        output_path: str,
        events: "asyncio.Queue[EngineEvent]",
    ) -> None:
        """Compose the inputs, putting events on the channel. Must not raise."""
        ...

    @property
    def available(self) -> bool:
        return True


# Matches the per-input banner line: "  Duration: 00:01:23.45, start: ..."
DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


class ProgressTracker:
    """
    Turns ffmpeg output into non-decreasing integer percentages.

    Input durations come from the stderr banner; the encoded position comes
    from the key=value blocks written by `-progress pipe:1`.
    """

    def __init__(self, graph: GraphSpec, tail_lines: int = 20):
        self.graph = graph
        self.durations: List[float] = []
        self.last_percent = 0
        self._tail: deque = deque(maxlen=tail_lines)

    def feed_stderr(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        match = DURATION_PATTERN.search(line)
        if match:
            hours, minutes, seconds = match.groups()
            self.durations.append(int(hours) * 3600 + int(minutes) * 60 + float(seconds))
            return
        self._tail.append(line)

    def feed_progress(self, line: str) -> Optional[int]:
        """Return a new percentage if this line advances progress, else None."""
        key, sep, value = line.strip().partition("=")
        if not sep:
            return None

        if key == "progress" and value == "end":
            return self._advance(100)

        # ffmpeg reports out_time_ms in microseconds as well
        if key not in ("out_time_us", "out_time_ms"):
            return None
        try:
            position = int(value) / 1_000_000
        except ValueError:
            return None  # "N/A" before the first frame

        total = self.graph.expected_duration(self.durations)
        if not total or total <= 0:
            return None
        return self._advance(int(position / total * 100))

    def _advance(self, percent: int) -> Optional[int]:
        percent = max(0, min(100, percent))
        if percent <= self.last_percent:
            return None
        self.last_percent = percent
        return percent

    @property
    def last_error(self) -> Optional[str]:
        return self._tail[-1] if self._tail else None


class FFmpegEngine(CompositionEngine):
    """FFmpeg-based composition engine using an asyncio subprocess."""

    def __init__(self, ffmpeg_path: Optional[str] = None):
        self._ffmpeg_path = ffmpeg_path

    @property
    def available(self) -> bool:
        """Check if ffmpeg is installed and accessible."""
        return self._find_ffmpeg() is not None

    def _find_ffmpeg(self) -> Optional[str]:
        if self._ffmpeg_path:
            if os.path.isfile(self._ffmpeg_path) and os.access(self._ffmpeg_path, os.X_OK):
                return self._ffmpeg_path
            return shutil.which(self._ffmpeg_path)

        ffmpeg_path = shutil.which("ffmpeg")
        if ffmpeg_path:
            self._ffmpeg_path = ffmpeg_path
            return ffmpeg_path

        for path in ("/usr/local/bin/ffmpeg", "/usr/bin/ffmpeg", "/opt/homebrew/bin/ffmpeg"):
            if os.path.isfile(path) and os.access(path, os.X_OK):
                self._ffmpeg_path = path
                return path
        return None

    def build_command(
        self,
        ffmpeg: str,
        input_a: str,
        input_b: str,
        graph: GraphSpec,
        output_path: str,
    ) -> List[str]:
        return [
            ffmpeg, "-hide_banner", "-nostdin", "-y",
            "-i", input_a,
            "-i", input_b,
            "-filter_complex", graph.filter_complex,
            "-map", f"[{graph.video_label}]",
            "-map", f"[{graph.audio_label}]",
            *graph.output_options,
            "-progress", "pipe:1", "-nostats",
            output_path,
        ]

    async def run(self, input_a, input_b, graph, output_path, events) -> None:
        try:
            await self._run(input_a, input_b, graph, output_path, events)
        except EngineFailure as e:
            logger.error(f"Composition failed: {e}")
            await events.put(Failed(str(e)))
        except Exception as e:
            logger.exception("Unexpected error during composition")
            await events.put(Failed(f"{type(e).__name__}: {e}"))

    def _preflight(self, input_a: str, input_b: str, output_path: str) -> str:
        for path in (input_a, input_b):
            if not os.path.isfile(path) or not os.access(path, os.R_OK):
                raise EngineFailure(f"Input missing or unreadable: {os.path.basename(path)}")

        output_dir = os.path.dirname(os.path.abspath(output_path))
        if not os.path.isdir(output_dir) or not os.access(output_dir, os.W_OK):
            raise EngineFailure(f"Output path not writable: {output_dir}")

        ffmpeg = self._find_ffmpeg()
        if not ffmpeg:
            raise EngineFailure("FFmpeg is not installed or not in PATH")
        return ffmpeg

    async def _run(self, input_a, input_b, graph, output_path, events) -> None:
        ffmpeg = self._preflight(input_a, input_b, output_path)
        cmd = self.build_command(ffmpeg, input_a, input_b, graph, output_path)

        cmd_string = " ".join(cmd)
        logger.info(f"FFmpeg started: {cmd_string}")
        await events.put(Started(cmd_string))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EngineFailure(f"Could not start engine: {e}") from e

        tracker = ProgressTracker(graph)
        stderr_task = asyncio.create_task(self._drain_stderr(process.stderr, tracker))
        try:
            async for raw in process.stdout:
                percent = tracker.feed_progress(raw.decode("utf-8", "ignore"))
                if percent is not None:
                    await events.put(Progress(percent))
            await stderr_task
            exit_code = await process.wait()
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        logger.info(f"FFmpeg PID {process.pid} exited with code {exit_code}")
        if exit_code != 0:
            detail = f"engine exit code {exit_code}"
            if tracker.last_error:
                detail = f"{detail}: {tracker.last_error}"
            raise EngineFailure(detail)

        if not os.path.isfile(output_path):
            raise EngineFailure("Engine exited cleanly but produced no output file")

        logger.info(f"Processing complete: {os.path.basename(output_path)}")
        await events.put(Completed(output_path))

    @staticmethod
    async def _drain_stderr(stream: asyncio.StreamReader, tracker: ProgressTracker) -> None:
        async for raw in stream:
            tracker.feed_stderr(raw.decode("utf-8", "ignore"))
