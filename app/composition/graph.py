"""Composition parameter builder: layout + overrides -> ffmpeg filter graph.

Pure and deterministic. The same (layout, per-input settings, audio policy)
always yields an identical GraphSpec.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.errors import ValidationError

# Output policy. Not caller-configurable so output size/quality stays predictable.
OUTPUT_WIDTH = 1280
OUTPUT_HEIGHT = 720
OUTPUT_OPTIONS: Tuple[str, ...] = (
    "-c:v", "libx264",
    "-preset", "fast",
    "-crf", "23",
    "-maxrate", "5000k",
    "-bufsize", "10000k",
    "-pix_fmt", "yuv420p",
    "-c:a", "aac",
    "-b:a", "128k",
    "-movflags", "+faststart",
)

VIDEO_LABEL = "v"
AUDIO_LABEL = "a"


class Layout(str, Enum):
    SIDE_BY_SIDE = "SideBySide"
    STACKED = "Stacked"
    SEQUENTIAL = "Sequential"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Layout":
        """Resolve a caller-supplied layout; anything unrecognized is Sequential."""
        key = _normalize(value)
        for layout in cls:
            if _normalize(layout.value) == key:
                return layout
        return cls.SEQUENTIAL


class AudioMixPolicy(str, Enum):
    SHORTEST = "shortest"
    LONGEST = "longest"
    FIRST = "first"
    SECOND = "second"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AudioMixPolicy":
        key = _normalize(value)
        if key == "mixed":
            return cls.SHORTEST
        for policy in cls:
            if policy.value == key:
                return policy
        return cls.SHORTEST


class DurationMode(str, Enum):
    """How per-input durations combine into the expected output duration."""
    SUM = "sum"
    MIN = "min"
    MAX = "max"


@dataclass(frozen=True)
class Crop:
    width: int
    height: int
    x: int = 0
    y: int = 0


@dataclass(frozen=True)
class InputSettings:
    crop: Optional[Crop] = None
    volume: Optional[float] = None


@dataclass(frozen=True)
class GraphSpec:
    """Engine-agnostic description of a two-input composition."""
    layout: Layout
    audio_mix_policy: AudioMixPolicy
    filters: Tuple[str, ...]
    duration_mode: DurationMode
    video_label: str = VIDEO_LABEL
    audio_label: str = AUDIO_LABEL
    output_options: Tuple[str, ...] = OUTPUT_OPTIONS
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def filter_complex(self) -> str:
        return ";".join(self.filters)

    def expected_duration(self, durations: List[float]) -> Optional[float]:
        """Combine input durations reported by the engine; None until both are known."""
        if len(durations) < 2:
            return None
        a, b = durations[0], durations[1]
        if self.duration_mode == DurationMode.SUM:
            return a + b
        if self.duration_mode == DurationMode.MIN:
            return min(a, b)
        return max(a, b)


# Accepted keys in the per-input settings map
_INPUT_KEYS = {
    0: ("inputA", "input_a", "a", "video1"),
    1: ("inputB", "input_b", "b", "video2"),
}


def build_graph(
    layout: Any,
    per_input_settings: Optional[Mapping[str, Any]] = None,
    audio_mix_policy: Any = None,
) -> GraphSpec:
    """Build the filter graph for a composition request.

    Raises ValidationError only for structurally invalid overrides.
    """
    layout = layout if isinstance(layout, Layout) else Layout.parse(layout)
    policy = (
        audio_mix_policy
        if isinstance(audio_mix_policy, AudioMixPolicy)
        else AudioMixPolicy.parse(audio_mix_policy)
    )
    settings_a, settings_b = parse_input_settings(per_input_settings)

    if layout == Layout.SEQUENTIAL:
        filters = [
            *_prepare_video(0, settings_a, None),
            *_prepare_video(1, settings_b, None),
            *_prepare_audio(0, settings_a),
            *_prepare_audio(1, settings_b),
            f"[v0][a0][v1][a1]concat=n=2:v=1:a=1[{VIDEO_LABEL}][{AUDIO_LABEL}]",
        ]
        return GraphSpec(
            layout=layout,
            audio_mix_policy=policy,
            filters=tuple(filters),
            duration_mode=DurationMode.SUM,
        )

    if layout == Layout.SIDE_BY_SIDE:
        tile = (OUTPUT_WIDTH // 2, OUTPUT_HEIGHT)
        stack = "hstack"
    else:
        tile = (OUTPUT_WIDTH, OUTPUT_HEIGHT // 2)
        stack = "vstack"

    filters = [
        *_prepare_video(0, settings_a, tile),
        *_prepare_video(1, settings_b, tile),
        f"[v0][v1]{stack}=inputs=2[{VIDEO_LABEL}]",
        *_mix_audio(policy, settings_a, settings_b),
    ]
    return GraphSpec(
        layout=layout,
        audio_mix_policy=policy,
        filters=tuple(filters),
        duration_mode=DurationMode.MIN if policy == AudioMixPolicy.SHORTEST else DurationMode.MAX,
        width=OUTPUT_WIDTH,
        height=OUTPUT_HEIGHT,
    )


def parse_input_settings(
    per_input_settings: Optional[Mapping[str, Any]],
) -> Tuple[InputSettings, InputSettings]:
    """Validate the override map into one InputSettings per input."""
    if per_input_settings is None:
        return InputSettings(), InputSettings()
    if not isinstance(per_input_settings, Mapping):
        raise ValidationError("perInputSettings must be an object")

    parsed = []
    for index in (0, 1):
        raw = None
        for key in _INPUT_KEYS[index]:
            if key in per_input_settings:
                raw = per_input_settings[key]
                break
        parsed.append(_parse_one(_INPUT_KEYS[index][0], raw))
    return parsed[0], parsed[1]


def _parse_one(name: str, raw: Any) -> InputSettings:
    if raw is None:
        return InputSettings()
    if not isinstance(raw, Mapping):
        raise ValidationError(f"{name}: settings must be an object")

    crop = None
    if raw.get("crop") is not None:
        c = raw["crop"]
        if not isinstance(c, Mapping):
            raise ValidationError(f"{name}.crop must be an object")
        width = _int_field(name, "crop.width", c.get("width"), minimum=1)
        height = _int_field(name, "crop.height", c.get("height"), minimum=1)
        x = _int_field(name, "crop.x", c.get("x", 0), minimum=0)
        y = _int_field(name, "crop.y", c.get("y", 0), minimum=0)
        crop = Crop(width=width, height=height, x=x, y=y)

    volume = None
    if raw.get("volume") is not None:
        volume = raw["volume"]
        if isinstance(volume, bool) or not isinstance(volume, (int, float)) or volume < 0:
            raise ValidationError(f"{name}.volume must be a non-negative number")
        volume = float(volume)

    return InputSettings(crop=crop, volume=volume)


def _int_field(name: str, field: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name}.{field} must be an integer")
    if value < minimum:
        raise ValidationError(f"{name}.{field} must be >= {minimum}")
    return value


def _prepare_video(
    index: int,
    settings: InputSettings,
    tile: Optional[Tuple[int, int]],
) -> List[str]:
    steps = []
    if settings.crop:
        c = settings.crop
        steps.append(f"crop={c.width}:{c.height}:{c.x}:{c.y}")
    if tile:
        steps.append(f"scale={tile[0]}:{tile[1]}")
        steps.append("setsar=1")
    chain = ",".join(steps) or "null"
    return [f"[{index}:v]{chain}[v{index}]"]


def _prepare_audio(index: int, settings: InputSettings) -> List[str]:
    chain = f"volume={settings.volume:g}" if settings.volume is not None else "anull"
    return [f"[{index}:a]{chain}[a{index}]"]


def _mix_audio(
    policy: AudioMixPolicy,
    settings_a: InputSettings,
    settings_b: InputSettings,
) -> List[str]:
    if policy == AudioMixPolicy.FIRST:
        return [_single_track(0, settings_a)]
    if policy == AudioMixPolicy.SECOND:
        return [_single_track(1, settings_b)]
    return [
        *_prepare_audio(0, settings_a),
        *_prepare_audio(1, settings_b),
        f"[a0][a1]amix=inputs=2:duration={policy.value}[{AUDIO_LABEL}]",
    ]


def _single_track(index: int, settings: InputSettings) -> str:
    chain = f"volume={settings.volume:g}" if settings.volume is not None else "anull"
    return f"[{index}:a]{chain}[{AUDIO_LABEL}]"


def _normalize(value: Optional[str]) -> str:
    if not isinstance(value, str):
        return ""
    return re.sub(r"[^a-z0-9]", "", value.lower())


def describe(graph: GraphSpec) -> Dict[str, Any]:
    """Serializable summary of a graph, used for logging."""
    return {
        "layout": graph.layout.value,
        "audio_mix_policy": graph.audio_mix_policy.value,
        "filter_complex": graph.filter_complex,
        "duration_mode": graph.duration_mode.value,
    }
