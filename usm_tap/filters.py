from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping

from .exceptions import ValidationError

DEFAULT_AREA = "USM"
DEFAULT_MODEL = "NGOFS2"
DEFAULT_PARAMETER = "Current Speed"
DEFAULT_DATA_SOURCE = "simulated"
DEFAULT_TOTAL_FRAMES = 24
DEFAULT_DATE = date(2025, 8, 1)

SYSTEM_PROMPT = (
    "You are CubeAI, an expert oceanographic analysis assistant for the University of "
    "Southern Mississippi's marine science platform. "
    "You analyze real-time ocean data including currents, waves, temperature, and "
    "environmental conditions. "
    "Provide technical yet accessible responses focused on maritime safety, research "
    "insights, and data interpretation."
)

_INTENT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("current_analysis", ("current", "flow")),
    ("wave_analysis", ("wave", "swell")),
    ("temperature_analysis", ("temperature", "thermal")),
    ("prediction", ("predict", "forecast")),
    ("safety_assessment", ("safety", "risk")),
    ("data_inquiry", ("data", "source")),
    ("model_info", ("model", "accuracy")),
    ("data_export", ("export", "download")),
)


@dataclass(slots=True)
class ViewPoint:
    x: float = 0.0
    y: float = 0.0
    depth: float = 0.0


@dataclass(slots=True)
class CurrentConditions:
    current_speed: float | None = None
    heading: float | None = None
    wave_height: float | None = None
    temperature: float | None = None


@dataclass(slots=True)
class ChatContext:
    """Oceanographic view parameters that accompany a chat message."""

    selected_area: str = DEFAULT_AREA
    selected_depth: float = 0
    selected_model: str = DEFAULT_MODEL
    selected_parameter: str = DEFAULT_PARAMETER
    data_source: str = DEFAULT_DATA_SOURCE
    playback_speed: float = 1.0
    current_frame: int = 0
    total_frames: int = DEFAULT_TOTAL_FRAMES
    start_date: date | None = None
    end_date: date | None = None
    holo_ocean_pov: ViewPoint = field(default_factory=ViewPoint)
    current_data: CurrentConditions = field(default_factory=CurrentConditions)
    data_points: int = 0
    thread_id: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ChatContext":
        """Build a context from the loose camelCase payload sent by the UI."""
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValidationError("context must be an object")

        series = raw.get("timeSeriesData") or []
        if not isinstance(series, list):
            series = []
        latest = raw.get("currentData")
        if latest is None and series:
            latest = series[-1]

        pov = raw.get("holoOceanPOV") or {}
        if not isinstance(pov, Mapping):
            pov = {}

        start = _parse_date(raw.get("startDate"))
        end = _parse_date(raw.get("endDate")) or start

        return cls(
            selected_area=str(raw.get("selectedArea") or DEFAULT_AREA),
            selected_depth=_as_number(raw.get("selectedDepth"), 0),
            selected_model=str(raw.get("selectedModel") or DEFAULT_MODEL),
            selected_parameter=str(raw.get("selectedParameter") or DEFAULT_PARAMETER),
            data_source=str(raw.get("dataSource") or DEFAULT_DATA_SOURCE),
            playback_speed=_as_number(raw.get("playbackSpeed"), 1.0),
            current_frame=int(_as_number(raw.get("currentFrame"), 0)),
            total_frames=int(_as_number(raw.get("totalFrames"), DEFAULT_TOTAL_FRAMES)),
            start_date=start,
            end_date=end,
            holo_ocean_pov=ViewPoint(
                x=_as_number(pov.get("x"), 0.0),
                y=_as_number(pov.get("y"), 0.0),
                depth=_as_number(pov.get("z", pov.get("depth")), 0.0),
            ),
            current_data=_conditions(latest),
            data_points=len(series),
            thread_id=raw.get("threadId") or raw.get("thread_id"),
        )

    @property
    def date_range(self) -> str:
        start = self.start_date or DEFAULT_DATE
        end = self.end_date or start
        return f"{start.isoformat()} to {end.isoformat()}"


def build_filters(context: ChatContext | None = None) -> dict[str, Any]:
    """Flatten a context into the ``filters`` object expected by the chat API."""
    context = context or ChatContext()
    date_range = context.date_range
    depth = _format_number(context.selected_depth)
    prompt = (
        f"{SYSTEM_PROMPT} Current context: {context.selected_area} at {depth} meters depth "
        f"using {context.selected_model} model for the date range {date_range}."
    )

    return {
        "area": context.selected_area,
        "date_range": date_range,
        "depth": f"{depth} meters",
        "domain": "oceanography",
        "model": context.selected_model,
        "parameter": context.selected_parameter,
        "data_source": context.data_source,
        "frame": context.current_frame,
        "total_frames": context.total_frames,
        "playback_speed": context.playback_speed,
        "data_points": context.data_points,
        "pov_x": context.holo_ocean_pov.x,
        "pov_y": context.holo_ocean_pov.y,
        "pov_depth": context.holo_ocean_pov.depth,
        "current_speed": context.current_data.current_speed,
        "heading": context.current_data.heading,
        "wave_height": context.current_data.wave_height,
        "temperature": context.current_data.temperature,
        "system_prompt": prompt,
    }


def detect_user_intent(message: str) -> str:
    text = message.lower()
    for intent, keywords in _INTENT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return intent
    return "general_inquiry"


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return DEFAULT_DATE


def _as_number(value: Any, default: float) -> float:
    number = _optional_number(value)
    return default if number is None else number


def _optional_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    # NaN and infinity are not valid JSON and cannot become frame indexes.
    return number if math.isfinite(number) else None


def _conditions(raw: Any) -> CurrentConditions:
    if not isinstance(raw, Mapping):
        return CurrentConditions()
    return CurrentConditions(
        current_speed=_optional_number(raw.get("currentSpeed")),
        heading=_optional_number(raw.get("heading")),
        wave_height=_optional_number(raw.get("waveHeight")),
        temperature=_optional_number(raw.get("temperature")),
    )


def _format_number(value: float) -> str:
    number = float(value)
    return str(int(number)) if number.is_integer() else str(number)
