from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class SessionCreated:
    session_id: str = ""
    session: dict[str, Any] = field(default_factory=dict)
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SessionUpdated:
    session_id: str = ""
    session: dict[str, Any] = field(default_factory=dict)
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SpeechStarted:
    item_id: str = ""
    audio_start_ms: int | None = None
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SpeechStopped:
    item_id: str = ""
    audio_end_ms: int | None = None
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class TranscriptionDelta:
    item_id: str = ""
    text: str = ""
    stash: str = ""
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class TranscriptionCompleted:
    item_id: str = ""
    transcript: str = ""
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class Error:
    code: str = ""
    message: str = ""
    error_type: str = ""
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SessionFinished:
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class Unknown:
    type: str = ""
    event_id: str = ""
    payload: dict[str, Any] | None = field(default=None, repr=False)


ServiceEvent = Union[
    SessionCreated,
    SessionUpdated,
    SpeechStarted,
    SpeechStopped,
    TranscriptionDelta,
    TranscriptionCompleted,
    Error,
    SessionFinished,
    Unknown,
]

SESSION_ACKS = (SessionCreated, SessionUpdated)
