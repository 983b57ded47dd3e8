import base64
import json
import uuid
from typing import Any

from asr_stream.domain.errors import DecodeError
from asr_stream.domain.events import (
    Error,
    ServiceEvent,
    SessionCreated,
    SessionFinished,
    SessionUpdated,
    SpeechStarted,
    SpeechStopped,
    TranscriptionCompleted,
    TranscriptionDelta,
    Unknown,
)
from asr_stream.domain.framer import AudioChunk
from asr_stream.domain.settings import SessionSettings

SESSION_UPDATE = "session.update"
AUDIO_APPEND = "input_audio_buffer.append"
SESSION_FINISH = "session.finish"


def _new_event_id() -> str:
    return f"event_{uuid.uuid4().hex}"


def _dump(message: dict[str, Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


class ProtocolCodec:
    def encode_session_update(self, settings: SessionSettings) -> str:
        return _dump({
            "event_id": _new_event_id(),
            "type": SESSION_UPDATE,
            "session": {
                "modalities": ["text"],
                "input_audio_format": "pcm",
                "sample_rate": settings.sample_rate,
                "input_audio_transcription": {
                    "language": settings.language,
                },
                "turn_detection": {
                    "type": "server_vad",
                    "threshold": settings.vad_threshold,
                    "silence_duration_ms": settings.vad_silence_ms,
                },
            },
        })

    def encode_audio(self, chunk: AudioChunk) -> str:
        return _dump({
            "event_id": _new_event_id(),
            "type": AUDIO_APPEND,
            "audio": base64.b64encode(chunk.data).decode("ascii"),
        })

    def encode_session_finish(self) -> str:
        return _dump({
            "event_id": _new_event_id(),
            "type": SESSION_FINISH,
        })

    def decode(self, message: str | bytes) -> ServiceEvent:
        if isinstance(message, bytes):
            try:
                message = message.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"inbound frame is not UTF-8: {exc}", raw=message) from exc
        try:
            payload = json.loads(message)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"inbound frame is not JSON: {exc.msg}", raw=message) from exc
        if not isinstance(payload, dict):
            raise DecodeError(
                f"inbound frame is a JSON {type(payload).__name__}, expected an object",
                raw=message,
            )

        event_type = payload.get("type")
        decoder = _DECODERS.get(event_type) if isinstance(event_type, str) else None
        if decoder is None:
            return Unknown(
                type=event_type if isinstance(event_type, str) else "",
                event_id=_text(payload, "event_id"),
                payload=payload,
            )
        return decoder(payload)


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def _int_or_none(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _session_body(payload: dict[str, Any]) -> dict[str, Any]:
    session = payload.get("session")
    return session if isinstance(session, dict) else {}


def _decode_session_created(payload: dict[str, Any]) -> SessionCreated:
    session = _session_body(payload)
    return SessionCreated(
        session_id=_text(session, "id"),
        session=session,
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_session_updated(payload: dict[str, Any]) -> SessionUpdated:
    session = _session_body(payload)
    return SessionUpdated(
        session_id=_text(session, "id"),
        session=session,
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_speech_started(payload: dict[str, Any]) -> SpeechStarted:
    return SpeechStarted(
        item_id=_text(payload, "item_id"),
        audio_start_ms=_int_or_none(payload, "audio_start_ms"),
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_speech_stopped(payload: dict[str, Any]) -> SpeechStopped:
    return SpeechStopped(
        item_id=_text(payload, "item_id"),
        audio_end_ms=_int_or_none(payload, "audio_end_ms"),
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_transcription_delta(payload: dict[str, Any]) -> TranscriptionDelta:
    # Qwen sends "text" + "stash"; the OpenAI flavour sends "delta".
    return TranscriptionDelta(
        item_id=_text(payload, "item_id"),
        text=_text(payload, "text") or _text(payload, "delta"),
        stash=_text(payload, "stash"),
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_transcription_completed(payload: dict[str, Any]) -> TranscriptionCompleted:
    return TranscriptionCompleted(
        item_id=_text(payload, "item_id"),
        transcript=_text(payload, "transcript"),
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_error(payload: dict[str, Any]) -> Error:
    error = payload.get("error")
    if not isinstance(error, dict):
        error = {}
    code = error.get("code")
    return Error(
        code=str(code) if code is not None else "",
        message=_text(error, "message"),
        error_type=_text(error, "type"),
        event_id=_text(payload, "event_id"),
        payload=payload,
    )


def _decode_session_finished(payload: dict[str, Any]) -> SessionFinished:
    return SessionFinished(event_id=_text(payload, "event_id"), payload=payload)


_DECODERS = {
    "session.created": _decode_session_created,
    "session.updated": _decode_session_updated,
    "input_audio_buffer.speech_started": _decode_speech_started,
    "input_audio_buffer.speech_stopped": _decode_speech_stopped,
    "conversation.item.input_audio_transcription.text": _decode_transcription_delta,
    "conversation.item.input_audio_transcription.delta": _decode_transcription_delta,
    "conversation.item.input_audio_transcription.completed": _decode_transcription_completed,
    "error": _decode_error,
    "session.finished": _decode_session_finished,
}
