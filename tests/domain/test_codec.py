import base64
import json

import pytest

from asr_stream.domain.codec import ProtocolCodec
from asr_stream.domain.errors import DecodeError
from asr_stream.domain.events import (
    Error,
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


@pytest.fixture
def codec():
    return ProtocolCodec()


class TestOutboundMessages:
    def test_session_update_carries_configuration(self, codec):
        settings = SessionSettings(sample_rate=16000, language="en", vad_threshold=0.35, vad_silence_ms=600)

        message = json.loads(codec.encode_session_update(settings))

        assert message["type"] == "session.update"
        session = message["session"]
        assert session["modalities"] == ["text"]
        assert session["input_audio_format"] == "pcm"
        assert session["sample_rate"] == 16000
        assert session["input_audio_transcription"] == {"language": "en"}
        assert session["turn_detection"] == {
            "type": "server_vad",
            "threshold": 0.35,
            "silence_duration_ms": 600,
        }

    def test_audio_is_base64_encoded(self, codec):
        chunk = AudioChunk(sequence=3, data=b"\x00\x01\xfe\xff")

        message = json.loads(codec.encode_audio(chunk))

        assert message["type"] == "input_audio_buffer.append"
        assert base64.b64decode(message["audio"]) == chunk.data

    def test_session_finish(self, codec):
        assert json.loads(codec.encode_session_finish())["type"] == "session.finish"

    def test_event_ids_are_unique(self, codec):
        ids = {json.loads(codec.encode_session_finish())["event_id"] for _ in range(20)}
        assert len(ids) == 20

    def test_messages_are_single_line(self, codec):
        message = codec.encode_session_update(SessionSettings(language="zh"))
        assert "\n" not in message


class TestInboundEvents:
    def test_session_created(self, codec):
        event = codec.decode(json.dumps({
            "event_id": "evt_1",
            "type": "session.created",
            "session": {"id": "sess_42", "model": "qwen3-asr-flash-realtime"},
        }))
        assert isinstance(event, SessionCreated)
        assert event.session_id == "sess_42"
        assert event.event_id == "evt_1"

    def test_session_updated(self, codec):
        event = codec.decode('{"type": "session.updated", "session": {"id": "sess_42"}}')
        assert isinstance(event, SessionUpdated)
        assert event.session_id == "sess_42"

    def test_speech_started_and_stopped(self, codec):
        started = codec.decode('{"type": "input_audio_buffer.speech_started", "item_id": "i1", "audio_start_ms": 320}')
        stopped = codec.decode('{"type": "input_audio_buffer.speech_stopped", "item_id": "i1", "audio_end_ms": 1800}')
        assert started == SpeechStarted(item_id="i1", audio_start_ms=320, payload=started.payload)
        assert isinstance(stopped, SpeechStopped)
        assert stopped.audio_end_ms == 1800

    def test_qwen_text_event_is_a_delta(self, codec):
        event = codec.decode(json.dumps({
            "type": "conversation.item.input_audio_transcription.text",
            "item_id": "i1",
            "text": "你好",
            "stash": "世界",
        }, ensure_ascii=False))
        assert isinstance(event, TranscriptionDelta)
        assert event.text == "你好"
        assert event.stash == "世界"

    def test_openai_delta_event(self, codec):
        event = codec.decode('{"type": "conversation.item.input_audio_transcription.delta", "delta": "hel"}')
        assert isinstance(event, TranscriptionDelta)
        assert event.text == "hel"

    def test_completed(self, codec):
        event = codec.decode(
            '{"type": "conversation.item.input_audio_transcription.completed", "item_id": "i1", "transcript": "hello."}'
        )
        assert isinstance(event, TranscriptionCompleted)
        assert event.transcript == "hello."

    def test_error(self, codec):
        event = codec.decode(json.dumps({
            "type": "error",
            "error": {"type": "invalid_request_error", "code": 400, "message": "bad audio"},
        }))
        assert isinstance(event, Error)
        assert event.code == "400"
        assert event.message == "bad audio"
        assert event.error_type == "invalid_request_error"

    def test_session_finished(self, codec):
        assert isinstance(codec.decode('{"type": "session.finished"}'), SessionFinished)

    def test_unrecognised_type_becomes_unknown(self, codec):
        raw = {"type": "input_audio_buffer.committed", "item_id": "i9", "previous_item_id": None}
        event = codec.decode(json.dumps(raw))
        assert isinstance(event, Unknown)
        assert event.type == "input_audio_buffer.committed"
        assert event.payload == raw

    def test_object_without_type_becomes_unknown(self, codec):
        event = codec.decode('{"hello": "world"}')
        assert isinstance(event, Unknown)
        assert event.type == ""

    def test_bytes_frames_are_decoded(self, codec):
        event = codec.decode(b'{"type": "session.finished"}')
        assert isinstance(event, SessionFinished)

    def test_loose_field_types_are_tolerated(self, codec):
        event = codec.decode('{"type": "input_audio_buffer.speech_started", "audio_start_ms": "soon", "item_id": 7}')
        assert isinstance(event, SpeechStarted)
        assert event.audio_start_ms is None
        assert event.item_id == ""


class TestDecodeErrors:
    @pytest.mark.parametrize("message", ["", "{not json", "[1, 2]", "42", '"text"', "null"])
    def test_malformed_payloads_raise(self, codec, message):
        with pytest.raises(DecodeError) as excinfo:
            codec.decode(message)
        assert excinfo.value.raw == message

    def test_invalid_utf8_raises(self, codec):
        with pytest.raises(DecodeError):
            codec.decode(b"\xff\xfe{")
