from asr_stream.adapters.jsonl_sink import JsonLinesEventSink
from asr_stream.adapters.stdin_audio import StdinAudioSource
from asr_stream.adapters.websocket_transport import WebsocketTransport
from asr_stream.config import AsrStreamConfig
from asr_stream.domain.state import SessionState
from asr_stream.factory import create_session, create_transport
from tests.conftest import FakeAudioSource, FakeTransport, RecordingSink


class TestFactory:
    def test_default_components(self):
        session = create_session(AsrStreamConfig(api_key="sk", chunk_size=1600))
        assert isinstance(session._transport, WebsocketTransport)
        assert isinstance(session._audio_source, StdinAudioSource)
        assert isinstance(session._sink, JsonLinesEventSink)
        assert session.settings.chunk_size == 1600
        assert session.state == SessionState.CONNECTING

    def test_injected_components(self):
        transport, source, sink = FakeTransport(), FakeAudioSource(), RecordingSink()
        session = create_session(AsrStreamConfig(api_key="sk"), transport=transport, audio_source=source, sink=sink)
        assert session._transport is transport
        assert session._audio_source is source
        assert session._sink is sink

    def test_transport_targets_model_endpoint(self):
        transport = create_transport(AsrStreamConfig(api_key="sk", base_url="wss://host/rt", model="m1"))
        assert "wss://host/rt?model=m1" in repr(transport)
