from asr_stream.adapters.jsonl_sink import JsonLinesEventSink
from asr_stream.adapters.stdin_audio import StdinAudioSource
from asr_stream.adapters.websocket_transport import WebsocketTransport
from asr_stream.config import AsrStreamConfig
from asr_stream.domain.session import StreamingSession
from asr_stream.ports.audio import AudioSourcePort
from asr_stream.ports.sink import EventSinkPort
from asr_stream.ports.transport import TransportPort


def create_transport(config: AsrStreamConfig) -> WebsocketTransport:
    return WebsocketTransport(
        url=config.endpoint_url(),
        api_key=config.resolved_api_key(),
        open_timeout=config.connect_timeout,
    )


def create_audio_source(config: AsrStreamConfig) -> StdinAudioSource:
    return StdinAudioSource(
        read_size=config.read_size,
        max_blocks=config.audio_queue_blocks,
    )


def create_sink() -> JsonLinesEventSink:
    return JsonLinesEventSink()


def create_session(
    config: AsrStreamConfig,
    transport: TransportPort | None = None,
    audio_source: AudioSourcePort | None = None,
    sink: EventSinkPort | None = None,
) -> StreamingSession:
    return StreamingSession(
        transport=transport or create_transport(config),
        audio_source=audio_source or create_audio_source(config),
        sink=sink or create_sink(),
        settings=config.session_settings(),
    )
