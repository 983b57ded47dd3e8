import asyncio
import logging

from asr_stream.domain.codec import ProtocolCodec
from asr_stream.domain.errors import (
    ConfigurationRejected,
    SessionCancelled,
    SessionError,
    TransportClosed,
    TransportError,
)
from asr_stream.domain.events import (
    SESSION_ACKS,
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
from asr_stream.domain.framer import AudioChunk, Framer
from asr_stream.domain.settings import SessionSettings
from asr_stream.domain.state import SessionState, validate_transition
from asr_stream.ports.audio import AudioSourcePort
from asr_stream.ports.sink import EventSinkPort
from asr_stream.ports.transport import TransportPort

logger = logging.getLogger(__name__)

CHUNK_LOG_INTERVAL = 50


class StreamingSession:
    def __init__(
        self,
        transport: TransportPort,
        audio_source: AudioSourcePort,
        sink: EventSinkPort,
        settings: SessionSettings,
        codec: ProtocolCodec | None = None,
    ) -> None:
        self._transport = transport
        self._audio_source = audio_source
        self._sink = sink
        self._settings = settings
        self._codec = codec or ProtocolCodec()
        self._framer = Framer(
            chunk_size=settings.chunk_size,
            sample_width=settings.sample_width,
            channels=settings.channels,
        )

        self._state = SessionState.CONNECTING
        self._session_id = ""
        self._bytes_sent = 0
        self._chunks_sent = 0
        self._events_received = 0
        self._error: SessionError | None = None
        self._started = False
        self._source_started = False
        self._input_ended = False
        self._stop_requested = asyncio.Event()
        self._force_stop = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def settings(self) -> SessionSettings:
        return self._settings

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    @property
    def chunks_sent(self) -> int:
        return self._chunks_sent

    @property
    def events_received(self) -> int:
        return self._events_received

    @property
    def error(self) -> SessionError | None:
        return self._error

    def request_stop(self, force: bool = False) -> None:
        if force:
            self._force_stop.set()
        self._stop_requested.set()

    async def run(self) -> None:
        if self._started:
            raise RuntimeError("StreamingSession.run() may only be called once")
        self._started = True
        logger.info(
            "Session starting (model=%s, rate=%d, language=%s, vad=%.2f/%dms)",
            self._settings.model,
            self._settings.sample_rate,
            self._settings.language,
            self._settings.vad_threshold,
            self._settings.vad_silence_ms,
        )

        body = asyncio.create_task(self._run_phases())
        stop_waiter = asyncio.create_task(self._stop_requested.wait())
        try:
            await asyncio.wait({body, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if not body.done():
                await self._await_graceful_stop(body)
            body.result()
        except asyncio.CancelledError:
            await _cancel_task(body)
            raise
        finally:
            await _cancel_task(stop_waiter)
            await self._release()

    async def _await_graceful_stop(self, body: asyncio.Task) -> None:
        logger.info("Stop requested, draining (deadline %.1fs)", self._settings.stop_deadline)
        force_waiter = asyncio.create_task(self._force_stop.wait())
        try:
            done, _ = await asyncio.wait(
                {body, force_waiter},
                timeout=self._settings.stop_deadline,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            await _cancel_task(force_waiter)
        if body in done:
            return

        if self._force_stop.is_set():
            reason = "stop forced before the session drained"
        else:
            reason = f"session did not drain within {self._settings.stop_deadline:.1f}s of the stop request"
        await _cancel_task(body)
        error = SessionCancelled(reason)
        self._error = error
        if not self._state.is_terminal:
            self._transition_to(SessionState.CLOSED)
        logger.warning("Session closed forcibly: %s", reason)
        raise error

    async def _run_phases(self) -> None:
        try:
            await self._connect()
            await self._configure()
            await self._stream()
        except SessionError as exc:
            self._fail(exc)
            raise

    async def _connect(self) -> None:
        await self._transport.connect()
        self._transition_to(SessionState.CONFIGURING)

    async def _configure(self) -> None:
        await self._send(
            self._codec.encode_session_update(self._settings),
            allowed=(SessionState.CONFIGURING,),
        )
        try:
            ack = await asyncio.wait_for(
                self._await_session_ack(),
                timeout=self._settings.configure_timeout,
            )
        except asyncio.TimeoutError:
            raise ConfigurationRejected(
                f"no session acknowledgement within {self._settings.configure_timeout:.1f}s"
            ) from None
        self._session_id = ack.session_id
        logger.info("Session created (id=%s)", self._session_id or "<none>")
        self._transition_to(SessionState.STREAMING)

    async def _await_session_ack(self) -> SessionCreated | SessionUpdated:
        while True:
            event = await self._receive_event()
            if isinstance(event, Error):
                raise ConfigurationRejected(
                    f"service rejected the session configuration: {event.message or event.code}",
                    payload=event.payload,
                )
            if isinstance(event, SESSION_ACKS):
                return event

    async def _stream(self) -> None:
        await self._audio_source.start()
        self._source_started = True

        receiver = asyncio.create_task(self._receive_loop())
        sender = asyncio.create_task(self._send_loop())
        try:
            await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)

            if receiver.done():
                await _cancel_task(sender)
                receiver.result()
                logger.info("Service finished the session before end of input")
                self._transition_to(SessionState.DRAINING)
                self._transition_to(SessionState.CLOSED)
                return

            sender.result()
            if self._settings.keep_open and not self._stop_requested.is_set():
                logger.info("End of input, keeping the session open until stopped")
                stop_waiter = asyncio.create_task(self._stop_requested.wait())
                try:
                    await asyncio.wait({receiver, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    await _cancel_task(stop_waiter)

            await self._drain(receiver)
        finally:
            await _cancel_task(sender)
            await _cancel_task(receiver)

    async def _drain(self, receiver: asyncio.Task) -> None:
        self._transition_to(SessionState.DRAINING)
        if receiver.done():
            receiver.result()
        else:
            await self._send(
                self._codec.encode_session_finish(),
                allowed=(SessionState.DRAINING,),
            )
            try:
                await asyncio.wait_for(
                    asyncio.shield(receiver),
                    timeout=self._settings.drain_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Drain budget of %.1fs expired before the service finished",
                    self._settings.drain_timeout,
                )
        self._transition_to(SessionState.CLOSED)
        logger.info(
            "Session closed (%d chunks, %d bytes sent, %d events received)",
            self._chunks_sent,
            self._bytes_sent,
            self._events_received,
        )

    async def _send_loop(self) -> None:
        stopped = False
        while True:
            data = await self._next_audio()
            if data is None:
                logger.info("Stop requested, finishing audio input")
                stopped = True
                break
            if not data:
                logger.info("End of audio input")
                break
            for chunk in self._framer.push(data):
                await self._send_chunk(chunk)

        # chunks already framed always go out before the session drains
        # a stop can land mid-sample; only a real EOF rejects a partial frame
        for chunk in self._framer.flush(truncate_partial=stopped):
            await self._send_chunk(chunk)
        self._input_ended = True

    async def _next_audio(self) -> bytes | None:
        if self._stop_requested.is_set():
            return None
        read = asyncio.create_task(self._audio_source.read())
        stop_waiter = asyncio.create_task(self._stop_requested.wait())
        try:
            await asyncio.wait({read, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            read.cancel()
            raise
        finally:
            await _cancel_task(stop_waiter)
        if read.done():
            return read.result()
        await _cancel_task(read)
        return None

    async def _send_chunk(self, chunk: AudioChunk) -> None:
        await self._send(self._codec.encode_audio(chunk), allowed=(SessionState.STREAMING,))
        self._chunks_sent += 1
        self._bytes_sent += len(chunk)
        if chunk.sequence % CHUNK_LOG_INTERVAL == 0:
            logger.debug("Sent chunk #%d (%d bytes total)", chunk.sequence, self._bytes_sent)

    async def _receive_loop(self) -> None:
        while True:
            try:
                event = await self._receive_event()
            except TransportClosed as exc:
                if self._input_ended:
                    logger.info("Service closed the connection after end of input: %s", exc.message)
                    return
                raise
            if isinstance(event, SessionFinished):
                return

    async def _receive_event(self) -> ServiceEvent:
        message = await self._transport.receive()
        event = self._codec.decode(message)
        self._events_received += 1
        _log_event(event)
        self._sink.emit(event)
        return event

    async def _send(self, message: str, allowed: tuple[SessionState, ...]) -> None:
        if self._state not in allowed:
            raise TransportError(f"refusing to send while {self._state.name}")
        await self._transport.send(message)

    def _fail(self, error: SessionError) -> None:
        self._error = error
        if not self._state.is_terminal:
            self._transition_to(SessionState.FAILED)
        logger.error("Session failed (%s): %s", error.code, error.message)

    def _transition_to(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target

    async def _release(self) -> None:
        if self._source_started:
            await self._audio_source.stop()
            self._source_started = False
        try:
            await self._transport.close()
        except Exception:
            logger.debug("Transport close failed", exc_info=True)


def _log_event(event: ServiceEvent) -> None:
    if isinstance(event, SpeechStarted):
        logger.info("Speech started (item=%s, at=%sms)", event.item_id, event.audio_start_ms)
    elif isinstance(event, SpeechStopped):
        logger.info("Speech stopped (item=%s, at=%sms)", event.item_id, event.audio_end_ms)
    elif isinstance(event, TranscriptionDelta):
        logger.debug("Transcript (partial): %s%s", event.text, event.stash)
    elif isinstance(event, TranscriptionCompleted):
        logger.info("Transcript: %s", event.transcript)
    elif isinstance(event, Error):
        logger.warning("Service error %s: %s", event.code or "?", event.message)
    elif isinstance(event, SessionFinished):
        logger.info("Session finished by service")
    elif isinstance(event, Unknown):
        logger.debug("Relaying event %s", event.type or "<untyped>")


async def _cancel_task(task: asyncio.Task) -> None:
    if not task.done():
        task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except SessionError as exc:
        logger.debug("Discarding %s from finished task", exc.code)
