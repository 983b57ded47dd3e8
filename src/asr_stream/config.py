from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from asr_stream.domain.errors import ConfigurationError
from asr_stream.domain.settings import SessionSettings

SUPPORTED_SAMPLE_WIDTHS = (1, 2, 4)


class AsrStreamConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ASR_STREAM_", populate_by_name=True)

    api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("ASR_STREAM_API_KEY", "DASHSCOPE_API_KEY"),
    )
    api_key_file: str = ""

    model: str = "qwen3-asr-flash-realtime"
    base_url: str = "wss://dashscope.aliyuncs.com/api-ws/v1/realtime"

    sample_rate: int = 16000
    language: str = "zh"
    vad_threshold: float = 0.2
    vad_silence_ms: int = 800

    sample_width: int = 2
    channels: int = 1
    chunk_size: int = 3200
    read_size: int = 8192
    audio_queue_blocks: int = 128

    connect_timeout: float = 10.0
    configure_timeout: float = 10.0
    drain_timeout: float = 5.0
    stop_deadline: float = 8.0

    keep_open: bool = False

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def resolved_api_key(self) -> str:
        return self.api_key.get_secret_value() or self.read_secret(self.api_key_file)

    def check(self) -> None:
        problems = []
        if not self.resolved_api_key():
            problems.append("API key is empty (set DASHSCOPE_API_KEY or pass --api-key)")
        if not self.base_url.strip():
            problems.append("base_url is empty")
        if not self.model.strip():
            problems.append("model is empty")
        if not self.language.strip():
            problems.append("language is empty")
        if self.sample_rate <= 0:
            problems.append(f"sample_rate must be positive, got {self.sample_rate}")
        if not 0.0 <= self.vad_threshold <= 1.0:
            problems.append(f"vad_threshold must be within [0, 1], got {self.vad_threshold}")
        if self.vad_silence_ms < 0:
            problems.append(f"vad_silence_ms must not be negative, got {self.vad_silence_ms}")
        if self.sample_width not in SUPPORTED_SAMPLE_WIDTHS:
            problems.append(f"sample_width must be one of {SUPPORTED_SAMPLE_WIDTHS}, got {self.sample_width}")
        if self.channels < 1:
            problems.append(f"channels must be at least 1, got {self.channels}")
        frame_width = self.sample_width * max(self.channels, 1)
        if self.chunk_size <= 0 or self.chunk_size % frame_width:
            problems.append(
                f"chunk_size must be a positive multiple of {frame_width} bytes, got {self.chunk_size}"
            )
        if self.read_size <= 0:
            problems.append(f"read_size must be positive, got {self.read_size}")
        if self.audio_queue_blocks <= 0:
            problems.append(f"audio_queue_blocks must be positive, got {self.audio_queue_blocks}")
        for name in ("connect_timeout", "configure_timeout", "drain_timeout", "stop_deadline"):
            value = getattr(self, name)
            if value <= 0:
                problems.append(f"{name} must be positive, got {value}")
        if problems:
            raise ConfigurationError(problems)

    def endpoint_url(self) -> str:
        separator = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{separator}model={self.model}"

    def session_settings(self) -> SessionSettings:
        return SessionSettings(
            model=self.model,
            sample_rate=self.sample_rate,
            language=self.language,
            vad_threshold=self.vad_threshold,
            vad_silence_ms=self.vad_silence_ms,
            sample_width=self.sample_width,
            channels=self.channels,
            chunk_size=self.chunk_size,
            configure_timeout=self.configure_timeout,
            drain_timeout=self.drain_timeout,
            stop_deadline=self.stop_deadline,
            keep_open=self.keep_open,
        )
