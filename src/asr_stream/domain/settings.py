from dataclasses import dataclass


@dataclass(frozen=True)
class SessionSettings:
    model: str = "qwen3-asr-flash-realtime"
    sample_rate: int = 16000
    language: str = "zh"
    vad_threshold: float = 0.2
    vad_silence_ms: int = 800
    sample_width: int = 2
    channels: int = 1
    chunk_size: int = 3200
    configure_timeout: float = 10.0
    drain_timeout: float = 5.0
    stop_deadline: float = 8.0
    keep_open: bool = False
