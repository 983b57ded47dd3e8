class SessionError(Exception):
    code = "session_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(SessionError):
    code = "configuration_error"

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


class ConnectFailure(SessionError):
    code = "connect_failure"


class ConfigurationRejected(SessionError):
    code = "configuration_rejected"

    def __init__(self, message: str, payload: dict | None = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class FramingError(SessionError):
    code = "framing_error"


class AudioInputError(SessionError):
    code = "audio_input_error"


class TransportError(SessionError):
    code = "transport_error"


class TransportClosed(TransportError):
    def __init__(self, close_code: int | None = None, reason: str = "") -> None:
        detail = f"connection closed (code={close_code}"
        if reason:
            detail += f", reason={reason}"
        super().__init__(detail + ")")
        self.close_code = close_code
        self.reason = reason


class DecodeError(SessionError):
    code = "decode_error"

    def __init__(self, message: str, raw: str | bytes = "") -> None:
        super().__init__(message)
        self.raw = raw


class SessionCancelled(SessionError):
    code = "cancelled"
