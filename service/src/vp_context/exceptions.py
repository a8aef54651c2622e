"""Custom exception classes for VP Context."""


class VPContextError(Exception):
    """Base exception for VP Context errors."""

    def __init__(self, message: str, code: str = "internal", detail: str = ""):
        self.message = message
        self.code = code
        self.detail = detail
        super().__init__(message)


class CaptureError(VPContextError):
    """Errors related to acquiring screen, tab or microphone content."""

    pass


class PermissionDeniedError(CaptureError):
    """Capture, microphone or host permission was refused."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, code="permission_denied")


class CaptureUnavailableError(CaptureError):
    """A capture mechanism cannot be used on the current page."""

    def __init__(self, message: str = "Capture unavailable"):
        super().__init__(message, code="capture_unavailable")


class UserCancelledError(CaptureError):
    """The user dismissed the capture picker."""

    def __init__(self, message: str = "User cancelled capture picker"):
        super().__init__(message, code="user_cancelled")


class CaptureBusyError(CaptureError):
    """A capture is already in progress."""

    def __init__(self, mode: str):
        super().__init__(
            f"A {mode} capture is already in progress", code="capture_busy"
        )


class TransportError(VPContextError):
    """An OCR, transcription or answer request failed."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message, code="transport_failure", detail=detail)


class SessionError(VPContextError):
    """Errors related to chat session management."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", code="session_not_found")


class BusError(VPContextError):
    """Errors related to cross-endpoint messaging."""

    pass


class InvalidOriginError(BusError):
    """Page bridge connection from an origin other than the extension."""

    def __init__(self, origin: str):
        super().__init__(f"Invalid origin: {origin}", code="invalid_origin")


class ConnectionLimitError(BusError):
    """Too many page bridge connections."""

    def __init__(self, limit: int):
        super().__init__(f"Connection limit reached: {limit}", code="connection_limit")
