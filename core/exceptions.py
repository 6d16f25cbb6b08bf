"""Error taxonomy shared by the engine, conversion and render layers."""

from typing import Optional


class RenderException(Exception):
    """Base exception for render service errors."""

    def __init__(self, message: str, error_type: str = "unknown", retryable: bool = False):
        super().__init__(message)
        self.error_type = error_type
        self.retryable = retryable


class InvalidRequest(RenderException):
    """Request rejected before any pipeline stage ran."""

    def __init__(self, message: str):
        super().__init__(message, error_type="invalid_request", retryable=False)


class EngineUnavailable(RenderException):
    """No browser engine could be launched or reached."""

    def __init__(self, message: str):
        super().__init__(message, error_type="engine_unavailable", retryable=True)


class RenderFailed(RenderException):
    """The renderer rejected the description."""

    def __init__(self, message: str):
        super().__init__(message, error_type="render_failed", retryable=False)


class NotRendered(RenderException):
    """Timed out waiting for vector output to appear."""

    def __init__(self, message: str):
        super().__init__(message, error_type="not_rendered", retryable=True)


class ConversionTimeout(RenderException):
    """A single conversion strategy exceeded its time bound."""

    def __init__(self, message: str):
        super().__init__(message, error_type="conversion_timeout", retryable=True)


class StrategyUnavailable(RenderException):
    """A conversion strategy cannot run in this environment."""

    def __init__(self, message: str):
        super().__init__(message, error_type="strategy_unavailable", retryable=False)


class ConversionFailed(RenderException):
    """Every conversion strategy was exhausted."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message, error_type="conversion_failed", retryable=False)
        self.last_error = last_error


class DeadlineExceeded(RenderException):
    """The request as a whole ran past its deadline."""

    def __init__(self, message: str):
        super().__init__(message, error_type="deadline_exceeded", retryable=True)
