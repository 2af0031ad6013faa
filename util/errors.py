# util/errors.py
from typing import Optional
from fastapi import HTTPException, status
from util.enums import ErrorMessage


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)

    @classmethod
    def of(cls, err: ErrorMessage) -> "AppError":
        return cls(err.value.message, err.value.http_status)


class PipelineError(Exception):
    """Base error for the media pipeline."""


class ConfigurationError(PipelineError):
    """Raised when a media tool cannot be located."""


class SpawnError(PipelineError):
    """Raised when an acquisition or transcode process fails to start."""

    def __init__(self, tool: str, cause: Optional[BaseException] = None) -> None:
        self.tool = tool
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"failed to start {tool}{detail}")


class UpstreamFailure(PipelineError):
    """A pipeline process exited non-zero. Diagnostic only once bytes flowed."""

    def __init__(self, exit_codes: dict) -> None:
        self.exit_codes = dict(exit_codes)
        failed = ", ".join(
            f"{tool}={code}" for tool, code in self.exit_codes.items() if code
        )
        super().__init__(f"upstream exited non-zero ({failed})")


class SinkClosed(Exception):
    """Raised by a response sink once the client has gone away."""
