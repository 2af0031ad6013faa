# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class MediaKind(str, Enum):
    video = "video"
    audio = "audio"


class SourceProfile(str, Enum):
    generic = "generic"
    short_form = "short_form"


class JobStatus(str, Enum):
    created = "created"
    acquiring = "acquiring"
    streaming = "streaming"
    completed = "completed"
    failed = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


# Forward-only ordering; any non-terminal status may also jump to failed.
STATUS_ORDER = {
    JobStatus.created: 0,
    JobStatus.acquiring: 1,
    JobStatus.streaming: 2,
    JobStatus.completed: 3,
    JobStatus.failed: 3,
}


class PipelineState(str, Enum):
    IDLE = "idle"
    ACQUISITION_STARTED = "acquisition_started"
    TRANSCODE_STARTED = "transcode_started"
    STREAMING = "streaming"
    DRAINED = "drained"
    CLOSED = "closed"
    FAULTED = "faulted"


class LateFailurePolicy(str, Enum):
    # What to record when an upstream process fails after bytes were sent.
    COMPLETE_PARTIAL = "complete_partial"
    FAIL = "fail"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    JOB_NOT_FOUND = ErrorInfo("Job not found", status.HTTP_404_NOT_FOUND)
    JOB_ALREADY_STREAMED = ErrorInfo(
        "Job has already been streamed", status.HTTP_409_CONFLICT
    )
    JOB_BUSY = ErrorInfo("Job is already streaming", status.HTTP_409_CONFLICT)
    URL_REQUIRED = ErrorInfo("sourceUrl is required", status.HTTP_400_BAD_REQUEST)
    SPAWN_FAILED = ErrorInfo(
        "Failed to start media pipeline", status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    INTERNAL_ERROR = ErrorInfo("Internal Error", status.HTTP_502_BAD_GATEWAY)
