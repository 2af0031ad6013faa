# util/constants.py
from typing import Final


class InternalURIs:
    ROOT = "/"
    HEALTH = "/healthz"
    API = "/api"
    V1 = API + "/v1"
    FORMATS = V1 + "/formats"
    JOBS = V1 + "/jobs"
    JOB = JOBS + "/{job_id}"
    STREAM = V1 + "/stream/{job_id}"

    @classmethod
    def stream_for(cls, job_id: str) -> str:
        return cls.STREAM.format(job_id=job_id)


SERVICE_NAME: Final[str] = "Media Stream API"
SERVICE_VERSION: Final[str] = "1.0.0"

# Title fallback prefix, followed by unix seconds.
FALLBACK_TITLE_PREFIX: Final[str] = "download_"
MAX_TITLE_LENGTH: Final[int] = 200
