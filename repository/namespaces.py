# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "mediastream"

JOBS: Final[str] = f"{ROOT}:jobs"
JOB_INDEX: Final[str] = f"{JOBS}:by_created"  # sorted set, score = createdAt
