"""
Progress Tracker
Keeps the latest ProcessingStatus per file_id for polling callers.
Entries expire after ``ttl`` seconds so finished ingestions do not pile up.
"""
from typing import Optional
import structlog
from cachetools import TTLCache

from docrag.config import get_settings
from docrag.models.schemas import ProcessingStatus

logger = structlog.get_logger()


class ProgressTracker:
    def __init__(self, max_size: int = 1024, ttl: float = 3600):
        self._statuses: TTLCache = TTLCache(maxsize=max_size, ttl=ttl)

    def update(self, file_id: str, status: ProcessingStatus) -> None:
        self._statuses[file_id] = status
        logger.info(
            "Progress",
            file_id=file_id,
            stage=status.stage,
            progress=status.progress,
            detail=status.message
        )

    def get(self, file_id: str) -> Optional[ProcessingStatus]:
        return self._statuses.get(file_id)

    def clear(self, file_id: str) -> None:
        self._statuses.pop(file_id, None)

    def __len__(self) -> int:
        return len(self._statuses)


# Singleton
_progress_tracker: Optional[ProgressTracker] = None


def get_progress_tracker() -> ProgressTracker:
    """Get singleton progress tracker instance."""
    global _progress_tracker
    if _progress_tracker is None:
        settings = get_settings()
        _progress_tracker = ProgressTracker(
            max_size=settings.progress_cache_size,
            ttl=settings.progress_ttl_seconds,
        )
    return _progress_tracker
