import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from .storage import Artifact

DEFAULT_RETENTION = timedelta(days=7)

logger = logging.getLogger("filerelay.retention")


def expire_artifact(path: Path, filename: str) -> bool:
    """Delete an artifact whose retention window has elapsed.

    A file that is already gone is not an error. Other failures are logged and
    swallowed.
    """

    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug("retention_already_removed filename=%s", filename)
        return False
    except OSError as error:
        logger.warning("retention_delete_failed filename=%s error=%s", filename, error)
        return False
    logger.info("retention_deleted filename=%s", filename)
    return True


class RetentionScheduler:
    """Arms one deferred deletion per artifact on a background scheduler.

    Jobs are keyed by artifact file name, so :meth:`cancel` can withdraw a
    pending deletion. Nothing is persisted: jobs die with the process, as does
    the directory they guard.
    """

    def __init__(
        self,
        default_ttl: Union[timedelta, float] = DEFAULT_RETENTION,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.default_ttl = _as_timedelta(default_ttl)
        self._scheduler = scheduler or BackgroundScheduler(daemon=True, timezone=timezone.utc)

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def schedule(
        self,
        artifact: Artifact,
        ttl: Union[timedelta, float, None] = None,
    ) -> datetime:
        return self.schedule_path(artifact.path, ttl, created_at=artifact.created_at)

    def schedule_path(
        self,
        path: Path,
        ttl: Union[timedelta, float, None] = None,
        created_at: Optional[float] = None,
    ) -> datetime:
        """Arm deletion of ``path`` at ``created_at + ttl`` and return the deadline."""

        retention = self.default_ttl if ttl is None else _as_timedelta(ttl)
        if created_at is None:
            origin = datetime.now(timezone.utc)
        else:
            origin = datetime.fromtimestamp(created_at, tz=timezone.utc)
        deadline = origin + retention
        filename = path.name

        self._scheduler.add_job(
            func=expire_artifact,
            trigger="date",
            run_date=deadline,
            args=[path, filename],
            id=filename,
            name=f"Expire {filename}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug(
            "retention_scheduled filename=%s deadline=%s",
            filename,
            deadline.isoformat(),
        )
        return deadline

    def cancel(self, filename: str) -> bool:
        try:
            self._scheduler.remove_job(filename)
        except JobLookupError:
            return False
        logger.debug("retention_cancelled filename=%s", filename)
        return True

    def pending(self) -> List[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)


def _as_timedelta(value: Union[timedelta, float]) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))
