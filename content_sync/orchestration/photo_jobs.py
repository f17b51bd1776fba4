"""Photo job queue: enqueue -> process -> retry for entity images.

Entities that come back from verification without a photo get a job here.
A worker drains the queue with an async fetcher; a failed job goes back to
the queue until it has used max_attempts, then stays failed with its error
log until an operator resets it.
With a persistence path the jobs are mirrored to JSON after every change.

The orchestrator talks to the queue through PhotoJobNotifier, whose contract
is best effort: a request may not be recorded, and the caller is told so via
the return value instead of an exception.
"""

import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

from loguru import logger

from content_sync.data_management.persistence import read_json, write_json
from content_sync.data_management.schemas import VerificationRequest

JobStatus = Literal["queued", "processing", "complete", "failed"]

PhotoFetcher = Callable[["PhotoJob"], Awaitable[Dict[str, Any]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PhotoJob:
    """
    A pending image lookup for one entity.

    Fields:
        id: Unique job identifier
        entity_type: Entity type the photo is for
        entity_id: Entity identifier
        entity_name: Display name used by fetchers as a search term
        status: Job lifecycle status
        attempts: Processing attempts so far
        result: Fetcher output on success (url, source, license, ...)
        error_log: Last failure message
    """

    id: str
    entity_type: str
    entity_id: str
    entity_name: str = ""
    status: JobStatus = "queued"
    attempts: int = 0
    result: Optional[Dict[str, Any]] = None
    error_log: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhotoJob":
        values = dict(data)
        for key in ("created_at", "updated_at"):
            if values.get(key):
                values[key] = datetime.fromisoformat(values[key])
        return cls(**values)


class PhotoJobQueue:
    """
    FIFO queue of photo jobs with bounded retries.

    Features:
    - One open (queued or processing) job per entity
    - Failed attempts re-queue the job until max_attempts
    - Status counts and bulk reset of failed jobs
    """

    def __init__(self, max_attempts: int = 3, persistence_path: Optional[str] = None):
        """
        Initialize the queue.

        Args:
            max_attempts: Processing attempts before a job is marked failed
            persistence_path: Optional path to JSON file for persistence.
                            If None, jobs live in memory only.
        """
        self.max_attempts = max_attempts
        self._jobs: Dict[str, PhotoJob] = {}
        self._pending: deque = deque()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self.logger = logger.bind(component="PhotoJobQueue")
        self._load()

    def enqueue(self, entity_type: str, entity_id: str, entity_name: str = "") -> str:
        """
        Add a job unless the entity already has an open one.

        Returns:
            ID of the new or existing open job
        """
        for job in self._jobs.values():
            if (
                job.entity_type == entity_type
                and job.entity_id == entity_id
                and job.status in ("queued", "processing")
            ):
                return job.id

        job_id = f"PHOTO-{uuid.uuid4().hex[:8].upper()}"
        job = PhotoJob(
            id=job_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
        )
        self._jobs[job_id] = job
        self._pending.append(job_id)
        self._save()

        self.logger.info(f"Photo job enqueued: {job_id}", entity=f"{entity_type}/{entity_id}")
        return job_id

    async def process_next(self, fetch: PhotoFetcher) -> Optional[PhotoJob]:
        """
        Run the oldest queued job through ``fetch``.

        Args:
            fetch: Async callable returning the photo result for a job

        Returns:
            The processed job, or None if nothing is queued
        """
        job = self._pop_queued()
        if job is None:
            return None

        job.status = "processing"
        job.attempts += 1
        job.updated_at = _now()

        try:
            job.result = await fetch(job)
        except Exception as e:
            job.error_log = str(e)
            job.updated_at = _now()
            if job.attempts < self.max_attempts:
                job.status = "queued"
                self._pending.append(job.id)
                self.logger.warning(
                    f"Photo job {job.id} failed, re-queued",
                    attempts=job.attempts,
                    error=str(e),
                )
            else:
                job.status = "failed"
                self.logger.error(
                    f"Photo job {job.id} failed permanently",
                    attempts=job.attempts,
                    error=str(e),
                )
            self._save()
            return job

        job.status = "complete"
        job.error_log = None
        job.updated_at = _now()
        self._save()
        self.logger.info(f"Photo job {job.id} complete", attempts=job.attempts)
        return job

    async def process_all(self, fetch: PhotoFetcher, limit: Optional[int] = None) -> Dict[str, int]:
        """Drain the queue (or up to ``limit`` attempts) and return stats."""
        processed = 0
        while limit is None or processed < limit:
            job = await self.process_next(fetch)
            if job is None:
                break
            processed += 1
        return self.stats()

    def reset_failed(self) -> int:
        """Return failed jobs to the queue with a fresh attempt budget."""
        count = 0
        for job in self._jobs.values():
            if job.status == "failed":
                job.status = "queued"
                job.attempts = 0
                job.error_log = None
                job.updated_at = _now()
                self._pending.append(job.id)
                count += 1
        if count:
            self._save()
            self.logger.info(f"Reset {count} failed photo jobs")
        return count

    def get_job(self, job_id: str) -> Optional[PhotoJob]:
        return self._jobs.get(job_id)

    def jobs_for(self, entity_type: str, entity_id: str) -> List[PhotoJob]:
        return [
            job for job in self._jobs.values()
            if job.entity_type == entity_type and job.entity_id == entity_id
        ]

    def stats(self) -> Dict[str, int]:
        counts = {"queued": 0, "processing": 0, "complete": 0, "failed": 0}
        for job in self._jobs.values():
            counts[job.status] += 1
        counts["total"] = len(self._jobs)
        return counts

    def _load(self) -> None:
        """Restore jobs from disk. Jobs left processing by a crash are re-queued."""
        rows = read_json(self._persistence_path) or []
        for row in rows:
            job = PhotoJob.from_dict(row)
            if job.status == "processing":
                job.status = "queued"
            self._jobs[job.id] = job
        for job in sorted(self._jobs.values(), key=lambda j: j.created_at):
            if job.status == "queued":
                self._pending.append(job.id)
        if rows:
            self.logger.info(f"Loaded {len(rows)} photo jobs from {self._persistence_path}")

    def _save(self) -> None:
        write_json(self._persistence_path, [job.to_dict() for job in self._jobs.values()])

    def _pop_queued(self) -> Optional[PhotoJob]:
        while self._pending:
            job = self._jobs.get(self._pending.popleft())
            if job is not None and job.status == "queued":
                return job
        return None

    def __len__(self) -> int:
        return len(self._jobs)


class PhotoJobNotifier:
    """
    Best-effort bridge from the orchestrator to the photo queue.

    request_photo may not record anything; it returns False in that case and
    never raises.
    """

    def __init__(self, queue: PhotoJobQueue):
        self.queue = queue
        self.logger = logger.bind(component="PhotoJobNotifier")

    def request_photo(self, request: VerificationRequest) -> bool:
        name = request.current_data.get("name") or request.current_data.get("title") or ""
        try:
            self.queue.enqueue(request.entity_type, request.entity_id, str(name))
        except Exception as e:
            self.logger.warning(
                f"Photo request dropped for {request.entity_type}/{request.entity_id}: {e}"
            )
            return False
        return True
