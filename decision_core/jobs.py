"""
Job Tracker - in-memory registry of consensus jobs keyed by job id.

Design Decisions:
- Only mutable state shared between concurrent jobs; every access goes
  through one lock
- Stores immutable Job snapshots; a transition replaces the snapshot, so
  readers never see a half-updated job
- Bounded retention: past max_jobs the oldest finished jobs are evicted;
  jobs still processing are never evicted
"""
import logging
import secrets
import string
import threading
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from decision_core.config import DEFAULT_THRESHOLDS
from decision_core.exceptions import JobStateError
from decision_core.models import ConsensusRequest, ConsensusResponse, Job, JobStatus

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_job_id() -> str:
    """consensus_<epoch ms>_<9 random chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"consensus_{int(time.time() * 1000)}_{suffix}"


class JobTracker:

    def __init__(self, max_jobs: int = DEFAULT_THRESHOLDS.MAX_TRACKED_JOBS):
        if max_jobs < 1:
            raise ValueError("max_jobs must be at least 1")
        self.max_jobs = max_jobs
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()
        self._lock = threading.Lock()

    def register(self, request: ConsensusRequest) -> Job:
        """Create a processing job for a newly submitted request."""
        with self._lock:
            job_id = generate_job_id()
            while job_id in self._jobs:
                job_id = generate_job_id()
            job = Job(job_id=job_id, request=request)
            self._jobs[job_id] = job
            self._evict_locked()
        return job

    def complete(self, job_id: str, response: ConsensusResponse) -> Job:
        return self._finish(job_id, JobStatus.COMPLETED, response=response)

    def fail(self, job_id: str, error: str) -> Job:
        return self._finish(job_id, JobStatus.FAILED, error=error)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """All retained jobs in submission order, optionally filtered by status."""
        with self._lock:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [job for job in jobs if job.status is status]
        return jobs

    def stats(self) -> Dict[str, Any]:
        """
        Summary for dashboards.

        Returns:
            {"total", "processing", "completed", "failed",
             "avg_processing_time_ms" (completed jobs, None if none)}
        """
        jobs = self.list_jobs()
        counts = {status.value: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status.value] += 1

        times = [job.response.metadata.processing_time_ms for job in jobs if job.response is not None]
        return {
            "total": len(jobs),
            **counts,
            "avg_processing_time_ms": sum(times) / len(times) if times else None,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        response: Optional[ConsensusResponse] = None,
        error: Optional[str] = None
    ) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobStateError(f"Unknown job {job_id}")
            if job.is_terminal:
                raise JobStateError(f"Job {job_id} already {job.status.value}")

            updated = Job(
                job_id=job.job_id,
                request=job.request,
                start_time=job.start_time,
                status=status,
                response=response,
                error=error,
                finished_at=datetime.now(timezone.utc)
            )
            self._jobs[job_id] = updated
            self._evict_locked()
        return updated

    def _evict_locked(self) -> None:
        overflow = len(self._jobs) - self.max_jobs
        if overflow <= 0:
            return
        for job_id in [jid for jid, job in self._jobs.items() if job.is_terminal][:overflow]:
            del self._jobs[job_id]
            logger.debug(f"Evicted job {job_id} from tracker")
