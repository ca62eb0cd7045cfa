"""Job service - creating bulk calendar jobs and running them through the queue"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import AppError, ErrorCode, get_error_message, validation_error
from ...models import Job
from ...services.ghl_client import GHLClient
from ...services.token_service import get_location_access_token
from ..tenants.repository import TenantRepository
from .processors import PROCESSORS
from .queue import JOB_TYPES, JobData, JobQueue, job_queue
from .repository import JobRepository
from .schemas import JobCreate

logger = logging.getLogger(__name__)


def job_to_dict(job: Job, include_items: bool = True) -> dict:
    data = {
        "id": job.id,
        "tenantId": job.tenant_id,
        "locationId": job.location_id,
        "type": job.type,
        "status": job.status,
        "total": job.total,
        "successCount": job.success_count,
        "errorCount": job.error_count,
        "createdAt": job.created_at.isoformat(),
        "updatedAt": job.updated_at.isoformat() if job.updated_at else None,
    }
    if include_items:
        data["items"] = [
            {
                "id": item.id,
                "input": item.input,
                "result": item.result,
                "status": item.status,
                "errorMessage": item.error_message,
            }
            for item in job.items
        ]
    return data


class JobService:
    def __init__(self, db: Session, queue: JobQueue = job_queue):
        self.db = db
        self.queue = queue

    def create_job(self, request: JobCreate) -> Job:
        if request.type not in JOB_TYPES:
            raise validation_error(f"Job type must be one of: {', '.join(JOB_TYPES)}")

        if request.type == "create_calendars":
            inputs = request.calendars or []
            if any(not calendar.get("name") for calendar in inputs):
                raise validation_error("Every calendar needs a name")
        else:
            inputs = request.calendarIds or []

        if not inputs:
            raise validation_error("Job has no items to process")

        if not TenantRepository.get_tenant(self.db, request.tenantId):
            raise AppError("Tenant not found", ErrorCode.API_NOT_FOUND, 404, {"tenantId": request.tenantId})

        job = JobRepository.create_job(self.db, request.tenantId, request.locationId, request.type, inputs)
        logger.info(f"📋 Job {job.id} created ({job.type}, {job.total} item(s))")
        return job

    def get_job(self, job_id: str) -> Job:
        job = JobRepository.get_job(self.db, job_id)
        if not job:
            raise AppError("Job not found", ErrorCode.API_NOT_FOUND, 404, {"jobId": job_id})
        return job

    def list_jobs(self, tenant_id: str) -> list[Job]:
        return JobRepository.get_jobs(self.db, tenant_id)

    def _job_payload(self, job: Job) -> dict:
        items = [item.input for item in job.items]
        key = "calendars" if job.type == "create_calendars" else "calendarIds"
        return {key: items, "locationId": job.location_id}

    def _fail(self, job: Job, message: str) -> Job:
        logger.error(f"❌ Job {job.id} failed: {message}")
        return JobRepository.save_results(
            self.db, job, [{"success": False, "error": message} for _ in job.items]
        )

    async def run_job(self, job_id: str, client: Optional[GHLClient] = None) -> Job:
        """Process every item of a queued job and record the outcome"""
        job = self.get_job(job_id)
        if job.status not in ("queued", "running"):
            logger.info(f"⏭️ Job {job_id} already finished ({job.status})")
            return job

        JobRepository.set_status(self.db, job, "running", item_status="processing")

        if client is None:
            access_token = await get_location_access_token(self.db, job.location_id) if job.location_id else None
            if not access_token:
                return self._fail(job, "Not authenticated")
            client = GHLClient(access_token)

        processor = PROCESSORS[job.type]
        job_data = JobData(
            id=job.id,
            type=job.type,
            tenant_id=job.tenant_id,
            location_id=job.location_id,
            data=self._job_payload(job),
            created_at=job.created_at,
        )

        try:
            results = await self.queue.add_job(job_data, lambda data: processor(data, client))
        except AppError as e:
            return self._fail(job, get_error_message(e))
        except Exception as e:
            # Never leave the row in "running"
            self._fail(job, get_error_message(e) or "Job processing failed")
            raise

        job = JobRepository.save_results(self.db, job, [r.to_dict() for r in results])
        logger.info(f"📊 Job {job.id} finished: {job.success_count} succeeded, {job.error_count} failed")
        return job
