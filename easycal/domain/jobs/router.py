"""Jobs router - queue bulk calendar jobs and report their progress"""

import asyncio
import logging

from arq import create_pool
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...database import SessionLocal, get_db
from ...worker import get_redis_settings
from .queue import job_queue
from .schemas import JobCreate, JobCreated
from .service import JobService, job_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["Jobs"])

POOL_TIMEOUT_SECONDS = 5.0


def get_job_service(db: Session = Depends(get_db)) -> JobService:
    """Dependency injection for JobService"""
    return JobService(db)


async def enqueue_job_run(job_id: str) -> bool:
    """Hand the job to the ARQ worker; False when Redis is unreachable"""
    try:
        pool = await asyncio.wait_for(create_pool(get_redis_settings()), timeout=POOL_TIMEOUT_SECONDS)
        try:
            await pool.enqueue_job("run_calendar_job", job_id, _job_id=job_id)
        finally:
            await pool.close()
    except Exception as queue_err:
        logger.warning(f"⚠️ Failed to queue job {job_id}, running in-process: {queue_err}")
        return False
    logger.info(f"📋 Job {job_id} queued for worker")
    return True


async def run_job_in_background(job_id: str) -> None:
    db = SessionLocal()
    try:
        await JobService(db).run_job(job_id)
    finally:
        db.close()


@router.post("", status_code=202, response_model=JobCreated)
async def create_job(
    data: JobCreate,
    background_tasks: BackgroundTasks,
    service: JobService = Depends(get_job_service),
):
    """Record a bulk create/delete job and start processing it"""
    job = service.create_job(data)
    if not await enqueue_job_run(job.id):
        background_tasks.add_task(run_job_in_background, job.id)
    return JobCreated(jobId=job.id, status=job.status)


@router.get("")
async def list_jobs(
    tenantId: str = Query(...),
    service: JobService = Depends(get_job_service),
):
    return {"jobs": [job_to_dict(job, include_items=False) for job in service.list_jobs(tenantId)]}


@router.get("/queue/status")
async def queue_status():
    """In-process limiter state"""
    return job_queue.status()


@router.get("/{job_id}")
async def get_job(job_id: str, service: JobService = Depends(get_job_service)):
    return job_to_dict(service.get_job(job_id))
