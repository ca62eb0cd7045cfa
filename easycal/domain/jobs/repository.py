"""Job repository - Database operations for jobs and job items"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Job, JobItem


class JobRepository:
    """Repository for job database operations"""

    @staticmethod
    def create_job(
        db: Session, tenant_id: str, location_id: Optional[str], job_type: str, inputs: list
    ) -> Job:
        job = Job(
            tenant_id=tenant_id,
            location_id=location_id,
            type=job_type,
            status="queued",
            total=len(inputs),
        )
        job.items = [JobItem(position=i, input=item, status="pending") for i, item in enumerate(inputs)]
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def get_job(db: Session, job_id: str) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def get_jobs(db: Session, tenant_id: str, limit: int = 50) -> list[Job]:
        return (
            db.query(Job)
            .filter(Job.tenant_id == tenant_id)
            .order_by(Job.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def set_status(db: Session, job: Job, status: str, item_status: Optional[str] = None) -> Job:
        job.status = status
        if item_status:
            for item in job.items:
                item.status = item_status
        db.commit()
        db.refresh(job)
        return job

    @staticmethod
    def save_results(db: Session, job: Job, results: list[dict]) -> Job:
        """Write per-item outcomes (dicts with success/data/error) and the job totals"""
        success_count = error_count = 0
        for item, result in zip(job.items, results):
            item.result = result
            if result.get("success"):
                item.status = "success"
                item.error_message = None
                success_count += 1
            else:
                item.status = "error"
                item.error_message = result.get("error")
                error_count += 1

        # Items the processor never reached
        for item in job.items[len(results):]:
            item.status = "error"
            item.error_message = "Not processed"
            error_count += 1

        job.success_count = success_count
        job.error_count = error_count
        job.status = "success" if error_count == 0 else "error"
        db.commit()
        db.refresh(job)
        return job
