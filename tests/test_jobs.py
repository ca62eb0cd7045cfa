from datetime import timedelta

import httpx
import pytest
from conftest import request_json, seed_location_token, seed_tenant

from easycal.domain.jobs import router as jobs_router
from easycal.domain.jobs.processors import PROCESSORS
from easycal.domain.jobs.queue import JobData, JobQueue, JobResult
from easycal.domain.jobs.repository import JobRepository
from easycal.domain.jobs.service import JobService
from easycal.rate_limiter import RateLimiter
from easycal.services.ghl_client import GHLClient
from easycal.worker import WorkerSettings, cleanup_expired_tokens_task, run_calendar_job


@pytest.fixture
def no_worker(monkeypatch):
    """Redis unavailable: jobs run as background tasks in-process"""

    async def unavailable(job_id):
        return False

    monkeypatch.setattr(jobs_router, "enqueue_job_run", unavailable)


@pytest.fixture
def worker_queue(monkeypatch):
    queued = []

    async def enqueue(job_id):
        queued.append(job_id)
        return True

    monkeypatch.setattr(jobs_router, "enqueue_job_run", enqueue)
    return queued


def post_job(client, tenant_id, **fields):
    return client.post("/api/jobs", json={"tenantId": tenant_id, "locationId": "loc_123", **fields})


class TestCreateJob:
    def test_create_calendars_runs_in_process(self, client, ghl, db, no_worker):
        tenant, _ = seed_location_token(db)
        ghl.add("POST", "/calendars", {"calendar": {"id": "cal_a"}})
        ghl.add("POST", "/calendars", {"message": "duplicate slug"}, status=400)

        response = post_job(
            client,
            tenant.id,
            type="create_calendars",
            calendars=[{"name": "Morning Flow"}, {"name": "Evening Flow", "slug": "evening"}],
        )

        assert response.status_code == 202
        created = response.json()
        assert created["status"] == "queued"

        job = client.get(f"/api/jobs/{created['jobId']}").json()
        assert job["status"] == "error"
        assert (job["total"], job["successCount"], job["errorCount"]) == (2, 1, 1)

        first, second = job["items"]
        assert first["status"] == "success"
        assert first["result"]["data"] == {"calendarId": "cal_a", "name": "Morning Flow", "slug": "morning-flow"}
        assert second["status"] == "error"
        assert second["errorMessage"].startswith("API request failed: 400")

        sent = [request_json(r) for r in ghl.calls("POST", "/calendars")]
        assert [body["slug"] for body in sent] == ["morning-flow", "evening"]
        assert all(body["locationId"] == "loc_123" for body in sent)

    def test_delete_calendars(self, client, ghl, db, no_worker):
        tenant, _ = seed_location_token(db)
        ghl.add("DELETE", "/calendars/cal_1", status=200)
        ghl.add("DELETE", "/calendars/cal_2", status=404)

        job_id = post_job(client, tenant.id, type="delete_calendars", calendarIds=["cal_1", "cal_2"]).json()["jobId"]

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "success"
        assert [item["result"]["data"]["calendarId"] for item in job["items"]] == ["cal_1", "cal_2"]

    def test_unparseable_ghl_response_fails_only_that_item(self, client, ghl, db, no_worker):
        tenant, _ = seed_location_token(db)
        ghl.add("POST", "/calendars", lambda request: httpx.Response(200, text="OK"))
        ghl.add("POST", "/calendars", {"calendar": {"id": "cal_b"}})

        job_id = post_job(
            client, tenant.id, type="create_calendars", calendars=[{"name": "Broken"}, {"name": "Fine"}]
        ).json()["jobId"]

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "error"
        assert (job["successCount"], job["errorCount"]) == (1, 1)
        broken, fine = job["items"]
        assert broken["status"] == "error"
        assert broken["errorMessage"]
        assert fine["result"]["data"]["calendarId"] == "cal_b"

    def test_job_without_token_fails_every_item(self, client, ghl, db, no_worker):
        tenant = seed_tenant(db)

        job_id = post_job(client, tenant.id, type="delete_calendars", calendarIds=["cal_1"]).json()["jobId"]

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "error"
        assert job["items"][0]["errorMessage"] == "Not authenticated"
        assert ghl.requests == []

    def test_queued_for_worker(self, client, db, worker_queue):
        tenant, _ = seed_location_token(db)

        job_id = post_job(client, tenant.id, type="delete_calendars", calendarIds=["cal_1"]).json()["jobId"]

        assert worker_queue == [job_id]
        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "queued"
        assert job["items"][0]["status"] == "pending"

    @pytest.mark.parametrize(
        "fields, message",
        [
            ({"type": "rename_calendars", "calendarIds": ["cal_1"]}, "Job type must be one of"),
            ({"type": "create_calendars", "calendars": [{"slug": "x"}]}, "Every calendar needs a name"),
            ({"type": "delete_calendars", "calendarIds": []}, "Job has no items to process"),
        ],
    )
    def test_validation(self, client, db, worker_queue, fields, message):
        tenant = seed_tenant(db)

        response = post_job(client, tenant.id, **fields)

        assert response.status_code == 400
        assert response.json()["error"]["message"].startswith(message)
        assert worker_queue == []

    def test_unknown_tenant(self, client, worker_queue):
        response = post_job(client, "missing", type="delete_calendars", calendarIds=["cal_1"])
        assert response.status_code == 404


class TestReadJobs:
    def test_unknown_job(self, client):
        response = client.get("/api/jobs/missing")
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Job not found"

    def test_list_for_tenant(self, client, db, worker_queue):
        tenant, _ = seed_location_token(db)
        post_job(client, tenant.id, type="delete_calendars", calendarIds=["cal_1"])
        post_job(client, tenant.id, type="delete_calendars", calendarIds=["cal_2", "cal_3"])

        body = client.get("/api/jobs", params={"tenantId": tenant.id}).json()

        assert sorted(job["total"] for job in body["jobs"]) == [1, 2]
        assert all("items" not in job for job in body["jobs"])

    def test_queue_status(self, client):
        assert set(client.get("/api/jobs/queue/status").json()) == {"running", "queued", "reservoir"}


class TestJobService:
    async def test_finished_job_not_rerun(self, db):
        tenant, _ = seed_location_token(db)
        service = JobService(db)
        job = JobRepository.create_job(db, tenant.id, "loc_123", "delete_calendars", ["cal_1"])
        JobRepository.set_status(db, job, "success")

        assert (await service.run_job(job.id)).status == "success"

    async def test_crashed_processor_still_finishes_job(self, db, monkeypatch):
        tenant = seed_tenant(db)
        job = JobRepository.create_job(db, tenant.id, "loc_123", "delete_calendars", ["cal_1", "cal_2"])

        async def crashing(data, client):
            raise RuntimeError("processor crashed")

        monkeypatch.setitem(PROCESSORS, "delete_calendars", crashing)

        with pytest.raises(RuntimeError):
            await JobService(db).run_job(job.id, GHLClient("token"))

        job = JobRepository.get_job(db, job.id)
        assert job.status == "error"
        assert [item.status for item in job.items] == ["error", "error"]
        assert {item.error_message for item in job.items} == {"processor crashed"}

    def test_unreached_items_marked(self, db):
        tenant = seed_tenant(db)
        job = JobRepository.create_job(db, tenant.id, "loc_123", "delete_calendars", ["a", "b"])

        job = JobRepository.save_results(db, job, [{"success": True, "data": {"calendarId": "a"}}])

        assert [item.status for item in job.items] == ["success", "error"]
        assert job.items[1].error_message == "Not processed"
        assert (job.success_count, job.error_count, job.status) == (1, 1, "error")


class TestJobQueue:
    def queue(self):
        return JobQueue(RateLimiter(max_concurrent=1, min_time=0, reservoir=None))

    async def test_runs_processor_with_job_data(self):
        job = JobData(id="job_1", type="create_calendars", tenant_id="t1", data={"calendars": []})

        async def processor(data):
            return [JobResult(success=True, data={"seen": data})]

        results = await self.queue().add_job(job, processor)

        assert results[0].to_dict()["data"] == {"seen": {"calendars": []}}

    async def test_processor_errors_propagate(self):
        job = JobData(id="job_2", type="delete_calendars", tenant_id="t1", data={})

        async def processor(data):
            raise RuntimeError("processor crashed")

        queue = self.queue()
        with pytest.raises(RuntimeError):
            await queue.add_job(job, processor)
        assert queue.status()["running"] == 0

    def test_result_dict_omits_empty_fields(self):
        assert JobResult(success=False, error="nope", duration=12).to_dict() == {
            "success": False,
            "duration": 12,
            "error": "nope",
        }


class TestWorker:
    async def test_run_calendar_job(self, db, ghl):
        tenant, _ = seed_location_token(db)
        job = JobRepository.create_job(db, tenant.id, "loc_123", "delete_calendars", ["cal_1"])
        ghl.add("DELETE", "/calendars/cal_1", status=204)

        result = await run_calendar_job({}, job.id)

        assert result == {"jobId": job.id, "status": "success", "success": 1, "errors": 0}

    async def test_cleanup_cron(self, db):
        seed_location_token(db, location_id="loc_stale", expires_in=timedelta(days=-60))
        seed_location_token(db, expires_in=timedelta(days=-1))
        assert await cleanup_expired_tokens_task({}) == {"deleted": 1}

    def test_settings(self):
        assert WorkerSettings.max_tries == 1
        assert run_calendar_job in WorkerSettings.functions
        assert WorkerSettings.redis_settings.host == "redis.invalid"
