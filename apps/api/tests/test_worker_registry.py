import pytest

from helpdesk.db.enums import JobStatus, JobType


@pytest.mark.parametrize("job_type", list(JobType))
def test_job_registry_resolves_every_job_type(job_type):
    from helpdesk.jobs.registry import resolve_job_handler

    handler = resolve_job_handler(job_type.value)
    assert callable(handler)


def test_job_registry_unknown_raises():
    from helpdesk.jobs.registry import resolve_job_handler

    with pytest.raises(ValueError):
        resolve_job_handler("nope")


@pytest.mark.asyncio
async def test_process_job_uses_registry(monkeypatch):
    from helpdesk import worker

    calls: dict[str, str] = {}

    async def stub_handler(_db, job):
        calls["job_type"] = job.job_type

    def stub_resolver(job_type: str):
        calls["resolved"] = job_type
        return stub_handler

    monkeypatch.setattr(worker, "resolve_job_handler", stub_resolver)

    job = type(
        "Job",
        (),
        {
            "id": "job-id",
            "job_type": JobType.WORKFLOW_EVENT.value,
            "attempts": 0,
            "payload": {},
        },
    )()

    await worker.process_job(None, job)

    assert calls["resolved"] == JobType.WORKFLOW_EVENT.value
    assert calls["job_type"] == JobType.WORKFLOW_EVENT.value


@pytest.mark.asyncio
async def test_process_pending_jobs_records_success_and_failure(db, monkeypatch):
    from helpdesk import worker
    from helpdesk.services import job_service

    ok = job_service.schedule_job(db, JobType.WORKFLOW_EVENT, {"ok": True})
    bad = job_service.schedule_job(db, JobType.WEBHOOK_DELIVERY, {"ok": False})

    async def stub_handler(_db, job):
        if not job.payload["ok"]:
            raise RuntimeError("endpoint down")

    monkeypatch.setattr(worker, "resolve_job_handler", lambda job_type: stub_handler)

    processed = await worker.process_pending_jobs(db, limit=10)

    assert processed == 2
    db.refresh(ok)
    db.refresh(bad)
    assert ok.status == JobStatus.COMPLETED.value
    assert bad.status == JobStatus.PENDING.value
    assert bad.attempts == 1
    assert bad.last_error == "RuntimeError: endpoint down"
