import pytest

from app.db.models.import_job import ImportJob
from app.services.job_controller import CANCEL_MESSAGE
from app.storage.artifact_store import TEMP_EXPORTS, TEMP_IMPORTS, import_source_key
from conftest import SCHOOL_HEADERS, build_xlsx, school_rows


@pytest.mark.parametrize(
    "payload",
    [
        {"action": "explode", "jobId": "x"},
        {"jobId": "x"},
        {"action": ["process"], "jobId": "x"},
    ],
)
def test_unknown_action_is_a_client_error(controller, payload):
    response = controller.handle(payload)
    assert response.status_code == 400
    assert response.body == {"error": "Invalid action"}


@pytest.mark.parametrize(
    "payload",
    [
        {"action": "process"},
        {"action": "process", "jobId": ""},
        {"action": "exportBatch", "jobId": "x", "batchIndex": -1},
        {"action": "exportBatch", "jobId": "x", "dataBatch": "rows"},
    ],
)
def test_malformed_request_is_a_client_error(controller, payload):
    response = controller.handle(payload)
    assert response.status_code == 400
    assert response.body["error"].startswith("Invalid request")


def test_non_object_body_is_rejected(controller):
    assert controller.handle(["process"]).status_code == 400


def test_process_and_resume_share_one_entry_point(controller, monkeypatch):
    calls = []

    class Outcome:
        def as_response(self):
            return {"success": True}

    monkeypatch.setattr(controller.importer, "run", lambda job_id: calls.append(job_id) or Outcome())

    assert controller.handle({"action": "process", "jobId": "a"}).status_code == 200
    assert controller.handle({"action": "resume", "jobId": "b"}).status_code == 200
    assert calls == ["a", "b"]


def test_unexpected_error_becomes_server_error(controller, monkeypatch):
    def boom(job_id):
        raise RuntimeError("storage offline")

    monkeypatch.setattr(controller.importer, "run", boom)

    response = controller.handle({"action": "process", "jobId": "a"})

    assert response.status_code == 500
    assert response.body == {"error": "storage offline"}


def test_cancel_marks_error_and_removes_temporary_artifacts(session, store, controller, stage_import):
    job_id = stage_import(build_xlsx(SCHOOL_HEADERS, school_rows(2)))
    store.put(TEMP_IMPORTS, f"{job_id}/extra.bin", b"x")
    store.put(TEMP_EXPORTS, f"{job_id}/temp_out.xlsx", b"y")

    response = controller.handle({"action": "cancel", "jobId": job_id})

    assert response.status_code == 200
    assert response.body == {"success": True}
    job = session.get(ImportJob, job_id)
    assert job.status == "error"
    assert job.errors == [{"message": CANCEL_MESSAGE}]
    assert store.get(TEMP_IMPORTS, import_source_key(job_id, "schools.xlsx")) is None
    assert store.get(TEMP_IMPORTS, f"{job_id}/extra.bin") is None
    assert store.get(TEMP_EXPORTS, f"{job_id}/temp_out.xlsx") is None


def test_resume_after_cancel_cannot_proceed(session, controller, stage_import):
    job_id = stage_import(build_xlsx(SCHOOL_HEADERS, school_rows(2)))
    controller.handle({"action": "cancel", "jobId": job_id})

    response = controller.handle({"action": "resume", "jobId": job_id})

    assert response.status_code == 404
    assert session.get(ImportJob, job_id).status == "error"


def test_cancel_unknown_job_is_not_found(controller):
    assert controller.handle({"action": "cancel", "jobId": "nope"}).status_code == 404


def test_cancel_complete_job_is_a_conflict(session, controller, stage_import):
    job_id = stage_import(build_xlsx(SCHOOL_HEADERS, school_rows(1)))
    controller.handle({"action": "process", "jobId": job_id})

    response = controller.handle({"action": "cancel", "jobId": job_id})

    assert response.status_code == 409
    assert session.get(ImportJob, job_id).status == "complete"
