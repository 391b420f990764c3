import pytest
from fastapi.testclient import TestClient

from app.api.dependencies.db import get_session, get_session_factory
from app.api.dependencies.processor import get_artifact_store
from app.core.config import get_settings
from app.main import app
from app.services.spreadsheet_codec import XLSX_CONTENT_TYPE, decode_rows
from app.storage.artifact_store import LocalArtifactStore

from conftest import PUBLIC_BASE_URL, SCHOOL_HEADERS, build_xlsx, school_rows

PROCESSOR_URL = "/api/excel-processor"


@pytest.fixture
def client(session_factory):
    # Public exports must land where the static mount serves them from.
    store = LocalArtifactStore(get_settings().storage_dir, PUBLIC_BASE_URL)

    def override_session():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_artifact_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _upload(client, content, **form):
    data = {"table_name": "schools", **form}
    return client.post(
        "/api/uploads/",
        files={"file": ("schools.xlsx", content, XLSX_CONTENT_TYPE)},
        data=data,
    )


def test_upload_then_process_then_poll(client):
    response = _upload(client, build_xlsx(SCHOOL_HEADERS, school_rows(3)))
    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "waiting"
    assert job["table_name"] == "schools"

    response = client.post(PROCESSOR_URL, json={"action": "process", "jobId": job["id"]})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processed"] == 3
    assert body["errors"] == 0
    assert body["is_complete"] is True

    status = client.get(f"/api/jobs/imports/{job['id']}").json()
    assert status["status"] == "complete"
    assert status["progress"] == 100
    assert status["processed_rows"] == 3

    listed = client.get("/api/jobs/imports", params={"status": "complete"}).json()
    assert job["id"] in {item["id"] for item in listed}


def test_upload_rejections(client):
    assert _upload(client, b"").status_code == 400
    assert _upload(client, build_xlsx(SCHOOL_HEADERS, []), with_upsert="true").status_code == 400
    assert _upload(client, build_xlsx(SCHOOL_HEADERS, []), table_name="import_jobs").status_code == 400

    response = client.post(
        "/api/uploads/",
        files={"file": ("schools.csv", b"code,name\n", "text/csv")},
        data={"table_name": "schools"},
    )
    assert response.status_code == 400


def test_export_flow_publishes_downloadable_file(client):
    headers = ["code", "name"]
    first = client.post(
        PROCESSOR_URL,
        json={
            "action": "export",
            "jobId": "api-export-1",
            "headers": headers,
            "fileName": "api-report.xlsx",
            "dataBatch": [{"code": "A1", "name": "Alpha"}],
            "totalRows": 2,
            "batchIndex": 0,
            "hasMoreBatches": True,
        },
    )
    assert first.status_code == 200
    assert first.json()["is_complete"] is False

    last = client.post(
        PROCESSOR_URL,
        json={
            "action": "exportBatch",
            "jobId": "api-export-1",
            "dataBatch": [{"code": "B2", "name": "Beta"}],
            "batchIndex": 1,
            "hasMoreBatches": False,
        },
    )
    assert last.status_code == 200
    body = last.json()
    assert body["is_complete"] is True
    assert body["download_url"] == f"{PUBLIC_BASE_URL}/exports/system/api-report.xlsx"

    status = client.get("/api/jobs/exports/api-export-1").json()
    assert status["status"] == "complete"
    assert status["download_url"] == body["download_url"]

    download = client.get(body["download_url"])
    assert download.status_code == 200
    names, rows = decode_rows(download.content)
    assert names == headers
    assert rows == [{"code": "A1", "name": "Alpha"}, {"code": "B2", "name": "Beta"}]


def test_processor_rejects_bad_bodies(client):
    response = client.post(
        PROCESSOR_URL,
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Request body must be valid JSON"}

    response = client.post(PROCESSOR_URL, json={"action": "explode", "jobId": "x"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid action"}

    response = client.post(PROCESSOR_URL, json={"action": "process", "jobId": "missing"})
    assert response.status_code == 404


def test_unknown_jobs_return_404(client):
    assert client.get("/api/jobs/imports/nope").status_code == 404
    assert client.get("/api/jobs/exports/nope").status_code == 404
    assert client.get("/api/jobs/imports/nope/stream").status_code == 404


def test_stream_closes_on_terminal_job(client):
    job = _upload(client, build_xlsx(SCHOOL_HEADERS, school_rows(2))).json()
    client.post(PROCESSOR_URL, json={"action": "process", "jobId": job["id"]})

    response = client.get(f"/api/jobs/imports/{job['id']}/stream")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert '"status":"complete"' in response.text
    assert "event: close" in response.text


def test_health_probes(client):
    live = client.get("/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["checks"]["database"]["status"] == "healthy"
    assert "redis" not in ready.json()["checks"]
