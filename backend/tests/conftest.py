"""Shared fixtures: file-backed SQLite per test, local artifact store, workbook builders."""

import os
import tempfile
from io import BytesIO

_SCRATCH = tempfile.mkdtemp(prefix="excel-jobs-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_SCRATCH}/app.db"
os.environ["PROGRESS_CHANNEL_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["TEMP_STORAGE_BACKEND"] = "local"
os.environ["STORAGE_DIR"] = f"{_SCRATCH}/artifacts"
os.environ["PUBLIC_BASE_URL"] = "http://testserver/files"

import pytest  # noqa: E402
from openpyxl import Workbook  # noqa: E402
from sqlalchemy import Column, Integer, MetaData, String, Table  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.db.models.import_job import ImportJob  # noqa: E402
from app.db.session import build_engine, init_db  # noqa: E402
from app.services.collection_writer import CollectionWriter  # noqa: E402
from app.services.job_controller import JobController  # noqa: E402
from app.storage.artifact_store import (  # noqa: E402
    TEMP_IMPORTS,
    LocalArtifactStore,
    import_source_key,
)

PUBLIC_BASE_URL = "http://testserver/files"
SCHOOL_HEADERS = ["code", "name", "region", "students"]


def build_xlsx(headers, rows) -> bytes:
    """Workbook bytes; a ``None`` row leaves that sheet row blank."""
    workbook = Workbook()
    ws = workbook.active
    ws.append(list(headers))
    for row in rows:
        ws.append([] if row is None else list(row))
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def school_rows(count, prefix="S"):
    return [(f"{prefix}{i:05d}", f"School {i}", "North", i % 300) for i in range(count)]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    init_db(engine)
    metadata = MetaData()
    Table(
        "schools",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("code", String(32), nullable=False, unique=True),
        Column("name", String(255)),
        Column("region", String(64)),
        Column("students", Integer),
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(tmp_path):
    return LocalArtifactStore(tmp_path / "artifacts", PUBLIC_BASE_URL)


@pytest.fixture
def writer(engine):
    return CollectionWriter(engine)


@pytest.fixture
def make_controller(session, store, writer):
    def _make(chunk_size=1000):
        return JobController(session, store, writer, chunk_size=chunk_size)

    return _make


@pytest.fixture
def controller(make_controller):
    return make_controller()


@pytest.fixture
def stage_import(session, store):
    """Create a waiting import job with its source file staged in temp-imports."""

    def _stage(content, *, file_name="schools.xlsx", table_name="schools", with_upsert=False, key_field=None):
        job = ImportJob(
            status="waiting",
            file_name=file_name,
            table_name=table_name,
            with_upsert=with_upsert,
            key_field=key_field,
            created_by="tester",
            errors=[],
        )
        session.add(job)
        session.commit()
        store.put(TEMP_IMPORTS, import_source_key(job.id, file_name), content)
        return job.id

    return _stage
