"""Job status payloads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class JobError(BaseModel):
    row: int | None = Field(None, description="1-based sheet row; absent for job-level errors")
    message: str


class ImportJobStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str = Field(..., description="waiting|processing|complete|error")
    progress: int = Field(0, description="0-100 range for UI progress bars")
    total_rows: int = 0
    processed_rows: int = 0
    errors: list[JobError] = Field(default_factory=list)
    file_name: str
    table_name: str
    with_upsert: bool = False
    key_field: str | None = None
    created_by: str
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ExportJobStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str = Field(..., description="waiting|processing|complete|error")
    progress: int = 0
    total_rows: int = 0
    processed_rows: int = 0
    errors: list[JobError] = Field(default_factory=list)
    file_name: str
    download_url: str | None = None
    created_by: str
    created_at: datetime | None = None
    completed_at: datetime | None = None
