"""Request payload of the excel-processor action protocol."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ACTIONS = ("process", "resume", "cancel", "export", "exportBatch")

Action = Literal["process", "resume", "cancel", "export", "exportBatch"]


class ProcessorRequest(BaseModel):
    """One invocation of the processor; field names follow the client's camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: Action
    job_id: str = Field(..., alias="jobId", min_length=1, max_length=64)
    headers: list[str] | None = None
    file_name: str | None = Field(None, alias="fileName")
    data_batch: list[dict[str, Any]] = Field(default_factory=list, alias="dataBatch")
    total_rows: int | None = Field(None, alias="totalRows", ge=0)
    batch_index: int = Field(0, alias="batchIndex", ge=0)
    has_more_batches: bool = Field(False, alias="hasMoreBatches")
    created_by: str | None = Field(None, alias="createdBy")
