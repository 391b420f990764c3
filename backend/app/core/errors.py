"""Exceptions raised by the job processor and mapped to HTTP status codes."""

from __future__ import annotations


class JobProcessorError(Exception):
    """Base error for processor failures; carries the response status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedRequestError(JobProcessorError):
    """Request body is missing fields or names an unknown action."""

    status_code = 400


class JobNotFoundError(JobProcessorError):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__("Job not found")
        self.job_id = job_id


class SourceFileNotFoundError(JobProcessorError):
    status_code = 404


class JobStateConflictError(JobProcessorError):
    """The job is in a terminal state that the action may not leave."""

    status_code = 409


class JobFailedError(JobProcessorError):
    """Job-level fatal error; the job record has already been marked `error`."""

    status_code = 500
