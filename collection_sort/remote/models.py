"""Remote collection models."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(slots=True, frozen=True)
class Collection:
    id: str
    title: str
    handle: str


@dataclass(slots=True, frozen=True)
class UserError:
    field: tuple[str, ...]
    message: str

    @classmethod
    def from_payload(cls, payload: Any) -> "UserError":
        if not isinstance(payload, Mapping):
            return cls(field=(), message=str(payload))
        fields = payload.get("field") or ()
        if isinstance(fields, str):
            fields = (fields,)
        return cls(field=tuple(str(part) for part in fields), message=str(payload.get("message", "")))


class MoveStatus(str, enum.Enum):
    APPLIED = "applied"
    QUEUED = "queued"
    REJECTED = "rejected"
    UNKNOWN = "unknown"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class MoveOutcome:
    """Result of one move-to-front call.

    ``QUEUED`` means the reorder was accepted as an asynchronous job; the job
    is never polled. ``REJECTED`` carries the remote validation errors.
    """

    status: MoveStatus
    job_id: str | None = None
    user_errors: list[UserError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in {MoveStatus.APPLIED, MoveStatus.QUEUED, MoveStatus.UNKNOWN}

    def user_errors_json(self) -> str:
        return json.dumps([{"field": list(err.field), "message": err.message} for err in self.user_errors])

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "MoveOutcome":
        payload = payload if isinstance(payload, Mapping) else {}
        raw_errors = payload.get("userErrors") or []
        if not isinstance(raw_errors, list):
            raw_errors = [raw_errors]
        errors = [UserError.from_payload(item) for item in raw_errors]
        if errors:
            return cls(status=MoveStatus.REJECTED, user_errors=errors)
        job = payload.get("job")
        if not isinstance(job, Mapping):
            job = {}
        if job.get("done"):
            return cls(status=MoveStatus.APPLIED, job_id=job.get("id"))
        if job.get("id"):
            return cls(status=MoveStatus.QUEUED, job_id=job["id"])
        return cls(status=MoveStatus.UNKNOWN)
