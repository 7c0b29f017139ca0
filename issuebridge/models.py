"""Pydantic models shared by the pipeline, dispatcher and API."""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Persisted rows ──────────────────────────────────────────────────

class Subscription(BaseModel):
    id: int
    installationId: int
    jiraHost: str
    syncStatus: str = "PENDING"
    createdAt: str = ""
    updatedAt: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Subscription":
        return cls(
            id=row["id"],
            installationId=row["installation_id"],
            jiraHost=row["jira_host"],
            syncStatus=row.get("sync_status") or "PENDING",
            createdAt=str(row.get("created_at") or ""),
            updatedAt=str(row.get("updated_at") or ""),
        )


class Project(BaseModel):
    id: int
    projectKey: str
    jiraHost: str
    occurrences: int = 0
    createdAt: str = ""
    updatedAt: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Project":
        return cls(
            id=row["id"],
            projectKey=row["project_key"],
            jiraHost=row["jira_host"],
            occurrences=int(row.get("occurrences") or 0),
            createdAt=str(row.get("created_at") or ""),
            updatedAt=str(row.get("updated_at") or ""),
        )


# ── Inbound events ──────────────────────────────────────────────────

class CommitInfo(BaseModel):
    sha: str = ""
    message: str = ""
    author: str = ""
    url: str = ""


class InboundEvent(BaseModel):
    id: Optional[str] = None
    name: str = "push"
    installationId: Optional[int] = None
    host: str
    repository: str = ""
    branch: str = ""
    title: str = ""
    commits: list[CommitInfo] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)

    def texts(self) -> list[str]:
        """Free-text fields that may reference issues, in scan order."""
        return [*(c.message for c in self.commits), self.branch, self.title]


# ── Dispatch results ────────────────────────────────────────────────

class DeliveryOutcome(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    subscription: Subscription
    status: Literal["success", "failed"]
    error: str = ""
    errorType: str = ""
    durationMs: int = 0
    exception: Optional[Any] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class DispatchResult(BaseModel):
    id: str
    host: str
    eventId: Optional[str] = None
    trigger: str = "event"
    outcomes: list[DeliveryOutcome] = Field(default_factory=list)
    occurrenceErrors: list[str] = Field(default_factory=list)
    issueKeys: list[str] = Field(default_factory=list)
    startedAt: str = ""
    finishedAt: str = ""
    durationMs: int = 0

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def failures(self) -> list[tuple[Subscription, Any]]:
        """(subscription, HandlerError) pairs for every failed delivery."""
        return [(o.subscription, o.exception) for o in self.outcomes if not o.ok]

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "host": self.host,
            "eventId": self.eventId,
            "trigger": self.trigger,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "issueKeys": list(self.issueKeys),
            "failures": [
                {
                    "subscriptionId": o.subscription.id,
                    "installationId": o.subscription.installationId,
                    "error": o.error,
                    "errorType": o.errorType,
                }
                for o in self.outcomes
                if not o.ok
            ],
            "occurrenceErrors": list(self.occurrenceErrors),
            "startedAt": self.startedAt,
            "finishedAt": self.finishedAt,
            "durationMs": self.durationMs,
        }


# ── API payloads ────────────────────────────────────────────────────

class SubscriptionCreate(BaseModel):
    installationId: int
    jiraHost: str = Field(..., min_length=1)
