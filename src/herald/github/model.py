from datetime import datetime
from typing import Literal, Optional

import pydantic


class Model(pydantic.BaseModel):
    pass


class User(Model):
    id: int
    login: str


class PrConnection(Model):
    ref: str
    sha: str


class PullRequest(Model):
    number: int
    state: Literal["open", "closed"] = "open"
    title: Optional[str] = None
    user: User
    head: PrConnection
    base: Optional[PrConnection] = None
    draft: bool = False
    # only populated on the single PR endpoint, and null while github computes it
    mergeable: Optional[bool] = None
    mergeable_state: Optional[str] = None
    html_url: Optional[str] = None

    def __str__(self) -> str:
        return f"PR(#{self.number}, {self.head.sha[:7]})"


class Review(Model):
    id: int
    user: Optional[User] = None
    state: str
    submitted_at: Optional[datetime] = None


class IssueComment(Model):
    id: int
    body: Optional[str] = None
    user: Optional[User] = None
    created_at: Optional[datetime] = None
    html_url: Optional[str] = None


class CommitStatus(Model):
    id: Optional[int] = None
    context: Optional[str] = None
    state: Literal["error", "failure", "pending", "success"]
    description: Optional[str] = None
    target_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.context or ""


class CheckRun(Model):
    id: Optional[int] = None
    name: Optional[str] = None
    head_sha: Optional[str] = None
    status: Literal[
        "queued", "in_progress", "completed", "waiting", "requested", "pending"
    ] = "queued"
    conclusion: Optional[
        Literal[
            "action_required",
            "cancelled",
            "failure",
            "neutral",
            "success",
            "skipped",
            "stale",
            "timed_out",
        ]
    ] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    html_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or ""

