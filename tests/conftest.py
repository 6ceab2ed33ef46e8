from typing import List, Optional

import pytest

from herald.github.model import (
    CheckRun,
    CommitStatus,
    IssueComment,
    PullRequest,
    Review,
)


def make_pr(number: int = 42, **kwargs) -> PullRequest:
    data = {
        "number": number,
        "title": "Add feature",
        "user": {"id": 1, "login": "octocat"},
        "head": {"ref": "feature", "sha": "a" * 40},
        "mergeable": True,
        "mergeable_state": "clean",
    }
    data.update(kwargs)
    return PullRequest.model_validate(data)


def approval(user_id: int = 7, state: str = "APPROVED", at: str = "2026-02-17T10:00:00Z"):
    return Review.model_validate(
        {
            "id": user_id * 1000 + len(at),
            "user": {"id": user_id, "login": f"reviewer{user_id}"},
            "state": state,
            "submitted_at": at,
        }
    )


class FakeAPI:
    def __init__(
        self,
        *,
        statuses: Optional[List[dict]] = None,
        check_runs: Optional[List[dict]] = None,
        pr: Optional[PullRequest] = None,
        pulls: Optional[List[PullRequest]] = None,
        reviews: Optional[List[Review]] = None,
        comments: Optional[List[IssueComment]] = None,
    ):
        self.repo = "org/repo"
        self.call_count = 0
        self.statuses = statuses or []
        self.check_runs = check_runs or []
        self.pr = pr or make_pr()
        self.pulls = pulls if pulls is not None else [self.pr]
        self.reviews = reviews if reviews is not None else [approval()]
        self.comments: dict = {}
        if comments:
            self.comments[self.pr.number] = list(comments)
        self.post_calls = []
        self.update_calls = []
        self.comment_list_calls = 0
        self.check_fetches = 0
        self.fail_checks: Optional[Exception] = None
        self.fail_post: Optional[Exception] = None
        self.fail_pull: Optional[Exception] = None

    async def get_status_for_ref(self, ref: str) -> List[CommitStatus]:
        self.call_count += 1
        self.check_fetches += 1
        if self.fail_checks is not None:
            raise self.fail_checks
        return [CommitStatus.model_validate(s) for s in self.statuses]

    async def get_check_runs_for_ref(self, ref: str):
        self.call_count += 1
        for item in self.check_runs:
            yield CheckRun.model_validate(item)

    async def get_pull(self, number: int) -> PullRequest:
        self.call_count += 1
        if self.fail_pull is not None:
            raise self.fail_pull
        return self.pr

    async def get_pulls(self):
        self.call_count += 1
        for pr in self.pulls:
            yield pr

    async def get_reviews(self, number: int) -> List[Review]:
        self.call_count += 1
        return list(self.reviews)

    async def get_comments(self, number: int):
        self.call_count += 1
        self.comment_list_calls += 1
        for comment in list(self.comments.get(number, [])):
            yield comment

    async def post_comment(self, number: int, body: str) -> IssueComment:
        self.call_count += 1
        if self.fail_post is not None:
            raise self.fail_post
        comment = IssueComment(id=1000 + len(self.post_calls), body=body)
        self.post_calls.append((number, body))
        self.comments.setdefault(number, []).append(comment)
        return comment

    async def update_comment(self, comment_id: int, body: str) -> IssueComment:
        self.call_count += 1
        self.update_calls.append((comment_id, body))
        for comments in self.comments.values():
            for idx, comment in enumerate(comments):
                if comment.id == comment_id:
                    comments[idx] = IssueComment(id=comment_id, body=body)
        return IssueComment(id=comment_id, body=body)


@pytest.fixture
def api():
    return FakeAPI(
        check_runs=[{"name": "build", "status": "completed", "conclusion": "success"}]
    )
