import pytest

from herald.github.api import API


class _FakeGitHub:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def getitem(self, url):
        self.calls.append(("GET", url))
        return self.responses[url]

    async def getiter(self, url, iterable_key=None):
        self.calls.append(("GET", url, iterable_key))
        for item in self.responses[url]:
            yield item

    async def post(self, url, data):
        self.calls.append(("POST", url, data))
        return {"id": 1, "body": data["body"]}

    async def patch(self, url, data):
        self.calls.append(("PATCH", url, data))
        return {"id": 2, "body": data["body"]}


@pytest.mark.asyncio
async def test_status_and_check_runs():
    sha = "a" * 40
    gh = _FakeGitHub(
        {
            f"/repos/org/repo/commits/{sha}/status?per_page=100": [
                {"id": 1, "context": "ci/legacy", "state": "pending"},
                {"id": 3, "context": "ci/docs", "state": "failure"},
            ],
            f"/repos/org/repo/commits/{sha}/check-runs": [
                {"id": 2, "name": "build", "status": "completed", "conclusion": "success"}
            ],
        }
    )
    api = API(gh, "org/repo")

    statuses = await api.get_status_for_ref(sha)
    runs = [cr async for cr in api.get_check_runs_for_ref(sha)]

    assert [s.context for s in statuses] == ["ci/legacy", "ci/docs"]
    assert runs[0].conclusion == "success"
    assert api.call_count == 2


@pytest.mark.asyncio
async def test_pull_and_reviews():
    gh = _FakeGitHub(
        {
            "/repos/org/repo/pulls/5": {
                "number": 5,
                "user": {"id": 1, "login": "octocat"},
                "head": {"ref": "feature", "sha": "b" * 40},
                "mergeable": None,
                "mergeable_state": "unknown",
                "extra": "ignored",
            },
            "/repos/org/repo/pulls/5/reviews": [
                {"id": 9, "user": {"id": 3, "login": "r"}, "state": "APPROVED"}
            ],
        }
    )
    api = API(gh, "org/repo")
    pr = await api.get_pull(5)
    reviews = await api.get_reviews(5)

    assert pr.mergeable is None
    assert pr.mergeable_state == "unknown"
    assert reviews[0].state == "APPROVED"


@pytest.mark.asyncio
async def test_comments():
    gh = _FakeGitHub({"/repos/org/repo/issues/5/comments": [{"id": 1, "body": "hi"}]})
    api = API(gh, "org/repo")

    comments = [c async for c in api.get_comments(5)]
    created = await api.post_comment(5, "hello")
    updated = await api.update_comment(2, "edited")

    assert comments[0].body == "hi"
    assert created.body == "hello"
    assert updated.id == 2
    assert gh.calls[-2] == ("POST", "/repos/org/repo/issues/5/comments", {"body": "hello"})
    assert gh.calls[-1] == ("PATCH", "/repos/org/repo/issues/comments/2", {"body": "edited"})


@pytest.mark.asyncio
async def test_status_requests_all_pages():
    sha = "a" * 40
    url = f"/repos/org/repo/commits/{sha}/status?per_page=100"
    gh = _FakeGitHub({url: [{"context": f"ci/{i}", "state": "success"} for i in range(45)]})
    api = API(gh, "org/repo")

    statuses = await api.get_status_for_ref(sha)

    assert len(statuses) == 45
    assert gh.calls == [("GET", url, "statuses")]
