from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from run_ci.github.model import PullRequest


TIP_SHA = "a" * 40
BEHIND_SHA = "b" * 40
HEAD_SHA = "c" * 40


def make_pull_request_payload(
    number: int,
    base_sha: str = TIP_SHA,
    base_ref: str = "main",
    head_ref: Optional[str] = None,
    draft: bool = False,
    labels: Optional[List[str]] = None,
    title: str = "Update things",
    head_repo: Optional[dict] = None,
) -> dict:
    repo = {"id": 101, "name": "repo", "full_name": "org/repo"}
    return {
        "number": number,
        "title": title,
        "body": None,
        "state": "open",
        "draft": draft,
        "user": {"login": "octocat"},
        "labels": [{"name": name} for name in labels or []],
        "html_url": f"https://github.com/org/repo/pull/{number}",
        "base": {"ref": base_ref, "sha": base_sha, "label": f"org:{base_ref}", "repo": repo},
        "head": {
            "ref": head_ref or f"feature-{number}",
            "sha": HEAD_SHA,
            "label": f"org:feature-{number}",
            "repo": repo if head_repo is None else head_repo,
        },
    }


@pytest.fixture
def make_pr():
    def factory(number: int, **kwargs) -> PullRequest:
        return PullRequest.model_validate(make_pull_request_payload(number, **kwargs))

    return factory


class FakeAPI:
    def __init__(self, prs, tip: str = TIP_SHA, merge_bases=None):
        self.prs = list(prs)
        self.call_count = 0
        self.list_calls = []
        self.list_errors = []
        self.get_branch_tip = AsyncMock(return_value=tip)
        merge_bases = merge_bases or {}
        self.get_merge_base = AsyncMock(
            side_effect=lambda owner, repo, a, b: merge_bases.get(a, a)
        )

    async def list_pull_requests(self, owner, repo, base=None):
        self.list_calls.append((owner, repo, base))
        if self.list_errors:
            raise self.list_errors.pop(0)
        for pr in self.prs:
            yield pr


@pytest.fixture
def fake_api():
    return FakeAPI
