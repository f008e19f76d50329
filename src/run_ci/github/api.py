import logging
from typing import AsyncIterator, Optional

from gidgethub import BadRequest, RateLimitExceeded
from gidgethub.abc import GitHubAPI

from run_ci.exceptions import AuthError
from run_ci.github.model import Branch, Comparison, PullRequest
from run_ci.metric import record_api_call

logger = logging.getLogger("run_ci")

AUTH_STATUS_CODES = (401, 403)

PULLS_PER_PAGE = 100


def _raise_for_auth(e: BadRequest) -> None:
    # a 403 caused by an exhausted quota stays a rate limit
    if isinstance(e, RateLimitExceeded):
        return
    if e.status_code in AUTH_STATUS_CODES:
        raise AuthError(
            f"GitHub API denied access ({int(e.status_code)}): {e}",
            status_code=int(e.status_code),
        ) from e


class API:
    gh: GitHubAPI

    call_count: int

    def __init__(self, gh: GitHubAPI):
        self.gh = gh
        self.call_count = 0

    def _count(self, endpoint: str) -> None:
        self.call_count += 1
        record_api_call(endpoint)

    async def list_pull_requests(
        self, owner: str, repo: str, base: Optional[str] = None
    ) -> AsyncIterator[PullRequest]:
        """
        Iterate over the open pull requests of a repository, optionally only
        those targeting ``base``. Pages are fetched lazily; the order is the
        one the API returns. Every page counts as one API call.
        """
        self._count("pulls")
        url_vars = {
            "owner": owner,
            "repo": repo,
            "state": "open",
            "per_page": PULLS_PER_PAGE,
        }
        if base is not None:
            url_vars["base"] = base
        logger.debug("Listing open pulls of %s/%s (base: %s)", owner, repo, base)
        try:
            index = 0
            async for item in self.gh.getiter(
                "/repos/{owner}/{repo}/pulls{?state,base,per_page}", url_vars
            ):
                # getiter only asks for the next page once this one is used up
                if index and index % PULLS_PER_PAGE == 0:
                    self._count("pulls")
                index += 1
                yield PullRequest.model_validate(item)
        except BadRequest as e:
            _raise_for_auth(e)
            raise

    async def get_branch_tip(self, owner: str, repo: str, branch: str) -> str:
        self._count("branches")
        logger.debug("Get branch %s of %s/%s", branch, owner, repo)
        try:
            data = await self.gh.getitem(
                "/repos/{owner}/{repo}/branches/{+branch}",
                {"owner": owner, "repo": repo, "branch": branch},
            )
        except BadRequest as e:
            _raise_for_auth(e)
            raise
        return Branch.model_validate(data).commit.sha

    async def get_merge_base(
        self, owner: str, repo: str, sha_a: str, sha_b: str
    ) -> Optional[str]:
        """
        Return the merge base of two commits, or ``None`` when they share no
        history (GitHub answers 404 for unrelated commits).
        """
        self._count("compare")
        logger.debug("Compare %s...%s on %s/%s", sha_a, sha_b, owner, repo)
        try:
            data = await self.gh.getitem(
                "/repos/{owner}/{repo}/compare/{base}...{head}",
                {"owner": owner, "repo": repo, "base": sha_a, "head": sha_b},
            )
        except BadRequest as e:
            _raise_for_auth(e)
            if e.status_code == 404:
                return None
            raise
        return Comparison.model_validate(data).merge_base_commit.sha
