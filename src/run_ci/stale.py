import asyncio
from functools import partial
import logging
from typing import Awaitable, Callable, Optional

import aiohttp
from gidgethub import GitHubException

from run_ci.exceptions import AuthError, StalenessError
from run_ci.github.api import API
from run_ci.github.model import PullRequest

logger = logging.getLogger("run_ci")

MergeBaseLookup = Callable[[str, str], Awaitable[Optional[str]]]

LOOKUP_ERRORS = (GitHubException, AuthError, aiohttp.ClientError, asyncio.TimeoutError)


async def is_stale(
    base_tip_sha: str, recorded_base_sha: str, merge_base: MergeBaseLookup
) -> bool:
    """
    Decide whether a pull request was last tested against an outdated base.

    The pull request is up to date when its recorded base commit is the tip
    of the base branch or a descendant of it, i.e. when the merge base of
    both is the tip itself. A recorded base behind the tip, or one sharing no
    history with it (rewritten base branch), is stale.
    """
    if base_tip_sha == recorded_base_sha:
        return False

    common = await merge_base(recorded_base_sha, base_tip_sha)
    if common is None:
        logger.warning(
            "%s and %s share no history, treating as stale",
            recorded_base_sha,
            base_tip_sha,
        )
        return True
    return common != base_tip_sha


async def check_pull_request(api: API, owner: str, repo: str, pr: PullRequest) -> bool:
    try:
        tip = await api.get_branch_tip(owner, repo, pr.base.ref)
        stale = await is_stale(
            tip, pr.base.sha, partial(api.get_merge_base, owner, repo)
        )
    except LOOKUP_ERRORS as e:
        raise StalenessError(
            f"resolving the base of {pr} failed: {type(e).__name__}: {e}"
        ) from e

    logger.debug(
        "%s: base %s at %s, recorded %s, stale: %s",
        pr,
        pr.base.ref,
        tip,
        pr.base.sha,
        stale,
    )
    return stale
