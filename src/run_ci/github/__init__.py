from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator

import aiohttp
import cachetools
from gidgethub import aiohttp as gh_aiohttp

from run_ci.github.api import API

logger = logging.getLogger("run_ci")

httpcache = cachetools.LRUCache(maxsize=500)

USER_AGENT = "run-ci"


@asynccontextmanager
async def github_client(token: str, timeout: float) -> AsyncIterator[API]:
    logger.debug("Creating aiohttp session (timeout %.1fs)", timeout)
    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout)
    ) as session:
        gh = gh_aiohttp.GitHubAPI(
            session,
            USER_AGENT,
            oauth_token=token,
            cache=httpcache,
        )
        yield API(gh)


__all__ = ["API", "github_client"]
