import asyncio
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Dict, List, Optional

import aiohttp
from gidgethub import BadRequest, GitHubException, RateLimitExceeded
import pydantic
from tabulate import tabulate
import tenacity
from tenacity.wait import wait_base

from run_ci import config as config_module
from run_ci.exceptions import (
    AuthError,
    EvalError,
    ExecutionError,
    ListingError,
    StalenessError,
)
from run_ci.expr import Predicate, build_context, compile_expr
from run_ci.git import Git
from run_ci.github.api import API
from run_ci.github.model import PullRequest
from run_ci.metric import outcome_counter
from run_ci.model import Config
from run_ci.stale import check_pull_request

logger = logging.getLogger("run_ci")


class Action(Enum):
    skipped_by_filter = "skipped-by-filter"
    up_to_date = "up-to-date"
    triggered = "triggered"
    failed = "failed"


class RunState(Enum):
    init = 1
    configured = 2
    listing = 3
    iterating = 4
    finalized = 5


@dataclass(frozen=True)
class Outcome:
    number: int
    action: Action
    detail: Optional[str] = None
    commit_sha: Optional[str] = None


@dataclass
class RunSummary:
    outcomes: List[Outcome] = field(default_factory=list)

    @property
    def counts(self) -> Dict[Action, int]:
        counter = Counter(o.action for o in self.outcomes)
        return {action: counter.get(action, 0) for action in Action}

    @property
    def failed(self) -> List[Outcome]:
        return [o for o in self.outcomes if o.action == Action.failed]

    @property
    def ok(self) -> bool:
        return len(self.failed) == 0

    def render(self) -> str:
        rows = [
            (f"#{o.number}", o.action.value, o.commit_sha or "", o.detail or "")
            for o in self.outcomes
        ]
        text = ""
        if rows:
            text = (
                tabulate(
                    rows,
                    headers=("PR", "Outcome", "Commit", "Detail"),
                    tablefmt="github",
                )
                + "\n\n"
            )
        text += ", ".join(
            f"{action.value}: {count}" for action, count in self.counts.items()
        )
        return text


def is_rate_limited(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitExceeded):
        return True
    return isinstance(exc, BadRequest) and exc.status_code == 429


LISTING_ERRORS = (
    GitHubException,
    AuthError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    pydantic.ValidationError,
)


class Controller:
    config: Config
    api: API
    git: Git
    predicate: Optional[Predicate]
    state: RunState

    def __init__(
        self,
        *,
        config: Config,
        api: API,
        git: Git,
        dry_run: bool = False,
        retry_wait: Optional[wait_base] = None,
    ):
        self.config = config
        self.api = api
        self.git = git
        self.dry_run = dry_run or config.dry_run
        self.retry_wait = retry_wait or (
            tenacity.wait_exponential(multiplier=1, min=1, max=60)
            + tenacity.wait_random(0, 2)
        )
        self.predicate = None
        self.state = RunState.init

    def configure(self) -> None:
        """Validate the configuration and compile the filter, without I/O."""
        config_module.validate(self.config)
        self.predicate = compile_expr(self.config.expr)
        self.state = RunState.configured
        logger.debug("Filter expression: %r", self.predicate.source)

    async def _fetch_candidates(self) -> List[PullRequest]:
        base = None if self.config.all else self.config.base
        prs = []
        seen = set()
        async for pr in self.api.list_pull_requests(
            self.config.owner, self.config.repo, base
        ):
            # pages can overlap when pull requests open or close mid-listing
            if pr.number in seen:
                logger.debug("%s listed more than once, skipping repeat", pr)
                continue
            seen.add(pr.number)
            prs.append(pr)
        return prs

    async def list_candidates(self) -> List[PullRequest]:
        self.state = RunState.listing
        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(is_rate_limited),
            wait=self.retry_wait,
            stop=tenacity.stop_after_attempt(self.config.listing_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            prs = await retryer(self._fetch_candidates)
        except LISTING_ERRORS as e:
            raise ListingError(
                f"listing pull requests of {self.config.full_name} failed: {e}"
            ) from e
        logger.info("Found %d open pull requests", len(prs))
        return prs

    async def process_pull_request(self, pr: PullRequest) -> Outcome:
        logger.info("Processing %s (%s <- %s)", pr, pr.base.ref, pr.head.ref)

        try:
            selected = self.predicate.evaluate(build_context(pr))
        except EvalError as e:
            logger.warning("%s: filter evaluation failed: %s", pr, e)
            return Outcome(pr.number, Action.failed, detail=f"evaluation: {e}")
        if not selected:
            logger.info("%s: excluded by the filter expression", pr)
            return Outcome(pr.number, Action.skipped_by_filter)

        try:
            stale = await check_pull_request(
                self.api, self.config.owner, self.config.repo, pr
            )
        except StalenessError as e:
            logger.warning("%s: %s", pr, e)
            return Outcome(pr.number, Action.failed, detail=f"staleness: {e}")
        if not stale:
            logger.info("%s: base branch %s is up to date", pr, pr.base.ref)
            return Outcome(pr.number, Action.up_to_date)

        if pr.head.repo is None or pr.head.repo.full_name is None:
            logger.warning("%s: head repository no longer exists", pr)
            return Outcome(
                pr.number, Action.failed, detail="head repository no longer exists"
            )

        if self.dry_run:
            logger.info("%s: stale, dry run so nothing is pushed", pr)
            return Outcome(pr.number, Action.triggered, detail="dry-run")

        try:
            sha = await self.git.trigger(
                pr.head.repo.full_name, pr.head.ref, self.config.empty_commit_msg
            )
        except ExecutionError as e:
            logger.warning("%s: triggering CI failed at step %s: %s", pr, e.step, e)
            return Outcome(pr.number, Action.failed, detail=f"{e.step}: {e}")

        return Outcome(pr.number, Action.triggered, commit_sha=sha)

    async def update_prs(self) -> RunSummary:
        if self.state == RunState.init:
            self.configure()

        prs = await self.list_candidates()

        self.state = RunState.iterating
        summary = RunSummary()
        for pr in prs:
            try:
                outcome = await self.process_pull_request(pr)
            except Exception as e:  # noqa: BLE001
                logger.error("Processing %s failed unexpectedly", pr, exc_info=True)
                outcome = Outcome(pr.number, Action.failed, detail=str(e))
            outcome_counter.labels(action=outcome.action.value).inc()
            summary.outcomes.append(outcome)

        self.state = RunState.finalized
        logger.info(
            "Finished run, API calls: %d, %s",
            self.api.call_count,
            ", ".join(f"{a.value}: {n}" for a, n in summary.counts.items()),
        )
        return summary
