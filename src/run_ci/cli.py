import asyncio
import logging
from pathlib import Path
import time
from typing import Optional

import humanize
import typer

from run_ci import __version__, config
from run_ci.controller import Controller, RunSummary
from run_ci.exceptions import ConfigError, ListingError
from run_ci.git import Executor, Git
from run_ci.github import github_client
from run_ci.logger import setup_logger
from run_ci.metric import push_metrics, run_error_counter
from run_ci.model import Config

logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger("run_ci")

app = typer.Typer(
    help="Run CI automatically when a pull request's base branch is updated."
)


def _version(value: bool):
    if value:
        typer.echo(f"run-ci {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version, is_eager=True, help="Show the version"
    ),
):
    pass


async def run_update(cfg: Config, dry_run: bool = False) -> RunSummary:
    git = Git(
        user_name=cfg.git_command.user_name,
        user_email=cfg.git_command.user_email,
        executor=Executor(),
        token=cfg.github_token,
        timeout=cfg.git_timeout,
    )
    async with github_client(cfg.github_token, cfg.api_timeout) as api:
        ctrl = Controller(config=cfg, api=api, git=git, dry_run=dry_run)
        return await ctrl.update_prs()


def _fail(context: str, message: str):
    run_error_counter.labels(context=context).inc()
    typer.echo(f"Error: {message}", err=True)
    if config.PUSH_GATEWAY is not None:
        push_metrics(config.PUSH_GATEWAY)
    raise typer.Exit(code=1)


@app.command("update-pr")
def update_pr(
    owner: Optional[str] = typer.Option(None, help="repository owner"),
    repo: Optional[str] = typer.Option(None, help="repository name"),
    github_token: Optional[str] = typer.Option(
        None,
        "--github-token",
        help="GitHub Access Token [$GITHUB_TOKEN, $GITHUB_ACCESS_TOKEN]",
        show_default=False,
    ),
    base: Optional[str] = typer.Option(
        None,
        help="base branch. Either the option 'base' or 'all' should be set",
    ),
    all_: bool = typer.Option(
        False,
        "--all",
        help="get pull requests without specifying the base branch. "
        "Either the option 'base' or 'all' should be set",
    ),
    expr: Optional[str] = typer.Option(
        None, help="filter expression selecting the pull requests to update"
    ),
    log_level: Optional[str] = typer.Option(None, help="log level"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="configuration file path"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="report stale pull requests without pushing"
    ),
):
    """Run CI of the pull requests whose base branch has moved on."""
    try:
        cfg = config.load_config(
            {
                "owner": owner,
                "repo": repo,
                "github_token": github_token,
                "base": base,
                "all": all_,
                "expr": expr,
                "log_level": log_level,
                "dry_run": dry_run,
            },
            config_path=config_path,
        )
    except ConfigError as e:
        _fail("config", str(e))

    setup_logger(logger, cfg.log_level)
    logger.debug("config: %r", cfg)

    started = time.monotonic()
    try:
        summary = asyncio.run(run_update(cfg, dry_run=dry_run or config.DRY_RUN))
    except ConfigError as e:
        _fail("config", str(e))
    except ListingError as e:
        _fail("listing", str(e))

    typer.echo(summary.render())
    logger.info(
        "Run finished in %s",
        humanize.naturaldelta(time.monotonic() - started),
    )

    if config.PUSH_GATEWAY is not None:
        push_metrics(config.PUSH_GATEWAY)

    if not summary.ok:
        logger.error(
            "CI could not be triggered for %d pull request(s): %s",
            len(summary.failed),
            ", ".join(f"#{o.number}" for o in summary.failed),
        )
        raise typer.Exit(code=1)


@app.command("init")
def init_config():
    """Generate a configuration file if it doesn't exist."""
    path = config.write_template(Path.cwd())
    if path is None:
        logger.info("A configuration file already exists, nothing to do")
        return
    typer.echo(f"Created {path}")
