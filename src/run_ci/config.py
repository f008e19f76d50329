import io
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import dotenv
import pydantic
import yaml

from run_ci.exceptions import ConfigError
from run_ci.model import Config

dotenv.load_dotenv()

logger = logging.getLogger("run_ci")

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

PUSH_GATEWAY = os.environ.get("PUSH_GATEWAY")

DRY_RUN = os.environ.get("DRY_RUN", "false") == "true"

CONFIG_FILE_NAMES = (".run-ci.yml", ".run-ci.yaml")

DEFAULT_EMPTY_COMMIT_MSG = "ci: empty commit to run CI"
DEFAULT_GIT_USER_NAME = "run-ci"
DEFAULT_GIT_USER_EMAIL = "run-ci@localhost"
DEFAULT_LOG_LEVEL = "info"

CONFIG_TEMPLATE = """\
# run-ci configuration

# owner: suzuki-shunsuke
# repo: run-ci

# Either "base" or "all" must be set.
# base: main
# all: true

# Only pull requests for which the expression is true are updated.
# Names: number, title, body, draft, labels, author, base, head, pr
# expr: 'not draft and "skip-ci" not in labels'

# empty_commit_msg: "ci: empty commit to run CI"
# log_level: info

# git_command:
#   user_name: run-ci
#   user_email: run-ci@localhost
"""


def find_config_file(wd: Path) -> Optional[Path]:
    wd = Path(wd).absolute()
    for directory in (wd, *wd.parents):
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def read_config_file(path: Path) -> Config:
    try:
        with open(path) as fh:
            raw = fh.read()
    except OSError as e:
        raise ConfigError(f"the configuration file can't be read: {path}: {e}") from e

    try:
        data = yaml.safe_load(io.StringIO(raw))
    except yaml.YAMLError as e:
        raise ConfigError(f"the configuration file is invalid YAML: {path}: {e}") from e

    try:
        return Config() if data is None else Config.model_validate(data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"the configuration file is invalid: {path}\n{e}") from e


def find_and_read(config_path: Optional[Path], wd: Path) -> Config:
    if config_path is None:
        config_path = find_config_file(wd)
        if config_path is None:
            logger.debug("No configuration file found from %s", wd)
            return Config()
    logger.debug("Reading configuration file %s", config_path)
    return read_config_file(config_path)


def _overlay(cfg: Config, values: Mapping[str, Any]) -> Config:
    update = {k: v for k, v in values.items() if v not in (None, "", False)}
    git_update = {
        k: update.pop(k)
        for k in ("user_name", "user_email")
        if k in update
    }
    if git_update:
        update["git_command"] = cfg.git_command.model_copy(update=git_update)
    if not update:
        return cfg
    return cfg.model_copy(update=update)


def set_env(cfg: Config, environ: Mapping[str, str]) -> Config:
    return _overlay(
        cfg,
        {
            "github_token": environ.get("GITHUB_TOKEN")
            or environ.get("GITHUB_ACCESS_TOKEN"),
            "owner": environ.get("RUN_CI_OWNER"),
            "repo": environ.get("RUN_CI_REPO"),
            "base": environ.get("RUN_CI_BASE"),
            "expr": environ.get("RUN_CI_EXPR"),
            "log_level": environ.get("RUN_CI_LOG_LEVEL"),
            "user_name": environ.get("RUN_CI_GIT_USER_NAME"),
            "user_email": environ.get("RUN_CI_GIT_USER_EMAIL"),
        },
    )


def set_cli_args(cfg: Config, cli_args: Mapping[str, Any]) -> Config:
    return _overlay(cfg, cli_args)


def set_platform(cfg: Config, environ: Mapping[str, str]) -> Config:
    # GitHub Actions exposes the repository as "owner/repo"
    repository = environ.get("GITHUB_REPOSITORY", "")
    if "/" not in repository:
        return cfg
    owner, repo = repository.split("/", 1)
    update = {}
    if not cfg.owner:
        update["owner"] = owner
    if not cfg.repo:
        update["repo"] = repo
    return cfg.model_copy(update=update) if update else cfg


def set_default(cfg: Config) -> Config:
    update: dict = {}
    if not cfg.empty_commit_msg:
        update["empty_commit_msg"] = DEFAULT_EMPTY_COMMIT_MSG
    if not cfg.log_level:
        update["log_level"] = DEFAULT_LOG_LEVEL
    git_update = {}
    if not cfg.git_command.user_name:
        git_update["user_name"] = DEFAULT_GIT_USER_NAME
    if not cfg.git_command.user_email:
        git_update["user_email"] = DEFAULT_GIT_USER_EMAIL
    if git_update:
        update["git_command"] = cfg.git_command.model_copy(update=git_update)
    return cfg.model_copy(update=update) if update else cfg


def validate(cfg: Config) -> None:
    if not cfg.owner:
        raise ConfigError("owner is required")
    if not cfg.repo:
        raise ConfigError("repo is required")
    if not cfg.github_token:
        raise ConfigError("GitHub Access Token is required")
    if not cfg.all and not cfg.base:
        raise ConfigError("either the option 'base' or 'all' should be set")
    if cfg.all and cfg.base:
        raise ConfigError(
            "both the option 'base' and 'all' can't be set at the same time"
        )


def load_config(
    cli_args: Mapping[str, Any],
    config_path: Optional[Path] = None,
    wd: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Assemble the run configuration.

    Precedence, highest first: command line flags, environment variables,
    configuration file, CI platform environment, defaults. The result is
    validated and raises ``ConfigError`` before anything touches the network.
    """
    if environ is None:
        environ = os.environ
    if wd is None:
        wd = Path.cwd()

    cfg = find_and_read(config_path, wd)
    cfg = set_env(cfg, environ)
    cfg = set_cli_args(cfg, cli_args)
    cfg = set_platform(cfg, environ)
    cfg = set_default(cfg)

    validate(cfg)
    return cfg


def write_template(wd: Path) -> Optional[Path]:
    for name in CONFIG_FILE_NAMES:
        if (wd / name).exists():
            return None
    path = wd / CONFIG_FILE_NAMES[0]
    path.write_text(CONFIG_TEMPLATE)
    return path
