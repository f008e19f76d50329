import pydantic
import pytest

from run_ci import config
from run_ci.exceptions import ConfigError

CONFIG_YAML = """\
owner: org
repo: repo
base: main
expr: not draft
empty_commit_msg: "chore: rerun CI"
git_command:
  user_name: bot
  user_email: bot@example.com
"""

ENV = {"GITHUB_TOKEN": "env-token"}


def test_find_config_file_walks_up(tmp_path):
    (tmp_path / ".run-ci.yaml").write_text("owner: org\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert config.find_config_file(nested) == tmp_path / ".run-ci.yaml"


def test_find_config_file_prefers_yml(tmp_path):
    (tmp_path / ".run-ci.yml").write_text("")
    (tmp_path / ".run-ci.yaml").write_text("")

    assert config.find_config_file(tmp_path) == tmp_path / ".run-ci.yml"


def test_load_from_file(tmp_path):
    (tmp_path / ".run-ci.yml").write_text(CONFIG_YAML)

    cfg = config.load_config({}, wd=tmp_path, environ=ENV)

    assert cfg.owner == "org"
    assert cfg.repo == "repo"
    assert cfg.base == "main"
    assert not cfg.all
    assert cfg.expr == "not draft"
    assert cfg.github_token == "env-token"
    assert cfg.empty_commit_msg == "chore: rerun CI"
    assert cfg.git_command.user_name == "bot"
    assert cfg.git_command.user_email == "bot@example.com"
    assert cfg.log_level == "info"


def test_hyphenated_keys(tmp_path):
    path = tmp_path / "custom.yml"
    path.write_text(
        "owner: org\nrepo: repo\nall: true\nlog-level: debug\n"
        "git-command:\n  user-name: bot\n"
    )

    cfg = config.load_config({}, config_path=path, wd=tmp_path, environ=ENV)

    assert cfg.all
    assert cfg.log_level == "debug"
    assert cfg.git_command.user_name == "bot"
    assert cfg.git_command.user_email == config.DEFAULT_GIT_USER_EMAIL


def test_precedence(tmp_path):
    (tmp_path / ".run-ci.yml").write_text(CONFIG_YAML)
    environ = {
        "GITHUB_ACCESS_TOKEN": "access-token",
        "RUN_CI_EXPR": "true",
        "RUN_CI_REPO": "env-repo",
        "GITHUB_REPOSITORY": "platform/platform-repo",
    }

    cfg = config.load_config(
        {"repo": "cli-repo", "base": None, "all": False},
        wd=tmp_path,
        environ=environ,
    )

    assert cfg.repo == "cli-repo"
    assert cfg.expr == "true"
    assert cfg.owner == "org"
    assert cfg.github_token == "access-token"


def test_github_token_wins_over_access_token(tmp_path):
    cfg = config.load_config(
        {"owner": "org", "repo": "repo", "base": "main"},
        wd=tmp_path,
        environ={"GITHUB_TOKEN": "a", "GITHUB_ACCESS_TOKEN": "b"},
    )
    assert cfg.github_token == "a"


def test_platform_fills_owner_and_repo(tmp_path):
    cfg = config.load_config(
        {"all": True},
        wd=tmp_path,
        environ={"GITHUB_TOKEN": "t", "GITHUB_REPOSITORY": "org/repo"},
    )
    assert cfg.full_name == "org/repo"


def test_defaults(tmp_path):
    cfg = config.load_config(
        {"owner": "org", "repo": "repo", "base": "main"}, wd=tmp_path, environ=ENV
    )
    assert cfg.empty_commit_msg == config.DEFAULT_EMPTY_COMMIT_MSG
    assert cfg.git_command.user_name == config.DEFAULT_GIT_USER_NAME
    assert cfg.log_level == config.DEFAULT_LOG_LEVEL
    assert not cfg.dry_run


@pytest.mark.parametrize(
    "cli_args, environ, message",
    [
        ({"repo": "r", "base": "main"}, ENV, "owner is required"),
        ({"owner": "o", "base": "main"}, ENV, "repo is required"),
        ({"owner": "o", "repo": "r", "base": "main"}, {}, "GitHub Access Token is required"),
        ({"owner": "o", "repo": "r"}, ENV, "either the option 'base' or 'all' should be set"),
        (
            {"owner": "o", "repo": "r", "base": "main", "all": True},
            ENV,
            "both the option 'base' and 'all' can't be set at the same time",
        ),
    ],
)
def test_validation(cli_args, environ, message, tmp_path):
    with pytest.raises(ConfigError) as excinfo:
        config.load_config(cli_args, wd=tmp_path, environ=environ)
    assert str(excinfo.value) == message


def test_file_base_conflicts_with_cli_all(tmp_path):
    (tmp_path / ".run-ci.yml").write_text(CONFIG_YAML)

    with pytest.raises(ConfigError, match="can't be set at the same time"):
        config.load_config({"all": True}, wd=tmp_path, environ=ENV)


def test_unknown_key_is_rejected(tmp_path):
    path = tmp_path / ".run-ci.yml"
    path.write_text("owner: org\nbranch: main\n")

    with pytest.raises(ConfigError, match="invalid"):
        config.read_config_file(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / ".run-ci.yml"
    path.write_text("owner: [org\n")

    with pytest.raises(ConfigError, match="invalid YAML"):
        config.read_config_file(path)


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="can't be read"):
        config.load_config({}, config_path=tmp_path / "nope.yml", wd=tmp_path, environ=ENV)


def test_config_is_frozen(tmp_path):
    cfg = config.load_config(
        {"owner": "org", "repo": "repo", "base": "main"}, wd=tmp_path, environ=ENV
    )
    with pytest.raises(pydantic.ValidationError):
        cfg.base = "develop"
    assert "env-token" not in repr(cfg)


def test_write_template(tmp_path):
    path = config.write_template(tmp_path)
    assert path == tmp_path / ".run-ci.yml"
    assert config.read_config_file(path).owner is None

    assert config.write_template(tmp_path) is None
