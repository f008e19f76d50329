from typing import Optional

import pydantic


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        extra="forbid", frozen=True, populate_by_name=True
    )


class GitCommand(Model):
    user_name: Optional[str] = pydantic.Field(None, alias="user-name")
    user_email: Optional[str] = pydantic.Field(None, alias="user-email")


class Config(Model):
    owner: Optional[str] = None
    repo: Optional[str] = None
    github_token: Optional[str] = pydantic.Field(
        None, alias="github-token", repr=False
    )

    base: Optional[str] = None
    all: bool = False

    expr: Optional[str] = None
    empty_commit_msg: Optional[str] = pydantic.Field(None, alias="empty-commit-msg")
    log_level: Optional[str] = pydantic.Field(None, alias="log-level")
    git_command: GitCommand = pydantic.Field(
        default_factory=GitCommand, alias="git-command"
    )

    api_timeout: float = pydantic.Field(30.0, alias="api-timeout", gt=0)
    git_timeout: float = pydantic.Field(120.0, alias="git-timeout", gt=0)
    listing_retries: int = pydantic.Field(5, alias="listing-retries", ge=1)

    dry_run: bool = pydantic.Field(False, alias="dry-run")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"
