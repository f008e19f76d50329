from datetime import datetime
from typing import List, Literal, Optional

import pydantic
from typing_extensions import Annotated


class Model(pydantic.BaseModel):
    pass


def validate_commit_sha(sha: str) -> str:
    if len(sha) != 40:
        raise ValueError("Commit hash must have length 40")
    return sha


CommitSha = Annotated[str, pydantic.AfterValidator(validate_commit_sha)]


class Repository(Model):
    id: int
    name: str
    full_name: Optional[str] = None
    url: Optional[str] = None
    html_url: Optional[str] = None
    clone_url: Optional[str] = None
    private: Optional[bool] = None
    fork: bool = False


class User(Model):
    login: str


class Label(Model):
    name: str


class PrConnection(Model):
    ref: str
    sha: CommitSha
    label: Optional[str] = None
    repo: Optional[Repository] = None


class PullRequest(Model):
    number: int
    title: str = ""
    body: Optional[str] = None
    state: Literal["open", "closed"] = "open"
    draft: bool = False
    user: Optional[User] = None
    labels: List[Label] = pydantic.Field(default_factory=list)
    base: PrConnection
    head: PrConnection
    html_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __str__(self) -> str:
        name = ""
        if self.base.repo is not None and self.base.repo.full_name is not None:
            name = self.base.repo.full_name
        return f"PR({name}#{self.number})"


class Commit(Model):
    sha: CommitSha


class Branch(Model):
    name: str
    commit: Commit
    protected: Optional[bool] = None


class Comparison(Model):
    status: Literal["diverged", "ahead", "behind", "identical"]
    ahead_by: int = 0
    behind_by: int = 0
    base_commit: Commit
    merge_base_commit: Commit
