import asyncio
from dataclasses import dataclass
import logging
import os
import tempfile
from typing import Mapping, Optional, Sequence, Tuple

from run_ci.exceptions import ExecutionError, ProcessError

logger = logging.getLogger("run_ci")

FETCHED_REF = "refs/run-ci/head"


@dataclass(frozen=True)
class ProcessResult:
    argv: Tuple[str, ...]
    returncode: int
    output: str


class Executor:
    """Runs external processes, capturing stdout and stderr together."""

    env: Mapping[str, str]

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        if env is None:
            env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        self.env = env

    async def run(
        self, argv: Sequence[str], cwd: str, timeout: Optional[float] = None
    ) -> ProcessResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=dict(self.env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ProcessError(f"{argv[0]} could not be started: {e}", argv=argv) from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise ProcessError(f"timed out after {timeout:.0f}s", argv=argv)
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        return ProcessResult(
            argv=tuple(argv),
            returncode=proc.returncode,
            output=stdout.decode(errors="replace"),
        )

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()


class Git:
    """
    Pushes an empty commit onto a pull request's head branch.

    Every trigger works in its own temporary clone, which is removed on every
    exit path. The lock makes the clone-commit-push sequence a critical
    section, so two triggers never interleave even if callers run
    concurrently.
    """

    user_name: str
    user_email: str
    executor: Executor
    timeout: Optional[float]

    def __init__(
        self,
        *,
        user_name: str,
        user_email: str,
        executor: Executor,
        token: str,
        timeout: Optional[float] = None,
        host: str = "github.com",
    ):
        self.user_name = user_name
        self.user_email = user_email
        self.executor = executor
        self.timeout = timeout
        self.host = host
        self._token = token
        self._lock = asyncio.Lock()

    def remote_url(self, repo_full_name: str) -> str:
        return f"https://x-access-token:{self._token}@{self.host}/{repo_full_name}.git"

    def redact(self, text: str) -> str:
        if not self._token:
            return text
        return text.replace(self._token, "***")

    async def _step(self, step: str, args: Sequence[str], cwd: str) -> str:
        argv = ["git", *args]
        shown = tuple(self.redact(a) for a in argv)
        logger.debug("git %s: %s", step, " ".join(shown))
        try:
            result = await self.executor.run(argv, cwd=cwd, timeout=self.timeout)
        except ProcessError as e:
            raise ExecutionError(
                f"git {step} failed",
                step=step,
                argv=shown,
                output=self.redact(str(e)),
            ) from e

        if result.returncode != 0:
            raise ExecutionError(
                f"git {step} failed with exit code {result.returncode}",
                step=step,
                argv=shown,
                returncode=result.returncode,
                output=self.redact(result.output),
            )
        return result.output

    async def trigger(self, repo_full_name: str, head_ref: str, message: str) -> str:
        """
        Create an empty commit on ``head_ref`` of ``repo_full_name`` and push
        it. Returns the SHA of the new commit.
        """
        url = self.remote_url(repo_full_name)
        async with self._lock:
            with tempfile.TemporaryDirectory(prefix="run-ci-") as workdir:
                await self._step("init", ["init", "--quiet"], workdir)
                await self._step(
                    "fetch",
                    [
                        "fetch",
                        "--quiet",
                        "--no-tags",
                        "--depth",
                        "1",
                        url,
                        f"+refs/heads/{head_ref}:{FETCHED_REF}",
                    ],
                    workdir,
                )
                await self._step(
                    "checkout", ["checkout", "--quiet", "--detach", FETCHED_REF], workdir
                )
                await self._step(
                    "commit",
                    [
                        "-c",
                        f"user.name={self.user_name}",
                        "-c",
                        f"user.email={self.user_email}",
                        "-c",
                        "commit.gpgsign=false",
                        "commit",
                        "--quiet",
                        "--allow-empty",
                        "--no-verify",
                        "-m",
                        message,
                    ],
                    workdir,
                )
                sha = (await self._step("rev-parse", ["rev-parse", "HEAD"], workdir)).strip()
                await self._step(
                    "push",
                    ["push", "--quiet", url, f"HEAD:refs/heads/{head_ref}"],
                    workdir,
                )
        logger.info("Pushed empty commit %s to %s:%s", sha, repo_full_name, head_ref)
        return sha
