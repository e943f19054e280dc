"""
Publishes the snapshot and URL files by committing and pushing them with git.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence

from ..errors import SyncError

SyncCallback = Callable[[], Awaitable[None]]


class GitSync:
    """
    Callable sync step: git pull, add, commit, push.

    Only the push result decides success. Pull and commit may legitimately
    fail (offline remote, nothing to commit) and are logged as warnings.
    """

    def __init__(self, repo_path: str, paths: Sequence[str], commit_message: str,
                 git_binary: str = "git"):
        self.repo_path = repo_path
        self.paths: List[str] = list(paths)
        self.commit_message = commit_message
        self.git_binary = git_binary
        self.logger = logging.getLogger(__name__)

    async def __call__(self):
        self.logger.info("Committing and pushing updates to git...")

        for args in (["pull"], ["add", "--", *self.paths], ["commit", "-m", self.commit_message]):
            exit_code = await self._run(args)
            if exit_code != 0:
                self.logger.warning(f"git {args[0]} exited with code {exit_code}")

        exit_code = await self._run(["push"])
        if exit_code != 0:
            raise SyncError(f"git push failed (exit code {exit_code})")

        self.logger.info("Successfully pushed to remote repository")

    async def _run(self, args: List[str]) -> int:
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_binary, *args,
                cwd=self.repo_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            output, _ = await process.communicate()
        except OSError as e:
            raise SyncError(f"Could not run git {args[0]}: {e}")

        if output:
            self.logger.debug(f"git {args[0]}: {output.decode('utf-8', errors='replace').strip()}")
        return process.returncode
