"""
Thin wrapper around the ``git`` command line for the few transport
operations dependency fetching needs.
"""
import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..errors import SourceFetchError

logger = logging.getLogger(__name__)


class GitClient:
    """
    Runs git commands and turns failures into SourceFetchError.
    """
    def __init__(self, executable: str = "git", timeout: int = 300):
        self.executable = executable
        self.timeout = timeout

    def run(self, *args: str, cwd: Optional[Union[str, Path]] = None) -> str:
        """
        Runs a git command and returns its stripped stdout.

        Args:
            *args: Arguments after ``git``.
            cwd: Directory to run in.

        Returns:
            str: The command's standard output.
        """
        command = args[0] if args else ""
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                [self.executable, *args],
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise SourceFetchError(command, str(e), -1) from e

        if result.returncode != 0:
            raise SourceFetchError(command, result.stderr.strip(), result.returncode)
        return result.stdout.strip()

    def ls_remote(self, repository: str) -> List[Tuple[str, str]]:
        """
        Lists the refs a remote advertises.

        Returns:
            List[Tuple[str, str]]: ``(ref name, commit sha)`` pairs in remote order.
        """
        output = self.run("ls-remote", repository)
        refs = []
        for line in output.splitlines():
            if '\t' not in line:
                continue
            sha, name = line.split('\t', 1)
            refs.append((name.strip(), sha.strip()))
        return refs

    def clone(self, repository: str, branch: str, directory: Path) -> None:
        directory.parent.mkdir(parents=True, exist_ok=True)
        self.run("clone", "--branch", branch, "--single-branch", repository, str(directory))

    def pull(self, directory: Path) -> None:
        self.run("pull", "--ff-only", cwd=directory)

    def fetch_tag(self, directory: Path, tag: str) -> None:
        self.run("fetch", "--force", "origin", f"refs/tags/{tag}:refs/tags/{tag}", cwd=directory)
        self.run("checkout", "--quiet", f"refs/tags/{tag}", cwd=directory)

    def head(self, directory: Path) -> str:
        return self.run("rev-parse", "HEAD", cwd=directory)
