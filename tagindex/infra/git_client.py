"""
Git client infrastructure for tagindex.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Isolated from business logic

Only fetch and checkout modify the working copy. Everything else reads
from the object database at an explicit revision.
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set, Tuple

from ..errors import FileMissing, RepositoryCorrupt, SourceUnavailable
from ..utils import to_utc, utcnow

logger = logging.getLogger(__name__)

# Unit separator, safe inside names and commit subjects
_SEP = "\x1f"


@dataclass
class GitCommit:
    """A git commit with metadata."""
    hash: str
    date: datetime
    author: str
    email: str
    message: str = ""


@dataclass
class GitDiff:
    """Paths changed between two revisions. The three sets are disjoint."""
    added: Set[str] = field(default_factory=set)
    modified: Set[str] = field(default_factory=set)
    removed: Set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)


class GitClient:
    """
    Abstraction over git commands.

    Example:
        client = GitClient(timeout=60)
        client.open("https://github.com/user/tags.git", "/var/lib/tags/user_tags")
        client.fetch("/var/lib/tags/user_tags")
        head = client.head_revision("/var/lib/tags/user_tags")
    """

    def __init__(self, timeout: int = 30):
        """
        Initialize GitClient.

        Args:
            timeout: Timeout in seconds for network commands (clone, fetch)
        """
        self.timeout = timeout

    def _run(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        timeout: Optional[int] = None,
        strip: bool = True,
    ) -> Tuple[Optional[str], int, str]:
        """
        Run a git command.

        Args:
            args: Arguments after ``git``
            cwd: Working directory
            timeout: Override for the client timeout
            strip: Strip surrounding whitespace from stdout

        Returns:
            Tuple of (stdout, returncode, stderr)

        Raises:
            SourceUnavailable: the command timed out or git is not runnable
        """
        cmd = ["git", *args]
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0", LC_ALL="C")
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout or self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Git command timed out: {' '.join(cmd)}")
            raise SourceUnavailable(f"git {args[0]} timed out after {timeout or self.timeout}s") from e
        except OSError as e:
            logger.error(f"Git command failed: {' '.join(cmd)} - {e}")
            raise SourceUnavailable(f"git is not available: {e}") from e

        output = result.stdout
        if strip and output:
            output = output.strip()
        return output if output else None, result.returncode, (result.stderr or "").strip()

    def is_git_repo(self, path: str) -> bool:
        """Check if path is a git repository."""
        return (Path(path) / ".git").exists()

    def clone(self, url: str, path: str) -> None:
        """
        Clone a remote repository.

        Raises:
            SourceUnavailable: network or authentication failure
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {url} into {path}")
        _, code, err = self._run(["clone", "--quiet", url, path])
        if code != 0:
            raise SourceUnavailable(f"Could not clone {url}: {err}")

    def open(self, url: str, path: str) -> None:
        """
        Clone if absent, else validate the existing working copy.

        Raises:
            SourceUnavailable: clone failed
            RepositoryCorrupt: the local copy is unreadable; remove and clone again
        """
        if not Path(path).exists():
            self.clone(url, path)
            return

        if not self.is_git_repo(path):
            raise RepositoryCorrupt(f"{path} exists but is not a git repository", path)

        _, code, err = self._run(["rev-parse", "--git-dir"], cwd=path)
        if code != 0:
            raise RepositoryCorrupt(f"Working copy at {path} is unreadable: {err}", path)

        current = self.remote_url(path)
        if current != url:
            logger.info(f"Remote of {path} changed from {current} to {url}")
            _, code, err = self._run(["remote", "set-url", "origin", url], cwd=path)
            if code != 0:
                raise RepositoryCorrupt(f"Could not update remote of {path}: {err}", path)

    def remote_url(self, path: str, remote: str = "origin") -> Optional[str]:
        """
        Get remote URL.

        Returns:
            Remote URL or None if not found
        """
        output, code, _ = self._run(["config", "--get", f"remote.{remote}.url"], cwd=path)
        if code == 0 and output:
            return output
        return None

    def fetch(self, path: str, remote: str = "origin") -> None:
        """
        Fetch from remote.

        Raises:
            SourceUnavailable: network/auth failure or timeout
        """
        _, code, err = self._run(["fetch", "--quiet", "--prune", remote], cwd=path)
        if code != 0:
            raise SourceUnavailable(f"Fetch from {remote} failed: {err}")

    def head_revision(self, path: str, remote: str = "origin") -> str:
        """
        Revision of the remote default branch as of the last fetch.

        Raises:
            RepositoryCorrupt: the remote head cannot be resolved
        """
        ref = f"refs/remotes/{remote}/HEAD^{{commit}}"
        output, code, _ = self._run(["rev-parse", "--verify", "--quiet", ref], cwd=path)
        if code != 0 or not output:
            # origin/HEAD is only set on clone; recover it from the remote
            self._run(["remote", "set-head", remote, "--auto"], cwd=path)
            output, code, _ = self._run(["rev-parse", "--verify", "--quiet", ref], cwd=path)
        if code != 0 or not output:
            raise RepositoryCorrupt(f"Cannot resolve {remote}/HEAD in {path}", path)
        return output

    def has_revision(self, path: str, revision: str) -> bool:
        """Check whether a commit exists in the local object database."""
        _, code, _ = self._run(["cat-file", "-e", f"{revision}^{{commit}}"], cwd=path)
        return code == 0

    def checkout(self, path: str, revision: str) -> None:
        """
        Check out a revision (detached).

        Raises:
            RepositoryCorrupt: checkout failed
        """
        _, code, err = self._run(["checkout", "--quiet", "--force", "--detach", revision], cwd=path)
        if code != 0:
            raise RepositoryCorrupt(f"Checkout of {revision} failed: {err}", path)

    def commit(self, path: str, revision: str) -> GitCommit:
        """Metadata of a single commit."""
        output, code, err = self._run(
            ["show", "-s", f"--format=%H{_SEP}%aI{_SEP}%an{_SEP}%ae{_SEP}%s", revision],
            cwd=path,
        )
        if code != 0 or not output:
            raise RepositoryCorrupt(f"Cannot read commit {revision}: {err}", path)
        return self._parse_commit(output)

    def list_files(self, path: str, revision: str, subpath: str = "") -> Set[str]:
        """All file paths under ``subpath`` at a revision."""
        args = ["ls-tree", "-r", "-z", "--name-only", revision]
        if subpath:
            args += ["--", subpath]
        output, code, err = self._run(args, cwd=path, strip=False)
        if code != 0:
            raise RepositoryCorrupt(f"Cannot list files at {revision}: {err}", path)
        return {p for p in (output or "").split("\0") if p}

    def diff(
        self,
        path: str,
        from_revision: Optional[str],
        to_revision: str,
        subpath: str = "",
    ) -> GitDiff:
        """
        Paths added, modified and removed between two revisions.

        Renames are reported as a removal plus an addition. Without a
        ``from_revision`` every file at ``to_revision`` counts as added.

        Args:
            path: Working copy
            from_revision: Older revision or None
            to_revision: Newer revision
            subpath: Restrict to this directory

        Returns:
            GitDiff with repository-relative paths
        """
        if from_revision is None:
            return GitDiff(added=self.list_files(path, to_revision, subpath))

        args = ["diff", "--name-status", "--no-renames", "-z", from_revision, to_revision]
        if subpath:
            args += ["--", subpath]
        output, code, err = self._run(args, cwd=path, strip=False)
        if code != 0:
            raise RepositoryCorrupt(f"Diff {from_revision}..{to_revision} failed: {err}", path)

        result = GitDiff()
        tokens = [t for t in (output or "").split("\0") if t]
        for status, file_path in zip(tokens[0::2], tokens[1::2]):
            kind = status[:1]
            if kind == "A":
                result.added.add(file_path)
            elif kind == "D":
                result.removed.add(file_path)
            else:
                # M, T (type change) and anything exotic
                result.modified.add(file_path)
        return result

    def read_file(self, path: str, revision: str, file_path: str) -> str:
        """
        Content of a file at a revision.

        Raises:
            FileMissing: the file does not exist at that revision
        """
        output, code, _ = self._run(["show", f"{revision}:{file_path}"], cwd=path, strip=False)
        if code != 0:
            raise FileMissing(file_path, revision)
        return output or ""

    def history(self, path: str, file_path: str, revision: str = "HEAD") -> List[GitCommit]:
        """
        Commits touching a file up to ``revision``, oldest first.

        Returns:
            List of GitCommit, empty if the file has no history
        """
        output, code, _ = self._run(
            ["log", "--reverse", f"--format=%H{_SEP}%aI{_SEP}%an{_SEP}%ae{_SEP}%s", revision, "--", file_path],
            cwd=path,
        )
        if code != 0 or not output:
            return []

        commits = []
        for line in output.split("\n"):
            if _SEP not in line:
                continue
            commits.append(self._parse_commit(line))
        return commits

    def _parse_commit(self, line: str) -> GitCommit:
        parts = line.split(_SEP, 4)
        while len(parts) < 5:
            parts.append("")
        commit_hash, date_str, author, email, message = (p.strip() for p in parts)

        try:
            date = to_utc(datetime.fromisoformat(date_str.replace('Z', '+00:00')))
        except (ValueError, AttributeError):
            date = utcnow()

        return GitCommit(
            hash=commit_hash,
            date=date,
            author=author,
            email=email,
            message=message,
        )
