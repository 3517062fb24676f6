"""
Derives authorship metadata for a tag document from its commit history.
"""

from dataclasses import dataclass
from typing import FrozenSet, Sequence

from .domain.tag import Author, Authorship
from .infra.git_client import GitCommit


@dataclass(frozen=True)
class FileHistory:
    """Creation, last modification and contributors of one file."""
    created: Authorship
    modified: Authorship
    contributors: FrozenSet[Author]


def authorship(commit: GitCommit) -> Authorship:
    return Authorship(author=Author(commit.author, commit.email), when=commit.date)


def resolve_history(commits: Sequence[GitCommit], current: GitCommit) -> FileHistory:
    """
    Resolve a file history.

    Args:
        commits: Commits touching the file, oldest first
        current: The commit being synced, used when no history is visible

    Returns:
        FileHistory where ``created`` comes from the oldest commit,
        ``modified`` from the newest and contributors are deduplicated
        by exact (name, contact).
    """
    if not commits:
        commits = [current]

    return FileHistory(
        created=authorship(commits[0]),
        modified=authorship(commits[-1]),
        contributors=frozenset(Author(c.author, c.email) for c in commits),
    )
