"""
Pytest configuration and shared fixtures.

Provides throwaway git repositories acting as tag sources, an isolated
database and configuration, and a controllable clock.
"""

import logging
import os
import subprocess
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Tuple

import pytest

from tagindex.config import get_default_config, merge_configs
from tagindex.database.reconcile import ParsedDocument
from tagindex.domain.tag import TagDocument
from tagindex.history import FileHistory, resolve_history
from tagindex.infra.git_client import GitCommit

ALICE = ("Alice", "alice@example.com")
BOB = ("Bob", "bob@example.com")


def make_document(
    doc_id: str,
    tag: str,
    body: str = "Some content",
    alias: Iterable[str] = (),
    category: Iterable[str] = (),
    image: Optional[str] = None,
) -> str:
    """Render a tag document with front matter."""
    lines = ["---", f"id: {doc_id}", f"tag: {tag}"]
    if alias:
        lines.append(f"alias: [{', '.join(alias)}]")
    if category:
        lines.append(f"category: [{', '.join(category)}]")
    if image:
        lines.append(f"image: {image}")
    lines.append("---")
    lines.append(body)
    return "\n".join(lines) + "\n"


def make_history(
    author: Tuple[str, str] = ALICE,
    when: datetime = datetime(2024, 1, 1, 12, 0, 0),
) -> FileHistory:
    """History of a file with a single commit."""
    commit = GitCommit(hash="0" * 40, date=when, author=author[0], email=author[1])
    return resolve_history([commit], commit)


def make_parsed(doc_id: str, name: str, path: Optional[str] = None,
                history: Optional[FileHistory] = None, **fields) -> ParsedDocument:
    """A parsed document ready for reconcile()."""
    content = fields.pop('content', f"{name} content")
    return ParsedDocument(
        path=path or f"tags/{doc_id}.md",
        document=TagDocument(id=doc_id, tag=name, content=content, **fields),
        history=history or make_history(),
    )


class SourceRepo:
    """A local git repository standing in for a remote tag source."""

    def __init__(self, path: Path):
        self.path = path
        self.path.mkdir(parents=True)
        self.git("init", "-q")
        self._tick = 0

    @property
    def url(self) -> str:
        return str(self.path)

    def git(self, *args: str, env: Optional[dict] = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=True,
            env={**os.environ, **(env or {})},
        )
        return result.stdout.strip()

    def write(self, file_path: str, content: str) -> None:
        target = self.path / file_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)

    def remove(self, file_path: str) -> None:
        self.git("rm", "-q", file_path)

    def commit(self, message: str = "update", author: Tuple[str, str] = ALICE) -> str:
        """Commit everything; each commit is one hour after the previous one."""
        self._tick += 1
        stamp = (datetime(2024, 1, 1, 12, 0, 0) + timedelta(hours=self._tick)).strftime("%Y-%m-%dT%H:%M:%S+00:00")
        env = {
            "GIT_AUTHOR_NAME": author[0],
            "GIT_AUTHOR_EMAIL": author[1],
            "GIT_AUTHOR_DATE": stamp,
            "GIT_COMMITTER_NAME": author[0],
            "GIT_COMMITTER_EMAIL": author[1],
            "GIT_COMMITTER_DATE": stamp,
        }
        self.git("add", "-A")
        self.git("-c", "commit.gpgsign=false", "commit", "-q", "--allow-empty", "-m", message, env=env)
        return self.head()

    def head(self) -> str:
        return self.git("rev-parse", "HEAD")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = datetime(2025, 6, 1, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep user configuration and TAGINDEX_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("TAGINDEX_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("TAGINDEX_CONFIG", str(tmp_path / "missing-config.json"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    yield
    tagindex_logger = logging.getLogger("tagindex")
    tagindex_logger.handlers[:] = []
    tagindex_logger.propagate = True
    tagindex_logger.setLevel(logging.NOTSET)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "index.db"


@pytest.fixture
def config(tmp_path, db_path):
    return merge_configs(get_default_config(), {
        "database": {"path": str(db_path)},
        "repositories": {
            "directory": str(tmp_path / "repos"),
            "min_check_minutes": 10,
            "check_interval_minutes": 60,
            "fetch_timeout_seconds": 30,
            "workers": 2,
        },
    })


@pytest.fixture
def source_repo(tmp_path):
    return SourceRepo(tmp_path / "remote")


@pytest.fixture
def clock():
    return FakeClock()
