"""Tests for authorship resolution."""

from datetime import datetime

from tagindex.domain.tag import Author
from tagindex.history import resolve_history
from tagindex.infra.git_client import GitCommit


def _commit(n, name="Alice", email="alice@example.com"):
    return GitCommit(hash=f"{n:040d}", date=datetime(2024, 1, n), author=name, email=email)


class TestResolveHistory:

    def test_created_and_modified(self):
        """Test created is the oldest commit and modified the newest."""
        history = resolve_history(
            [_commit(1), _commit(2, "Bob", "bob@example.com"), _commit(3, "Carol", "carol@example.com")],
            _commit(9),
        )
        assert history.created.author == Author("Alice", "alice@example.com")
        assert history.created.when == datetime(2024, 1, 1)
        assert history.modified.author == Author("Carol", "carol@example.com")
        assert history.modified.when == datetime(2024, 1, 3)

    def test_contributors_deduplicated(self):
        """Test each (name, contact) pair counts once."""
        history = resolve_history([_commit(1), _commit(2), _commit(3, "Bob", "bob@example.com")], _commit(9))
        assert history.contributors == frozenset({
            Author("Alice", "alice@example.com"),
            Author("Bob", "bob@example.com"),
        })

    def test_same_name_other_contact_is_distinct(self):
        """Test authors are matched exactly, not by name alone."""
        history = resolve_history([_commit(1), _commit(2, "Alice", "alice@work.example")], _commit(9))
        assert len(history.contributors) == 2

    def test_empty_history_uses_current_commit(self):
        """Test a file with no visible history is attributed to the synced commit."""
        current = _commit(9, "Bot", "bot@example.com")
        history = resolve_history([], current)
        assert history.created.author == Author("Bot", "bot@example.com")
        assert history.modified == history.created
        assert history.contributors == frozenset({Author("Bot", "bot@example.com")})
