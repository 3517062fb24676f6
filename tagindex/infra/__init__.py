"""
Infrastructure layer for tagindex.

Contains abstractions for external systems:
- GitClient: Git command execution against tag source repositories

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient, GitCommit, GitDiff

__all__ = [
    'GitClient',
    'GitCommit',
    'GitDiff',
]
