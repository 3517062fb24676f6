"""
Repository identifier for tagindex.

Identifiers name a tag source independently of its clone URL:
    github:user/repo
    gitlab:group/repo/sub/dir

The optional path points at a sub-directory holding the tag repository,
which allows several catalogs to live in one git repository.
"""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Identifier:
    """
    Parsed repository identifier.

    Attributes:
        platform: Hosting platform, always lower case (e.g. "github")
        user: Owner of the repository
        repo: Repository name
        path: Optional sub-directory, without leading slash
    """

    platform: str
    user: str
    repo: str
    path: Optional[str] = None

    @classmethod
    def of(cls, platform: str, user: str, repo: str, path: Optional[str] = None) -> 'Identifier':
        """Build an identifier, normalizing platform case and path slashes."""
        if path is not None:
            path = path.lstrip('/').rstrip('/') or None
        return cls(platform=platform.lower(), user=user, repo=repo, path=path)

    @classmethod
    def parse(cls, identifier: str) -> Optional['Identifier']:
        """
        Parse an identifier string.

        Examples:
            Identifier.parse("github:user/repo")          -> path=None
            Identifier.parse("GitHub:user/repo/tags/de")  -> path="tags/de"
            Identifier.parse("user/repo")                 -> None

        Returns:
            Identifier or None if the string is malformed
        """
        parts = re.split(r'[:/]', identifier.strip(), maxsplit=3)
        if len(parts) < 3 or not all(parts[:3]):
            return None
        if ':' not in identifier:
            return None
        path = parts[3] if len(parts) == 4 else None
        return cls.of(parts[0], parts[1], parts[2], path)

    @property
    def name(self) -> str:
        """Short "user/repo" name."""
        return f"{self.user}/{self.repo}"

    def directory_name(self) -> str:
        """Filesystem-safe name for the working copy of this identifier."""
        name = f"{self.platform}_{self.user}_{self.repo}"
        if self.path:
            name += "_" + re.sub(r'[^A-Za-z0-9._-]', '_', self.path)
        return name

    def __str__(self) -> str:
        if self.path:
            return f"{self.platform}:{self.user}/{self.repo}/{self.path}"
        return f"{self.platform}:{self.user}/{self.repo}"
