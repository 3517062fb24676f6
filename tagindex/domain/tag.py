"""
Tag domain objects for tagindex.

TagDocument is the transient result of parsing one file at one revision.
Tag is the persisted entity as read back from the database, with its
aliases, categories, contributors and meta attached.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, List, Dict, Any

from .repository import Repository


@dataclass(frozen=True)
class Author:
    """A contributor, unique by (name, contact)."""
    name: str
    contact: str

    def __str__(self) -> str:
        return f"{self.name} <{self.contact}>"


@dataclass(frozen=True)
class Authorship:
    """Who touched a document and when."""
    author: Author
    when: datetime


@dataclass(frozen=True)
class TagDocument:
    """
    Structured content of a tag document.

    Absent list fields are empty tuples, never None.

    Attributes:
        id: Repository-scoped document id
        tag: Display name
        alias: Alternate names, duplicates collapsed, order kept
        category: Category names, order kept
        image: Optional image URL
        content: Body text after the front matter
    """
    id: str
    tag: str
    alias: Tuple[str, ...] = ()
    category: Tuple[str, ...] = ()
    image: Optional[str] = None
    content: str = ""


@dataclass(frozen=True)
class TagMeta:
    """Image plus creation and modification info of a persisted tag."""
    image: Optional[str]
    created: datetime
    created_by: Author
    modified: datetime
    modified_by: Author


@dataclass(frozen=True)
class Tag:
    """A persisted tag."""
    id: int
    repository: Repository
    document_id: str
    name: str
    content: str
    aliases: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    authors: Tuple[Author, ...] = ()
    meta: Optional[TagMeta] = None
    path: Optional[str] = None

    def pages(self) -> List[str]:
        """Content split at page-break markers."""
        from ..document import split_content
        return split_content(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'repository': self.repository.identifier,
            'document_id': self.document_id,
            'path': self.path,
            'name': self.name,
            'content': self.content,
            'aliases': list(self.aliases),
            'categories': list(self.categories),
            'authors': [{'name': a.name, 'contact': a.contact} for a in self.authors],
            'image': self.meta.image if self.meta else None,
            'created': self.meta.created.isoformat() if self.meta else None,
            'modified': self.meta.modified.isoformat() if self.meta else None,
        }


@dataclass(frozen=True)
class RankedTag:
    """One row of a usage ranking page."""
    rank: int
    name: str
    views: int

    def __str__(self) -> str:
        return f"{self.rank}. {self.name} - {self.views}"


@dataclass(frozen=True)
class CompletedTag:
    """An autocomplete suggestion. ``name`` may be qualified with the repository."""
    id: int
    name: str
