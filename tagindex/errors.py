"""
Error taxonomy for tagindex.

Every failure the ingestion engine can report is one of these types.
Each carries an exit code so the CLI can map it without string matching,
and an ``error_type`` slug used when the failure is persisted to the
``sync_errors`` table.
"""

from typing import Optional

from .exit_codes import (
    CommandError,
    DATA_ERROR,
    GENERAL_ERROR,
    SOURCE_ERROR,
    STORAGE_ERROR,
    UNKNOWN_REPOSITORY,
)


class TagIndexError(CommandError):
    """Base class for all tagindex errors."""

    error_type = 'error'

    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message, exit_code)


class SourceUnavailable(TagIndexError):
    """Network, auth or timeout failure talking to the remote. Retryable."""

    error_type = 'source_unavailable'

    def __init__(self, message: str):
        super().__init__(message, SOURCE_ERROR)


class RepositoryCorrupt(TagIndexError):
    """The local working copy is unusable and must be cloned again."""

    error_type = 'repository_corrupt'

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, SOURCE_ERROR)
        self.path = path


class MalformedTagDocument(TagIndexError):
    """A tag document is missing a required front matter field."""

    error_type = 'malformed_document'

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Missing required field '{field}'", DATA_ERROR)
        self.field = field


class FileMissing(TagIndexError):
    """A path vanished between listing and reading."""

    error_type = 'file_missing'

    def __init__(self, path: str, revision: Optional[str] = None):
        where = f" at {revision}" if revision else ""
        super().__init__(f"File not found: {path}{where}", DATA_ERROR)
        self.path = path
        self.revision = revision


class DuplicateTagName(TagIndexError):
    """Two documents of one repository claim the same tag name."""

    error_type = 'duplicate_tag_name'

    def __init__(self, name: str, document_id: Optional[str] = None):
        super().__init__(f"Tag name '{name}' is already used in this repository", DATA_ERROR)
        self.name = name
        self.document_id = document_id


class StorageError(TagIndexError):
    """The database rejected a write. The whole batch was rolled back."""

    error_type = 'storage_error'

    def __init__(self, message: str):
        super().__init__(message, STORAGE_ERROR)


class UnknownRepository(TagIndexError):
    """No repository is registered under the given identifier or id."""

    error_type = 'unknown_repository'

    def __init__(self, identifier: str):
        super().__init__(f"Unknown repository: {identifier}", UNKNOWN_REPOSITORY)
        self.identifier = identifier


class InvalidIdentifier(TagIndexError):
    """An identifier could not be parsed or has no configured location."""

    error_type = 'invalid_identifier'

    def __init__(self, message: str):
        super().__init__(message, DATA_ERROR)
