"""
Tag document parsing for tagindex.

A tag document is a text file with a YAML front matter block followed by
the tag body:

    ---
    id: greeting
    tag: hello
    alias: [hi, hey]
    category: [general]
    image: https://example.com/wave.png
    ---
    Hello there!
    <new_page>
    Second page.

The front matter opens on the first line and closes on the next line that
consists of exactly three hyphens. ``id`` and ``tag`` are required.

Also parses ``tagindex.yaml``, the optional repository descriptor.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .domain.repository import RepositoryDescriptor
from .domain.tag import TagDocument
from .errors import MalformedTagDocument

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIMITER = "---"
PAGE_MARKER = "<new_page>"
DESCRIPTOR_FILE = "tagindex.yaml"
DEFAULT_TAG_DIRECTORY = "tags"


def parse_document(text: str) -> TagDocument:
    """
    Parse a tag document.

    Args:
        text: Raw file content

    Returns:
        TagDocument with normalized fields

    Raises:
        MalformedTagDocument: front matter missing, unreadable, or lacking
            a required field
    """
    front_matter, body = split_front_matter(text)
    data = _load_front_matter(front_matter)

    doc_id = _required_scalar(data, 'id')
    name = _required_scalar(data, 'tag')

    aliases = [a for a in _dedupe(_scalar_list(data, 'alias')) if a != name]
    categories = _dedupe(_scalar_list(data, 'category'), key=str.lower)

    image = data.get('image')
    if image is not None:
        if isinstance(image, (list, dict)):
            raise MalformedTagDocument('image', "Field 'image' must be a single URL")
        image = str(image).strip() or None

    return TagDocument(
        id=doc_id,
        tag=name,
        alias=tuple(aliases),
        category=tuple(categories),
        image=image,
        content=body,
    )


def split_front_matter(text: str) -> Tuple[Optional[str], str]:
    """
    Separate the front matter block from the body.

    Returns:
        (front_matter, body). front_matter is None when the text does not
        start with a delimiter line or the block is never closed; the body
        is then the whole text. The body is stripped of surrounding
        whitespace and never contains the delimiter lines.
    """
    lines = text.lstrip('\ufeff').splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return None, text.strip()

    for index in range(1, len(lines)):
        if lines[index].strip() == FRONT_MATTER_DELIMITER:
            front = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1:])
            return front, body.strip()

    return None, text.strip()


def split_content(body: str, marker: str = PAGE_MARKER) -> List[str]:
    """
    Split a tag body into pages at the page-break marker.

    Each page is trimmed and empty pages are dropped, so pages never
    contain the marker and are never empty. A body without markers is a
    single page; a blank body has no pages.
    """
    return [page.strip() for page in body.split(marker) if page.strip()]


def parse_descriptor(text: Optional[str]) -> RepositoryDescriptor:
    """
    Parse the repository descriptor.

    Unreadable descriptors are logged and replaced by defaults so a broken
    descriptor never blocks tag synchronization.
    """
    if not text:
        return RepositoryDescriptor()

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning(f"Invalid {DESCRIPTOR_FILE}, using defaults: {e}")
        return RepositoryDescriptor()

    if not isinstance(data, dict):
        logger.warning(f"{DESCRIPTOR_FILE} is not a mapping, using defaults")
        return RepositoryDescriptor()

    directory = str(data.get('directory') or DEFAULT_TAG_DIRECTORY).strip('/') or DEFAULT_TAG_DIRECTORY

    try:
        categories = _dedupe(_scalar_list(data, 'category'), key=str.lower)
    except MalformedTagDocument as e:
        logger.warning(f"Ignoring categories in {DESCRIPTOR_FILE}: {e}")
        categories = []

    return RepositoryDescriptor(
        name=_optional_str(data.get('name')),
        description=_optional_str(data.get('description')),
        categories=tuple(categories),
        public=bool(data.get('public', False)),
        language=_optional_str(data.get('language')),
        directory=directory,
    )


def _load_front_matter(front_matter: Optional[str]) -> Dict[str, Any]:
    if front_matter is None:
        raise MalformedTagDocument('id', "Document has no front matter block")
    try:
        data = yaml.safe_load(front_matter)
    except yaml.YAMLError as e:
        raise MalformedTagDocument('front matter', f"Invalid front matter: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedTagDocument('front matter', "Front matter must be a mapping")
    return data


def _required_scalar(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if value is None or isinstance(value, (list, dict)):
        raise MalformedTagDocument(field)
    value = str(value).strip()
    if not value:
        raise MalformedTagDocument(field)
    return value


def _scalar_list(data: Dict[str, Any], field: str) -> List[str]:
    """Read a scalar-or-list field. Absent means empty."""
    value = data.get(field)
    if value is None:
        return []
    if isinstance(value, dict):
        raise MalformedTagDocument(field, f"Field '{field}' must be a list of values")
    if not isinstance(value, list):
        value = [value]

    result = []
    for item in value:
        if item is None:
            continue
        if isinstance(item, (list, dict)):
            raise MalformedTagDocument(field, f"Field '{field}' must be a list of values")
        item = str(item).strip()
        if item:
            result.append(item)
    return result


def _dedupe(values: List[str], key=None) -> List[str]:
    """Drop duplicates, keeping the first occurrence."""
    seen = set()
    result = []
    for value in values:
        marker = key(value) if key else value
        if marker in seen:
            continue
        seen.add(marker)
        result.append(value)
    return result


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None
