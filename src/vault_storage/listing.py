"""Parsing of blob store listing documents."""

import codecs
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .exceptions import ProtocolError
from .request_builder import is_root


@dataclass(frozen=True)
class ListEntry:
    """One listed container or blob."""

    path: str
    name: str
    is_directory: bool
    revision: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the application's file-list shape."""
        return {
            "path": self.path,
            "name": self.name,
            "dir": self.is_directory,
            "rev": self.revision,
        }


@dataclass
class ListingPage:
    """Entries of one listing response plus its continuation marker."""

    entries: List[ListEntry] = field(default_factory=list)
    next_marker: Optional[str] = None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element.iter():
        if child is not element and _local_name(child.tag) == name:
            return child.text
    return None


def _entry(
    element: ET.Element, directory: Optional[str], is_directory: bool, prefixed: bool = False
) -> ListEntry:
    name = _child_text(element, "Name")
    if not name:
        raise ProtocolError(f"listing entry without a name in {directory or '/'}")
    revision = _child_text(element, "Etag")
    if not revision:
        raise ProtocolError(f"listing entry {name} has no revision", path=name)

    if prefixed and not is_directory:
        path = name
        prefix = directory.strip("/") + "/"
        name = name[len(prefix):] if name.startswith(prefix) else name
    elif is_directory or is_root(directory):
        path = name
    else:
        path = f"{directory.strip('/')}/{name}"
    return ListEntry(path=path, name=name, is_directory=is_directory, revision=revision)


def parse_listing(
    document: Union[bytes, str, None],
    directory: Optional[str] = None,
    prefixed: bool = False,
) -> ListingPage:
    """
    Convert a listing document into entries, preserving document order.

    Containers become directory entries and are only taken from root
    listings. Blobs become file entries; inside a named directory their path
    is ``<directory>/<name>``.
    When ``prefixed`` is set the blob names already carry that directory
    prefix and are used as paths unchanged.

    Args:
        document: Raw XML body of the listing response
        directory: Directory that was listed ("" or None for the root)
        prefixed: Whether blob names include the directory prefix

    Returns:
        ListingPage; a well-formed document without entries yields an empty page

    Raises:
        ProtocolError: If the document is empty, unparseable, or has
            entries without a name or revision
    """
    if not document or not document.strip():
        raise ProtocolError("list error: empty listing document", path=directory)

    if isinstance(document, bytes):
        document = document[len(codecs.BOM_UTF8):] if document.startswith(codecs.BOM_UTF8) else document

    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise ProtocolError(f"list error: {e}", path=directory) from e

    root_listing = is_root(directory)
    entries: List[ListEntry] = []
    for element in root.iter():
        tag = _local_name(element.tag)
        if tag == "Container" and root_listing:
            entries.append(_entry(element, directory, is_directory=True))
        elif tag == "Blob":
            entries.append(_entry(element, directory, is_directory=False, prefixed=prefixed))

    next_marker = None
    for child in root:
        if _local_name(child.tag) == "NextMarker":
            next_marker = (child.text or "").strip() or None

    return ListingPage(entries=entries, next_marker=next_marker)
