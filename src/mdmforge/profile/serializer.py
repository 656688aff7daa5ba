"""Serialize documents to ``.mobileconfig`` property lists and export them."""

from __future__ import annotations

import logging
import plistlib
import re
from pathlib import Path
from typing import Any, Literal

from mdmforge.config import atomic_write
from mdmforge.exceptions import InvalidUsageError, StorageError
from mdmforge.models import Document

logger = logging.getLogger(__name__)

PlistFormat = Literal["xml", "binary"]

_FORMATS = {"xml": plistlib.FMT_XML, "binary": plistlib.FMT_BINARY}
_UNSAFE_FILENAME = re.compile(r'[:/\\?%*|"<>]')
EXTENSION = ".mobileconfig"


def to_plist_dict(document: Document) -> dict[str, Any]:
    """Return the property-list dictionary for *document*.

    Unit settings come first in each ``PayloadContent`` entry, followed by
    the standard ``Payload*`` keys.
    """
    content = []
    for unit in document.units:
        payload = dict(unit.settings)
        payload.update(
            {
                "PayloadType": unit.payload_type,
                "PayloadIdentifier": unit.identifier,
                "PayloadUUID": unit.uuid,
                "PayloadDisplayName": unit.display_name,
                "PayloadDescription": unit.description,
                "PayloadVersion": unit.version,
                "PayloadEnabled": unit.enabled,
            }
        )
        content.append(payload)

    return {
        "PayloadType": "Configuration",
        "PayloadDisplayName": document.name,
        "PayloadDescription": document.description,
        "PayloadIdentifier": document.identifier,
        "PayloadOrganization": document.organization,
        "PayloadScope": document.scope,
        "PayloadUUID": document.uuid,
        "PayloadVersion": 1,
        "PayloadContent": content,
    }


def serialize(document: Document, fmt: PlistFormat = "xml") -> bytes:
    """Encode *document* as an XML (default) or binary property list.

    Raises:
        InvalidUsageError: If *fmt* is unknown or a setting cannot be
            represented in a property list.
    """
    if fmt not in _FORMATS:
        raise InvalidUsageError(f"Unknown plist format '{fmt}'. Use 'xml' or 'binary'.")
    try:
        return plistlib.dumps(to_plist_dict(document), fmt=_FORMATS[fmt], sort_keys=False)
    except (TypeError, OverflowError) as exc:
        raise InvalidUsageError(f"Profile '{document.name}' cannot be encoded: {exc}") from exc


def export_filename(name: str) -> str:
    """``{name}.mobileconfig`` with path-unsafe characters replaced by ``_``."""
    safe = _UNSAFE_FILENAME.sub("_", name).strip() or "profile"
    return f"{safe}{EXTENSION}"


def export(document: Document, destination: Path, fmt: PlistFormat = "xml") -> Path:
    """Write *document* to *destination* and return the written path.

    *destination* may be a directory, in which case the file is named by
    :func:`export_filename`, or a file path. Callers validate first; this
    function only encodes and writes.

    Raises:
        StorageError: If the file cannot be written.
    """
    destination = Path(destination).expanduser()
    path = destination / export_filename(document.name) if destination.is_dir() else destination
    data = serialize(document, fmt)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, data)
    except OSError as exc:
        raise StorageError(f"Cannot write {path}: {exc.strerror or exc}") from exc
    logger.info("Exported '%s' to %s (%d bytes)", document.name, path, len(data))
    return path
