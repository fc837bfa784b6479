from __future__ import annotations

"""Catalog loader for the product/service records used as retrieval context.

The catalog file is a JSON document of the form ``{"products": [...]}`` (a bare
list is accepted too). Each entry carries a list of trigger keywords and an
opaque ``data`` payload that is injected verbatim into the prompt.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import CatalogLoadError

logger = logging.getLogger("catalog_chat.catalog")

PAYLOAD_KEYS = ["data", "payload"]


@dataclass(frozen=True)
class CatalogEntry:
    """Single catalog record: trigger keywords plus an opaque payload."""
    keywords: Tuple[str, ...]
    payload: Any


@dataclass(frozen=True)
class CatalogMeta:
    """Metadata describing the loaded catalog file for logging and status."""
    file_name: str
    updated_at: str
    sha256: str
    entry_count: int
    skipped: int = 0


class Catalog:
    """Read-only view over loaded catalog entries."""

    def __init__(self, entries: Optional[List[CatalogEntry]] = None, meta: Optional[CatalogMeta] = None) -> None:
        self._entries: Tuple[CatalogEntry, ...] = tuple(entries or ())
        self._meta = meta

    @property
    def entries(self) -> Tuple[CatalogEntry, ...]:
        return self._entries

    @property
    def meta(self) -> Optional[CatalogMeta]:
        return self._meta

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)


class CatalogLoader:
    def __init__(self, path: Path) -> None:
        """Purpose: Configure the loader with a catalog file path.
        Inputs/Outputs: Input is a Path to products.json; no return value.
        Side Effects / State: Stores the path for later load calls.
        Dependencies: None beyond Path usage.
        Failure Modes: None at init; load() reports read/parse errors.
        If Removed: The catalog cannot be configured for retrieval.
        Testing Notes: Instantiate with a tmp_path file and call load().
        """
        self._path = Path(path)

    def load(self) -> Tuple[List[CatalogEntry], CatalogMeta]:
        """Purpose: Load and validate catalog entries from the JSON file.
        Inputs/Outputs: No inputs; returns a list of CatalogEntry and CatalogMeta.
        Side Effects / State: Reads file contents and computes hash/mtime.
        Dependencies: Uses json, hashlib, and _parse_entry for per-entry validation.
        Failure Modes: Raises CatalogLoadError for a missing/unreadable file, invalid
            JSON, or a wrong top-level shape. Malformed entries are skipped and logged.
        If Removed: Retrieval has no catalog and every prompt carries the empty sentinel.
        Testing Notes: Use a temp JSON file with good and bad entries and check counts.
        """
        # Read bytes for hashing, then decode tolerating a UTF-8 BOM.
        try:
            raw_bytes = self._path.read_bytes()
            mtime = self._path.stat().st_mtime
        except OSError as exc:
            raise CatalogLoadError(f"Cannot read catalog file: {exc}", path=str(self._path)) from exc
        sha256 = hashlib.sha256(raw_bytes).hexdigest()

        try:
            data = json.loads(raw_bytes.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CatalogLoadError(f"Catalog file is not valid JSON: {exc}", path=str(self._path)) from exc

        if isinstance(data, dict) and isinstance(data.get("products"), list):
            items = data["products"]
        elif isinstance(data, list):
            items = data
        else:
            raise CatalogLoadError(
                "Catalog must be a list or an object with a 'products' list",
                path=str(self._path),
            )

        entries: List[CatalogEntry] = []
        skipped = 0
        for index, item in enumerate(items):
            entry = _parse_entry(item)
            if entry is None:
                skipped += 1
                logger.warning("catalog=%s skipped malformed entry index=%s", self._path.name, index)
                continue
            entries.append(entry)

        meta = CatalogMeta(
            file_name=self._path.name,
            updated_at=datetime.fromtimestamp(mtime).isoformat(),
            sha256=sha256,
            entry_count=len(entries),
            skipped=skipped,
        )
        return entries, meta


def _parse_entry(item: Any) -> Optional[CatalogEntry]:
    """Purpose: Validate a raw catalog record and convert it to a CatalogEntry.
    Inputs/Outputs: Input is a decoded JSON value; output is CatalogEntry or None.
    Side Effects / State: None.
    Dependencies: Uses PAYLOAD_KEYS for the payload field synonyms.
    Failure Modes: Returns None when keywords are missing/empty or the payload is absent.
    If Removed: Loose records would reach retrieval and break keyword matching.
    Testing Notes: Check non-dict items, empty keyword lists, and null payloads.
    """
    if not isinstance(item, dict):
        return None
    keywords = item.get("keywords")
    if not isinstance(keywords, list) or not keywords:
        return None
    if not all(isinstance(keyword, str) and keyword.strip() for keyword in keywords):
        return None
    payload = _get_payload(item)
    if payload is None:
        return None
    return CatalogEntry(keywords=tuple(keywords), payload=payload)


def _get_payload(item: Dict[str, Any]) -> Optional[Any]:
    # First non-null payload field wins.
    for key in PAYLOAD_KEYS:
        value = item.get(key)
        if value is not None:
            return value
    return None


def load_catalog(path: Path) -> Catalog:
    """Purpose: Load the catalog, degrading to an empty catalog on failure.
    Inputs/Outputs: Input is the catalog Path; output is a Catalog (possibly empty).
    Side Effects / State: Reads the file and emits info/warning logs.
    Dependencies: Uses CatalogLoader.
    Failure Modes: None raised; CatalogLoadError is logged and swallowed so startup continues.
    If Removed: A broken catalog file would stop the service from starting.
    Testing Notes: Point at a missing file and verify an empty Catalog is returned.
    """
    try:
        entries, meta = CatalogLoader(path).load()
    except CatalogLoadError as exc:
        logger.warning("catalog=%s load failed, continuing with empty catalog: %s", Path(path).name, exc.message)
        return Catalog()
    logger.info(
        "catalog=%s loaded entries=%s skipped=%s sha256=%s updated_at=%s",
        meta.file_name,
        meta.entry_count,
        meta.skipped,
        meta.sha256[:12],
        meta.updated_at,
    )
    return Catalog(entries, meta)
