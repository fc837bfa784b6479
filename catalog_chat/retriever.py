from __future__ import annotations

import json
from typing import Any, Iterable, List, Optional, Set

from .catalog import CatalogEntry


def retrieve(query: Optional[str], catalog: Iterable[CatalogEntry]) -> List[Any]:
    """Purpose: Return catalog payloads whose keywords appear in the query.
    Inputs/Outputs: Inputs are the raw user text and catalog entries; output is a
        list of unique payloads in first-seen order.
    Side Effects / State: None; pure function.
    Dependencies: Uses _payload_key for equality-based deduplication.
    Failure Modes: Empty catalog or no match returns an empty list, never raises.
    If Removed: Prompts lose grounding context and the model answers blind.
    Testing Notes: Match with mixed-case keywords, multi-keyword hits, and duplicate
        payloads across entries.
    """
    # Case-insensitive substring match, first keyword hit wins per entry.
    text = (query or "").lower()
    matches: List[Any] = []
    seen: Set[str] = set()
    for entry in catalog:
        for keyword in entry.keywords:
            if keyword.lower() in text:
                key = _payload_key(entry.payload)
                if key not in seen:
                    seen.add(key)
                    matches.append(entry.payload)
                break
    return matches


def _payload_key(payload: Any) -> str:
    """Purpose: Build a stable equality key for an arbitrary JSON payload.
    Inputs/Outputs: Input is any payload; output is a canonical JSON string.
    Side Effects / State: None.
    Dependencies: json.dumps with sorted keys so dict ordering does not matter.
    Failure Modes: Non-JSON values fall back to their str() form.
    If Removed: Dict payloads (unhashable) cannot be deduplicated.
    Testing Notes: Two dicts with the same items in different order share a key.
    """
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
