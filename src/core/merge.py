"""Uuid-keyed merging of resolver output into a batch (core domain).

Resolvers may drop or reorder messages, so merging never relies on list
position: every resolved message is matched back to the batch by ``uuid``.
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Dict, Iterable, List, Sequence

from core.models import CanonicalMessage

LOGGER = logging.getLogger(__name__)


def field_merge(base: CanonicalMessage, patch: CanonicalMessage) -> CanonicalMessage:
    """Overlay the defined (non-None) fields of ``patch`` onto ``base``.

    Tuple fields such as ``media`` are replaced wholesale, never merged by
    index. ``uuid`` always stays the base's.
    """

    overrides = {}
    for item in fields(patch):
        if item.name == "uuid":
            continue
        value = getattr(patch, item.name)
        if value is not None:
            overrides[item.name] = value
    return replace(base, **overrides)


def merge_resolved(
    batch: Sequence[CanonicalMessage],
    result: Iterable[CanonicalMessage],
) -> List[CanonicalMessage]:
    """Return a new batch with ``result`` merged in by uuid.

    The output always has the same length and order as ``batch``.
    """

    by_uuid: Dict[str, CanonicalMessage] = {}
    for message in result:
        by_uuid[message.uuid] = message

    known = {message.uuid for message in batch}
    unknown = [uuid for uuid in by_uuid if uuid not in known]
    if unknown:
        # Resolvers must not introduce messages; extra entries are dropped.
        LOGGER.warning("Ignoring %s resolved messages with unknown uuid", len(unknown))

    merged: List[CanonicalMessage] = []
    for message in batch:
        resolved = by_uuid.get(message.uuid)
        merged.append(field_merge(message, resolved) if resolved is not None else message)
    return merged
