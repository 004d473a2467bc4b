"""Naming convention helpers for mailbox permission groups.

Permission groups for one mailbox share a name and differ only in a single
delimiter-bounded segment, e.g.::

    MBX-Sales-Owners
    MBX-Sales-SendAs
    MBX-Sales-SendOnBehalf

Sibling derivation swaps exactly that segment. Substrings inside other
segments (``MBX-CoOwners-Owners``) are never touched.
"""

import logging

from mbxgroups.core.config import NamingConfig

logger = logging.getLogger(__name__)


def matches_prefix(name: str | None, prefix: str) -> bool:
    """Check whether a group display name starts with the naming prefix."""
    if not name:
        return False
    return name.lower().startswith(prefix.lower())


def find_segment_indexes(name: str, segment: str, delimiter: str) -> list[int]:
    """Find positions of delimiter-bounded segments equal to ``segment``.

    Comparison is case-insensitive.

    Args:
        name: Group display name
        segment: Segment to look for (e.g. "Owners")
        delimiter: Segment separator (e.g. "-")

    Returns:
        Indexes into ``name.split(delimiter)``
    """
    target = segment.lower()
    return [i for i, part in enumerate(name.split(delimiter)) if part.lower() == target]


def derive_sibling_names(name: str, naming: NamingConfig) -> list[str]:
    """Derive sibling group names from an Owners group name.

    Args:
        name: Display name of a group (e.g. "MBX-Sales-Owners")
        naming: Naming convention

    Returns:
        Sibling names in ``naming.sibling_segments`` order, or an empty list
        when the name has no Owners segment or more than one
    """
    indexes = find_segment_indexes(name, naming.owners_segment, naming.delimiter)
    if not indexes:
        return []

    if len(indexes) > 1:
        logger.warning(
            f"Ambiguous group name '{name}': {len(indexes)} '{naming.owners_segment}' "
            "segments, skipping sibling lookup"
        )
        return []

    parts = name.split(naming.delimiter)
    index = indexes[0]
    siblings = []
    for sibling in naming.sibling_segments:
        replaced = [*parts[:index], sibling, *parts[index + 1 :]]
        siblings.append(naming.delimiter.join(replaced))
    return siblings
