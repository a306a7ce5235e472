"""Name-fragment filtering of discovered processes."""

from collections.abc import Iterable, Sequence

from vm_heartbeat.models import ProcessDescriptor


def normalize_fragments(fragments: Iterable[str]) -> list[str]:
    """Strip and lower-case fragments, dropping empty ones. Order is kept."""
    normalized = []
    for fragment in fragments:
        fragment = fragment.strip().lower()
        if fragment:
            normalized.append(fragment)
    return normalized


def filter_pids(descriptors: Sequence[ProcessDescriptor], fragments: Iterable[str]) -> set[int]:
    """Return ids of processes whose name contains any fragment.

    Matching is case-insensitive and ignores whitespace around both the
    fragment and the name. With no usable fragments every id passes.

    Args:
        descriptors: Processes from discovery
        fragments: User-supplied name fragments

    Returns:
        Set of matching process ids
    """
    wanted = normalize_fragments(fragments)
    if not wanted:
        return {d.id for d in descriptors}

    matched: set[int] = set()
    for fragment in wanted:
        for descriptor in descriptors:
            name = descriptor.name.strip().lower()
            if name and fragment in name:
                matched.add(descriptor.id)
    return matched
