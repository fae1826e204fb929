"""Top-N selection with a minimum-value filter."""

from collections.abc import Mapping

from res_monitor.models import EntityId, RankedEntry, ResourceKind


def rank(
    values: Mapping[EntityId, float],
    count: int,
    min_value: float = 0.0,
    kind: ResourceKind | None = None,
) -> list[RankedEntry]:
    """Return up to count entries, highest value first.

    Entries below min_value are skipped and do not count toward count;
    the walk continues past them. Ties are ordered by entity id so the
    result is deterministic.

    Args:
        values: Entity id -> scalar (delta, rate, percentage or bytes)
        count: Maximum number of entries to return
        min_value: Entries with value < min_value are dropped
        kind: Resource kind stamped on each entry
    """
    if count <= 0 or not values:
        return []

    ordered = sorted(values.items(), key=lambda item: (-item[1], item[0]))
    selected: list[RankedEntry] = []
    for entity_id, value in ordered:
        if value < min_value:
            continue
        selected.append(RankedEntry(entity_id=entity_id, value=value, kind=kind))
        if len(selected) >= count:
            break
    return selected
