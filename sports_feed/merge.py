from __future__ import annotations

from dataclasses import replace
from typing import Callable, Hashable, List, Sequence, Set, Tuple, TypeVar, Union

from .models import FootballFixture, UFCEvent
from .util import isoformat_z, stable_uid


T = TypeVar("T", FootballFixture, UFCEvent)

Record = Union[FootballFixture, UFCEvent]


def fixture_key(f: FootballFixture) -> Tuple[str, str, str, str]:
    return (f.team_a.strip(), f.team_b.strip(), f.time, f.date.isoformat())


def event_key(e: UFCEvent) -> Tuple[str, str]:
    if e.external_id:
        return ("id", e.external_id)
    return ("fallback", f"{e.title.strip()}|{e.date.isoformat()}")


def natural_key(record: Record) -> Hashable:
    if isinstance(record, FootballFixture):
        return fixture_key(record)
    return event_key(record)


def with_identity(record: T) -> T:
    """Give a record its surrogate id; the id is derived from the natural key so refetches agree."""
    if record.id:
        return record
    if isinstance(record, FootballFixture):
        uid = stable_uid(*fixture_key(record), namespace="football")
    else:
        uid = stable_uid(*event_key(record), isoformat_z(record.main_card_start_utc), namespace="ufc")
    return replace(record, id=uid)


def merge(
    existing: Sequence[T],
    incoming: Sequence[T],
    key_fn: Callable[[T], Hashable] = natural_key,
) -> Tuple[List[T], int]:
    """Append the incoming records whose natural key is not already present.

    Existing records are never reordered or dropped. Duplicates inside
    ``incoming`` collapse to their first occurrence.
    """
    merged: List[T] = list(existing)
    keys: Set[Hashable] = {key_fn(r) for r in existing}
    added = 0
    for record in incoming:
        key = key_fn(record)
        if key in keys:
            continue
        keys.add(key)
        merged.append(with_identity(record))
        added += 1
    return merged, added
