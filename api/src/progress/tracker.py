"""Part progress merge.

Progress reports from clients can arrive duplicated, late or from several
tabs at once. Every report is folded into the stored state with a max-merge,
so replaying or reordering reports never changes the result:

    furthest_position = max(stored, reported)
    percent_watched   = max(stored, min(100, position / duration * 100))
    completed         = stored or percent_watched >= threshold

All functions here are pure; persistence lives in the service.
"""

import copy
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from .models import PartProgress


_TWO_PLACES = Decimal("0.01")
_HUNDRED = Decimal(100)


def compute_percent(position: float, duration: float) -> Decimal:
    """Percentage of ``duration`` reached at ``position``, capped at 100."""
    if duration <= 0:
        return Decimal(0)
    ratio = Decimal(str(position)) / Decimal(str(duration)) * _HUNDRED
    return min(_HUNDRED, max(Decimal(0), ratio)).quantize(
        _TWO_PLACES, rounding=ROUND_HALF_UP
    )


def new_part_progress(
    learner_id: UUID, course_id: UUID, module_id: UUID, part_id: UUID
) -> PartProgress:
    """Empty progress record for a part never touched before."""
    return PartProgress(
        learner_id=learner_id,
        course_id=course_id,
        module_id=module_id,
        part_id=part_id,
    )


def _latest(current: datetime | None, reported: datetime | None) -> datetime | None:
    if current is None:
        return reported
    if reported is None:
        return current
    return max(current, reported)


def merge_part_progress(
    current: PartProgress,
    position: float,
    duration: float,
    threshold: Decimal,
    now: datetime,
    client_timestamp: datetime | None = None,
) -> PartProgress:
    """Fold one position report into ``current``.

    Returns a new record; ``current`` is left untouched. ``updated_at`` only
    moves when something observable changed, so a replayed report yields a
    record equal to the stored one.
    """
    merged = copy.copy(current)

    merged.furthest_position = max(current.furthest_position, float(position))
    merged.duration = float(duration)
    merged.percent_watched = max(
        current.percent_watched, compute_percent(merged.furthest_position, duration)
    )
    merged.last_client_timestamp = _latest(
        current.last_client_timestamp, client_timestamp
    )

    if not current.completed and merged.percent_watched >= threshold:
        merged.completed = True
        merged.completed_at = now

    if progress_changed(current, merged):
        merged.updated_at = now
        if merged.started_at is None:
            merged.started_at = now

    return merged


def acknowledge_document(
    current: PartProgress,
    now: datetime,
    duration: float | None = None,
    client_timestamp: datetime | None = None,
) -> PartProgress:
    """Mark a document part as read: completed at 100%."""
    merged = copy.copy(current)

    merged.percent_watched = _HUNDRED
    if duration:
        merged.duration = float(duration)
        merged.furthest_position = max(current.furthest_position, float(duration))
    merged.last_client_timestamp = _latest(
        current.last_client_timestamp, client_timestamp
    )

    if not current.completed:
        merged.completed = True
        merged.completed_at = now

    if progress_changed(current, merged):
        merged.updated_at = now
        if merged.started_at is None:
            merged.started_at = now

    return merged


def progress_changed(before: PartProgress, after: PartProgress) -> bool:
    """Whether a merge advanced anything worth persisting."""
    return (
        after.furthest_position != before.furthest_position
        or after.percent_watched != before.percent_watched
        or after.completed != before.completed
        or after.duration != before.duration
    )
