"""Schedule helpers: whether a bundle is inside its start/end window."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Tuple

from schemas.bundle_schemas import BundleData, BundleStatus, to_datetime

EXPIRED_STATUS = "expired"


def _now(now: Optional[datetime]) -> datetime:
    return to_datetime(now) if now is not None else datetime.now(timezone.utc)


def is_bundle_schedule_active(bundle: BundleData, now: Optional[datetime] = None) -> bool:
    current = _now(now)
    if bundle.start_date and bundle.start_date > current:
        return False
    if bundle.end_date and bundle.end_date < current:
        return False
    return True


def get_effective_status(bundle: BundleData, now: Optional[datetime] = None) -> str:
    """Stored status adjusted for the schedule (draft/archived are never overridden)."""
    if bundle.status in (BundleStatus.ARCHIVED.value, BundleStatus.DRAFT.value):
        return bundle.status

    current = _now(now)
    if not is_bundle_schedule_active(bundle, current):
        if bundle.start_date and bundle.start_date > current:
            return BundleStatus.SCHEDULED.value
        return EXPIRED_STATUS

    return BundleStatus.ACTIVE.value


class ScheduleError(ValueError):
    """A schedule request that cannot be applied as given."""


def plan_schedule(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    activate_now: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[Optional[datetime], Optional[datetime], str]:
    """
    Resolve a schedule request into ``(start, end, status)``.

    ``activate_now`` starts the bundle immediately. Otherwise a start date is
    required and the bundle is ``scheduled`` while that date lies in the future.
    """
    current = _now(now)
    start = to_datetime(start_date)
    end = to_datetime(end_date)

    if not activate_now and start is None:
        raise ScheduleError("Either startDate or activateNow is required")
    if start and end and start >= end:
        raise ScheduleError("End date must be after start date")

    if activate_now:
        if end and end <= current:
            raise ScheduleError("End date must be after start date")
        return current, end, BundleStatus.ACTIVE.value
    if start > current:
        return start, end, BundleStatus.SCHEDULED.value
    return start, end, BundleStatus.ACTIVE.value
