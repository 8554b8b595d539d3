"""
Date-sequence guard.

Responsibility:
    Two independent rules about when things may have happened:

    1. Earliest valid date.  No activity on a batch may predate the batch
       itself.  The floor is the latest of the batch start (or creation)
       date, the transfer that created it, and a ``YYYY-MM-DD`` prefix in
       the batch name.
    2. Packaging phase order.  Pasteurization and labeling follow
       packaging; completion follows all of them.

    ``validate_date_input`` adds plausibility bounds on any entered date.

Architecture position:
    Engines > Guards -- pure functions.  Time is read through an
    injected Clock only.

Failure modes:
    - DateSequenceValidationError for every violation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from cidery_kernel.domain.clock import Clock, SystemClock
from cidery_kernel.domain.entities import Batch
from cidery_kernel.domain.values import as_utc, iso, to_date
from cidery_kernel.exceptions import DateSequenceValidationError

BATCH_NAME_MIN_YEAR = 2000
BATCH_NAME_MAX_YEAR = 2100

INPUT_MIN_YEAR = 2015
INPUT_MAX_YEAR = 2099
MAX_DAYS_IN_FUTURE = 365

_BATCH_NAME_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")

SOURCE_START = "start"
SOURCE_TRANSFER = "transfer"
SOURCE_BATCH_NAME = "batch_name"


@dataclass(frozen=True)
class EarliestValidDate:
    """The activity floor for a batch and the field that produced it."""

    date: date
    source: str


def extract_date_from_batch_name(name: str | None) -> date | None:
    """
    Return the ``YYYY-MM-DD`` date a batch name starts with, if any.

    Impossible calendar dates (``2024-02-30``) and years outside
    2000-2100 are treated as "no date".
    """
    if not name:
        return None
    match = _BATCH_NAME_DATE_RE.match(name)
    if match is None:
        return None
    year, month, day = (int(g) for g in match.groups())
    if not BATCH_NAME_MIN_YEAR <= year <= BATCH_NAME_MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def calculate_earliest_valid_date(batch: Batch) -> EarliestValidDate | None:
    """
    Compute the activity floor for ``batch``.

    Returns None when the batch carries no usable date at all.  When two
    sources give the same date the earlier-listed source wins (start,
    then transfer, then batch name).
    """
    candidates: list[EarliestValidDate] = []
    started = batch.start_date or batch.created_at
    if started is not None:
        candidates.append(EarliestValidDate(to_date(started), SOURCE_START))
    if batch.origin_transfer_date is not None:
        candidates.append(EarliestValidDate(to_date(batch.origin_transfer_date), SOURCE_TRANSFER))
    named = extract_date_from_batch_name(batch.batch_number)
    if named is not None:
        candidates.append(EarliestValidDate(named, SOURCE_BATCH_NAME))

    if not candidates:
        return None
    return max(candidates, key=lambda c: c.date)


def _floor_explanation(batch: Batch, floor: EarliestValidDate) -> str:
    when = floor.date.isoformat()
    if floor.source == SOURCE_BATCH_NAME:
        return (
            f'the date {when} in batch name "{batch.batch_number}" '
            f"(year {floor.date.year} from the batch name)"
        )
    if floor.source == SOURCE_TRANSFER:
        return (
            f"the transfer that created this batch on {when} "
            f"(year {floor.date.year} from the transfer)"
        )
    return f"the batch start date {when} (year {floor.date.year} from the start date)"


def validate_activity_date(
    batch: Batch,
    activity_date: date | datetime,
    activity: str = "activity",
) -> None:
    """Reject an activity dated before the batch's earliest valid date."""
    floor = calculate_earliest_valid_date(batch)
    if floor is None:
        return
    when = to_date(activity_date)
    if when >= floor.date:
        return

    label = activity[:1].upper() + activity[1:]
    raise DateSequenceValidationError(
        f"{label} date {when.isoformat()} is before earliest valid date "
        f"{floor.date.isoformat()} ({floor.source})",
        f'{label} date {when.isoformat()} for batch "{batch.batch_number}" is before '
        f"{_floor_explanation(batch, floor)}. Please enter a date on or after "
        f"{floor.date.isoformat()}.",
        {
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "activity": activity,
            "activity_date": when.isoformat(),
            "earliest_valid_date": floor.date.isoformat(),
            "source": floor.source,
            "source_year": floor.date.year,
        },
    )


def _instant(moment: date | datetime) -> datetime:
    if isinstance(moment, datetime):
        return as_utc(moment)
    return datetime.combine(moment, time.min, tzinfo=timezone.utc)


def _require_not_before(
    phase: str,
    phase_at: date | datetime | None,
    prior_phase: str,
    prior_at: date | datetime | None,
) -> None:
    if phase_at is None or prior_at is None:
        return
    if _instant(phase_at) >= _instant(prior_at):
        return
    raise DateSequenceValidationError(
        f"{phase} date {iso(phase_at)} precedes {prior_phase} date {iso(prior_at)}",
        f"The {phase} date ({iso(phase_at)}) cannot be before the {prior_phase} "
        f"date ({iso(prior_at)}). Please correct the {phase} date.",
        {
            "phase": phase,
            "phase_date": iso(phase_at),
            "precedes_phase": prior_phase,
            "precedes_date": iso(prior_at),
        },
    )


def validate_packaging_phase_sequence(
    packaged_at: date | datetime,
    pasteurized_at: date | datetime | None = None,
    labeled_at: date | datetime | None = None,
    completed_at: date | datetime | None = None,
) -> None:
    """
    Packaging phases must not run backwards.

    Checked pairs, first failure raised:
        pasteurized >= packaged, labeled >= packaged,
        completed >= packaged, completed >= pasteurized,
        completed >= labeled.
    """
    _require_not_before("pasteurized", pasteurized_at, "packaged", packaged_at)
    _require_not_before("labeled", labeled_at, "packaged", packaged_at)
    _require_not_before("completed", completed_at, "packaged", packaged_at)
    _require_not_before("completed", completed_at, "pasteurized", pasteurized_at)
    _require_not_before("completed", completed_at, "labeled", labeled_at)


def validate_date_input(
    value: date | datetime,
    clock: Clock | None = None,
    field_name: str = "Date",
) -> None:
    """Year within 2015-2099 and no more than a year ahead of today."""
    when = to_date(value)
    if not INPUT_MIN_YEAR <= when.year <= INPUT_MAX_YEAR:
        raise DateSequenceValidationError(
            f"{field_name} year {when.year} outside {INPUT_MIN_YEAR}-{INPUT_MAX_YEAR}",
            f"{field_name} must be between {INPUT_MIN_YEAR} and {INPUT_MAX_YEAR}. "
            f"{when.isoformat()} is not a plausible date.",
            {
                "field_name": field_name,
                "value": when.isoformat(),
                "min_year": INPUT_MIN_YEAR,
                "max_year": INPUT_MAX_YEAR,
            },
        )

    today = (clock or SystemClock()).today()
    latest = today + timedelta(days=MAX_DAYS_IN_FUTURE)
    if when > latest:
        raise DateSequenceValidationError(
            f"{field_name} {when.isoformat()} is more than {MAX_DAYS_IN_FUTURE} days ahead",
            f"{field_name} cannot be more than {MAX_DAYS_IN_FUTURE} days in the future. "
            f"Please enter a date on or before {latest.isoformat()}.",
            {
                "field_name": field_name,
                "value": when.isoformat(),
                "latest_allowed": latest.isoformat(),
                "max_days_in_future": MAX_DAYS_IN_FUTURE,
            },
        )
