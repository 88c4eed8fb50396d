"""
Submission Derivation
Builds the default values of a new production-info submission from its event,
and validates a submission before it is created.

Load window defaults follow the standard crew turnaround:
  load-in  start = start - 4h,   load-in  end = start - 2h
  load-out start = end + 30min,  load-out end = end + 90min
A leg whose anchor (start or end) is unknown stays empty.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from epportal.config import EventFieldMap, SubmissionFieldMap
from epportal.engine.dates import TzLike, parse_flexible, to_store_value
from epportal.engine.fields import is_blank, link_ids
from epportal.errors import ValidationError
from epportal.models import LoadWindow, Submission

logger = logging.getLogger(__name__)

LOAD_TIME_NONE = 'No load times necessary'
LOAD_TIME_SUGGEST = 'Suggest Load times'
LOAD_TIME_CHOICES = (LOAD_TIME_NONE, LOAD_TIME_SUGGEST)

LOAD_IN_START_OFFSET = timedelta(hours=-4)
LOAD_IN_END_OFFSET = timedelta(hours=-2)
LOAD_OUT_START_OFFSET = timedelta(minutes=30)
LOAD_OUT_END_OFFSET = timedelta(minutes=90)


def _shift(anchor: Optional[datetime], offset: timedelta) -> Optional[datetime]:
    # absolute-instant arithmetic; aware datetimes in a ZoneInfo add wall-clock time
    if anchor is None:
        return None
    if anchor.tzinfo is None:
        return anchor + offset
    return (anchor.astimezone(timezone.utc) + offset).astimezone(anchor.tzinfo)


def synthetic_load_window(start: Optional[datetime], end: Optional[datetime]) -> LoadWindow:
    """Standard load window around the event; legs with no anchor are None."""
    return LoadWindow(
        load_in_start=_shift(start, LOAD_IN_START_OFFSET),
        load_in_end=_shift(start, LOAD_IN_END_OFFSET),
        load_out_start=_shift(end, LOAD_OUT_START_OFFSET),
        load_out_end=_shift(end, LOAD_OUT_END_OFFSET),
    )


def is_suggest_choice(value: Any) -> bool:
    """True when the load-time choice asks for load times to be suggested."""
    return isinstance(value, str) and value.strip().lower() == LOAD_TIME_SUGGEST.lower()


def derive_submission_defaults(
    event_raw: Dict[str, Any],
    event_fields: EventFieldMap,
    submission_fields: SubmissionFieldMap,
    prior: Optional[Submission] = None,
    tz: TzLike = None,
) -> Dict[str, Any]:
    """
    Default values for a new submission, keyed by submission column name.

    Args:
        event_raw: the event's raw-mode fields (location must be record ids)
        prior: the active load-time submission, if any. Its load window
               values win over the synthetic ones, leg by leg.

    Returns: draft dict; dates are aware datetimes, location a list of ids
    """
    e, s = event_fields, submission_fields
    start = parse_flexible(event_raw.get(e.start), tz)
    end = parse_flexible(event_raw.get(e.end), tz)

    synthetic = synthetic_load_window(start, end)
    previous = prior.load_window if prior else LoadWindow()

    draft = {
        s.name: event_raw.get(e.name) or '',
        s.start: start,
        s.end: end,
        s.location: link_ids(event_raw.get(e.location)),
        s.lineup: event_raw.get(e.lineup) or '',
        s.announcement_date: parse_flexible(event_raw.get(e.announcement_date), tz),
        s.comment: '',
        s.load_time_necessary: prior.load_time_necessary if prior else None,
        s.load_in_start: previous.load_in_start or synthetic.load_in_start,
        s.load_in_end: previous.load_in_end or synthetic.load_in_end,
        s.load_out_start: previous.load_out_start or synthetic.load_out_start,
        s.load_out_end: previous.load_out_end or synthetic.load_out_end,
    }
    logger.debug(f"derive_submission_defaults: start={start} end={end} prior={prior.id if prior else None}")
    return draft


def validate_submission(values: Dict[str, Any], submission_fields: SubmissionFieldMap) -> None:
    """
    Raise ValidationError naming the first missing required field.

    Required: name, at least one location, start, end, the load-time choice;
    all four load window fields when the choice is to suggest load times.
    """
    s = submission_fields
    required = [
        (s.name, 'Event name'),
        (s.location, 'Location'),
        (s.start, 'Doors open'),
        (s.end, 'End'),
        (s.load_time_necessary, 'Load time necessary'),
    ]
    if is_suggest_choice(values.get(s.load_time_necessary)):
        required += [
            (s.load_in_start, 'Load in start'),
            (s.load_in_end, 'Load in end'),
            (s.load_out_start, 'Load out start'),
            (s.load_out_end, 'Load out end'),
        ]

    for column, label in required:
        if is_blank(values.get(column)):
            raise ValidationError(f"{label} is required", field=column)


def to_store_fields(values: Dict[str, Any], tz: TzLike = None) -> Dict[str, Any]:
    """Write-ready fields: datetimes as ISO UTC strings, empty values dropped."""
    fields = {}
    for column, value in values.items():
        if isinstance(value, datetime):
            value = to_store_value(value, tz)
        if is_blank(value):
            continue
        fields[column] = value
    return fields
