"""
Portal Engine - Events and Production-Info Submissions
Reads the promoter's events and their submissions through the RecordStore,
turns them into renderable state (classified submissions, workflow badge),
and runs the submission write path: create, link, confirm.

Emits bus events after every store write.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from epportal.bus.events import (
    bus, EVENT_SUBMISSION_CREATED, EVENT_SUBMISSION_LINKED, EVENT_SUBMISSION_LINK_UNCONFIRMED,
)
from epportal.config import Config, EventFieldMap, SubmissionFieldMap
from epportal.engine.batch import fetch_many
from epportal.engine.classifier import SubmissionViews, classify_submissions
from epportal.engine.dates import TzLike, parse_flexible
from epportal.engine.derivation import derive_submission_defaults, to_store_fields, validate_submission
from epportal.engine.fields import display_text, first_present, link_ids
from epportal.engine.reconcile import CancelToken, RetryPolicy, reconcile_write
from epportal.engine.workflow import resolve_workflow
from epportal.models import Event, LoadWindow, PromoterProfile, RecordView, Submission, WorkflowState
from epportal.store.records import MODE_RAW, RecordStore, record_id_in, to_record_view

logger = logging.getLogger(__name__)

UNTITLED_EVENT = 'Untitled Event'


# =============================================================================
# RECORD MAPPING
# =============================================================================

def event_datetime_fields(ef: EventFieldMap) -> tuple:
    return (ef.start, ef.end, ef.announcement_date, ef.ticket_sale_date)


def submission_datetime_fields(sf: SubmissionFieldMap) -> tuple:
    return (
        sf.date, sf.start, sf.end, sf.announcement_date, sf.ticket_sale_date,
        *sf.ticket_sale_aliases,
        sf.load_in_start, sf.load_in_end, sf.load_out_start, sf.load_out_end,
        sf.suggested_load_in_start, sf.suggested_load_in_end,
        sf.suggested_load_out_start, sf.suggested_load_out_end,
    )


def event_from_view(view: RecordView, ef: EventFieldMap, tz: TzLike = None) -> Event:
    raw = view.raw
    return Event(
        id=view.id,
        name=raw.get(ef.name) or UNTITLED_EVENT,
        start=parse_flexible(raw.get(ef.start), tz),
        end=parse_flexible(raw.get(ef.end), tz),
        location_ids=link_ids(raw.get(ef.location)),
        location_display=display_text(view.display.get(ef.location)),
        announcement_date=parse_flexible(raw.get(ef.announcement_date), tz),
        ticket_sale_date=parse_flexible(raw.get(ef.ticket_sale_date), tz),
        lineup=raw.get(ef.lineup),
        contract_status=raw.get(ef.contract_status),
        submission_ids=link_ids(raw.get(ef.submissions)),
        record=view,
    )


def submission_from_view(view: RecordView, sf: SubmissionFieldMap, tz: TzLike = None) -> Submission:
    raw = view.raw

    def when(column: str) -> Optional[datetime]:
        return parse_flexible(raw.get(column), tz)

    return Submission(
        id=view.id,
        # Fall back to the record's creation time when no Date column is set
        date=when(sf.date) or parse_flexible(view.created_time, tz),
        name=raw.get(sf.name),
        start=when(sf.start),
        end=when(sf.end),
        location_ids=link_ids(raw.get(sf.location)),
        location_display=display_text(view.display.get(sf.location)),
        lineup=raw.get(sf.lineup),
        announcement_date=when(sf.announcement_date),
        ticket_sale_date=parse_flexible(
            first_present(raw, (sf.ticket_sale_date,) + tuple(sf.ticket_sale_aliases)), tz,
        ),
        comment=raw.get(sf.comment),
        load_time_necessary=raw.get(sf.load_time_necessary),
        load_window=LoadWindow(
            load_in_start=when(sf.load_in_start),
            load_in_end=when(sf.load_in_end),
            load_out_start=when(sf.load_out_start),
            load_out_end=when(sf.load_out_end),
        ),
        load_times=raw.get(sf.load_times),
        approve_event_info=raw.get(sf.approve_event_info),
        load_time_approval=raw.get(sf.load_time_approval),
        suggested_window=LoadWindow(
            load_in_start=when(sf.suggested_load_in_start),
            load_in_end=when(sf.suggested_load_in_end),
            load_out_start=when(sf.suggested_load_out_start),
            load_out_end=when(sf.suggested_load_out_end),
        ),
        record=view,
    )


# =============================================================================
# EVENT BUCKETS
# =============================================================================

@dataclass
class EventBuckets:
    upcoming: List[Event] = field(default_factory=list)
    past: List[Event] = field(default_factory=list)
    undated: List[Event] = field(default_factory=list)


def bucket_events(events: List[Event], now: Optional[datetime] = None) -> EventBuckets:
    """
    Split events by start: upcoming (start >= now), past, and undated
    (no parseable start). Dated buckets are ordered by start ascending.
    """
    now = now or datetime.now(timezone.utc)
    buckets = EventBuckets()
    for event in events:
        if event.start is None:
            buckets.undated.append(event)
        elif event.start >= now:
            buckets.upcoming.append(event)
        else:
            buckets.past.append(event)
    buckets.upcoming.sort(key=lambda e: e.start)
    buckets.past.sort(key=lambda e: e.start)
    return buckets


# =============================================================================
# EVENT DETAIL
# =============================================================================

@dataclass
class EventDetail:
    """Everything the event page renders."""
    event: Event
    views: SubmissionViews
    workflow: WorkflowState
    needs_submission: bool = False

    @property
    def submissions(self) -> List[Submission]:
        return self.views.ordered


@dataclass
class SubmissionReceipt:
    """
    Result of submit_production_info().
    confirmed is False when the link was not seen within the retry budget;
    detail is then whatever the final reload produced (None if it failed).
    """
    submission_id: str
    confirmed: bool
    attempts: int
    detail: Optional[EventDetail] = None


class PortalService:
    """Event listing, event detail and submission writes for one promoter."""

    def __init__(self, config: Config, store: RecordStore):
        self.config = config
        self.store = store
        self.ef = config.event_fields
        self.sf = config.submission_fields
        self.tz = config.TIMEZONE

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_events(self, profile: PromoterProfile) -> List[Event]:
        """The promoter's linked events, ordered by start ascending."""
        if not profile.event_ids:
            logger.info(f"list_events: promoter {profile.target_id} has no linked events")
            return []

        records = self.store.list_records(
            self.config.EVENTS_TABLE,
            filter_formula=record_id_in(profile.event_ids),
            sort=[(self.ef.start, 'asc')],
            mode=MODE_RAW,
        )
        wanted = event_datetime_fields(self.ef)
        events = [event_from_view(to_record_view(r, wanted, self.tz), self.ef, self.tz) for r in records]
        logger.debug(f"list_events: {len(events)}/{len(profile.event_ids)} events loaded")
        return events

    def get_event(self, event_id: str) -> Event:
        view = self.store.get_record_view(
            self.config.EVENTS_TABLE, event_id, datetime_fields=event_datetime_fields(self.ef),
        )
        return event_from_view(view, self.ef, self.tz)

    def get_submission(self, submission_id: str) -> Submission:
        view = self.store.get_record_view(
            self.config.SUBMISSIONS_TABLE, submission_id,
            datetime_fields=submission_datetime_fields(self.sf),
        )
        return submission_from_view(view, self.sf, self.tz)

    def load_event_detail(
        self,
        event_id: str,
        cancel: Optional[CancelToken] = None,
        now: Optional[datetime] = None,
    ) -> EventDetail:
        """
        Load an event and all of its submissions.

        Submissions are fetched concurrently; one that fails to load is
        dropped and logged. When cancel fires while loading, the result is
        discarded (ReconciliationCancelled).
        """
        event = self.get_event(event_id)
        submissions = fetch_many(
            event.submission_ids, self.get_submission,
            max_workers=self.config.BATCH_MAX_WORKERS, label='submission',
        )
        if cancel is not None:
            cancel.raise_if_cancelled()

        views = classify_submissions(submissions)
        has_submission = bool(event.submission_ids)
        now = now or datetime.now(timezone.utc)
        return EventDetail(
            event=event,
            views=views,
            workflow=resolve_workflow(event.contract_status, has_submission),
            needs_submission=event.start is not None and event.start > now and not has_submission,
        )

    def draft_for_event(self, detail: EventDetail) -> Dict[str, Any]:
        """Pre-filled values for a new submission on this event."""
        raw = detail.event.record.raw if detail.event.record else {}
        return derive_submission_defaults(
            raw, self.ef, self.sf, prior=detail.views.active_load_time(), tz=self.tz,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _event_links(self, event_id: str) -> List[str]:
        record = self.store.get_record(
            self.config.EVENTS_TABLE, event_id, MODE_RAW, fields=[self.ef.submissions],
        )
        return link_ids(record['fields'].get(self.ef.submissions))

    def submit_production_info(
        self,
        event_id: str,
        values: Dict[str, Any],
        cancel: Optional[CancelToken] = None,
    ) -> SubmissionReceipt:
        """
        Create a submission, link it to its event and wait for the link to show.

        Args:
            values: submission column -> value (datetimes may be aware datetimes)

        Raises:
            ValidationError: a required value is missing (nothing was written)
            UpstreamError / AuthorizationError: the create or the link update failed
            ReconciliationCancelled: cancel fired while confirming
        """
        validate_submission(values, self.sf)
        fields = to_store_fields(values, self.tz)

        created = self.store.create_record(self.config.SUBMISSIONS_TABLE, fields)
        submission_id = created['id']
        logger.info(f"Created submission {submission_id} for event {event_id}")
        bus.emit(EVENT_SUBMISSION_CREATED, {'submission_id': submission_id, 'event_id': event_id})

        links = self._event_links(event_id)
        if submission_id not in links:
            links.append(submission_id)
        try:
            self.store.update_record(self.config.EVENTS_TABLE, event_id, {self.ef.submissions: links})
        except Exception:
            logger.error(f"Submission {submission_id} was created but linking it to event {event_id} failed")
            raise
        bus.emit(EVENT_SUBMISSION_LINKED, {'submission_id': submission_id, 'event_id': event_id})

        outcome = reconcile_write(
            confirm=lambda: submission_id in self._event_links(event_id),
            reload=lambda: self.load_event_detail(event_id, cancel),
            policy=RetryPolicy.from_config(self.config),
            cancel=cancel,
        )
        if not outcome.confirmed:
            bus.emit(EVENT_SUBMISSION_LINK_UNCONFIRMED, {
                'submission_id': submission_id, 'event_id': event_id, 'attempts': outcome.attempts,
            })

        return SubmissionReceipt(
            submission_id=submission_id,
            confirmed=outcome.confirmed,
            attempts=outcome.attempts,
            detail=outcome.result,
        )
