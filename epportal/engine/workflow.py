"""
Event workflow: what a promoter sees and may do for one event.

The event's promoter-contract status is owned by staff in the store; this is
a pure lookup from (status, submission exists) to badge, action and message.
Unknown statuses get no badge and no action.
"""

from typing import Any

from epportal.models import WorkflowState

STATUS_EVENT_IN_CREATION = 'Event in Creation'
STATUS_INFO_REQUESTED = 'Info Requested'
STATUS_INFO_IN_REVIEW = 'Info in Review'
STATUS_READY_FOR_CONTRACTING = 'Ready for Contracting'
STATUS_DRAFT_IN_REVIEW = 'Draft in Review'
STATUS_SENT_FOR_SIGNATURES = 'Sent for Signatures'
STATUS_SIGNED = 'Signed'
STATUS_CANCELLED = 'Cancelled'

BADGE_NOT_REQUIRED = 'Info not required yet'
BADGE_INFO_REQUIRED = 'Info required'
BADGE_IN_REVIEW = 'In review'
BADGE_CONFIRMED = 'Confirmed'
BADGE_CANCELLED = 'Cancelled'

ACTION_PROVIDE_INFO = 'Provide info'
ACTION_VIEW_SUBMISSION = 'View submission'
ACTION_VIEW_DETAILS = 'View details'

NO_WORKFLOW = WorkflowState()

_NOT_REQUIRED = WorkflowState(
    BADGE_NOT_REQUIRED, None,
    "The event is still being set up. We will ask for production info later.",
)
_INFO_REQUIRED = WorkflowState(
    BADGE_INFO_REQUIRED, ACTION_PROVIDE_INFO,
    "Please provide the production info for this event.",
)
_IN_REVIEW = WorkflowState(
    BADGE_IN_REVIEW, ACTION_VIEW_SUBMISSION,
    "Your submission is being reviewed.",
)
_CONFIRMED = WorkflowState(
    BADGE_CONFIRMED, ACTION_VIEW_DETAILS,
    "Production info is confirmed.",
)
_CANCELLED_WITH_SUBMISSION = WorkflowState(
    BADGE_CANCELLED, ACTION_VIEW_DETAILS, "This event was cancelled.",
)
_CANCELLED = WorkflowState(BADGE_CANCELLED, None, "This event was cancelled.")

_CONFIRMED_STATUSES = {
    STATUS_READY_FOR_CONTRACTING,
    STATUS_DRAFT_IN_REVIEW,
    STATUS_SENT_FOR_SIGNATURES,
    STATUS_SIGNED,
}


def resolve_workflow(status: Any, submission_exists: bool) -> WorkflowState:
    """Badge, allowed action and message for an event. Never raises."""
    key = status.strip() if isinstance(status, str) else ''

    if key == STATUS_EVENT_IN_CREATION:
        return _NOT_REQUIRED
    if key == STATUS_INFO_REQUESTED:
        return _IN_REVIEW if submission_exists else _INFO_REQUIRED
    if key == STATUS_INFO_IN_REVIEW:
        return _IN_REVIEW
    if key in _CONFIRMED_STATUSES:
        return _CONFIRMED
    if key == STATUS_CANCELLED:
        return _CANCELLED_WITH_SUBMISSION if submission_exists else _CANCELLED
    return NO_WORKFLOW
