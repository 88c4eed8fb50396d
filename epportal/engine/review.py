"""
Review labels for submissions: approval status text and the counter-suggested
load window staff can send back.
"""

from typing import Optional

from epportal.engine.fields import is_blank, is_truthy_flag
from epportal.models import LoadWindow, Submission

APPROVED = 'Approved'
PENDING = 'Pending'
REJECTED_WITH_SUGGESTION = 'Rejected - Other Suggestion'

_BOOLEAN_STRINGS = {'true', 'false', '1', '0'}


def general_approval_label(submission: Submission) -> str:
    """'Approved' or 'Pending' for the general event info."""
    return APPROVED if is_truthy_flag(submission.approve_event_info) else PENDING


def load_time_approval_label(submission: Submission) -> Optional[str]:
    """
    Label for the load-time review.

    A free-text status from staff (e.g. 'Rejected - Other Suggestion') is shown
    as is; boolean-ish values become 'Approved'/'Pending'; empty shows nothing.
    """
    value = submission.load_time_approval
    if is_blank(value):
        return None
    if isinstance(value, str) and value.strip().lower() not in _BOOLEAN_STRINGS:
        return value.strip()
    return APPROVED if is_truthy_flag(value) else PENDING


def counter_suggestion(submission: Submission) -> Optional[LoadWindow]:
    """The staff's suggested load window, only when the times were rejected with one."""
    value = submission.load_time_approval
    if not isinstance(value, str) or value.strip() != REJECTED_WITH_SUGGESTION:
        return None
    window = submission.suggested_window
    return None if window.is_empty() else window
