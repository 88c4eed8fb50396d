"""
Submission Classifier
Orders an event's submissions newest first and splits them into the
"general info" and "load time" views the event page shows.

  general    load-times flag is anything but strictly true
  load time  load-times flag strictly true AND a load-time choice is set
  unclassified  load-times true but no load-time choice: a data-quality gap,
             kept visible instead of silently dropped
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from epportal.engine.fields import is_blank, is_strictly_true
from epportal.models import Submission

logger = logging.getLogger(__name__)


def sort_submissions(submissions: Iterable[Submission]) -> List[Submission]:
    """Newest submission date first; undated last; ties keep their input order."""
    return sorted(
        submissions,
        key=lambda s: (s.date is None, -s.date.timestamp() if s.date else 0.0),
    )


def is_general(submission: Submission) -> bool:
    return not is_strictly_true(submission.load_times)


def is_load_time(submission: Submission) -> bool:
    return is_strictly_true(submission.load_times) and not is_blank(submission.load_time_necessary)


def select_active(view: List[Submission], pinned_id: Optional[str] = None) -> Optional[Submission]:
    """The pinned submission when it is in the view, otherwise the newest."""
    if pinned_id:
        for submission in view:
            if submission.id == pinned_id:
                return submission
        logger.debug(f"select_active: pinned submission {pinned_id} not in view, using newest")
    return view[0] if view else None


@dataclass
class SubmissionViews:
    """An event's submissions, sorted and partitioned."""
    ordered: List[Submission] = field(default_factory=list)
    general: List[Submission] = field(default_factory=list)
    load_time: List[Submission] = field(default_factory=list)
    unclassified: List[Submission] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.ordered

    def active_general(self, pinned_id: Optional[str] = None) -> Optional[Submission]:
        return select_active(self.general, pinned_id)

    def active_load_time(self, pinned_id: Optional[str] = None) -> Optional[Submission]:
        return select_active(self.load_time, pinned_id)


def classify_submissions(submissions: Iterable[Submission]) -> SubmissionViews:
    """Sort and partition submissions (store link order in, any order accepted)."""
    ordered = sort_submissions(submissions)
    views = SubmissionViews(ordered=ordered)
    for submission in ordered:
        if is_general(submission):
            views.general.append(submission)
        elif is_load_time(submission):
            views.load_time.append(submission)
        else:
            views.unclassified.append(submission)

    if views.unclassified:
        logger.warning(
            f"classify_submissions: {len(views.unclassified)} submission(s) flagged as load times "
            f"without a load-time choice: {[s.id for s in views.unclassified]}"
        )
    return views
