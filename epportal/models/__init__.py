"""
Data Models
Dataclasses for all entities. These are pure Python objects, no store logic.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class RecordView:
    """One store record with both representations of its fields.

    raw holds the store's machine values (linked fields as identifier lists,
    dates as ISO strings, checkboxes as booleans); display holds the
    human-readable rendering of the same fields.
    """
    id: str = ''
    raw: Dict[str, Any] = field(default_factory=dict)
    display: Dict[str, Any] = field(default_factory=dict)
    created_time: Optional[str] = None


@dataclass
class Event:
    """One production/show, as linked to the promoter's account."""
    id: str = ''
    name: str = ''
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location_ids: List[str] = field(default_factory=list)
    location_display: Optional[str] = None
    announcement_date: Optional[datetime] = None
    ticket_sale_date: Optional[datetime] = None
    lineup: Optional[str] = None
    contract_status: Optional[str] = None
    submission_ids: List[str] = field(default_factory=list)
    record: Optional[RecordView] = None


@dataclass
class LoadWindow:
    """Proposed (or counter-suggested) load-in / load-out times."""
    load_in_start: Optional[datetime] = None
    load_in_end: Optional[datetime] = None
    load_out_start: Optional[datetime] = None
    load_out_end: Optional[datetime] = None

    def is_empty(self) -> bool:
        return not any((self.load_in_start, self.load_in_end, self.load_out_start, self.load_out_end))


@dataclass
class Submission:
    """A promoter-supplied production-info record (EP Submission)."""
    id: str = ''
    date: Optional[datetime] = None
    name: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location_ids: List[str] = field(default_factory=list)
    location_display: Optional[str] = None
    lineup: Optional[str] = None
    announcement_date: Optional[datetime] = None
    ticket_sale_date: Optional[datetime] = None
    comment: Optional[str] = None
    load_time_necessary: Optional[str] = None
    load_window: LoadWindow = field(default_factory=LoadWindow)
    load_times: Any = None
    approve_event_info: Any = None
    load_time_approval: Any = None
    suggested_window: LoadWindow = field(default_factory=LoadWindow)
    record: Optional[RecordView] = None


@dataclass
class Contact:
    """A person attached to a promoter profile."""
    id: str = ''
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    authorized_to_sign: bool = False

    @property
    def full_name(self) -> str:
        return ' '.join(p for p in (self.first_name, self.last_name) if p) or '(no name)'


@dataclass
class PromoterProfile:
    """The signed-in user's company, split across target and source spaces."""
    target_id: str = ''
    source_id: str = ''
    fields: Dict[str, Any] = field(default_factory=dict)
    contact_ids: List[str] = field(default_factory=list)
    event_ids: List[str] = field(default_factory=list)
    contacts: List[Contact] = field(default_factory=list)


@dataclass(frozen=True)
class WorkflowState:
    """What the UI shows for an event: badge, the one allowed action, a hint."""
    badge: Optional[str] = None
    action: Optional[str] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.badge or self.action)
