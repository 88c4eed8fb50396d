"""
Record Access Layer
Typed access to the tabular store: get one record, list with filter/sort,
create, update. Each call can target the default (target) base or an explicit
one (the source space).

Two fetch modes:
  MODE_RAW      linked fields come back as bare record-id lists, dates as ISO
                strings, checkboxes as booleans. Use it to extract ids.
  MODE_DISPLAY  the store renders every value as a locale-formatted string
                (dates as "DD/MM/YYYY HH:mm", links as names). Use it to show.
The two are not interchangeable for the same field.

No retries here: create/update are not idempotent, and retry policy belongs
to the callers that know what they are confirming.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from epportal.engine.dates import format_datetime
from epportal.models import RecordView
from epportal.store.relay import RelayTransport

logger = logging.getLogger(__name__)

MODE_RAW = 'raw'
MODE_DISPLAY = 'display'
_MODES = (MODE_RAW, MODE_DISPLAY)


# =============================================================================
# FILTER FORMULAS
# =============================================================================

def _quote(value: Any) -> str:
    text = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return f'"{text}"'


def record_id_in(record_ids: Iterable[str]) -> str:
    """Formula matching any of the given record ids."""
    clauses = [f'RECORD_ID() = {_quote(rid)}' for rid in record_ids]
    if not clauses:
        return 'FALSE()'
    return f"OR({', '.join(clauses)})"


def field_equals(field: str, value: Any) -> str:
    """Formula matching records whose field equals value."""
    return f'{{{field}}} = {_quote(value)}'


# =============================================================================
# RECORD STORE
# =============================================================================

class RecordStore:
    """Uniform accessor for the store, behind the relay."""

    def __init__(
        self,
        transport: RelayTransport,
        default_base_id: str = '',
        timezone: str = 'Europe/Zurich',
        locale: str = 'en-GB',
    ):
        self._transport = transport
        self._default_base_id = default_base_id
        self._timezone = timezone
        self._locale = locale

    @property
    def timezone(self) -> str:
        return self._timezone

    def _path(self, table: str, record_id: Optional[str] = None, base_id: Optional[str] = None) -> str:
        parts = [base_id or self._default_base_id, table, record_id]
        return '/'.join(p for p in parts if p)

    def _mode_params(self, mode: str) -> Dict[str, Any]:
        if mode not in _MODES:
            raise ValueError(f"Unknown fetch mode '{mode}'. Choose from: {', '.join(_MODES)}")
        if mode == MODE_DISPLAY:
            return {'cellFormat': 'string', 'timeZone': self._timezone, 'userLocale': self._locale}
        return {}

    def get_record(
        self,
        table: str,
        record_id: str,
        mode: str = MODE_RAW,
        base_id: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Fetch one record.
        Returns: the store's record dict {'id', 'fields', 'createdTime'}
        """
        params = self._mode_params(mode)
        if fields:
            params['fields[]'] = list(fields)
        record = self._transport.request(
            self._path(table, record_id, base_id), 'GET', query_params=params or None,
        )
        record.setdefault('fields', {})
        return record

    def list_records(
        self,
        table: str,
        filter_formula: Optional[str] = None,
        sort: Optional[Sequence[Tuple[str, str]]] = None,
        fields: Optional[Sequence[str]] = None,
        mode: str = MODE_DISPLAY,
        base_id: Optional[str] = None,
        max_records: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        List records, following the store's offset pagination to the end.

        Args:
            sort: sequence of (field, 'asc'|'desc')
        """
        params = self._mode_params(mode)
        if mode == MODE_RAW:
            params['cellFormat'] = 'json'
        if filter_formula:
            params['filterByFormula'] = filter_formula
        for i, (field, direction) in enumerate(sort or ()):
            params[f'sort[{i}][field]'] = field
            params[f'sort[{i}][direction]'] = direction or 'asc'
        if fields:
            params['fields[]'] = list(fields)
        if max_records:
            params['maxRecords'] = max_records

        records: List[Dict[str, Any]] = []
        path = self._path(table, base_id=base_id)
        offset = None
        while True:
            page_params = dict(params)
            if offset:
                page_params['offset'] = offset
            page = self._transport.request(path, 'GET', query_params=page_params)
            for record in page.get('records') or []:
                record.setdefault('fields', {})
                records.append(record)
            offset = page.get('offset')
            if not offset:
                break

        logger.debug(f"list_records: {table} → {len(records)} records (filter={filter_formula})")
        return records

    def create_record(self, table: str, fields: Dict[str, Any], base_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a record. Not idempotent: never re-issue blindly.
        Returns: the created record (with its new 'id')
        """
        record = self._transport.request(self._path(table, base_id=base_id), 'POST', body={'fields': fields})
        logger.info(f"Created record {record.get('id')} in {table}")
        return record

    def update_record(
        self,
        table: str,
        record_id: str,
        fields: Dict[str, Any],
        base_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Patch the given fields of one record. Returns the updated record."""
        record = self._transport.request(
            self._path(table, record_id, base_id), 'PATCH', body={'fields': fields},
        )
        logger.info(f"Updated record {record_id} in {table}: {list(fields.keys())}")
        return record

    def get_record_view(
        self,
        table: str,
        record_id: str,
        datetime_fields: Iterable[str] = (),
        base_id: Optional[str] = None,
    ) -> RecordView:
        """
        Fetch a record once (raw) and derive its display rendering locally.

        Datetime columns are rendered as "DD/MM/YYYY HH:mm" in the display
        timezone; everything else is shown as stored (links stay id lists).
        """
        record = self.get_record(table, record_id, MODE_RAW, base_id=base_id)
        return to_record_view(record, datetime_fields, self._timezone)


def to_record_view(record: Dict[str, Any], datetime_fields: Iterable[str] = (), timezone: Optional[str] = None) -> RecordView:
    """Build a RecordView from a raw record dict."""
    raw = dict(record.get('fields') or {})
    wanted = set(datetime_fields)
    display = {
        name: (format_datetime(value, timezone) or value) if name in wanted else value
        for name, value in raw.items()
    }
    return RecordView(
        id=record.get('id', ''),
        raw=raw,
        display=display,
        created_time=record.get('createdTime'),
    )
