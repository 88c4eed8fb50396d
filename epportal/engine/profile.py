"""
Profile Engine - Promoter Profile and Contacts
Resolves the signed-in identity to its promoter profile and keeps the
profile's editable fields and contact list in sync with the store.

Two record spaces:
  target  Promoters table in the store base; linked from the CRM identity
          record and from Events. Read-only here.
  source  Promoters table in the source base; holds the editable fields
          and the contact links. Every write goes here.

Contacts are never deleted: "unlink" only drops the id from the profile.
After any contact change the list is reloaded from the link field.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional

from epportal.bus.events import (
    bus, EVENT_CONTACT_CREATED, EVENT_CONTACT_UNLINKED, EVENT_CONTACT_UPDATED, EVENT_PROFILE_SAVED,
)
from epportal.config import Config
from epportal.engine.batch import fetch_many
from epportal.engine.fields import is_blank, is_truthy_flag, link_ids
from epportal.errors import ErrorCode, ProfileResolutionError, ValidationError
from epportal.models import Contact, PromoterProfile
from epportal.store.records import MODE_DISPLAY, MODE_RAW, RecordStore, field_equals

logger = logging.getLogger(__name__)


def has_authorized_signer(contacts: Iterable[Contact]) -> bool:
    """True when at least one contact may sign contracts."""
    return any(c.authorized_to_sign for c in contacts)


_INTEGER_RE = re.compile(r'^[+-]?\d+$')


def _coerce_number(value: Any, label: str, column: str) -> Any:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number", field=column)
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if _INTEGER_RE.match(text):
        return int(text)
    try:
        number = float(text)
    except ValueError:
        raise ValidationError(f"{label} must be a number", field=column)
    # NaN and infinities have no JSON form
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be a number", field=column)
    return int(number) if number.is_integer() else number


class ProfileService:
    """Profile resolution, profile save and contact mutations."""

    def __init__(self, config: Config, store: RecordStore):
        self.config = config
        self.store = store
        self.pf = config.profile_fields

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, email: str) -> PromoterProfile:
        """
        identity email -> exactly one target promoter -> source promoter -> contacts

        Raises:
            ProfileResolutionError: no promoter, several promoters, or no
                                    source record to edit
        """
        pf = self.pf
        crm_records = self.store.list_records(
            self.config.CRM_TABLE,
            filter_formula=field_equals(pf.crm_email, email),
            fields=[pf.crm_promoters_link],
            mode=MODE_RAW,
        )

        promoter_ids: List[str] = []
        for record in crm_records:
            for pid in link_ids(record['fields'].get(pf.crm_promoters_link)):
                if pid not in promoter_ids:
                    promoter_ids.append(pid)

        if not promoter_ids:
            logger.warning(f"resolve: no promoter linked to {email}")
            raise ProfileResolutionError(ErrorCode.NO_PROMOTER_LINKED)
        if len(promoter_ids) > 1:
            logger.warning(f"resolve: {len(promoter_ids)} promoters linked to {email}: {promoter_ids}")
            raise ProfileResolutionError(ErrorCode.MULTIPLE_PROMOTERS_LINKED)

        target = self.store.get_record(self.config.PROMOTERS_TABLE, promoter_ids[0], MODE_RAW)
        source_ref = target['fields'].get(pf.promoter_record_id)
        source_ids = link_ids(source_ref)
        if not (self.config.SOURCE_BASE_ID and self.config.SOURCE_PROMOTERS_TABLE and source_ids):
            logger.error(f"resolve: promoter {target['id']} has no usable source reference ({source_ref!r})")
            raise ProfileResolutionError(ErrorCode.SOURCE_PROFILE_MISSING)

        profile = PromoterProfile(
            target_id=target['id'],
            source_id=source_ids[0],
            event_ids=link_ids(target['fields'].get(pf.promoter_events)),
        )
        logger.info(f"Resolved {email} to promoter {profile.target_id} (source {profile.source_id})")
        return self.reload(profile)

    def reload(self, profile: PromoterProfile) -> PromoterProfile:
        """Re-read the source profile and its contacts."""
        pf = self.pf
        source = self._get_source_profile(profile.source_id)
        raw = source['fields']
        source_events = link_ids(raw.get(pf.promoter_events))
        contact_ids = link_ids(raw.get(pf.contacts_link))
        return PromoterProfile(
            target_id=profile.target_id,
            source_id=profile.source_id,
            fields={name: raw.get(name) for name in pf.editable_fields},
            contact_ids=contact_ids,
            # Events linked on the source profile win; the target's list is the fallback
            event_ids=source_events or profile.event_ids,
            contacts=self.load_contacts(contact_ids),
        )

    def _get_source_profile(self, source_id: str) -> Dict[str, Any]:
        return self.store.get_record(
            self.config.SOURCE_PROMOTERS_TABLE, source_id, MODE_RAW, base_id=self.config.SOURCE_BASE_ID,
        )

    def _contact_links(self, source_id: str) -> List[str]:
        return link_ids(self._get_source_profile(source_id)['fields'].get(self.pf.contacts_link))

    # -------------------------------------------------------------------------
    # Contacts
    # -------------------------------------------------------------------------

    def _contact_from_record(self, record: Dict[str, Any]) -> Contact:
        pf = self.pf
        f = record.get('fields') or {}
        return Contact(
            id=record.get('id', ''),
            first_name=f.get(pf.contact_first_name),
            last_name=f.get(pf.contact_last_name),
            email=f.get(pf.contact_email),
            mobile=f.get(pf.contact_mobile),
            authorized_to_sign=is_truthy_flag(f.get(pf.contact_authorized)),
        )

    def get_contact(self, contact_id: str) -> Contact:
        record = self.store.get_record(
            self.config.SOURCE_CRM_TABLE, contact_id, MODE_DISPLAY, base_id=self.config.SOURCE_BASE_ID,
        )
        return self._contact_from_record(record)

    def load_contacts(self, contact_ids: List[str]) -> List[Contact]:
        """Fetch contacts concurrently; one that fails to load is dropped and logged."""
        return fetch_many(
            contact_ids, self.get_contact,
            max_workers=self.config.BATCH_MAX_WORKERS, label='contact',
        )

    def contact_fields(
        self,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
        mobile: Optional[str] = None,
        authorized_to_sign: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Store columns for the given contact values; None means leave unchanged."""
        pf = self.pf
        pairs = (
            (pf.contact_first_name, first_name),
            (pf.contact_last_name, last_name),
            (pf.contact_email, email),
            (pf.contact_mobile, mobile),
            (pf.contact_authorized, authorized_to_sign),
        )
        return {column: value for column, value in pairs if value is not None}

    def create_contact(self, profile: PromoterProfile, fields: Dict[str, Any]) -> PromoterProfile:
        """Create a contact, link it to the source profile and reload."""
        if not fields:
            raise ValidationError("A contact needs at least one field")

        created = self.store.create_record(
            self.config.SOURCE_CRM_TABLE, fields, base_id=self.config.SOURCE_BASE_ID,
        )
        contact_id = created['id']

        links = self._contact_links(profile.source_id)
        if contact_id not in links:
            links.append(contact_id)
        self.store.update_record(
            self.config.SOURCE_PROMOTERS_TABLE, profile.source_id,
            {self.pf.contacts_link: links}, base_id=self.config.SOURCE_BASE_ID,
        )
        logger.info(f"Created contact {contact_id} for promoter {profile.source_id}")
        bus.emit(EVENT_CONTACT_CREATED, {'contact_id': contact_id, 'promoter_id': profile.source_id})
        return self.reload(profile)

    def update_contact(self, profile: PromoterProfile, contact_id: str, fields: Dict[str, Any]) -> PromoterProfile:
        """Write fields straight to the contact record and reload."""
        if contact_id not in profile.contact_ids:
            raise ValidationError(f"Contact {contact_id} is not linked to this promoter", field='contact_id')
        if not fields:
            return profile

        self.store.update_record(
            self.config.SOURCE_CRM_TABLE, contact_id, fields, base_id=self.config.SOURCE_BASE_ID,
        )
        bus.emit(EVENT_CONTACT_UPDATED, {
            'contact_id': contact_id, 'promoter_id': profile.source_id, 'updates': fields,
        })
        return self.reload(profile)

    def unlink_contact(self, profile: PromoterProfile, contact_id: str) -> PromoterProfile:
        """Remove the contact from the profile's links. The contact record stays."""
        links = self._contact_links(profile.source_id)
        if contact_id not in links:
            raise ValidationError(f"Contact {contact_id} is not linked to this promoter", field='contact_id')

        remaining = [cid for cid in links if cid != contact_id]
        self.store.update_record(
            self.config.SOURCE_PROMOTERS_TABLE, profile.source_id,
            {self.pf.contacts_link: remaining}, base_id=self.config.SOURCE_BASE_ID,
        )
        logger.info(f"Unlinked contact {contact_id} from promoter {profile.source_id}")
        bus.emit(EVENT_CONTACT_UNLINKED, {'contact_id': contact_id, 'promoter_id': profile.source_id})
        return self.reload(profile)

    # -------------------------------------------------------------------------
    # Profile fields
    # -------------------------------------------------------------------------

    def save_profile(self, profile: PromoterProfile, values: Dict[str, Any]) -> PromoterProfile:
        """
        Write edited profile fields to the source profile and reload.

        Args:
            values: column -> new value. An empty string clears the field
                    (written as null); columns left out stay unchanged.

        Raises:
            ValidationError: unknown column, or a non-numeric COC
        """
        pf = self.pf
        unknown = set(values) - set(pf.editable_fields)
        if unknown:
            raise ValidationError(f"Invalid profile fields: {sorted(unknown)}")
        if not values:
            return profile

        fields: Dict[str, Any] = {}
        for column, value in values.items():
            if is_blank(value):
                fields[column] = None
            elif column == pf.coc:
                fields[column] = _coerce_number(value, 'COC', column)
            else:
                fields[column] = value.strip() if isinstance(value, str) else value

        self.store.update_record(
            self.config.SOURCE_PROMOTERS_TABLE, profile.source_id, fields,
            base_id=self.config.SOURCE_BASE_ID,
        )
        logger.info(f"Saved promoter profile {profile.source_id}: {list(fields.keys())}")
        bus.emit(EVENT_PROFILE_SAVED, {'promoter_id': profile.source_id, 'updates': fields})
        return self.reload(profile)
