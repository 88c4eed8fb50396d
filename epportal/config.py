"""
Event Production Portal Configuration
Loads settings from environment variables with sensible defaults.

The whole application reads configuration through one Config object built
once at startup (get_config()) and handed to every service. Store column
names are configuration too: each one can be overridden from .env.
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

from epportal.errors import ConfigurationError

_logger = logging.getLogger(__name__)

# .env file at the project root, loaded by Config.from_env()
env_path = Path(__file__).parent.parent / '.env'


def _env(name: str, default: str = '') -> str:
    return os.getenv(name, default) or default


def _env_list(name: str) -> Tuple[str, ...]:
    return tuple(p.strip() for p in os.getenv(name, '').split(',') if p.strip())


@dataclass(frozen=True)
class EventFieldMap:
    """Column names on the Events table."""
    name: str = 'Eventname'
    start: str = 'Doors open'
    end: str = 'End'
    location: str = 'Location'
    announcement_date: str = 'Proposed Announcement Date'
    ticket_sale_date: str = 'Proposed Ticket on Sale Date'
    lineup: str = 'Proposed line-up (and timetable)'
    contract_status: str = 'Promoter contract status'
    submissions: str = 'EP Submission'

    @classmethod
    def from_env(cls) -> 'EventFieldMap':
        d = cls()
        return cls(
            name=_env('FIELD_EVENT_NAME', d.name),
            start=_env('FIELD_START', d.start),
            end=_env('FIELD_END', d.end),
            location=_env('FIELD_LOCATION', d.location),
            announcement_date=_env('FIELD_PROPOSED_ANNOUNCEMENT', d.announcement_date),
            ticket_sale_date=_env('FIELD_PUBLIC_TICKET_RELEASE', d.ticket_sale_date),
            lineup=_env('FIELD_PROPOSED_LINEUP', d.lineup),
            contract_status=_env('FIELD_PROMOTER_CONTRACT_STATUS', d.contract_status),
            submissions=_env('EP_SUBMISSION_LINK_FIELD', d.submissions),
        )


@dataclass(frozen=True)
class SubmissionFieldMap:
    """Column names on the EP Submission table."""
    date: str = 'Date'
    name: str = 'Eventname'
    start: str = 'Doors open'
    end: str = 'End'
    location: str = 'Location'
    lineup: str = 'Proposed timetable'
    announcement_date: str = 'Announcement date'
    ticket_sale_date: str = 'Tickets on sale'
    ticket_sale_aliases: Tuple[str, ...] = (
        'Tickets on Sale', 'Public ticket release', 'Public ticket release date',
    )
    comment: str = 'Comment'
    load_time_necessary: str = 'Load time necessary'
    load_in_start: str = 'Proposed production load in start'
    load_in_end: str = 'Proposed production load in end'
    load_out_start: str = 'Proposed production load out start'
    load_out_end: str = 'Proposed production load out end'
    load_times: str = 'Load times'
    approve_event_info: str = 'Approve Event Info'
    load_time_approval: str = 'Load Time Approval'
    suggested_load_in_start: str = 'Lofi production load in start'
    suggested_load_in_end: str = 'Lofi production load in end'
    suggested_load_out_start: str = 'Lofi production load out start'
    suggested_load_out_end: str = 'Lofi production load out end'

    @classmethod
    def from_env(cls) -> 'SubmissionFieldMap':
        d = cls()
        return cls(
            date=_env('SUBMISSION_FIELD_DATE', d.date),
            name=_env('SUBMISSION_FIELD_EVENT_NAME', d.name),
            start=_env('SUBMISSION_FIELD_START', d.start),
            end=_env('SUBMISSION_FIELD_END', d.end),
            location=_env('SUBMISSION_FIELD_LOCATION', d.location),
            lineup=_env('SUBMISSION_FIELD_TIMETABLE', d.lineup),
            announcement_date=_env('SUBMISSION_FIELD_ANNOUNCEMENT', d.announcement_date),
            ticket_sale_date=_env('SUBMISSION_FIELD_TICKETS_ON_SALE', d.ticket_sale_date),
            comment=_env('SUBMISSION_FIELD_COMMENT', d.comment),
            load_time_necessary=_env('SUBMISSION_FIELD_LOAD_TIME_NECESSARY', d.load_time_necessary),
            load_in_start=_env('SUBMISSION_FIELD_LOAD_IN_START', d.load_in_start),
            load_in_end=_env('SUBMISSION_FIELD_LOAD_IN_END', d.load_in_end),
            load_out_start=_env('SUBMISSION_FIELD_LOAD_OUT_START', d.load_out_start),
            load_out_end=_env('SUBMISSION_FIELD_LOAD_OUT_END', d.load_out_end),
            load_times=_env('SUBMISSION_FIELD_LOAD_TIMES', d.load_times),
            approve_event_info=_env('SUBMISSION_FIELD_APPROVE_EVENT_INFO', d.approve_event_info),
            load_time_approval=_env('SUBMISSION_FIELD_LOAD_TIME_APPROVAL', d.load_time_approval),
        )


@dataclass(frozen=True)
class ProfileFieldMap:
    """Column names for the CRM lookup, promoter profiles and contacts."""
    crm_email: str = 'E-mail'
    crm_promoters_link: str = 'Promoters'
    promoter_record_id: str = 'Record ID from CRM'
    promoter_events: str = 'Events'
    company_name: str = 'Promoter'
    address: str = 'Address'
    zipcode: str = 'Zipcode'
    city: str = 'City'
    coc: str = 'COC'
    vat_id: str = 'VAT ID'
    iban: str = 'IBAN number for ticket income'
    website: str = 'Website'
    contacts_link: str = 'Contactpersons'
    contact_first_name: str = 'First name'
    contact_last_name: str = 'Last name'
    contact_email: str = 'E-mail'
    contact_mobile: str = 'Mobile'
    contact_authorized: str = 'Authorized to sign'

    @property
    def editable_fields(self) -> Tuple[str, ...]:
        return (
            self.company_name, self.address, self.zipcode, self.city,
            self.coc, self.vat_id, self.iban, self.website,
        )

    @classmethod
    def from_env(cls) -> 'ProfileFieldMap':
        d = cls()
        return cls(
            crm_email=_env('CRM_EMAIL_FIELD', d.crm_email),
            crm_promoters_link=_env('CRM_PROMOTERS_LINK_FIELD', d.crm_promoters_link),
            promoter_record_id=_env('PROMOTER_RECORD_ID_FIELD', d.promoter_record_id),
            promoter_events=_env('PROMOTER_EVENTS_FIELD', d.promoter_events),
            company_name=_env('SOURCE_PROMOTER_COMPANY_NAME', d.company_name),
            address=_env('SOURCE_PROMOTER_ADDRESS', d.address),
            zipcode=_env('SOURCE_PROMOTER_ZIPCODE', d.zipcode),
            city=_env('SOURCE_PROMOTER_CITY', d.city),
            coc=_env('SOURCE_PROMOTER_COC', d.coc),
            vat_id=_env('SOURCE_PROMOTER_VAT_ID', d.vat_id),
            iban=_env('SOURCE_PROMOTER_IBAN', d.iban),
            website=_env('SOURCE_PROMOTER_WEBSITE', d.website),
            contacts_link=_env('SOURCE_CONTACTS_LINK_FIELD', d.contacts_link),
            contact_first_name=_env('SOURCE_CONTACT_FIRST_NAME', d.contact_first_name),
            contact_last_name=_env('SOURCE_CONTACT_LAST_NAME', d.contact_last_name),
            contact_email=_env('SOURCE_CONTACT_EMAIL', d.contact_email),
            contact_mobile=_env('SOURCE_CONTACT_MOBILE', d.contact_mobile),
            contact_authorized=_env('SOURCE_CONTACT_AUTHORIZED', d.contact_authorized),
        )


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    # Relay (every store call goes through it) and identity
    RELAY_URL: str = ''
    ID_TOKEN: str = ''
    USER_EMAIL: str = ''
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Store spaces: target (default base) and source
    STORE_BASE_ID: str = ''
    SOURCE_BASE_ID: str = ''
    TIMEZONE: str = 'Europe/Zurich'
    LOCALE: str = 'en-GB'

    # Tables
    EVENTS_TABLE: str = 'Events'
    SUBMISSIONS_TABLE: str = 'EP Submission'
    PROMOTERS_TABLE: str = 'Promoters'
    CRM_TABLE: str = 'CRM'
    SOURCE_PROMOTERS_TABLE: str = ''
    SOURCE_CRM_TABLE: str = 'CRM'

    # Relay contract (allow-lists are optional; empty means allow all)
    ALLOWED_BASES: Tuple[str, ...] = ()
    ALLOWED_TABLES: Tuple[str, ...] = ()
    RATE_LIMIT_MAX_REQUESTS: int = 30
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    # Read-after-write link confirmation
    LINK_RETRY_MAX_ATTEMPTS: int = 10
    LINK_RETRY_BASE_DELAY_SECONDS: float = 0.3
    LINK_RETRY_MULTIPLIER: float = 1.5

    # Concurrent reads
    BATCH_MAX_WORKERS: int = 8

    event_fields: EventFieldMap = field(default_factory=EventFieldMap)
    submission_fields: SubmissionFieldMap = field(default_factory=SubmissionFieldMap)
    profile_fields: ProfileFieldMap = field(default_factory=ProfileFieldMap)

    @classmethod
    def from_env(cls) -> 'Config':
        """Assemble a Config from the process environment (and .env)."""
        load_dotenv(env_path)
        d = cls()
        return cls(
            RELAY_URL=_env('RELAY_URL').rstrip('/'),
            ID_TOKEN=_env('ID_TOKEN'),
            USER_EMAIL=_env('USER_EMAIL'),
            REQUEST_TIMEOUT_SECONDS=float(_env('REQUEST_TIMEOUT_SECONDS', str(d.REQUEST_TIMEOUT_SECONDS))),
            STORE_BASE_ID=_env('STORE_BASE_ID'),
            SOURCE_BASE_ID=_env('SOURCE_BASE_ID'),
            TIMEZONE=_env('TIMEZONE', d.TIMEZONE),
            LOCALE=_env('LOCALE', d.LOCALE),
            EVENTS_TABLE=_env('EVENTS_TABLE', d.EVENTS_TABLE),
            SUBMISSIONS_TABLE=_env('EP_SUBMISSION_TABLE', d.SUBMISSIONS_TABLE),
            PROMOTERS_TABLE=_env('PROMOTERS_TABLE', d.PROMOTERS_TABLE),
            CRM_TABLE=_env('CRM_TABLE', d.CRM_TABLE),
            SOURCE_PROMOTERS_TABLE=_env('SOURCE_PROMOTERS_TABLE'),
            SOURCE_CRM_TABLE=_env('SOURCE_CRM_TABLE', d.SOURCE_CRM_TABLE),
            ALLOWED_BASES=_env_list('ALLOWED_BASES'),
            ALLOWED_TABLES=_env_list('ALLOWED_TABLES'),
            RATE_LIMIT_MAX_REQUESTS=int(_env('RATE_LIMIT_MAX_REQUESTS', str(d.RATE_LIMIT_MAX_REQUESTS))),
            RATE_LIMIT_WINDOW_SECONDS=float(_env('RATE_LIMIT_WINDOW_SECONDS', str(d.RATE_LIMIT_WINDOW_SECONDS))),
            LINK_RETRY_MAX_ATTEMPTS=int(_env('LINK_RETRY_MAX_ATTEMPTS', str(d.LINK_RETRY_MAX_ATTEMPTS))),
            LINK_RETRY_BASE_DELAY_SECONDS=float(_env('LINK_RETRY_BASE_DELAY_SECONDS', str(d.LINK_RETRY_BASE_DELAY_SECONDS))),
            LINK_RETRY_MULTIPLIER=float(_env('LINK_RETRY_MULTIPLIER', str(d.LINK_RETRY_MULTIPLIER))),
            BATCH_MAX_WORKERS=int(_env('BATCH_MAX_WORKERS', str(d.BATCH_MAX_WORKERS))),
            event_fields=EventFieldMap.from_env(),
            submission_fields=SubmissionFieldMap.from_env(),
            profile_fields=ProfileFieldMap.from_env(),
        )

    def require(self, *names: str) -> None:
        """Raise ConfigurationError for the first setting that is empty."""
        for name in names:
            if not getattr(self, name, None):
                _logger.critical(f"{name} is not set — cannot continue. Copy .env.example to .env and configure it.")
                raise ConfigurationError(name)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Return the process-wide Config, built on first use."""
    return Config.from_env()


def reset_config() -> None:
    """Drop the cached Config so the next get_config() re-reads the environment."""
    get_config.cache_clear()
