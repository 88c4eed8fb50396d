#!/usr/bin/env python3
"""
Event Production Portal CLI
Terminal interface for promoters: events, production-info submissions,
the company profile and its contacts.

Identity comes from configuration (USER_EMAIL, ID_TOKEN); signing in is
handled by the identity provider outside this tool.
"""

import functools
import logging
import re
import sys
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import click

from epportal.bus.events import bus, EVENT_SUBMISSION_CREATED, EVENT_SUBMISSION_LINKED
from epportal.config import Config, get_config
from epportal.engine.dates import format_datetime, parse_flexible
from epportal.engine.derivation import LOAD_TIME_CHOICES, is_suggest_choice
from epportal.engine.portal import EventDetail, PortalService, bucket_events
from epportal.engine.profile import ProfileService, has_authorized_signer
from epportal.engine.reconcile import ReconciliationCancelled
from epportal.engine.review import counter_suggestion, general_approval_label, load_time_approval_label
from epportal.engine.workflow import ACTION_PROVIDE_INFO, resolve_workflow
from epportal.errors import ConfigurationError, PortalError, ValidationError
from epportal.logging_config import configure_logging, log_call
from epportal.models import Event, LoadWindow, Submission
from epportal.store.records import RecordStore
from epportal.store.relay import RateLimiter, RelayPolicy, RelayTransport

_EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def _services() -> Tuple[Config, PortalService, ProfileService]:
    """Build the store stack from configuration."""
    config = get_config()
    config.require('RELAY_URL', 'ID_TOKEN', 'USER_EMAIL', 'STORE_BASE_ID')
    transport = RelayTransport(
        config.RELAY_URL,
        config.ID_TOKEN,
        timeout=config.REQUEST_TIMEOUT_SECONDS,
        policy=RelayPolicy(config.ALLOWED_BASES, config.ALLOWED_TABLES),
        rate_limiter=RateLimiter(config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS),
    )
    store = RecordStore(transport, config.STORE_BASE_ID, config.TIMEZONE, config.LOCALE)
    return config, PortalService(config, store), ProfileService(config, store)


def handle_portal_errors(func):
    """Print portal errors the way the user should see them and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ValidationError, ConfigurationError) as e:
            click.echo(f"Error: {e.message}", err=True)
        except PortalError as e:
            click.echo(f"\n[!] {e.message}\n", err=True)
        except ReconciliationCancelled:
            click.echo("Cancelled.", err=True)
        sys.exit(1)
    return wrapper


def _fmt(value: Optional[datetime], tz: str) -> str:
    return format_datetime(value, tz) or '(not set)'


@log_call
def _prompt_datetime(label: str, tz: str, default: Optional[datetime] = None, required: bool = False) -> Optional[datetime]:
    """Prompt for "DD/MM/YYYY HH:mm", re-prompting on bad format. Blank returns None unless required."""
    logger = logging.getLogger("epportal")
    default_str = format_datetime(default, tz) if default else ""
    while True:
        raw = click.prompt(label, default=default_str, show_default=bool(default_str)) or ""
        if not raw:
            if not required:
                return None
            click.echo(f"  {label} is required.", err=True)
            continue
        parsed = parse_flexible(raw, tz)
        if parsed is not None:
            return parsed
        logger.debug(f"_prompt_datetime | rejected input={raw!r}")
        click.echo("  Invalid format, please use DD/MM/YYYY HH:mm.", err=True)


@log_call
def _prompt_email(default: str = "") -> Optional[str]:
    """Prompt for an email address, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("epportal")
    while True:
        raw = click.prompt("E-mail", default=default, show_default=bool(default)) or None
        if raw is None:
            return None
        if _EMAIL_RE.match(raw):
            return raw
        logger.debug(f"_prompt_email | rejected input={raw!r}")
        click.echo("  Invalid email address, please try again or press Enter to skip.", err=True)


@click.group()
def cli():
    """Event Production Portal - events, production info and promoter profile"""
    configure_logging()


# =============================================================================
# EVENTS COMMANDS
# =============================================================================

@cli.group()
def events():
    """Your events and their production info"""
    pass


def _echo_event_rows(title: str, rows, tz: str) -> None:
    click.echo(f"\n{title} ({len(rows)})")
    click.echo("-" * 90)
    if not rows:
        click.echo("  (none)")
        return
    for event in rows:
        workflow = _workflow_for(event)
        date_str = format_datetime(event.start, tz) or '(no date)'
        click.echo(
            f"{event.id:<20} {date_str:<18} {event.name[:30]:<32} {workflow.badge or ''}"
        )


def _workflow_for(event: Event):
    return resolve_workflow(event.contract_status, bool(event.submission_ids))


@events.command('list')
@handle_portal_errors
@log_call
def events_list():
    """List your events: upcoming, past and undated"""
    config, portal, profiles = _services()
    profile = profiles.resolve(config.USER_EMAIL)
    results = portal.list_events(profile)

    if not results:
        click.echo("No events linked to your promoter profile.")
        return

    buckets = bucket_events(results)
    click.echo(f"\nFound {len(results)} events:")
    _echo_event_rows("UPCOMING", buckets.upcoming, config.TIMEZONE)
    _echo_event_rows("PAST", buckets.past, config.TIMEZONE)
    if buckets.undated:
        _echo_event_rows("UNDATED", buckets.undated, config.TIMEZONE)
    click.echo()


def _echo_window(window: LoadWindow, tz: str, indent: str = "  ") -> None:
    click.echo(f"{indent}Load in:   {_fmt(window.load_in_start, tz)} - {_fmt(window.load_in_end, tz)}")
    click.echo(f"{indent}Load out:  {_fmt(window.load_out_start, tz)} - {_fmt(window.load_out_end, tz)}")


def _echo_general(sub: Submission, tz: str) -> None:
    click.echo(f"\nGENERAL INFO  #{sub.id}  [{general_approval_label(sub)}]")
    click.echo(f"  Submitted:        {_fmt(sub.date, tz)}")
    click.echo(f"  Event name:       {sub.name or '(not set)'}")
    click.echo(f"  Doors open:       {_fmt(sub.start, tz)}")
    click.echo(f"  End:              {_fmt(sub.end, tz)}")
    click.echo(f"  Location:         {sub.location_display or '(not set)'}")
    click.echo(f"  Announcement:     {_fmt(sub.announcement_date, tz)}")
    click.echo(f"  Tickets on sale:  {_fmt(sub.ticket_sale_date, tz)}")
    if sub.lineup:
        click.echo(f"  Timetable:\n    {sub.lineup}")
    if sub.comment:
        click.echo(f"  Comment:\n    {sub.comment}")


def _echo_load_time(sub: Submission, tz: str) -> None:
    label = load_time_approval_label(sub)
    click.echo(f"\nLOAD TIMES  #{sub.id}" + (f"  [{label}]" if label else ""))
    click.echo(f"  Submitted:        {_fmt(sub.date, tz)}")
    click.echo(f"  Load time:        {sub.load_time_necessary}")
    _echo_window(sub.load_window, tz)
    suggestion = counter_suggestion(sub)
    if suggestion:
        click.echo("  Suggested by production:")
        _echo_window(suggestion, tz, indent="    ")


def _echo_detail(detail: EventDetail, tz: str, pinned: Optional[str], pinned_load: Optional[str]) -> None:
    event = detail.event
    click.echo(f"\n{'='*80}")
    click.echo(f"EVENT {event.id}: {event.name}")
    click.echo(f"{'='*80}")
    click.echo(f"Doors open:     {_fmt(event.start, tz)}")
    click.echo(f"End:            {_fmt(event.end, tz)}")
    click.echo(f"Location:       {event.location_display or '(not set)'}")
    click.echo(f"Announcement:   {_fmt(event.announcement_date, tz)}")
    click.echo(f"Ticket sale:    {_fmt(event.ticket_sale_date, tz)}")
    if event.lineup:
        click.echo(f"\nLine-up:\n{event.lineup}")

    workflow = detail.workflow
    if workflow:
        click.echo(f"\nStatus:         {workflow.badge}")
        if workflow.message:
            click.echo(f"                {workflow.message}")
        if workflow.action:
            click.echo(f"Next step:      {workflow.action}")
    if detail.needs_submission:
        click.echo(f"\nProduction info is needed: run 'epportal events submit {event.id}'.")

    views = detail.views
    if views.is_empty:
        click.echo("\nNo submissions yet.")
        click.echo()
        return

    general = views.active_general(pinned)
    if general:
        _echo_general(general, tz)
        if len(views.general) > 1:
            others = ', '.join(s.id for s in views.general if s.id != general.id)
            click.echo(f"  Earlier versions: {others}")

    load_time = views.active_load_time(pinned_load)
    if load_time:
        _echo_load_time(load_time, tz)
        if len(views.load_time) > 1:
            others = ', '.join(s.id for s in views.load_time if s.id != load_time.id)
            click.echo(f"  Earlier versions: {others}")

    if views.unclassified:
        ids = ', '.join(s.id for s in views.unclassified)
        click.echo(f"\nFlagged as load times without a load-time choice: {ids}")
    click.echo()


@events.command('show')
@click.argument('event_id')
@click.option('--submission', 'submission_id', help='Show this general-info submission instead of the newest')
@click.option('--load-submission', 'load_submission_id', help='Show this load-time submission instead of the newest')
@handle_portal_errors
@log_call
def events_show(event_id, submission_id, load_submission_id):
    """Show an event with its workflow status and submissions"""
    config, portal, _ = _services()
    detail = portal.load_event_detail(event_id)
    _echo_detail(detail, config.TIMEZONE, submission_id, load_submission_id)


def _prompt_submission(config: Config, draft: Dict[str, Any]) -> Dict[str, Any]:
    """Walk the user through the submission form, starting from the draft."""
    sf = config.submission_fields
    tz = config.TIMEZONE
    values = dict(draft)

    values[sf.name] = click.prompt("Event name", default=draft.get(sf.name) or None)
    values[sf.start] = _prompt_datetime("Doors open (DD/MM/YYYY HH:mm)", tz, draft.get(sf.start), required=True)
    values[sf.end] = _prompt_datetime("End (DD/MM/YYYY HH:mm)", tz, draft.get(sf.end), required=True)
    values[sf.announcement_date] = _prompt_datetime(
        "Announcement date (DD/MM/YYYY HH:mm, Enter to skip)", tz, draft.get(sf.announcement_date),
    )
    values[sf.ticket_sale_date] = _prompt_datetime(
        "Tickets on sale (DD/MM/YYYY HH:mm, Enter to skip)", tz, draft.get(sf.ticket_sale_date),
    )
    values[sf.lineup] = click.prompt(
        "Timetable", default=draft.get(sf.lineup) or "", show_default=False,
    ) or None
    values[sf.comment] = click.prompt("Comment", default="", show_default=False) or None

    values[sf.load_time_necessary] = click.prompt(
        "Load time necessary",
        type=click.Choice(list(LOAD_TIME_CHOICES), case_sensitive=False),
        default=draft.get(sf.load_time_necessary) or LOAD_TIME_CHOICES[0],
    )
    legs = (
        (sf.load_in_start, "Load in start"),
        (sf.load_in_end, "Load in end"),
        (sf.load_out_start, "Load out start"),
        (sf.load_out_end, "Load out end"),
    )
    if is_suggest_choice(values[sf.load_time_necessary]):
        for column, label in legs:
            values[column] = _prompt_datetime(f"{label} (DD/MM/YYYY HH:mm)", tz, draft.get(column), required=True)
    else:
        for column, _ in legs:
            values[column] = None
    return values


@events.command('submit')
@click.argument('event_id')
@handle_portal_errors
@log_call
def events_submit(event_id):
    """Submit production info for an event (interactive)"""
    logger = logging.getLogger("epportal")
    config, portal, _ = _services()
    detail = portal.load_event_detail(event_id)

    if detail.workflow.action != ACTION_PROVIDE_INFO:
        logger.warning(f"events_submit | event_id={event_id} workflow={detail.workflow.badge!r}")
        status = detail.workflow.badge or 'no production info requested'
        if not click.confirm(f"This event is '{status}'. Submit production info anyway?", default=False):
            click.echo("Nothing submitted.")
            return

    click.echo(f"\n=== PRODUCTION INFO: {detail.event.name} ===\n")
    values = _prompt_submission(config, portal.draft_for_event(detail))

    click.echo("\nSubmitting...")
    progress = {
        EVENT_SUBMISSION_CREATED: lambda d: click.echo(f"  Saved submission #{d['submission_id']}"),
        EVENT_SUBMISSION_LINKED: lambda d: click.echo("  Linked to the event, waiting for it to show up..."),
    }
    for name, handler in progress.items():
        bus.on(name, handler)
    try:
        receipt = portal.submit_production_info(event_id, values)
    finally:
        for name, handler in progress.items():
            bus.off(name, handler)
    click.echo(f"\n✓ Submitted production info #{receipt.submission_id}")
    if not receipt.confirmed:
        click.echo("  The submission is saved but not visible on the event yet. Check again in a moment.")
    if receipt.detail:
        _echo_detail(receipt.detail, config.TIMEZONE, None, None)


# =============================================================================
# PROFILE COMMANDS
# =============================================================================

@cli.group()
def profile():
    """Your promoter company profile"""
    pass


def _echo_contacts(contacts) -> None:
    if not contacts:
        click.echo("No contacts.")
        return
    click.echo(f"{'ID':<20} {'Name':<28} {'E-mail':<30} {'Mobile':<16} {'Signs'}")
    click.echo("-" * 100)
    for c in contacts:
        click.echo(
            f"{c.id:<20} {c.full_name[:26]:<28} {(c.email or '')[:28]:<30} "
            f"{(c.mobile or '')[:14]:<16} {'yes' if c.authorized_to_sign else ''}"
        )


def _warn_signer(contacts) -> None:
    if contacts and not has_authorized_signer(contacts):
        logging.getLogger("epportal").warning("No contact is authorized to sign")
        click.echo("\n[!] At least one contact should be Authorized to sign", err=True)


@profile.command('show')
@handle_portal_errors
@log_call
def profile_show():
    """Show your company profile and contacts"""
    config, _, profiles = _services()
    prof = profiles.resolve(config.USER_EMAIL)

    click.echo(f"\n{'='*80}")
    click.echo(f"PROMOTER: {prof.fields.get(config.profile_fields.company_name) or '(no name)'}")
    click.echo(f"{'='*80}")
    for column in config.profile_fields.editable_fields:
        value = prof.fields.get(column)
        click.echo(f"{column + ':':<32} {value if value not in (None, '') else '(not set)'}")

    click.echo(f"\nCONTACTS ({len(prof.contacts)})")
    _echo_contacts(prof.contacts)
    _warn_signer(prof.contacts)
    click.echo()


@profile.command('edit')
@click.option('--company-name', help='Company name')
@click.option('--address', help='Street address')
@click.option('--zipcode', help='Postal code')
@click.option('--city', help='City')
@click.option('--coc', help='Chamber of commerce number (numeric)')
@click.option('--vat-id', help='VAT id')
@click.option('--iban', help='IBAN for ticket income')
@click.option('--website', help='Website')
@handle_portal_errors
@log_call
def profile_edit(company_name, address, zipcode, city, coc, vat_id, iban, website):
    """Edit profile fields (use options; pass "" to clear a field)"""
    config, _, profiles = _services()
    pf = config.profile_fields
    given = (
        (pf.company_name, company_name), (pf.address, address), (pf.zipcode, zipcode),
        (pf.city, city), (pf.coc, coc), (pf.vat_id, vat_id), (pf.iban, iban), (pf.website, website),
    )
    updates = {column: value for column, value in given if value is not None}

    if not updates:
        click.echo("No updates specified. Use --company-name, --address, --coc, ... (see --help)", err=True)
        return

    prof = profiles.resolve(config.USER_EMAIL)
    profiles.save_profile(prof, updates)
    click.echo(f"✓ Updated profile: {', '.join(updates)}")


# =============================================================================
# CONTACTS COMMANDS
# =============================================================================

@cli.group()
def contacts():
    """Contacts of your promoter company"""
    pass


@contacts.command('list')
@handle_portal_errors
@log_call
def contacts_list():
    """List contacts"""
    config, _, profiles = _services()
    prof = profiles.resolve(config.USER_EMAIL)
    click.echo(f"\nFound {len(prof.contacts)} contacts:\n")
    _echo_contacts(prof.contacts)
    _warn_signer(prof.contacts)


@contacts.command('add')
@handle_portal_errors
@log_call
def contacts_add():
    """Add a contact (interactive)"""
    config, _, profiles = _services()
    prof = profiles.resolve(config.USER_EMAIL)

    click.echo("\n=== ADD CONTACT ===\n")
    first_name = click.prompt("First name", type=str)
    last_name = click.prompt("Last name", default="", show_default=False) or None
    email = _prompt_email()
    mobile = click.prompt("Mobile", default="", show_default=False) or None
    authorized = click.confirm("Authorized to sign?", default=False)

    fields = profiles.contact_fields(first_name, last_name, email, mobile, authorized)
    updated = profiles.create_contact(prof, fields)
    click.echo(f"\n✓ Added contact {first_name}")
    _echo_contacts(updated.contacts)


@contacts.command('edit')
@click.argument('contact_id')
@click.option('--first-name', help='Update first name')
@click.option('--last-name', help='Update last name')
@click.option('--email', help='Update e-mail')
@click.option('--mobile', help='Update mobile')
@click.option('--authorized/--not-authorized', default=None, help='Authorized to sign')
@handle_portal_errors
@log_call
def contacts_edit(contact_id, first_name, last_name, email, mobile, authorized):
    """Edit a contact (use options to set fields)"""
    logger = logging.getLogger("epportal")
    config, _, profiles = _services()
    fields = profiles.contact_fields(first_name, last_name, email, mobile, authorized)

    if not fields:
        click.echo("No updates specified. Use --first-name, --last-name, --email, --mobile or --authorized", err=True)
        return
    if email and not _EMAIL_RE.match(email):
        logger.debug(f"contacts_edit | rejected email={email!r}")
        click.echo(f"Invalid email address: {email}", err=True)
        return

    prof = profiles.resolve(config.USER_EMAIL)
    updated = profiles.update_contact(prof, contact_id, fields)
    click.echo(f"✓ Updated contact {contact_id}")
    _warn_signer(updated.contacts)


@contacts.command('unlink')
@click.argument('contact_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@handle_portal_errors
@log_call
def contacts_unlink(contact_id, yes):
    """Remove a contact from your company (the person's record is kept)"""
    config, _, profiles = _services()
    prof = profiles.resolve(config.USER_EMAIL)

    if not yes and not click.confirm(f"Unlink contact {contact_id}?", default=False):
        click.echo("Nothing changed.")
        return

    updated = profiles.unlink_contact(prof, contact_id)
    click.echo(f"✓ Unlinked contact {contact_id}")
    _warn_signer(updated.contacts)


if __name__ == '__main__':
    cli()
