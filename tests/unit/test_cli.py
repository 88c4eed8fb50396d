"""
Unit tests for epportal/cli/main.py.

Mocking strategy:
  - patch epportal.cli.main._services to hand out a Config plus MagicMock
    portal and profile services
  - patch epportal.cli.main.configure_logging (autouse) to prevent file I/O
  - Use click.testing.CliRunner to invoke commands end-to-end
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from epportal.bus.events import bus, EVENT_SUBMISSION_CREATED, EVENT_SUBMISSION_LINKED
from epportal.cli.main import cli, _prompt_datetime, _prompt_email
from epportal.config import Config
from epportal.engine.classifier import classify_submissions
from epportal.engine.portal import EventDetail, SubmissionReceipt
from epportal.engine.reconcile import ReconciliationCancelled
from epportal.engine.workflow import resolve_workflow
from epportal.errors import (
    ConfigurationError, ErrorCode, ProfileResolutionError, UpstreamError, ValidationError,
)
from epportal.models import Contact, Event, LoadWindow, PromoterProfile, Submission

CONFIG = Config(USER_EMAIL='booker@nightowl.example', STORE_BASE_ID='appTarget')
PF = CONFIG.profile_fields
SF = CONFIG.submission_fields


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

UPCOMING = Event(
    id='recEvt1', name='Warehouse Night', start=datetime(2099, 10, 16, 19, 0, tzinfo=timezone.utc),
    contract_status='Info Requested',
)
PAST = Event(
    id='recEvt2', name='Spring Opener', start=datetime(2020, 4, 1, 18, 0, tzinfo=timezone.utc),
    contract_status='Signed', submission_ids=['recSub9'],
)
UNDATED = Event(id='recEvt3', name='Untitled Event')

ADA = Contact(id='recCon1', first_name='Ada', last_name='Vos', email='ada@nightowl.example',
              authorized_to_sign=True)
BEN = Contact(id='recCon2', first_name='Ben')

SAMPLE_PROFILE = PromoterProfile(
    target_id='recProm1', source_id='recSrc1',
    fields={PF.company_name: 'Night Owl Events', PF.city: 'Amsterdam'},
    contact_ids=['recCon1', 'recCon2'], event_ids=['recEvt1'], contacts=[ADA, BEN],
)


def _detail(event=UPCOMING, submissions=(), has_submission=False, needs_submission=False):
    return EventDetail(
        event=event,
        views=classify_submissions(submissions),
        workflow=resolve_workflow(event.contract_status, has_submission),
        needs_submission=needs_submission,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging():
    """Prevent configure_logging from creating log files during tests."""
    with patch("epportal.cli.main.configure_logging"):
        yield


@pytest.fixture
def portal():
    return MagicMock()


@pytest.fixture
def profiles():
    mock = MagicMock()
    mock.resolve.return_value = SAMPLE_PROFILE
    mock.contact_fields.side_effect = lambda *a, **k: {'args': a}
    return mock


@pytest.fixture(autouse=True)
def services(portal, profiles):
    with patch("epportal.cli.main._services", return_value=(CONFIG, portal, profiles)) as mock:
        yield mock


# ---------------------------------------------------------------------------
# events list
# ---------------------------------------------------------------------------

class TestEventsList:

    def test_no_events(self, runner, portal):
        portal.list_events.return_value = []
        result = runner.invoke(cli, ["events", "list"])
        assert result.exit_code == 0
        assert "No events linked to your promoter profile." in result.output

    def test_buckets_and_badges(self, runner, portal):
        portal.list_events.return_value = [PAST, UPCOMING, UNDATED]
        result = runner.invoke(cli, ["events", "list"])
        assert result.exit_code == 0
        assert "UPCOMING (1)" in result.output
        assert "PAST (1)" in result.output
        assert "UNDATED (1)" in result.output
        assert "Info required" in result.output
        assert "Confirmed" in result.output

    def test_undated_section_hidden_when_empty(self, runner, portal):
        portal.list_events.return_value = [UPCOMING]
        result = runner.invoke(cli, ["events", "list"])
        assert "UNDATED" not in result.output

    def test_resolves_signed_in_user(self, runner, portal, profiles):
        portal.list_events.return_value = []
        runner.invoke(cli, ["events", "list"])
        profiles.resolve.assert_called_once_with('booker@nightowl.example')
        portal.list_events.assert_called_once_with(SAMPLE_PROFILE)


# ---------------------------------------------------------------------------
# events show
# ---------------------------------------------------------------------------

class TestEventsShow:

    def test_event_without_submissions(self, runner, portal):
        portal.load_event_detail.return_value = _detail(needs_submission=True)
        result = runner.invoke(cli, ["events", "show", "recEvt1"])
        assert result.exit_code == 0
        assert "EVENT recEvt1: Warehouse Night" in result.output
        assert "Info required" in result.output
        assert "Next step:      Provide info" in result.output
        assert "epportal events submit recEvt1" in result.output
        assert "No submissions yet." in result.output

    def test_general_and_load_time_views(self, runner, portal):
        general = Submission(id='recG', date=datetime(2027, 9, 2, tzinfo=timezone.utc),
                             name='Warehouse Night', approve_event_info=True)
        older = Submission(id='recG0', date=datetime(2027, 9, 1, tzinfo=timezone.utc))
        load = Submission(
            id='recL', date=datetime(2027, 9, 3, tzinfo=timezone.utc),
            load_times=True, load_time_necessary='Suggest Load times',
            load_time_approval='Rejected - Other Suggestion',
            suggested_window=LoadWindow(load_in_start=datetime(2027, 10, 16, 12, 0, tzinfo=timezone.utc)),
        )
        portal.load_event_detail.return_value = _detail(submissions=[older, general, load], has_submission=True)

        result = runner.invoke(cli, ["events", "show", "recEvt1"])

        assert result.exit_code == 0
        assert "GENERAL INFO  #recG  [Approved]" in result.output
        assert "Earlier versions: recG0" in result.output
        assert "LOAD TIMES  #recL  [Rejected - Other Suggestion]" in result.output
        assert "Suggested by production:" in result.output
        assert "16/10/2027 14:00" in result.output

    def test_pinned_submission(self, runner, portal):
        newer = Submission(id='recNew', date=datetime(2027, 9, 2, tzinfo=timezone.utc))
        older = Submission(id='recOld', date=datetime(2027, 9, 1, tzinfo=timezone.utc))
        portal.load_event_detail.return_value = _detail(submissions=[newer, older], has_submission=True)
        result = runner.invoke(cli, ["events", "show", "recEvt1", "--submission", "recOld"])
        assert "GENERAL INFO  #recOld  [Pending]" in result.output
        assert "Earlier versions: recNew" in result.output

    def test_unclassified_submissions_listed(self, runner, portal):
        flagged = Submission(id='recX', load_times=True)
        portal.load_event_detail.return_value = _detail(submissions=[flagged], has_submission=True)
        result = runner.invoke(cli, ["events", "show", "recEvt1"])
        assert "without a load-time choice: recX" in result.output

    def test_upstream_error_shown_as_banner(self, runner, portal):
        portal.load_event_detail.side_effect = UpstreamError(502, message="Store API error 502")
        result = runner.invoke(cli, ["events", "show", "recEvt1"])
        assert result.exit_code == 1
        assert "[!] Store API error 502" in result.output


# ---------------------------------------------------------------------------
# events submit
# ---------------------------------------------------------------------------

DRAFT = {
    SF.name: 'Warehouse Night',
    SF.start: datetime(2027, 10, 16, 19, 0, tzinfo=timezone.utc),
    SF.end: datetime(2027, 10, 17, 0, 0, tzinfo=timezone.utc),
    SF.location: ['recLoc1'],
    SF.load_in_start: datetime(2027, 10, 16, 15, 0, tzinfo=timezone.utc),
    SF.load_in_end: datetime(2027, 10, 16, 17, 0, tzinfo=timezone.utc),
    SF.load_out_start: datetime(2027, 10, 17, 0, 30, tzinfo=timezone.utc),
    SF.load_out_end: datetime(2027, 10, 17, 1, 30, tzinfo=timezone.utc),
}

# name, start, end, announcement, tickets, timetable, comment, load-time choice
ACCEPT_DEFAULTS = "\n" * 8


class TestEventsSubmit:

    def test_submits_with_defaults(self, runner, portal):
        portal.load_event_detail.return_value = _detail()
        portal.draft_for_event.return_value = dict(DRAFT)
        portal.submit_production_info.return_value = SubmissionReceipt('recNew1', True, 1)

        result = runner.invoke(cli, ["events", "submit", "recEvt1"], input=ACCEPT_DEFAULTS)

        assert result.exit_code == 0, result.output
        assert "✓ Submitted production info #recNew1" in result.output
        event_id, values = portal.submit_production_info.call_args[0]
        assert event_id == 'recEvt1'
        assert values[SF.name] == 'Warehouse Night'
        assert values[SF.start] == DRAFT[SF.start]
        assert values[SF.load_time_necessary] == 'No load times necessary'
        assert values[SF.load_in_start] is None
        assert values[SF.location] == ['recLoc1']

    def test_suggest_prompts_for_load_window(self, runner, portal):
        portal.load_event_detail.return_value = _detail()
        portal.draft_for_event.return_value = dict(DRAFT)
        portal.submit_production_info.return_value = SubmissionReceipt('recNew1', True, 1)
        inputs = "\n" * 7 + "Suggest Load times\n" + "\n" * 4

        result = runner.invoke(cli, ["events", "submit", "recEvt1"], input=inputs)

        assert result.exit_code == 0, result.output
        values = portal.submit_production_info.call_args[0][1]
        assert values[SF.load_in_start] == DRAFT[SF.load_in_start]
        assert values[SF.load_out_end] == DRAFT[SF.load_out_end]

    def test_progress_handlers_removed_after_submit(self, runner, portal):
        portal.load_event_detail.return_value = _detail()
        portal.draft_for_event.return_value = dict(DRAFT)
        portal.submit_production_info.return_value = SubmissionReceipt('recNew1', True, 1)
        runner.invoke(cli, ["events", "submit", "recEvt1"], input=ACCEPT_DEFAULTS)
        assert bus._handlers.get(EVENT_SUBMISSION_CREATED) == []
        assert bus._handlers.get(EVENT_SUBMISSION_LINKED) == []

    def test_unconfirmed_link_noted(self, runner, portal):
        portal.load_event_detail.return_value = _detail()
        portal.draft_for_event.return_value = dict(DRAFT)
        portal.submit_production_info.return_value = SubmissionReceipt('recNew1', False, 10)
        result = runner.invoke(cli, ["events", "submit", "recEvt1"], input=ACCEPT_DEFAULTS)
        assert "not visible on the event yet" in result.output

    def test_asks_before_submitting_outside_info_request(self, runner, portal):
        signed = Event(id='recEvt2', name='Spring Opener', contract_status='Signed')
        portal.load_event_detail.return_value = _detail(event=signed)
        result = runner.invoke(cli, ["events", "submit", "recEvt2"], input="n\n")
        assert result.exit_code == 0
        assert "Nothing submitted." in result.output
        portal.submit_production_info.assert_not_called()

    def test_validation_error_shown_inline(self, runner, portal):
        portal.load_event_detail.return_value = _detail()
        portal.draft_for_event.return_value = dict(DRAFT)
        portal.submit_production_info.side_effect = ValidationError("Location is required")
        result = runner.invoke(cli, ["events", "submit", "recEvt1"], input=ACCEPT_DEFAULTS)
        assert result.exit_code == 1
        assert "Error: Location is required" in result.output

    def test_cancelled(self, runner, portal):
        portal.load_event_detail.return_value = _detail()
        portal.draft_for_event.return_value = dict(DRAFT)
        portal.submit_production_info.side_effect = ReconciliationCancelled()
        result = runner.invoke(cli, ["events", "submit", "recEvt1"], input=ACCEPT_DEFAULTS)
        assert result.exit_code == 1
        assert "Cancelled." in result.output


# ---------------------------------------------------------------------------
# profile
# ---------------------------------------------------------------------------

class TestProfileShow:

    def test_shows_fields_and_contacts(self, runner):
        result = runner.invoke(cli, ["profile", "show"])
        assert result.exit_code == 0
        assert "PROMOTER: Night Owl Events" in result.output
        assert "Amsterdam" in result.output
        assert "CONTACTS (2)" in result.output
        assert "Ada Vos" in result.output
        assert "At least one contact should be Authorized to sign" not in result.output

    def test_warns_without_signer(self, runner, profiles):
        profiles.resolve.return_value = PromoterProfile(source_id='recSrc1', contacts=[BEN])
        result = runner.invoke(cli, ["profile", "show"])
        assert "At least one contact should be Authorized to sign" in result.output

    def test_resolution_error_banner(self, runner, profiles):
        profiles.resolve.side_effect = ProfileResolutionError(ErrorCode.NO_PROMOTER_LINKED)
        result = runner.invoke(cli, ["profile", "show"])
        assert result.exit_code == 1
        assert "No promoter linked to your CRM profile." in result.output

    def test_missing_configuration(self, runner, services):
        services.side_effect = ConfigurationError('RELAY_URL')
        result = runner.invoke(cli, ["profile", "show"])
        assert result.exit_code == 1
        assert "Error: RELAY_URL is not configured" in result.output


class TestProfileEdit:

    def test_no_options_prints_error(self, runner, profiles):
        result = runner.invoke(cli, ["profile", "edit"])
        assert "No updates specified" in result.output
        profiles.save_profile.assert_not_called()

    def test_saves_given_fields(self, runner, profiles):
        result = runner.invoke(cli, ["profile", "edit", "--city", "Rotterdam", "--website", ""])
        assert result.exit_code == 0
        profiles.save_profile.assert_called_once_with(SAMPLE_PROFILE, {PF.city: 'Rotterdam', PF.website: ''})
        assert "✓ Updated profile" in result.output

    def test_invalid_coc(self, runner, profiles):
        profiles.save_profile.side_effect = ValidationError("COC must be a number")
        result = runner.invoke(cli, ["profile", "edit", "--coc", "abc"])
        assert result.exit_code == 1
        assert "Error: COC must be a number" in result.output


# ---------------------------------------------------------------------------
# contacts
# ---------------------------------------------------------------------------

class TestContacts:

    def test_list(self, runner):
        result = runner.invoke(cli, ["contacts", "list"])
        assert result.exit_code == 0
        assert "Found 2 contacts" in result.output
        assert "ada@nightowl.example" in result.output

    def test_add(self, runner, profiles):
        profiles.create_contact.return_value = SAMPLE_PROFILE
        inputs = "Cas\nDekker\ncas@nightowl.example\n0612345678\ny\n"
        result = runner.invoke(cli, ["contacts", "add"], input=inputs)
        assert result.exit_code == 0, result.output
        assert "✓ Added contact Cas" in result.output
        profiles.contact_fields.assert_called_once_with('Cas', 'Dekker', 'cas@nightowl.example', '0612345678', True)

    def test_edit_no_options(self, runner, profiles):
        profiles.contact_fields.side_effect = None
        profiles.contact_fields.return_value = {}
        result = runner.invoke(cli, ["contacts", "edit", "recCon2"])
        assert "No updates specified" in result.output
        profiles.update_contact.assert_not_called()

    def test_edit_rejects_bad_email(self, runner, profiles):
        result = runner.invoke(cli, ["contacts", "edit", "recCon2", "--email", "not-an-email"])
        assert "Invalid email address" in result.output
        profiles.update_contact.assert_not_called()

    def test_edit_authorized_flag(self, runner, profiles):
        profiles.update_contact.return_value = SAMPLE_PROFILE
        result = runner.invoke(cli, ["contacts", "edit", "recCon2", "--authorized"])
        assert result.exit_code == 0
        assert "✓ Updated contact recCon2" in result.output
        profiles.contact_fields.assert_called_once_with(None, None, None, None, True)

    def test_unlink_with_yes(self, runner, profiles):
        profiles.unlink_contact.return_value = PromoterProfile(contacts=[BEN])
        result = runner.invoke(cli, ["contacts", "unlink", "recCon1", "--yes"])
        assert result.exit_code == 0
        assert "✓ Unlinked contact recCon1" in result.output
        assert "At least one contact should be Authorized to sign" in result.output

    def test_unlink_declined(self, runner, profiles):
        result = runner.invoke(cli, ["contacts", "unlink", "recCon1"], input="n\n")
        assert "Nothing changed." in result.output
        profiles.unlink_contact.assert_not_called()


# ---------------------------------------------------------------------------
# _prompt_datetime helper
# ---------------------------------------------------------------------------

class TestPromptDatetime:

    def test_display_format_parsed_in_zone(self):
        with patch("epportal.cli.main.click.prompt", return_value="16/10/2027 21:00"), \
             patch("epportal.cli.main.click.echo"):
            result = _prompt_datetime("Doors open", 'Europe/Zurich')
        assert result.astimezone(timezone.utc) == datetime(2027, 10, 16, 19, 0, tzinfo=timezone.utc)

    def test_empty_input_returns_none(self):
        with patch("epportal.cli.main.click.prompt", return_value=""), \
             patch("epportal.cli.main.click.echo"):
            assert _prompt_datetime("Announcement", 'Europe/Zurich') is None

    def test_required_reprompts_on_empty(self):
        with patch("epportal.cli.main.click.prompt", side_effect=["", "16/10/2027 21:00"]), \
             patch("epportal.cli.main.click.echo") as mock_echo:
            result = _prompt_datetime("End", 'Europe/Zurich', required=True)
        assert result is not None
        assert "required" in mock_echo.call_args_list[0][0][0]

    def test_invalid_then_valid_retries(self):
        with patch("epportal.cli.main.click.prompt", side_effect=["tomorrow", "17/10/2027 02:00"]), \
             patch("epportal.cli.main.click.echo"):
            result = _prompt_datetime("End", 'Europe/Zurich')
        assert result.day == 17

    def test_default_shown_in_display_format(self):
        default = datetime(2027, 10, 16, 19, 0, tzinfo=timezone.utc)
        with patch("epportal.cli.main.click.prompt", return_value="16/10/2027 21:00") as mock_prompt, \
             patch("epportal.cli.main.click.echo"):
            _prompt_datetime("Doors open", 'Europe/Zurich', default=default)
        _, kwargs = mock_prompt.call_args
        assert kwargs.get("default") == "16/10/2027 21:00"


# ---------------------------------------------------------------------------
# _prompt_email helper
# ---------------------------------------------------------------------------

class TestPromptEmail:

    def test_valid_email_returned(self):
        with patch("epportal.cli.main.click.prompt", return_value="test@example.com"), \
             patch("epportal.cli.main.click.echo"):
            assert _prompt_email() == "test@example.com"

    def test_empty_input_returns_none(self):
        with patch("epportal.cli.main.click.prompt", return_value=""), \
             patch("epportal.cli.main.click.echo"):
            assert _prompt_email() is None

    def test_invalid_then_valid_retries(self):
        with patch("epportal.cli.main.click.prompt", side_effect=["nope", "a@b.nl"]), \
             patch("epportal.cli.main.click.echo"):
            assert _prompt_email() == "a@b.nl"
