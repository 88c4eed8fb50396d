"""
Shared fixtures and step definitions for BDD tests.

- runner, store, context: available to all scenario files in this directory
- services: autouse, wires the real portal and profile services to an
  in-memory FakeStore instead of the relay
- no_logging: autouse, prevents log file creation during tests
- 'the promoter is signed in', 'an upcoming event ...', 'the output contains',
  'the command fails': shared across all feature files
"""

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import given, then, parsers

from epportal.config import Config
from epportal.engine.portal import PortalService
from epportal.engine.profile import ProfileService
from tests.fakes import FakeStore

EMAIL = "booker@nightowl.example"
SOURCE_BASE = "appSource"

CONFIG = Config(
    RELAY_URL="https://relay.example",
    ID_TOKEN="token",
    USER_EMAIL=EMAIL,
    STORE_BASE_ID="appTarget",
    SOURCE_BASE_ID=SOURCE_BASE,
    SOURCE_PROMOTERS_TABLE="Source Promoters",
    LINK_RETRY_BASE_DELAY_SECONDS=0.0,
)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def services(store):
    with patch(
        "epportal.cli.main._services",
        return_value=(CONFIG, PortalService(CONFIG, store), ProfileService(CONFIG, store)),
    ) as mock:
        yield mock


@pytest.fixture(autouse=True)
def no_logging():
    with patch("epportal.cli.main.configure_logging"):
        yield


@given("the promoter is signed in")
def promoter_signed_in(store):
    pf = CONFIG.profile_fields
    store.add("CRM", "recCrm1", {pf.crm_email: EMAIL, pf.crm_promoters_link: ["recProm1"]})
    store.add("Promoters", "recProm1", {pf.promoter_record_id: "recSrc1", pf.promoter_events: []})
    store.add("Source Promoters", "recSrc1", {
        pf.company_name: "Night Owl Events",
        pf.city: "Amsterdam",
        pf.contacts_link: ["recCon1"],
    }, base_id=SOURCE_BASE)
    store.add("CRM", "recCon1", {
        pf.contact_first_name: "Ada", pf.contact_last_name: "Vos", pf.contact_authorized: True,
    }, base_id=SOURCE_BASE)


@pytest.fixture
def config():
    return CONFIG


@pytest.fixture
def seed_event(store, context):
    """Add an event to the store and link it to the signed-in promoter."""
    def add_event(name, status, start=None, end=None, location=("recLoc1",)):
        ef = CONFIG.event_fields
        event_id = f"recEvt{len(context.setdefault('events', [])) + 1}"
        fields = {ef.name: name, ef.contract_status: status, ef.location: list(location)}
        if start:
            fields[ef.start] = start
        if end:
            fields[ef.end] = end
        store.add("Events", event_id, fields)
        store.fields_of("Promoters", "recProm1")[CONFIG.profile_fields.promoter_events].append(event_id)
        context["events"].append(event_id)
        context["event_id"] = event_id
        return event_id
    return add_event


@given(parsers.parse('an upcoming event "{name}" with status "{status}"'))
def upcoming_event(seed_event, name, status):
    seed_event(name, status, start="2099-10-16T19:00:00.000Z", end="2099-10-17T00:00:00.000Z")


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then("the command fails")
def command_fails(context):
    assert context["result"].exit_code == 1, context["result"].output
