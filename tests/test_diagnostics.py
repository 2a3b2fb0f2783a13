import asyncio

from conftest import FakeClient, empty_response, image_response, make_session
from heroverse.errors import AuthError, GenericError
from heroverse.diagnostics import test_connection as check_connection
from heroverse.diagnostics import test_reference_link as check_reference_link


def statuses(events):
    return [e["status"] for e in events if e["type"] == "api_status"]


def test_connection_ok():
    session = make_session()
    events = []
    session.subscribe(events.append)

    assert asyncio.run(check_connection(session)) is True
    assert statuses(events) == ["loading", "success"]


def test_connection_failure_is_reported():
    session = make_session(FakeClient(text_replies=[GenericError("503 unavailable")]))
    events = []
    session.subscribe(events.append)

    assert asyncio.run(check_connection(session)) is False
    assert statuses(events) == ["loading", "error"]
    assert session.auth_failures == 0


def test_connection_auth_failure_asks_for_key():
    session = make_session(FakeClient(text_replies=[AuthError("API_KEY_INVALID")]))

    assert asyncio.run(check_connection(session)) is False
    assert session.auth_failures == 1


def test_reference_link_reports_first_passing_level():
    # empty candidates and generic errors both move on to the next level
    client = FakeClient(image_replies=[empty_response(), GenericError("503"), image_response()])
    session = make_session(client)

    assert asyncio.run(check_reference_link(session)) == 2
    assert any("Success at Level 2 (Stylized)" in line for line in session.feed)


def test_reference_link_uses_synthetic_card_without_hero():
    client = FakeClient()
    session = make_session(client, hero=None)

    assert asyncio.run(check_reference_link(session)) == 0
    _, parts, ratio = client.calls_of("image")[0]
    assert ratio == "1:1"
    assert parts[1].inline_data.mime_type == "image/jpeg"


def test_reference_link_fails_after_three_levels():
    client = FakeClient(image_replies=[empty_response()] * 3)
    session = make_session(client)

    assert asyncio.run(check_reference_link(session)) is None
    assert len(client.calls_of("image")) == 3
