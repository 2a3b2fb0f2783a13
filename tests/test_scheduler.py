import asyncio

import pytest

from conftest import FakeClient, make_session
from heroverse.config import TONES
from heroverse.errors import AuthError, LaunchError
from heroverse.images import PlaceholderKind, create_placeholder_image
from heroverse.scheduler import IssueScheduler, tones_for_genre


def launched(client=None):
    session = make_session(client)
    scheduler = IssueScheduler(session)

    async def go():
        await scheduler.launch_story()
        await session.drain()

    asyncio.run(go())
    return session, scheduler


def test_reserve_skips_pages_in_flight():
    session = make_session()
    session.in_flight.add(5)

    assert IssueScheduler(session).reserve_pages(4, 3) == [4, 6]
    assert session.in_flight == {4, 5, 6}


def test_reserve_stops_at_back_cover():
    session = make_session()

    assert IssueScheduler(session).reserve_pages(9, 6) == [9, 10, 11]


def test_reserve_skips_finished_pages():
    session, scheduler = launched()

    assert scheduler.reserve_pages(1, 3) == []


def test_launch_without_hero_makes_no_calls():
    session = make_session(hero=None)

    with pytest.raises(LaunchError):
        asyncio.run(IssueScheduler(session).launch_story())

    assert session.client.calls == []
    assert session.pages == {}


def test_custom_genre_needs_a_premise():
    session = make_session()
    session.settings = session.settings.model_copy(update={"genre": "Custom", "premise": "  "})

    with pytest.raises(LaunchError, match="premise"):
        IssueScheduler(session).check_launch()


def test_launch_sequence():
    session = make_session()
    scheduler = IssueScheduler(session)
    seen = []

    def listener(event):
        if event["type"] in ("transition", "ready"):
            seen.append((event["type"], sorted(f.page_index for f in session.pages.values())))

    session.subscribe(listener)

    async def go():
        await scheduler.launch_story()
        # the prefetch batch is running in the background, not awaited by launch
        assert not session.is_launching
        assert session.tasks
        await session.drain()

    asyncio.run(go())

    assert seen == [("transition", [0]), ("ready", [0, 1, 2])]
    assert session.gate_ready()
    assert sorted(f.page_index for f in session.pages.values()) == [0, 1, 2, 3, 4, 5]
    assert all(not f.is_loading for f in session.pages.values())
    assert session.is_started
    assert session.in_flight == set()
    assert len(session.client.calls_of("json")) == 5
    assert len(session.client.calls_of("image")) == 6


def test_launch_picks_a_tone_for_the_genre():
    session, _ = launched()

    assert session.settings.tone == tones_for_genre("Classic Horror")[0]
    assert session.settings.tone.startswith("INNER-MONOLOGUE")


def test_tones_for_genre():
    assert len(tones_for_genre("Lighthearted Comedy")) == 3
    assert all(t.split(" ")[0] in ("QUIPPY", "CASUAL", "WHOLESOME")
               for t in tones_for_genre("Teen Drama / Slice of Life"))
    assert [t.split(" ")[0] for t in tones_for_genre("Classic Horror")] == ["INNER-MONOLOGUE", "OPERATIC"]
    assert tones_for_genre("High Fantasy") == TONES


def test_overlapping_batches_never_share_a_page():
    session = make_session()
    scheduler = IssueScheduler(session)

    async def go():
        return await asyncio.gather(scheduler.generate_batch(1, 3), scheduler.generate_batch(2, 3))

    first, second = asyncio.run(go())

    assert first == [1, 2, 3]
    assert second == [4]
    assert len(session.client.calls_of("json")) == 4
    assert session.in_flight == set()


def test_failing_page_does_not_stop_its_siblings():
    session = make_session()
    scheduler = IssueScheduler(session)
    real_generate_page = scheduler.orchestrator.generate_page

    async def flaky(page_num):
        if page_num == 1:
            raise KeyError("boom")
        return await real_generate_page(page_num)

    scheduler.orchestrator.generate_page = flaky

    asyncio.run(scheduler.generate_batch(1, 3))

    assert session.in_flight == set()
    assert all(not session.page(p).is_loading for p in (1, 2, 3))
    assert session.page(1).image_url == create_placeholder_image(PlaceholderKind.GENERATION_FAILED)
    assert session.page(2).narrative is not None
    assert session.page(3).narrative is not None


def test_batch_stops_once_its_issue_is_discarded():
    session = make_session()
    scheduler = IssueScheduler(session)
    real_generate_page = scheduler.orchestrator.generate_page

    async def then_rollover(page_num):
        face = await real_generate_page(page_num)
        scheduler.orchestrator.discard_issue()
        return face

    scheduler.orchestrator.generate_page = then_rollover

    asyncio.run(scheduler.generate_batch(1, 3))

    assert len(session.client.calls_of("json")) == 1
    assert session.pages == {}


def test_choice_queues_the_rest_of_the_book():
    session, scheduler = launched()

    async def go():
        task = scheduler.choose(3, "Tell the truth")
        assert task is not None
        await session.drain()

    asyncio.run(go())

    assert session.page(3).resolved_choice == "Tell the truth"
    assert sorted(f.page_index for f in session.pages.values()) == list(range(12))
    assert session.page(11).type == "back_cover"
    # pages written after the choice see it in their history
    assert any('USER CHOICE: "Tell the truth"' in c[1] for c in session.client.calls_of("json"))


def test_choice_on_a_full_book_queues_nothing():
    session, scheduler = launched()

    async def go():
        scheduler.choose(3, "A")
        await session.drain()
        return scheduler.choose(3, "B")

    assert asyncio.run(go()) is None


def test_archive_clears_the_book():
    session, scheduler = launched(FakeClient(text_replies=["The hero found the key."]))

    asyncio.run(scheduler.archive_issue(False))

    assert session.pages == {}
    assert session.in_flight == set()
    assert session.issue_number == 2
    assert session.summary == "\n[Issue 1 Summary]: The hero found the key."


def test_next_issue_carries_the_recap():
    session, scheduler = launched(FakeClient(text_replies=["The hero found the key."]))
    before = len(session.client.calls_of("json"))

    async def go():
        await scheduler.next_issue(finale=True)
        await session.drain()

    asyncio.run(go())

    later = session.client.calls_of("json")[before:]
    assert later
    assert all("PREVIOUS ISSUES RECAP" in c[1] and "The hero found the key." in c[1] for c in later)
    assert session.is_finale
    cover_prompt = session.client.calls_of("image")[-len(later) - 1][1][-1].text
    assert "THE FINALE" in cover_prompt


def test_reset_forgets_everything():
    session, scheduler = launched()
    events = []
    session.subscribe(events.append)

    scheduler.reset()

    assert session.pages == {}
    assert session.hero is None and session.friend is None
    assert session.issue_number == 1 and session.summary == ""
    assert not session.is_started
    assert len(session.feed) == 0
    assert events[-1] == {"type": "reset"}


def test_auth_escalates_once_per_failure():
    session = make_session()
    events = []
    session.subscribe(events.append)
    err = AuthError("API_KEY_INVALID")

    session.escalate_auth(err)
    session.escalate_auth(err)
    session.escalate_auth(AuthError("API_KEY_INVALID"))

    assert session.auth_failures == 2
    assert [e["type"] for e in events].count("auth_required") == 2
