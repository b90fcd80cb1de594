"""Tests for the conversation controller: send flow, sessions and map state."""

import asyncio
import pytest

from conftest import FakeAIService, make_message, make_session
from models.chat import AIReply, GeoLocation, PlaceCitation
from services.conversation import (
    ConversationController,
    NoActiveSessionError,
    SendState,
    history_window,
)
from services.session_store import SessionNotFoundError, SessionStore
from services.storage import InMemoryStorage
from utils.constants import APOLOGY_TEXT, WELCOME_TEXT

EIFFEL = GeoLocation(lat=48.8584, lng=2.2945)


def run(coro):
    return asyncio.run(coro)


class TestInitialize:
    def test_creates_welcome_session_when_empty(self, controller):
        session = controller.active_session
        assert len(controller.store) == 1
        assert session.title == "New Chat"
        assert [message.text for message in session.messages] == [WELCOME_TEXT]
        assert session.messages[0].role == "model"

    def test_activates_most_recent(self, storage, store, ai_service):
        store.add(make_session("old", updated_at=1))
        store.add(
            make_session(
                "new",
                updated_at=2,
                messages=[make_message("model", "Tower", suggestedLocation=EIFFEL)],
            )
        )
        controller = ConversationController(SessionStore(storage), ai_service)
        controller.initialize()
        assert controller.active_session_id == "new"
        assert controller.map_state.targetLocation == EIFFEL


class TestSend:
    def test_success_appends_and_moves_target(self, controller, ai_service):
        ai_service.replies = [
            AIReply(
                text="The Eiffel Tower is in Paris. {{LAT:48.8584, LNG:2.2945}}",
                citations=[PlaceCitation(uri="x!3d48.8606!4d2.3376", title="Louvre")],
            )
        ]
        outcome = run(controller.send("  Where is the Eiffel Tower?  "))

        assert outcome.accepted
        user, model = outcome.session.messages[-2:]
        assert user.role == "user"
        assert user.text == "Where is the Eiffel Tower?"
        assert model.role == "model"
        assert model.text == "The Eiffel Tower is in Paris."
        assert model.suggestedLocation == EIFFEL
        assert model.relatedLocations == [GeoLocation(lat=48.8606, lng=2.3376)]
        assert model.groundingCitations == [PlaceCitation(uri="x!3d48.8606!4d2.3376", title="Louvre")]
        assert outcome.mapState.targetLocation == EIFFEL
        assert outcome.mapState.relatedLocations == [GeoLocation(lat=48.8606, lng=2.3376)]
        assert controller.send_state(outcome.session.id) is SendState.SUCCEEDED

    def test_title_derived_after_send(self, controller):
        outcome = run(controller.send("Best pizza places in Naples, Italy please"))
        assert outcome.session.title == "Best pizza places in Naples, I..."

    def test_reply_without_location_keeps_target(self, controller, ai_service):
        controller.select_location({"lat": 1, "lng": 2})
        ai_service.replies = [AIReply(text="Just chatting.")]
        outcome = run(controller.send("hello"))
        assert outcome.mapState.targetLocation == GeoLocation(lat=1, lng=2)
        assert outcome.session.messages[-1].suggestedLocation is None

    def test_blank_text_rejected(self, controller, ai_service):
        before = controller.active_session
        outcome = run(controller.send("   \n\t"))
        assert not outcome.accepted
        assert outcome.session == before
        assert ai_service.calls == []

    def test_failure_appends_apology(self, controller, ai_service):
        controller.select_location({"lat": 1, "lng": 2})
        ai_service.error = RuntimeError("quota exceeded: secret detail")
        state_before = controller.map_state
        outcome = run(controller.send("Find sushi"))

        assert outcome.accepted
        apology = outcome.session.messages[-1]
        assert apology.role == "model"
        assert apology.text == APOLOGY_TEXT
        assert apology.suggestedLocation is None
        assert apology.relatedLocations is None
        assert apology.groundingCitations is None
        assert "secret" not in " ".join(message.text for message in outcome.session.messages)
        assert outcome.mapState == state_before
        assert controller.send_state(outcome.session.id) is SendState.FAILED

    def test_history_window_is_last_ten(self, controller, ai_service):
        for index in range(12):
            run(controller.send(f"question {index}"))
        history, _ = ai_service.calls[-1]
        assert len(history) == 10
        assert history[0].role == "model"
        assert [turn.text for turn in history if turn.role == "user"] == [
            f"question {index}" for index in range(7, 12)
        ]

    def test_history_window_keeps_order(self):
        messages = [make_message("user", str(index), timestamp=index) for index in range(3)]
        assert [turn.text for turn in history_window(messages)] == ["0", "1", "2"]

    def test_context_location_precedence(self, controller, ai_service):
        run(controller.send("first"))
        assert ai_service.calls[-1][1] is None

        controller.set_user_location({"lat": 10, "lng": 20})
        run(controller.send("second"))
        assert ai_service.calls[-1][1] == GeoLocation(lat=10, lng=20)

        controller.select_location({"lat": 30, "lng": 40})
        run(controller.send("third"))
        assert ai_service.calls[-1][1] == GeoLocation(lat=30, lng=40)

    def test_concurrent_send_is_ignored(self, controller, ai_service):
        async def scenario():
            ai_service.hold()
            first = asyncio.create_task(controller.send("first"))
            await asyncio.sleep(0)
            assert controller.send_state(controller.active_session_id) is SendState.PENDING
            count_while_pending = len(controller.active_session.messages)

            second = await controller.send("second")
            assert not second.accepted
            assert len(controller.active_session.messages) == count_while_pending

            ai_service.release()
            return await first

        outcome = run(scenario())
        assert outcome.accepted
        assert [message.text for message in outcome.session.messages if message.role == "user"] == ["first"]
        assert len(ai_service.calls) == 1

    def test_reply_lands_in_origin_session_after_switch(self, controller, ai_service):
        origin_id = controller.active_session_id

        async def scenario():
            ai_service.hold()
            ai_service.replies = [AIReply(text="Here {{LAT:1, LNG:2}}")]
            pending = asyncio.create_task(controller.send("where?"))
            await asyncio.sleep(0)
            controller.create()
            ai_service.release()
            return await pending

        outcome = run(scenario())
        assert outcome.session.id != origin_id
        assert controller.map_state.targetLocation is None
        origin = controller.store.get(origin_id)
        assert origin.messages[-1].suggestedLocation == GeoLocation(lat=1, lng=2)

    def test_reply_dropped_when_origin_deleted(self, controller, ai_service):
        origin_id = controller.active_session_id

        async def scenario():
            ai_service.hold()
            pending = asyncio.create_task(controller.send("where?"))
            await asyncio.sleep(0)
            controller.delete(origin_id, lambda session: True)
            ai_service.release()
            return await pending

        outcome = run(scenario())
        assert origin_id not in controller.store
        assert outcome.session.id == controller.active_session_id
        assert len(controller.store) == 1

    def test_sending_without_active_session_is_an_error(self, store, ai_service):
        controller = ConversationController(store, ai_service)
        with pytest.raises(NoActiveSessionError):
            run(controller.send("hello"))

    def test_explore_prompt(self, controller, ai_service):
        run(controller.explore("Restaurants"))
        assert ai_service.calls[-1][0][-1].text == "Find Restaurants around here"

        controller.select_location({"lat": 1, "lng": 2})
        run(controller.explore("Parks"))
        assert ai_service.calls[-1][0][-1].text == "Find Parks around the selected location"


class TestSessions:
    def test_create_clears_target(self, controller):
        controller.select_location({"lat": 1, "lng": 2})
        first_id = controller.active_session_id
        session = controller.create()
        assert controller.active_session_id == session.id != first_id
        assert controller.map_state.targetLocation is None
        assert len(controller.store) == 2

    def test_switch_restores_newest_valid_target(self, store, ai_service):
        older = GeoLocation(lat=1, lng=1)
        newer = GeoLocation(lat=2, lng=2)
        store.add(
            make_session(
                "s1",
                updated_at=1,
                messages=[
                    make_message("model", "a", timestamp=1, suggestedLocation=older),
                    make_message("model", "b", timestamp=2, suggestedLocation=newer, relatedLocations=[older]),
                    make_message("user", "c", timestamp=3),
                ],
            )
        )
        store.add(make_session("s2", updated_at=2))
        controller = ConversationController(store, ai_service)
        controller.initialize()
        assert controller.map_state.targetLocation is None

        controller.switch_to("s1")
        assert controller.map_state.targetLocation == newer
        assert controller.map_state.relatedLocations == [older]

    def test_switch_unknown_session(self, controller):
        with pytest.raises(SessionNotFoundError):
            controller.switch_to("missing")

    def test_delete_requires_confirmation(self, controller):
        session_id = controller.active_session_id
        assert controller.delete(session_id, lambda session: False) is False
        assert session_id in controller.store

    def test_delete_only_session_synthesizes_new_one(self, controller):
        session_id = controller.active_session_id
        assert controller.delete(session_id, lambda session: True) is True
        assert len(controller.store) == 1
        assert controller.active_session_id != session_id
        assert controller.active_session.messages[0].text == WELCOME_TEXT

    def test_delete_active_switches_to_most_recent(self, store, ai_service):
        store.add(make_session("a", updated_at=1))
        store.add(make_session("b", updated_at=3))
        store.add(make_session("c", updated_at=2))
        controller = ConversationController(store, ai_service)
        controller.initialize()
        assert controller.active_session_id == "b"

        controller.delete("b", lambda session: True)
        assert controller.active_session_id == "c"

    def test_delete_inactive_keeps_active(self, store, ai_service):
        store.add(make_session("a", updated_at=1))
        store.add(make_session("b", updated_at=2))
        controller = ConversationController(store, ai_service)
        controller.initialize()
        controller.delete("a", lambda session: True)
        assert controller.active_session_id == "b"

    def test_confirm_receives_session(self, controller):
        seen = []
        controller.delete(controller.active_session_id, lambda session: seen.append(session.id) or False)
        assert seen == [controller.active_session_id]


class TestMapInputs:
    def test_invalid_click_ignored(self, controller):
        controller.select_location({"lat": 1, "lng": 2})
        assert controller.select_location({"lat": "a", "lng": 2}) is None
        assert controller.map_state.targetLocation == GeoLocation(lat=1, lng=2)

    def test_invalid_user_location_ignored(self, controller):
        assert controller.set_user_location({"lat": float("nan"), "lng": 0}) is None
        assert controller.map_state.userLocation is None

    def test_clear_target(self, controller):
        controller.select_location({"lat": 1, "lng": 2})
        controller.clear_target()
        assert controller.map_state.targetLocation is None


class TestPersistence:
    def test_state_survives_reload(self, ai_service):
        storage = InMemoryStorage()
        first = ConversationController(SessionStore(storage), FakeAIService([AIReply(text="Paris {{LAT:48.8584, LNG:2.2945}}")]))
        first.initialize()
        run(first.send("Eiffel?"))

        second = ConversationController(SessionStore(storage), ai_service)
        second.initialize()
        assert second.active_session_id == first.active_session_id
        assert second.map_state.targetLocation == EIFFEL
        assert second.active_session.title == "Eiffel?"
