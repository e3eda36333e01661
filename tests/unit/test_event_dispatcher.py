"""
Unit tests for the in-process event dispatcher and domain events.

Tests cover:
- Listener registration and removal
- Priority ordering
- Failing listeners not stopping dispatch
- Domain event serialization
- Change detection for user updates
"""

from unittest.mock import Mock

from hdm_boot.models.events import LoginFailed, UserWasRegistered, UserWasUpdated
from hdm_boot.services.event_dispatcher import EventDispatcher, register_default_listeners


# ============================================================================
# DISPATCHER
# ============================================================================


class TestEventDispatcher:
    """Tests for EventDispatcher."""

    def test_dispatch_calls_listener(self):
        """Test listeners receive the event."""
        dispatcher = EventDispatcher()
        listener = Mock()
        dispatcher.add_listener("user.registered", listener)
        event = UserWasRegistered(user_id="u1", email="jane@example.com")

        result = dispatcher.dispatch(event)

        listener.assert_called_once_with(event)
        assert result.success
        assert result.listeners_called == 1

    def test_dispatch_without_listeners(self):
        """Test dispatching an unheard event is a no-op."""
        result = EventDispatcher().dispatch(LoginFailed(email="x@example.com"))

        assert result.listeners_called == 0
        assert result.success

    def test_priority_order(self):
        """Test higher priority listeners run first, ties in registration order."""
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.add_listener("user.registered", lambda e: calls.append("low"), priority=-5)
        dispatcher.add_listener("user.registered", lambda e: calls.append("first"))
        dispatcher.add_listener("user.registered", lambda e: calls.append("high"), priority=10)
        dispatcher.add_listener("user.registered", lambda e: calls.append("second"))

        dispatcher.dispatch(UserWasRegistered())

        assert calls == ["high", "first", "second", "low"]

    def test_failing_listener_does_not_stop_others(self):
        """Test errors are collected and later listeners still run."""
        dispatcher = EventDispatcher()
        after = Mock()
        dispatcher.add_listener("user.registered", Mock(side_effect=RuntimeError("boom")), priority=1)
        dispatcher.add_listener("user.registered", after)

        result = dispatcher.dispatch(UserWasRegistered())

        after.assert_called_once()
        assert not result.success
        assert result.errors == ["boom"]
        assert result.successful == 1

    def test_remove_listener(self):
        """Test removed listeners are no longer called."""
        dispatcher = EventDispatcher()
        listener = Mock()
        dispatcher.add_listener("user.registered", listener)

        assert dispatcher.remove_listener("user.registered", listener)
        assert not dispatcher.has_listeners("user.registered")
        assert not dispatcher.remove_listener("user.registered", listener)

    def test_event_names_and_clear(self):
        """Test listing and clearing registered events."""
        dispatcher = EventDispatcher()
        dispatcher.add_listener("b.event", Mock())
        dispatcher.add_listener("a.event", Mock())

        assert dispatcher.get_event_names() == ["a.event", "b.event"]

        dispatcher.clear_listeners("a.event")
        assert dispatcher.get_event_names() == ["b.event"]

        dispatcher.clear_all_listeners()
        assert dispatcher.get_event_names() == []

    def test_default_listeners_cover_user_lifecycle(self):
        """Test the logging listener is registered for user events."""
        dispatcher = EventDispatcher()

        register_default_listeners(dispatcher)

        assert dispatcher.get_event_names() == ["user.deleted", "user.registered", "user.updated"]


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


class TestDomainEvents:
    """Tests for domain event values."""

    def test_events_have_unique_ids(self):
        """Test every event gets its own id."""
        assert UserWasRegistered().event_id != UserWasRegistered().event_id

    def test_to_dict(self):
        """Test the serialized envelope."""
        event = UserWasRegistered(user_id="u1", email="jane@example.com", role="user")

        data = event.to_dict()

        assert data["event_name"] == "user.registered"
        assert data["version"] == 1
        assert data["payload"]["email"] == "jane@example.com"
        assert data["occurred_at"].endswith("+00:00")

    def test_log_dict_is_flat(self):
        """Test log output merges the payload."""
        data = LoginFailed(email="x@example.com", client_ip="10.0.0.1").to_log_dict()

        assert data["email"] == "x@example.com"
        assert data["reason"] == "invalid_credentials"
        assert "payload" not in data

    def test_updated_event_keeps_only_changes(self):
        """Test unchanged and unknown fields are dropped."""
        event = UserWasUpdated.from_update_data(
            "u1",
            {"name": "Jane", "email": "jane@example.com", "role": "user"},
            {"name": "Janet", "email": "jane@example.com", "password": "secret"},
        )

        assert event.changed_fields == ["name"]
        assert event.previous == {"name": "Jane"}
        assert event.current == {"name": "Janet"}
        assert event.has_changes()

    def test_updated_event_without_changes(self):
        """Test identical values produce no changes."""
        event = UserWasUpdated.from_update_data("u1", {"name": "Jane"}, {"name": "Jane"})

        assert not event.has_changes()
