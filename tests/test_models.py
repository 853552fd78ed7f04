"""Tests for hookrelay data models."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from hookrelay.exceptions import InvalidTransitionError
from hookrelay.models import (
    ALL_EVENT_TYPES,
    DeliveryLog,
    Hook,
    HookCreate,
    HookPayload,
    HookUpdate,
    generate_id,
    truncate,
)

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _hook(**overrides) -> Hook:
    fields = {
        "name": "ops",
        "url": "https://ops.example.com/hook",
        "events": ["ticket.created"],
    }
    fields.update(overrides)
    return Hook(**fields)


class TestGenerateId:
    def test_prefix(self) -> None:
        assert generate_id("hook").startswith("hook_")

    def test_unique(self) -> None:
        assert len({generate_id("dlv") for _ in range(100)}) == 100


class TestHook:
    """Tests for the Hook model."""

    def test_defaults(self) -> None:
        hook = _hook()

        assert hook.id.startswith("hook_")
        assert hook.status == "active"
        assert hook.max_retries == 3
        assert hook.timeout_ms == 30_000
        assert hook.success_count == 0
        assert hook.failure_count == 0
        assert hook.secret is None
        assert hook.filter_group_ids == []

    def test_timeout_seconds(self) -> None:
        assert _hook(timeout_ms=2_500).timeout_seconds == 2.5

    @pytest.mark.parametrize("max_retries", [0, 11])
    def test_max_retries_bounds(self, max_retries: int) -> None:
        with pytest.raises(ValidationError):
            _hook(max_retries=max_retries)

    @pytest.mark.parametrize("timeout_ms", [999, 60_001])
    def test_timeout_bounds(self, timeout_ms: int) -> None:
        with pytest.raises(ValidationError):
            _hook(timeout_ms=timeout_ms)

    def test_subscribes_to(self) -> None:
        hook = _hook(events=["ticket.created", "ticket.closed"])

        assert hook.subscribes_to("ticket.closed")
        assert not hook.subscribes_to("message.sent")

    def test_inactive_hook_does_not_subscribe(self) -> None:
        assert not _hook(status="inactive").subscribes_to("ticket.created")
        assert not _hook(status="failed").subscribes_to("ticket.created")

    def test_unfiltered_matches_everything(self) -> None:
        hook = _hook()

        assert hook.matches(group_id="G1")
        assert hook.matches(group_id="G2", ticket_status="open")
        assert hook.matches()

    def test_group_filter(self) -> None:
        hook = _hook(filter_group_ids=["G1"])

        assert hook.matches(group_id="G1")
        assert not hook.matches(group_id="G2")

    def test_filter_passes_when_value_absent(self) -> None:
        hook = _hook(filter_group_ids=["G1"], filter_ticket_statuses=["open"])

        assert hook.matches()
        assert hook.matches(ticket_status="open")

    def test_filters_combine_with_and(self) -> None:
        hook = _hook(filter_group_ids=["G1"], filter_ticket_statuses=["open"])

        assert hook.matches(group_id="G1", ticket_status="open")
        assert not hook.matches(group_id="G1", ticket_status="closed")
        assert not hook.matches(group_id="G2", ticket_status="open")


class TestHookCreate:
    """Tests for hook registration input."""

    def test_valid(self) -> None:
        spec = HookCreate(
            name="alerts",
            url="https://alerts.example.com/in",
            events=["error.occurred"],
            secret="s3cret",
        )
        hook = spec.to_hook()

        assert hook.url == "https://alerts.example.com/in"
        assert hook.events == ["error.occurred"]
        assert hook.secret == "s3cret"

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/x", "/relative/path"])
    def test_rejects_bad_url(self, url: str) -> None:
        with pytest.raises(ValidationError):
            HookCreate(name="x", url=url, events=["ticket.created"])

    def test_rejects_empty_events(self) -> None:
        with pytest.raises(ValidationError):
            HookCreate(name="x", url="https://example.com", events=[])

    def test_rejects_unknown_event(self) -> None:
        with pytest.raises(ValidationError):
            HookCreate(name="x", url="https://example.com", events=["ticket.exploded"])

    def test_dedupes_events(self) -> None:
        spec = HookCreate(
            name="x",
            url="https://example.com",
            events=["ticket.created", "ticket.created", "ticket.closed"],
        )
        assert spec.events == ["ticket.created", "ticket.closed"]

    def test_rejects_empty_secret(self) -> None:
        with pytest.raises(ValidationError):
            HookCreate(name="x", url="https://example.com", events=["ticket.created"], secret="")

    def test_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError):
            HookCreate(
                name="x",
                url="https://example.com",
                events=["ticket.created"],
                success_count=5,
            )


class TestHookUpdate:
    """Tests for partial hook updates."""

    def test_changes_only_set_fields(self) -> None:
        patch = HookUpdate(name="renamed", max_retries=5)

        assert patch.changes() == {"name": "renamed", "max_retries": 5}

    def test_empty_patch(self) -> None:
        assert HookUpdate().changes() == {}

    def test_url_is_string(self) -> None:
        changes = HookUpdate(url="https://new.example.com/hook").changes()

        assert isinstance(changes["url"], str)
        assert changes["url"].startswith("https://new.example.com")

    def test_secret_can_be_cleared(self) -> None:
        assert HookUpdate(secret=None).changes() == {"secret": None}

    def test_rejects_empty_secret(self) -> None:
        with pytest.raises(ValidationError):
            HookUpdate(secret="")

    def test_required_fields_cannot_be_null(self) -> None:
        with pytest.raises(ValidationError):
            HookUpdate(events=None)

    def test_out_of_range_policy(self) -> None:
        with pytest.raises(ValidationError):
            HookUpdate(timeout_ms=100)


class TestHookPayload:
    def test_compact_json(self) -> None:
        payload = HookPayload(event="ticket.created", timestamp=NOW, data={"ticket_id": "T-1"})

        assert payload.to_json() == (
            '{"event":"ticket.created","timestamp":"2026-01-01T00:00:00+00:00",'
            '"data":{"ticket_id":"T-1"}}'
        )

    def test_non_json_values_are_stringified(self) -> None:
        payload = HookPayload(event="ticket.updated", timestamp=NOW, data={"at": NOW})

        assert json.loads(payload.to_json())["data"]["at"] == str(NOW)


class TestDeliveryLog:
    """Tests for DeliveryLog state transitions."""

    def _log(self) -> DeliveryLog:
        return DeliveryLog(hook_id="hook_1", event="ticket.created", payload='{"a":1}')

    def test_defaults(self) -> None:
        log = self._log()

        assert log.id.startswith("dlv_")
        assert log.status == "pending"
        assert log.attempts == 1
        assert not log.is_terminal

    def test_payload_data(self) -> None:
        assert self._log().payload_data == {"a": 1}

    def test_mark_success(self) -> None:
        log = self._log().mark_success(NOW)

        assert log.status == "success"
        assert log.completed_at == NOW
        assert log.next_retry_at is None
        assert log.is_terminal

    def test_mark_retrying(self) -> None:
        retry_at = NOW + timedelta(seconds=2)
        log = self._log().mark_retrying(retry_at, "HTTP 500", NOW)

        assert log.status == "retrying"
        assert log.next_retry_at == retry_at
        assert log.error_message == "HTTP 500"
        assert log.completed_at is None

    def test_mark_failed(self) -> None:
        log = self._log().mark_failed("Request timeout", NOW)

        assert log.status == "failed"
        assert log.error_message == "Request timeout"
        assert log.completed_at == NOW

    def test_retrying_can_succeed(self) -> None:
        log = self._log().mark_retrying(NOW, "HTTP 500", NOW)
        log.mark_success(NOW)

        assert log.status == "success"
        assert log.error_message is None

    @pytest.mark.parametrize("terminal", ["success", "failed"])
    def test_terminal_states_are_final(self, terminal: str) -> None:
        log = self._log()
        if terminal == "success":
            log.mark_success(NOW)
        else:
            log.mark_failed("boom", NOW)

        with pytest.raises(InvalidTransitionError):
            log.mark_retrying(NOW, "again", NOW)
        with pytest.raises(InvalidTransitionError):
            log.mark_success(NOW)
        with pytest.raises(InvalidTransitionError):
            log.mark_failed("again", NOW)

    def test_record_response_truncates(self) -> None:
        log = self._log()
        log.record_response(500, "x" * 5000, 42, limit=1000)

        assert log.response_status == 500
        assert len(log.response_body) == 1000
        assert log.duration_ms == 42


def test_truncate() -> None:
    assert truncate(None, 10) is None
    assert truncate("abcdef", 3) == "abc"
    assert truncate("short", 100) == "short"


def test_truncate_counts_utf8_bytes() -> None:
    body = "\u00e9" * 2000

    kept = truncate(body, 1000)

    assert kept == "\u00e9" * 500
    assert len(kept.encode("utf-8")) == 1000


def test_truncate_drops_split_character() -> None:
    assert truncate("ab\u20ac", 4) == "ab"


def test_all_event_types() -> None:
    assert len(ALL_EVENT_TYPES) == 8
    assert "error.occurred" in ALL_EVENT_TYPES
