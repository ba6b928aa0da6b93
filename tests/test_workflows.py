"""Tests for the per-interaction workflows."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from aurix.core import workflows
from aurix.core.errors import DownstreamUnavailable, InvalidTransition, ValidationError
from aurix.core.lifecycle import ACTIVE, SUMMARIZING, get_lifecycle_registry
from aurix.core.projections import summarize_session
from aurix.core.workflows import SessionContext
from aurix.models.schemas import EscalationStatus
from aurix.storage import escalations_store, events_store, records_store


async def _timeline(call_sid: str) -> list:
    return await events_store.list_by_session(call_sid)


async def _types(call_sid: str) -> list:
    return [e.event_type for e in await _timeline(call_sid)]


class TestSessionContext:
    """Tests for the explicit session context."""

    def test_requires_call_sid(self) -> None:
        with pytest.raises(ValidationError):
            SessionContext("")
        with pytest.raises(ValidationError):
            SessionContext("   ")

    def test_strips_call_sid(self) -> None:
        assert SessionContext(" CA1 ").call_sid == "CA1"


class TestLookupOrder:
    """Tests for lookup_order."""

    @pytest.mark.asyncio
    async def test_found(self, db) -> None:
        result = await workflows.lookup_order(SessionContext("S1"), "417", customer_name="Tom")

        assert result.ok is True
        assert "Rescheduled" in result.response
        assert "17 January 2025" in result.response
        assert result.data["tracking_number"] == "TRK789012"
        assert await _types("S1") == ["agent_thinking", "querying", "results", "action", "agent_spoke"]
        summary = summarize_session(await _timeline("S1"))
        assert summary.orders_looked_up == ["417"]
        assert "Tracking: TRK789012" in summary.information_provided

    @pytest.mark.asyncio
    async def test_sms_is_offered_not_claimed(self, db, monkeypatch: pytest.MonkeyPatch) -> None:
        sms = AsyncMock()
        monkeypatch.setattr(workflows, "get_sms_client", lambda: SimpleNamespace(send=sms))

        await workflows.lookup_order(SessionContext("S1"), "417")

        action = next(e for e in await _timeline("S1") if e.event_type == "action")
        assert action.event_data["status"] == "pending"
        assert action.event_data["description"] == "Tracking number TRK789012 ready to send by SMS"
        assert "sms_sent" not in await _types("S1")
        sms.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found_is_logged(self, db) -> None:
        result = await workflows.lookup_order(SessionContext("S1"), "999")

        assert result.ok is False
        assert result.reason == "not_found"
        events = await _timeline("S1")
        assert [e.event_type for e in events] == ["agent_thinking", "querying", "results", "agent_spoke"]
        assert events[2].event_data["status"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_missing_order_number(self, db) -> None:
        with pytest.raises(ValidationError):
            await workflows.lookup_order(SessionContext("S1"), "")

    @pytest.mark.asyncio
    async def test_downstream_outage_degrades_to_apology(self, db, monkeypatch: pytest.MonkeyPatch) -> None:
        async def broken(order_ref):
            raise DownstreamUnavailable("records", "connection refused")

        monkeypatch.setattr(records_store, "get_order_by_number", broken)

        result = await workflows.lookup_order(SessionContext("S1"), "417")

        assert result.ok is False
        assert result.reason == "downstream_unavailable"
        assert result.response == workflows.APOLOGY
        events = await _timeline("S1")
        assert events[-2].event_data["status"] == "UNAVAILABLE"
        assert events[-1].event_type == "agent_spoke"


class TestRequestRefill:
    """Tests for request_refill."""

    @pytest.mark.asyncio
    async def test_refill_for_gold_member(self, db) -> None:
        result = await workflows.request_refill(SessionContext("S1"), "+447700900001", "RX_1001", verification_last4="4821")

        assert result.ok is True
        assert result.data["shipping_type"] == "express"
        assert result.data["refills_remaining"] == 2
        assert "Gold member" in result.response
        assert (await records_store.get_prescription("RX_1001"))["refills_remaining"] == 2
        assert (await records_store.get_order(result.data["order_id"]))["order_status"] == "processing"
        assert await _types("S1") == ["understanding", "querying", "compliance_check", "querying", "results", "action", "agent_spoke"]
        summary = summarize_session(await _timeline("S1"))
        assert summary.customer_verified is True
        assert summary.verification_method == "last 4 digits"
        assert summary.compliance_blocked is False

    @pytest.mark.asyncio
    async def test_failed_verification_escalates(self, db) -> None:
        result = await workflows.request_refill(SessionContext("S1"), "+447700900001", "RX_1001", verification_last4="0000")

        assert result.ok is False
        assert result.reason == "verification_failed"
        events = await _timeline("S1")
        assert [e.event_type for e in events] == ["understanding", "querying", "compliance_check", "action", "agent_spoke"]
        assert events[2].event_data["allowed"] is False
        assert events[3].event_data["type"] == "escalation"
        assert (await records_store.get_prescription("RX_1001"))["refills_remaining"] == 3

    @pytest.mark.asyncio
    async def test_no_refills_remaining(self, db) -> None:
        result = await workflows.request_refill(SessionContext("S1"), "+447700900002", "RX_1002", verification_last4="1234")

        assert result.ok is False
        assert result.reason == "no_refills_remaining"

    @pytest.mark.asyncio
    async def test_prescription_of_another_customer(self, db) -> None:
        result = await workflows.request_refill(SessionContext("S1"), "+447700900002", "RX_1001", verification_last4="1234")

        assert result.ok is False
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    async def test_unknown_phone(self, db) -> None:
        result = await workflows.request_refill(SessionContext("S1"), "+15550000000", "RX_1001", verification_last4="4821")

        assert result.reason == "not_found"
        events = await _timeline("S1")
        assert [e.event_type for e in events] == ["understanding", "querying", "results", "agent_spoke"]
        assert events[1].event_data["query_type"] == "customer_by_phone"
        assert events[2].event_data["status"] == "NOT_FOUND"


class TestUpdateAddress:
    """Tests for update_address."""

    @pytest.mark.asyncio
    async def test_vip_change(self, db) -> None:
        result = await workflows.update_address(SessionContext("S1"), "+447700900001", "ORD_7823", "office", verification_code="123456")

        assert result.ok is True
        assert result.data["is_vip"] is True
        order = await records_store.get_order("ORD_7823")
        assert order["delivery_address_type"] == "office"
        actions = [e.event_data["type"] for e in await _timeline("S1") if e.event_type == "action"]
        assert actions == ["address_change", "vip_alert", "privacy_update"]
        assert summarize_session(await _timeline("S1")).verification_method == "sms code"

    @pytest.mark.asyncio
    async def test_standard_customer_has_no_vip_alert(self, db) -> None:
        result = await workflows.update_address(SessionContext("S1"), "+447700900002", "ORD_7824", "home")

        assert result.ok is True
        actions = [e.event_data["type"] for e in await _timeline("S1") if e.event_type == "action"]
        assert actions == ["address_change", "privacy_update"]

    @pytest.mark.asyncio
    async def test_rejects_unknown_address_type(self, db) -> None:
        with pytest.raises(ValidationError):
            await workflows.update_address(SessionContext("S1"), "+447700900001", "ORD_7823", "moon")
        assert await _types("S1") == []

    @pytest.mark.asyncio
    async def test_wrong_code(self, db) -> None:
        result = await workflows.update_address(SessionContext("S1"), "+447700900001", "ORD_7823", "office", verification_code="000000")

        assert result.reason == "verification_failed"
        assert (await records_store.get_order("ORD_7823"))["delivery_address_type"] == "home"
        summary = summarize_session(await _timeline("S1"))
        assert summary.compliance_blocked is True
        assert summary.customer_verified is False

    @pytest.mark.asyncio
    async def test_order_of_another_customer(self, db) -> None:
        result = await workflows.update_address(SessionContext("S1"), "+447700900001", "ORD_7824", "office")

        assert result.reason == "not_found"


class TestInquiryAndCallback:
    """Tests for handle_inquiry and book_callback."""

    @pytest.mark.asyncio
    async def test_blocked_inquiry_logs_check_before_escalation(self, db) -> None:
        result = await workflows.handle_inquiry(SessionContext("S1"), "side_effects", question_text="Is dizziness normal?")

        assert result.ok is False
        assert result.reason == "compliance_blocked"
        events = await _timeline("S1")
        assert [e.event_type for e in events] == ["understanding", "compliance_check", "action", "agent_spoke"]
        assert events[1].event_data["allowed"] is False
        assert events[2].event_data["type"] == "escalation"
        escalation = await escalations_store.get_escalation(result.data["escalation_id"])
        assert escalation.escalation_status == EscalationStatus.PENDING_CUSTOMER_DECISION
        assert escalation.inquiry_text == "Is dizziness normal?"

    @pytest.mark.asyncio
    async def test_callback_schedules_pending_escalation(self, db) -> None:
        ctx = SessionContext("S1")
        blocked = await workflows.handle_inquiry(ctx, "dosage_change")

        result = await workflows.book_callback(ctx, customer_id="CUST_001", callback_reason="Dosage question")

        assert result.ok is True
        assert result.data["escalation_id"] == blocked.data["escalation_id"]
        escalation = await escalations_store.get_escalation(blocked.data["escalation_id"])
        assert escalation.escalation_status == EscalationStatus.CALLBACK_SCHEDULED
        actions = [e.event_data["type"] for e in await _timeline("S1") if e.event_type == "action"]
        assert actions == ["escalation", "clinician_callback_booked", "customer_notes_updated"]
        assert "Dosage question" in (await records_store.get_customer("CUST_001"))["notes"]
        summary = summarize_session(await _timeline("S1"))
        assert summary.escalations_scheduled == 1
        assert summary.compliance_blocked is True

    @pytest.mark.asyncio
    async def test_callback_without_pending_escalation(self, db) -> None:
        result = await workflows.book_callback(SessionContext("S1"))

        assert result.ok is True
        assert result.data["escalation_updated"] is False

    @pytest.mark.asyncio
    async def test_allowed_inquiry(self, db) -> None:
        result = await workflows.handle_inquiry(SessionContext("S1"), "delivery_date", order_id="ORD_7823")

        assert result.ok is True
        assert result.data["tracking_number"] == "TRK789012"
        assert "discreet" in result.response
        events = await _timeline("S1")
        assert events[1].event_data == {
            "inquiry_type": "delivery_date",
            "allowed": True,
            "reason": "Order/delivery inquiry within agent scope",
        }
        assert events[-2].event_data["type"] == "sms"
        assert events[-2].event_data["status"] == "pending"
        assert "ready to send" in events[-2].event_data["description"]
        assert "sms_sent" not in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_allowed_inquiry_unknown_order(self, db) -> None:
        result = await workflows.handle_inquiry(SessionContext("S1"), "order_status", order_id="ORD_0000")

        assert result.reason == "not_found"
        events = await _timeline("S1")
        assert events[-3].event_data["status"] == "NOT_FOUND"
        assert events[-2].event_data["type"] == "customer_assistance"


class TestSendSms:
    """Tests for send_sms."""

    @pytest.mark.asyncio
    async def test_simulated_when_unconfigured(self, db) -> None:
        result = await workflows.send_sms(SessionContext("S1"), "+44 7700 900001", "tracking", order_id="ORD_7823", tracking_number="TRK789012")

        assert result.ok is True
        assert result.data["simulated"] is True
        assert result.data["message_sid"].startswith("SIM_")
        events = await _timeline("S1")
        assert [e.event_type for e in events] == ["sms_sent"]
        assert events[0].event_data["recipient"] == "+447700900001"
        assert events[0].event_data["status"] == "simulated"
        assert events[0].event_data["message_preview"].endswith("...")

    @pytest.mark.asyncio
    async def test_invalid_phone(self, db) -> None:
        with pytest.raises(ValidationError):
            await workflows.send_sms(SessionContext("S1"), "not-a-number")

    @pytest.mark.asyncio
    async def test_unknown_type_becomes_other(self, db) -> None:
        await workflows.send_sms(SessionContext("S1"), "+447700900001", "marketing")

        assert (await _timeline("S1"))[0].event_data["message_type"] == "other"

    @pytest.mark.asyncio
    async def test_provider_failure_is_logged(self, db, monkeypatch: pytest.MonkeyPatch) -> None:
        class FailingClient:
            async def send(self, to, body):
                raise DownstreamUnavailable("sms", "401 unauthorized")

        monkeypatch.setattr(workflows, "get_sms_client", lambda: FailingClient())

        result = await workflows.send_sms(SessionContext("S1"), "+447700900001", "tracking")

        assert result.ok is False
        assert result.reason == "downstream_unavailable"
        assert (await _timeline("S1"))[0].event_data["status"] == "failed"


class TestCallBoundaries:
    """Tests for start_call / end_call / dismiss_session."""

    @pytest.mark.asyncio
    async def test_start_and_end(self, db) -> None:
        ctx = SessionContext("S1")

        started = await workflows.start_call(ctx, source="test")
        again = await workflows.start_call(ctx, source="test")
        await workflows.lookup_order(ctx, "417")
        ended = await workflows.end_call(ctx, duration=61, resolution="resolved")

        assert started.data["state"] == ACTIVE
        assert again.reason == "already_active"
        assert ended.data["state"] == SUMMARIZING
        assert ended.data["summary"]["orders_looked_up"] == ["417"]
        assert "Duration: 1:01" in ended.data["notes"]
        types = await _types("S1")
        assert types.count("call_started") == 1
        assert types[-1] == "call_ended"

    @pytest.mark.asyncio
    async def test_cannot_restart_while_summarizing(self, db) -> None:
        ctx = SessionContext("S1")
        await workflows.start_call(ctx)
        await workflows.end_call(ctx)

        with pytest.raises(InvalidTransition):
            await workflows.start_call(ctx)

        state = await workflows.dismiss_session(ctx)
        assert state["state"] == "idle"
        restarted = await workflows.start_call(ctx)
        assert restarted.data["state"] == ACTIVE
        # the previous call_ended in the log must not end the new call
        await asyncio.sleep(0.01)
        assert (await get_lifecycle_registry().get("S1")).state == ACTIVE

    @pytest.mark.asyncio
    async def test_end_without_start_still_logs(self, db) -> None:
        ended = await workflows.end_call(SessionContext("S1"), duration=5)

        assert ended.data["state"] == "idle"
        assert await _types("S1") == ["call_ended"]
        assert (await get_lifecycle_registry().get("S1")).state == "idle"


class TestSerialisation:
    """Workflows for one session never interleave."""

    @pytest.mark.asyncio
    async def test_concurrent_workflows_run_back_to_back(self, db, fast_settings, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(fast_settings, "WORKFLOW_STEP_DELAY", 0.005)
        ctx = SessionContext("S1")

        await asyncio.gather(workflows.lookup_order(ctx, "417"), workflows.lookup_order(ctx, "418"))

        block = ["agent_thinking", "querying", "results", "action", "agent_spoke"]
        events = await _timeline("S1")
        assert [e.event_type for e in events] == block + block
        first_refs = {e.event_data.get("order_number") for e in events[:5] if e.event_type == "querying"}
        second_refs = {e.event_data.get("order_number") for e in events[5:] if e.event_type == "querying"}
        assert first_refs != second_refs
