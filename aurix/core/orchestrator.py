# aurix/core/orchestrator.py
"""
Orchestrator: one conversational turn from the voice webhook.

Entry point used by the webhooks router: `process_speech(ctx, utterance)`.

Steps (each logged before the next begins):
 - user_spoke
 - extract entities (LLM) -> agent_thinking
 - generate a query plan; "no query possible" ends the turn with a rephrase prompt
 - querying -> keyed lookup -> results (NOT_FOUND when nothing matches)
 - sms / crm_update actions
 - format reply (LLM) -> agent_spoke

An LLM outage during extraction or planning ends the turn through the
@workflow wrapper: an UNAVAILABLE `results` event and the apology.
"""
import logging
from typing import Any, Dict, Optional

from aurix.core.errors import LookupNotFound
from aurix.core.llm_client import LLMClient, QueryPlan, get_llm_client
from aurix.core.workflows import SessionContext, log_event, pause, reply, require, workflow
from aurix.models.schemas import EventType, WorkflowResult
from aurix.storage import records_store

logger = logging.getLogger("aurix.core.orchestrator")

REPHRASE = "I'm sorry, I didn't quite catch that. Could you tell me your order number so I can look it up?"


async def _run_plan(plan: QueryPlan) -> Dict[str, Any]:
    """Serve a query plan through the records store. Unmatched keys yield a NOT_FOUND result."""
    if plan.order_ref:
        try:
            order = await records_store.get_order_by_number(plan.order_ref)
        except LookupNotFound:
            return {
                "status": "NOT_FOUND",
                "order_number": plan.order_ref,
                "error": "Order not found",
                "suggestion": "Verify the order number",
            }
        return {
            "order_id": order["order_id"],
            "order_number": order.get("order_number"),
            "order_status": order.get("order_status"),
            "estimated_delivery": order.get("estimated_delivery"),
            "tracking_number": order.get("tracking_number"),
            "product_name": order.get("product_name"),
            "notes": order.get("notes"),
        }

    matches = await records_store.find_customers_by_name(plan.customer_name or "")
    if not matches:
        return {
            "status": "NOT_FOUND",
            "customer_name": plan.customer_name,
            "error": "Customer not found",
            "suggestion": "Ask for the full name or phone number on the account",
        }
    customer = matches[0]
    return {"customer_name": customer.get("name"), "account_manager": customer.get("account_manager")}


@workflow
async def process_speech(ctx: SessionContext, utterance: str, llm: Optional[LLMClient] = None) -> WorkflowResult:
    utterance = require(utterance, "user_speech")
    llm = llm or get_llm_client()

    await log_event(ctx, EventType.USER_SPOKE, {"text": utterance})

    entities = await llm.extract_entities(utterance)
    if not entities:
        logger.info("No entities extracted for %s", ctx.call_sid)
    await log_event(ctx, EventType.AGENT_THINKING, entities or {"issue_type": "unknown"})
    await pause()

    plan = await llm.generate_query(entities)
    if plan is None:
        return await reply(ctx, REPHRASE, ok=False, reason="no_query", entities=entities)

    querying: Dict[str, Any] = {"sql": plan.sql}
    if plan.order_ref:
        querying["order_number"] = plan.order_ref
    await log_event(ctx, EventType.QUERYING, querying)
    await pause()

    results = await _run_plan(plan)
    await log_event(ctx, EventType.RESULTS, results)
    found = results.get("status") != "NOT_FOUND"
    await pause()

    text = await llm.format_response(results, entities)

    if found and results.get("tracking_number"):
        await log_event(
            ctx,
            EventType.ACTION,
            {
                "type": "sms",
                "description": f"Tracking details for order {results.get('order_number')} ready to send by SMS",
                "message_type": "tracking",
                "order_id": results.get("order_id"),
                "tracking_number": results["tracking_number"],
            },
        )
    await log_event(ctx, EventType.ACTION, {"type": "crm_update", "description": "Interaction logged in CRM", "status": "complete"})

    return await reply(
        ctx,
        text,
        ok=found,
        reason=None if found else LookupNotFound.code,
        entities=entities,
        results=results,
    )
