# aurix/core/llm_client.py
"""
LLM client wrapper.

Three async operations used by the speech pipeline:
 - extract_entities(utterance) -> dict   ({} when nothing usable came back)
 - generate_query(entities) -> QueryPlan | None   (None means "no query possible")
   Both raise DownstreamUnavailable when the API itself fails.
 - format_response(results, entities) -> str   (apology text on failure)

Supports:
 - openai (API) if LLM_MODE=openai and an api key is present
 - stub: rule-based extraction and templated replies, used for demos and tests
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aurix.config import get_settings
from aurix.core.errors import DownstreamUnavailable
from aurix.core.extractors import SqlPatternExtractor

logger = logging.getLogger("aurix.core.llm")
settings = get_settings()

APOLOGY = "I'm sorry, I'm having trouble pulling that up right now. Could you try again in a moment?"
NOT_FOUND_REPLY = "I'm sorry, I couldn't find that order. Could you double-check the order number for me?"

EXTRACT_PROMPT = """Extract structured information from this customer query:
"{utterance}"

Return ONLY valid JSON with this structure (no markdown, no explanation):
{{
  "order_number": "string or null",
  "customer_name": "string or null",
  "issue_type": "delivery_delay|order_status|account_info|other",
  "expected_date": "string or null",
  "sentiment": "positive|neutral|concerned|angry"
}}

If a field cannot be determined, use null."""

QUERY_PROMPT = """Generate a SQLite query for this customer request.
Extracted information:
{entities}

Database schema:
- orders: order_id, order_number, customer_id, product_name, order_status, estimated_delivery, tracking_number, notes
- customers: customer_id, name, email, phone, account_manager

Rules:
1. Return ONLY the SQL query, nothing else
2. Use single quotes for strings
3. If order_number exists, query orders table
4. If asking about account manager, query customers table by name
5. If query is impossible, return "INVALID"

Example queries:
- SELECT order_status, estimated_delivery, tracking_number FROM orders WHERE order_number = '417'
- SELECT account_manager FROM customers WHERE name LIKE '%Tom%'"""

FORMAT_PROMPT = """Format a natural customer service response.
Customer question context:
{entities}

Database results:
{results}

Create a helpful, conversational response (2-3 sentences max).
Be empathetic if there's a problem. Include relevant details."""

_ORDER_NUMBER = re.compile(r"(?:order|#)\s*(?:number|no\.?)?\s*#?\s*(\d{2,})", re.IGNORECASE)
_NAME = re.compile(r"\b(?i:my name is|this is|i am|i'm)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)")
_CUSTOMER_LIKE = re.compile(r"name\s+LIKE\s+'%?([^'%]+)%?'", re.IGNORECASE)


@dataclass
class QueryPlan:
    """
    What the speech pipeline should look up. `sql` is kept for the timeline
    only; lookups always go through the keyed records store.
    """

    sql: str
    order_ref: Optional[str] = None
    customer_name: Optional[str] = None
    entities: Dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        return "orders" if self.order_ref else "customers"


def _clean_json(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


class LLMClient:
    def __init__(self, settings):
        self.mode = (settings.LLM_MODE or "stub").lower()
        self.model = settings.LLM_MODEL
        self.settings = settings
        self._client = None
        if self.mode == "openai":
            if settings.LLM_API_KEY:
                from openai import OpenAI

                self._client = OpenAI(api_key=settings.LLM_API_KEY)
            else:
                logger.warning("LLM_MODE=openai but no LLM_API_KEY set; using rule-based stub")

    @property
    def live(self) -> bool:
        return self._client is not None

    async def _complete(self, prompt: str, max_tokens: int) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._blocking_chat, prompt, max_tokens)

    def _blocking_chat(self, prompt: str, max_tokens: int) -> str:
        resp = self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
        )
        return resp.choices[0].message.content or ""

    async def extract_entities(self, utterance: str) -> Dict[str, Any]:
        utterance = (utterance or "").strip()
        if not utterance:
            return {}
        if not self.live:
            return _rule_based_entities(utterance)
        try:
            raw = await self._complete(EXTRACT_PROMPT.format(utterance=utterance), 300)
        except Exception as exc:
            logger.warning("Entity extraction failed: %s", exc)
            raise DownstreamUnavailable("llm", str(exc)) from exc
        try:
            parsed = json.loads(_clean_json(raw))
        except ValueError:
            logger.info("Entity extraction returned no JSON: %r", raw[:200])
            return {}
        return parsed if isinstance(parsed, dict) else {}

    async def generate_query(self, entities: Dict[str, Any]) -> Optional[QueryPlan]:
        if not entities:
            return None
        if not self.live:
            return _rule_based_query(entities)
        try:
            sql = (await self._complete(QUERY_PROMPT.format(entities=json.dumps(entities, indent=2)), 200)).strip()
        except Exception as exc:
            logger.warning("Query generation failed: %s", exc)
            raise DownstreamUnavailable("llm", str(exc)) from exc
        return _plan_from_sql(sql, entities)

    async def format_response(self, results: Dict[str, Any], entities: Dict[str, Any]) -> str:
        if not self.live:
            return _templated_reply(results, entities)
        try:
            prompt = FORMAT_PROMPT.format(
                entities=json.dumps(entities, indent=2),
                results=json.dumps(results, indent=2, default=str),
            )
            text = (await self._complete(prompt, 200)).strip()
        except Exception as exc:
            logger.warning("Response formatting failed: %s", exc)
            return APOLOGY
        return text or APOLOGY


def _plan_from_sql(sql: str, entities: Dict[str, Any]) -> Optional[QueryPlan]:
    sql = re.sub(r"^```(?:sql)?|```$", "", sql.strip()).strip()
    if not sql or sql.upper().startswith("INVALID"):
        return None
    refs = SqlPatternExtractor().extract({"sql": sql})
    if refs:
        return QueryPlan(sql=sql, order_ref=refs[0], entities=entities)
    m = _CUSTOMER_LIKE.search(sql)
    if m:
        return QueryPlan(sql=sql, customer_name=m.group(1).strip(), entities=entities)
    logger.info("Generated query has no lookup key we can serve: %s", sql)
    return None


def _rule_based_entities(text: str) -> Dict[str, Any]:
    t = text.lower()
    order = _ORDER_NUMBER.search(text)
    name = _NAME.search(text)
    if "late" in t or "delay" in t or "hasn't arrived" in t or "not arrived" in t:
        issue = "delivery_delay"
    elif "account manager" in t or "account" in t:
        issue = "account_info"
    elif order or "order" in t or "where" in t:
        issue = "order_status"
    else:
        issue = "other"
    if any(w in t for w in ("angry", "ridiculous", "unacceptable")):
        sentiment = "angry"
    elif any(w in t for w in ("worried", "concerned", "late", "still")):
        sentiment = "concerned"
    else:
        sentiment = "neutral"
    return {
        "order_number": order.group(1) if order else None,
        "customer_name": name.group(1) if name else None,
        "issue_type": issue,
        "expected_date": None,
        "sentiment": sentiment,
    }


def _rule_based_query(entities: Dict[str, Any]) -> Optional[QueryPlan]:
    order_number = entities.get("order_number")
    if order_number:
        sql = f"SELECT order_status, estimated_delivery, tracking_number FROM orders WHERE order_number = '{order_number}'"
        return QueryPlan(sql=sql, order_ref=str(order_number), entities=entities)
    name = entities.get("customer_name")
    if name and entities.get("issue_type") == "account_info":
        sql = f"SELECT account_manager FROM customers WHERE name LIKE '%{name}%'"
        return QueryPlan(sql=sql, customer_name=str(name), entities=entities)
    return None


def _templated_reply(results: Dict[str, Any], entities: Dict[str, Any]) -> str:
    if not results or results.get("status") == "NOT_FOUND":
        return NOT_FOUND_REPLY
    if results.get("account_manager"):
        return f"Your account manager is {results['account_manager']}. Is there anything else I can help with?"
    parts = []
    opener = "I'm sorry about the wait. " if entities.get("issue_type") == "delivery_delay" else ""
    ref = results.get("order_number") or entities.get("order_number")
    if results.get("order_status"):
        parts.append(f"{opener}Your order {ref} is currently {results['order_status']}".replace("order None", "order"))
    if results.get("estimated_delivery"):
        parts.append(f"with delivery expected on {results['estimated_delivery']}")
    reply = ", ".join(parts) + "." if parts else "I found your order."
    if results.get("tracking_number"):
        reply += f" Your tracking number is {results['tracking_number']}."
    return reply


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient(settings)
    return _llm_client
