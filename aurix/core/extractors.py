# aurix/core/extractors.py
"""
Order reference extraction from `querying` payloads.

Projections only depend on the `OrderRefExtractor` protocol, so the regex
scraping of logged SQL can be swapped for structured fields without touching
them. Extraction is best effort: anything unrecognised yields no reference.
"""
import re
from typing import Any, Dict, Iterable, List, Protocol, Sequence

_SQL_ORDER_REF = re.compile(r"order_(?:id|number)\s*=\s*['\"]([^'\"]+)['\"]", re.IGNORECASE)


class OrderRefExtractor(Protocol):
    def extract(self, payload: Dict[str, Any]) -> List[str]:
        ...


class StructuredFieldExtractor:
    """Reads order references from explicit payload fields."""

    def __init__(self, fields: Sequence[str] = ("order_id", "order_number")):
        self.fields = tuple(fields)

    def extract(self, payload: Dict[str, Any]) -> List[str]:
        refs = []
        for field in self.fields:
            value = payload.get(field)
            if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
                refs.append(str(value).strip())
        return refs


class SqlPatternExtractor:
    """Scrapes `order_id = '...'` / `order_number = '...'` out of logged SQL text."""

    def __init__(self, fields: Sequence[str] = ("sql", "queries")):
        self.fields = tuple(fields)

    def _texts(self, payload: Dict[str, Any]) -> Iterable[str]:
        for field in self.fields:
            value = payload.get(field)
            if isinstance(value, str):
                yield value
            elif isinstance(value, (list, tuple)):
                for item in value:
                    if isinstance(item, str):
                        yield item

    def extract(self, payload: Dict[str, Any]) -> List[str]:
        refs = []
        for text in self._texts(payload):
            refs.extend(m.group(1).strip() for m in _SQL_ORDER_REF.finditer(text))
        return refs


class ChainedExtractor:
    """Runs extractors in order and de-duplicates their output, first seen wins."""

    def __init__(self, extractors: Sequence[OrderRefExtractor]):
        self.extractors = list(extractors)

    def extract(self, payload: Dict[str, Any]) -> List[str]:
        if not isinstance(payload, dict):
            return []
        seen: List[str] = []
        for extractor in self.extractors:
            for ref in extractor.extract(payload):
                if ref and ref not in seen:
                    seen.append(ref)
        return seen


DEFAULT_ORDER_REF_EXTRACTOR: OrderRefExtractor = ChainedExtractor([StructuredFieldExtractor(), SqlPatternExtractor()])
