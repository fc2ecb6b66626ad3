"""Input validation for batch match requests.

Batch-level problems (missing or empty ``queries``, oversized batches)
reject the whole request. Item-level problems, a bad ``request_id`` included,
never do: the item is kept with an ``error`` reason and is answered with a
sentinel, so the response still has one row per input.
"""

import math
from typing import Any

from uniclass_gateway.core.errors import BatchTooLarge, InvalidRequest
from uniclass_gateway.core.models import Identifier, OutputFormat, Query

__all__ = [
    "DEFAULT_MAX_BATCH_SIZE",
    "INVALID_QUERIES_MESSAGE",
    "SINGLE_INVALID_MESSAGE",
    "parse_query_item",
    "parse_single_query",
    "resolve_identifier",
    "validate_batch",
]

DEFAULT_MAX_BATCH_SIZE = 2000

INVALID_QUERIES_MESSAGE = "Missing or invalid queries array"
SINGLE_INVALID_MESSAGE = "Missing query or uniclass_type"


def resolve_identifier(item: Any, position: int) -> Identifier:
    """Return the caller's request_id, or the position when it was omitted.

    Only a missing key or an explicit ``null`` counts as omitted; ``0`` and
    ``""`` are kept as real identifiers.

    Raises:
        InvalidRequest: If the request_id is not a string or a number
    """
    if not isinstance(item, dict):
        return position

    identifier = item.get("request_id")
    if identifier is None:
        return position

    # bool is a subclass of int
    if isinstance(identifier, bool) or not isinstance(identifier, (str, int, float)):
        raise InvalidRequest(
            "request_id must be a string or a number",
            context={"position": position, "type": type(identifier).__name__},
        )
    if isinstance(identifier, float) and not math.isfinite(identifier):
        raise InvalidRequest(
            "request_id must be a finite number",
            context={"position": position},
        )
    return identifier


def parse_query_item(item: Any, position: int) -> Query:
    """Build a Query from one raw batch item.

    Args:
        item: Decoded JSON value for the item
        position: Zero-based position in the batch

    Returns:
        Query, with ``error`` set when the item cannot be processed
    """
    try:
        identifier = resolve_identifier(item, position)
    except InvalidRequest as e:
        return Query(position=position, identifier=position, error=e.message)

    if not isinstance(item, dict):
        return Query(position=position, identifier=identifier, error="item is not an object")

    text = item.get("query")
    if not isinstance(text, str) or not text.strip():
        return Query(position=position, identifier=identifier, error="missing query text")

    category = item.get("uniclass_type")
    if not isinstance(category, str) or not category.strip():
        return Query(
            position=position,
            identifier=identifier,
            text=text,
            error="missing uniclass_type",
        )

    raw_format = item.get("output_format")
    if raw_format is not None and not isinstance(raw_format, str):
        return Query(
            position=position,
            identifier=identifier,
            text=text,
            category_filter=category.strip().upper(),
            error="output_format must be a string",
        )

    return Query(
        position=position,
        identifier=identifier,
        text=text,
        category_filter=category.strip().upper(),
        output_format=OutputFormat.parse(raw_format),
    )


def validate_batch(
    payload: Any,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
) -> list[Query]:
    """Validate a raw batch payload and return its queries in input order.

    Args:
        payload: Decoded request body
        max_batch_size: Largest accepted batch

    Returns:
        One Query per input item, in the same order

    Raises:
        InvalidRequest: If ``queries`` is missing, not a list or empty
        BatchTooLarge: If the batch exceeds ``max_batch_size``
    """
    if not isinstance(payload, dict):
        raise InvalidRequest(INVALID_QUERIES_MESSAGE)

    items = payload.get("queries")
    if not isinstance(items, list) or not items:
        raise InvalidRequest(INVALID_QUERIES_MESSAGE)

    if len(items) > max_batch_size:
        raise BatchTooLarge(size=len(items), limit=max_batch_size)

    return [parse_query_item(item, position) for position, item in enumerate(items)]


def parse_single_query(payload: Any) -> Query:
    """Validate a single-query request body.

    Unlike batch items, an unusable single query is an error for the whole
    request.

    Raises:
        InvalidRequest: If ``query`` or ``uniclass_type`` is missing
    """
    if not isinstance(payload, dict):
        raise InvalidRequest(SINGLE_INVALID_MESSAGE)

    query = parse_query_item(payload, 0)
    if not query.is_valid:
        raise InvalidRequest(SINGLE_INVALID_MESSAGE, context={"reason": query.error})
    return query
