"""Match-string rendering and response reassembly.

Every ``match`` string, including sentinels, has the shape
``<rendered>:<score with two decimals>`` so spreadsheet formulas can split
on the last colon regardless of outcome.
"""

from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal

from uniclass_gateway.core.models import (
    Identifier,
    LookupOutcome,
    MatchCandidate,
    MatchOutcome,
    OutputFormat,
    Query,
    ResultEntry,
)

_TWO_PLACES = Decimal("0.01")


def format_score(score: float) -> str:
    """Format a similarity score with exactly two decimals, rounding half up.

    The decimal representation is rounded, so ``0.865`` becomes ``"0.87"``.
    """
    return str(Decimal(str(score)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def render_candidate(candidate: MatchCandidate, output_format: OutputFormat) -> str:
    """Render a candidate without its score."""
    if output_format is OutputFormat.CODE:
        return candidate.code
    if output_format is OutputFormat.TITLE:
        return candidate.title
    return f"{candidate.code}:{candidate.title}"


def format_match(candidate: MatchCandidate, output_format: OutputFormat) -> str:
    """Render a candidate with its score appended."""
    return f"{render_candidate(candidate, output_format)}:{format_score(candidate.similarity)}"


def sentinel_match(outcome: MatchOutcome) -> str:
    """Return the match string used for a failure outcome."""
    label = outcome.sentinel_label
    if label is None:
        raise ValueError(f"{outcome.value} has no sentinel")
    return f"{label}:{format_score(0)}"


def sentinel_entry(identifier: Identifier, outcome: MatchOutcome) -> ResultEntry:
    """Build a sentinel ResultEntry with zero confidence and no alternatives."""
    return ResultEntry(
        identifier=identifier,
        match=sentinel_match(outcome),
        outcome=outcome,
        confidence=0,
        alternatives=[],
    )


def build_result_entry(lookup: LookupOutcome) -> ResultEntry:
    """Turn a dispatcher outcome into a ResultEntry."""
    identifier = lookup.query.identifier
    best = lookup.best
    if lookup.outcome is not MatchOutcome.MATCHED or best is None:
        outcome = lookup.outcome
        if outcome is MatchOutcome.MATCHED:
            outcome = MatchOutcome.NO_MATCH
        return sentinel_entry(identifier, outcome)

    return ResultEntry(
        identifier=identifier,
        match=format_match(best, lookup.query.output_format),
        outcome=MatchOutcome.MATCHED,
        confidence=best.similarity,
        alternatives=list(lookup.candidates[1:]),
    )


def reassemble(
    queries: Sequence[Query],
    outcomes: Mapping[int, LookupOutcome],
) -> list[ResultEntry]:
    """Build the final result list from the input batch.

    The output is driven by ``queries``, never by ``outcomes``: each input
    yields exactly one entry, in input order. Outcomes are keyed by position,
    so repeated identifiers stay distinct. A position without a computed
    outcome becomes a ``Processing error`` sentinel.
    """
    results: list[ResultEntry] = []
    for query in queries:
        lookup = outcomes.get(query.position)
        if lookup is None:
            results.append(sentinel_entry(query.identifier, MatchOutcome.PROCESSING_ERROR))
        else:
            results.append(build_result_entry(lookup))
    return results
