"""
Lead Matching — Equivalence Consolidator

Responsibilities:
  1. Question weighting (earlier questions weigh more: N - index)
  2. Grouping of every answered equivalence by characteristic
  3. Priority resolution (critical beats secondary, then highest question weight)
  4. Value merging: id-set union for textual, interval union for numeric
  5. Importance ordering of the resulting requirements
  6. Criteria payload / tag rendering for downstream consumers

The consolidator is a pure function of the answer set. Callers re-run it on
the whole answer set whenever an answer changes; it never patches a previous
result.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Union

from lead_matching.config import Settings
from lead_matching.models import (
    AnswerSet, CharacteristicKind, ConsolidatedCharacteristic,
    NumericEquivalence, NumericRange, NumericRequirement, Priority,
    TextualEquivalence, TextualRequirement,
)
from lead_matching.registry import as_registry

logger = logging.getLogger(__name__)


# ============================================================
# Question Weighting
# ============================================================

@dataclass(frozen=True)
class WeightedEquivalence:
    """An answered equivalence stamped with the weight of its question."""
    equivalence: Union[TextualEquivalence, NumericEquivalence]
    question_code: str
    question_weight: int

    @property
    def characteristic_id(self) -> int:
        return self.equivalence.characteristic_id

    @property
    def priority(self) -> Priority:
        return self.equivalence.priority

    @property
    def kind(self) -> CharacteristicKind:
        return self.equivalence.kind


def question_weights(question_codes: Sequence[str]) -> dict[str, int]:
    """Weight each question by ordinal position: first of N gets N, last gets 1."""
    total = len(question_codes)
    return {code: total - index for index, code in enumerate(question_codes)}


def weight_answers(answers: AnswerSet) -> list[WeightedEquivalence]:
    weights = question_weights(answers.question_codes)
    return [
        WeightedEquivalence(equivalence=eq, question_code=code, question_weight=weights[code])
        for code, equivalences in answers.answers.items()
        for eq in equivalences
    ]


# ============================================================
# Value Merging
# ============================================================

def merge_textual_targets(equivalences: Iterable[TextualEquivalence]) -> list[int]:
    """Union of target ids, in first-seen order."""
    merged: list[int] = []
    for eq in equivalences:
        for value_id in eq.target_values:
            if value_id not in merged:
                merged.append(value_id)
    return merged


def merge_textual_blocking(
    equivalences: Iterable[TextualEquivalence], targets: Sequence[int]
) -> list[int]:
    """Union of blocking ids minus any id that is also a target."""
    target_set = set(targets)
    merged: list[int] = []
    for eq in equivalences:
        for value_id in eq.blocking_values:
            if value_id not in target_set and value_id not in merged:
                merged.append(value_id)
    return merged


def _merge_bounds(intervals: list[tuple[float, float]]) -> tuple[Optional[float], Optional[float]]:
    """
    Lowest finite lower bound and highest finite upper bound. A side left open
    by one contributor does not erase the bound another contributor sets; a
    side stays open only when no contributor bounds it.
    """
    lows = [low for low, _ in intervals if not math.isinf(low)]
    highs = [high for _, high in intervals if not math.isinf(high)]
    return (min(lows) if lows else None), (max(highs) if highs else None)


def merge_numeric_targets(equivalences: Iterable[NumericEquivalence]) -> NumericRange:
    """
    Merge target intervals, ``exact`` counting as a single-point interval.

    ``{min: 10}`` and ``{max: 100}`` give ``{min: 10, max: 100}``. The result
    is emitted as ``exact`` when every contributor is closed on both sides and
    the merged bounds meet.
    """
    intervals = [iv for iv in (eq.target_values.interval() for eq in equivalences) if iv]
    if not intervals:
        return NumericRange()
    low, high = _merge_bounds(intervals)
    all_closed = all(not math.isinf(lo) and not math.isinf(hi) for lo, hi in intervals)
    if all_closed and low == high:
        return NumericRange(exact=low)
    return NumericRange(min=low, max=high)


def merge_numeric_blocking(equivalences: Iterable[NumericEquivalence]) -> NumericRange:
    """Merge blocking intervals the same way; bounds stay bounds even when equal."""
    intervals = [
        iv for iv in (eq.blocking_values.interval(include_exact=False) for eq in equivalences)
        if iv
    ]
    if not intervals:
        return NumericRange()
    low, high = _merge_bounds(intervals)
    return NumericRange(min=low, max=high)


# ============================================================
# Consolidation
# ============================================================

def _resolve_priority(group: list[WeightedEquivalence]) -> tuple[Priority, int]:
    critical = [w for w in group if w.priority is Priority.CRITICAL]
    if critical:
        return Priority.CRITICAL, max(w.question_weight for w in critical)
    return Priority.SECONDARY, max(w.question_weight for w in group)


def _consolidate_group(
    characteristic_id: int, group: list[WeightedEquivalence]
) -> ConsolidatedCharacteristic:
    priority, weight = _resolve_priority(group)
    kind = group[0].kind
    if any(w.kind is not kind for w in group):
        logger.warning(
            "Characteristic %s answered as both textual and numeric; keeping %s",
            characteristic_id, kind.value)
    unit = next((w.equivalence.unit for w in group if w.equivalence.unit), None)

    if kind is CharacteristicKind.NUMERIC:
        numeric = [w.equivalence for w in group if isinstance(w.equivalence, NumericEquivalence)]
        return NumericRequirement(
            characteristic_id=characteristic_id,
            priority=priority,
            question_weight=weight,
            unit=unit,
            target_values=merge_numeric_targets(numeric),
            blocking_values=merge_numeric_blocking(numeric),
        )

    textual = [w.equivalence for w in group if isinstance(w.equivalence, TextualEquivalence)]
    targets = merge_textual_targets(textual)
    return TextualRequirement(
        characteristic_id=characteristic_id,
        priority=priority,
        question_weight=weight,
        unit=unit,
        target_values=targets,
        blocking_values=merge_textual_blocking(textual, targets),
    )


def requirement_sort_key(requirement: ConsolidatedCharacteristic) -> tuple[int, int]:
    """Importance order: critical first, then heavier questions first."""
    return (0 if requirement.is_critical else 1, -requirement.question_weight)


def consolidate(
    answers_by_question: Union[AnswerSet, Mapping[str, Any]],
) -> list[ConsolidatedCharacteristic]:
    """
    Merge every answered equivalence into one requirement per characteristic.

    Args:
        answers_by_question: question code → raw equivalences, in questionnaire
            order, or an already validated ``AnswerSet``.

    Returns:
        Requirements sorted critical-first then by question weight descending.
    """
    answers = AnswerSet.from_raw(answers_by_question)
    if not len(answers):
        return []

    grouped: dict[int, list[WeightedEquivalence]] = {}
    for weighted in weight_answers(answers):
        grouped.setdefault(weighted.characteristic_id, []).append(weighted)

    result = [_consolidate_group(cid, group) for cid, group in grouped.items()]
    result.sort(key=requirement_sort_key)

    logger.debug(
        "Consolidated %d questions into %d requirements (%d critical)",
        len(answers), len(result), sum(1 for r in result if r.is_critical))
    return result


# ============================================================
# Downstream Views
# ============================================================

def build_matching_criteria(
    requirements: Iterable[ConsolidatedCharacteristic],
) -> list[dict[str, Any]]:
    """Requirements in the matching engine's wire shape; absent bounds are omitted."""
    return [
        r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in requirements
    ]


def describe_requirements(
    requirements: Iterable[ConsolidatedCharacteristic],
    registry: Any = None,
    settings: Optional[Settings] = None,
) -> list[str]:
    """Criteria tags such as ``"Capacité : ≥500 kg"``, in importance order."""
    registry = as_registry(registry, settings)
    tags = []
    for r in requirements:
        label = registry.label(r.characteristic_id)
        values = registry.format_selected_values(r.characteristic_id, r.target_values, r.unit)
        tags.append(f"{label} : {values}" if values else label)
    return tags
