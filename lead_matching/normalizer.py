"""
Lead Matching — Matching Result Normalizer

Turns the scored product lists of the matching engine into supplier card
records that explain why each product matched or not.

Responsibilities:
  1. Requirement report: one spec row per buyer requirement, whatever
     characteristics the product itself reports
  2. Gap list: one line per non-matching characteristic the product reports
  3. Expected-value rendering (textual labels, numeric ranges with units)
  4. Score scaling from [0, 1] to an integer percentage
  5. Partitioning into recommended / others by input list, score-sorted
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence, Union

from lead_matching.config import Settings
from lead_matching.exceptions import InvalidInputError
from lead_matching.models import (
    ConsolidatedCharacteristic, MatchingCharacteristic, MatchingProduct,
    MatchingResponse, MatchStatus, NormalizedMatchingResult, NormalizedProduct,
    NumericRequirement, ProductSpec, parse_requirement,
)
from lead_matching.registry import CharacteristicRegistry, as_registry, format_range

logger = logging.getLogger(__name__)


# ============================================================
# Value Resolution
# ============================================================

def scale_score(score: float) -> int:
    """[0, 1] float → [0, 100] int, rounding half up (0.855 → 86)."""
    if math.isnan(score):
        return 0
    if math.isinf(score):
        return 100 if score > 0 else 0
    scaled = (Decimal(str(score)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(0, min(100, int(scaled)))


def expected_value(
    requirement: Optional[ConsolidatedCharacteristic],
    registry: CharacteristicRegistry,
) -> Optional[str]:
    """What the buyer asked for, or None when nothing resolvable was asked."""
    if requirement is None:
        return None
    cid = requirement.characteristic_id
    if isinstance(requirement, NumericRequirement):
        return format_range(requirement.target_values, requirement.unit or registry.unit(cid))
    if not requirement.target_values:
        return None
    return ", ".join(registry.value_labels(cid, requirement.target_values))


def product_value(
    characteristic: MatchingCharacteristic,
    registry: CharacteristicRegistry,
    requirement: Optional[ConsolidatedCharacteristic] = None,
) -> str:
    """What the product offers for one characteristic, as display text."""
    missing = registry.settings.missing_value
    if characteristic.match_status is MatchStatus.NOT_PROVIDED:
        return missing
    cid = characteristic.characteristic_id
    if characteristic.value_ids:
        return ", ".join(registry.value_labels(cid, characteristic.value_ids))
    if characteristic.value is not None:
        unit = characteristic.unit or (requirement.unit if requirement else None)
        return registry.format_numeric_value(cid, characteristic.value, unit)
    return missing


# ============================================================
# Specs & Gaps
# ============================================================

def _index_characteristics(
    product: MatchingProduct,
) -> dict[int, MatchingCharacteristic]:
    indexed: dict[int, MatchingCharacteristic] = {}
    for mc in product.characteristics:
        indexed.setdefault(mc.characteristic_id, mc)
    return indexed


def build_specs(
    product: MatchingProduct,
    requirements: Sequence[ConsolidatedCharacteristic],
    registry: CharacteristicRegistry,
) -> list[ProductSpec]:
    """
    One row per requirement. A requirement the product does not report, or
    reports as not provided, shows the missing marker; gap and blocking
    statuses both surface as a plain mismatch.
    """
    by_id = _index_characteristics(product)
    specs: list[ProductSpec] = []

    for req in requirements:
        cid = req.characteristic_id
        label = registry.label(cid)
        mc = by_id.get(cid)

        if mc is None or mc.match_status is MatchStatus.NOT_PROVIDED:
            specs.append(ProductSpec(
                characteristic_id=cid,
                label=label,
                value=registry.settings.missing_value,
                matches=False,
                expected=expected_value(req, registry),
            ))
        elif mc.match_status is MatchStatus.MATCH:
            specs.append(ProductSpec(
                characteristic_id=cid,
                label=label,
                value=product_value(mc, registry, req),
                matches=True,
            ))
        else:
            specs.append(ProductSpec(
                characteristic_id=cid,
                label=label,
                value=product_value(mc, registry, req),
                matches=False,
                expected=expected_value(req, registry),
            ))

    return specs


def build_gaps(
    product: MatchingProduct,
    requirements: Sequence[ConsolidatedCharacteristic],
    registry: CharacteristicRegistry,
) -> list[str]:
    """Human-readable lines for every non-matching characteristic of the product."""
    settings = registry.settings
    by_requirement = {r.characteristic_id: r for r in requirements}
    gaps: list[str] = []

    for mc in product.characteristics:
        if mc.match_status is MatchStatus.MATCH:
            continue
        label = registry.label(mc.characteristic_id)
        if mc.match_status is MatchStatus.NOT_PROVIDED:
            gaps.append(f"{label} : {settings.unavailable_text}")
            continue

        req = by_requirement.get(mc.characteristic_id)
        line = f"{label} : {product_value(mc, registry, req)}"
        expected = expected_value(req, registry)
        if expected:
            line += f", {settings.requested_text} {expected}"
        gaps.append(line)

    return gaps


# ============================================================
# Products
# ============================================================

def normalize_product(
    product: MatchingProduct,
    requirements: Sequence[ConsolidatedCharacteristic],
    registry: CharacteristicRegistry,
    recommended: bool = False,
) -> NormalizedProduct:
    settings = registry.settings
    return NormalizedProduct(
        id=product.product_id,
        score=scale_score(product.score),
        rank=product.rank,
        is_recommended=recommended,
        specs=build_specs(product, requirements, registry),
        gaps=build_gaps(product, requirements, registry),
        title=settings.title_for(product.product_id),
        image=settings.placeholder_image,
        images=[settings.placeholder_image],
        vendor_name=settings.placeholder_vendor,
    )


def _validate_products(products: Any, argument: str) -> list[MatchingProduct]:
    if not isinstance(products, (list, tuple)):
        raise InvalidInputError(argument, "a list of matching products", products)
    return [
        p if isinstance(p, MatchingProduct) else MatchingProduct.model_validate(p)
        for p in products
    ]


def _validate_requirements(requirements: Any) -> list[ConsolidatedCharacteristic]:
    if requirements is None:
        return []
    if not isinstance(requirements, (list, tuple)):
        raise InvalidInputError("requirements", "a list of consolidated characteristics",
                                requirements)
    return [parse_requirement(r) for r in requirements]


def normalize(
    top_products: Sequence[Union[MatchingProduct, Mapping]],
    other_products: Sequence[Union[MatchingProduct, Mapping]],
    registry: Any,
    requirements: Sequence[Union[ConsolidatedCharacteristic, Mapping]],
    settings: Optional[Settings] = None,
) -> NormalizedMatchingResult:
    """
    Normalize a matching response into recommended / other supplier cards.

    Args:
        top_products: products the engine put in its primary recommendation set
        other_products: the broader candidate set
        registry: CharacteristicRegistry, raw characteristic records, or None
            when the registry could not be fetched (labels become placeholders)
        requirements: consolidated buyer requirements, in importance order
        settings: placeholder and gap wording; overrides the registry's own when given

    Returns:
        NormalizedMatchingResult with both partitions sorted by score, highest first.
    """
    top = _validate_products(top_products, "top_products")
    others = _validate_products(other_products, "other_products")
    reqs = _validate_requirements(requirements)
    registry = as_registry(registry, settings)

    recommended = [normalize_product(p, reqs, registry, recommended=True) for p in top]
    rest = [normalize_product(p, reqs, registry) for p in others]
    recommended.sort(key=lambda p: p.score, reverse=True)
    rest.sort(key=lambda p: p.score, reverse=True)

    logger.info(
        "Normalized %d recommended and %d other products against %d requirements",
        len(recommended), len(rest), len(reqs))
    return NormalizedMatchingResult(recommended=recommended, others=rest)


def split_matching_response(
    payload: Union[MatchingResponse, Mapping[str, Any]],
) -> tuple[list[MatchingProduct], list[MatchingProduct]]:
    """
    Extract (top, others) from a matching response.

    Accepts ``{topProducts, otherProducts}`` or a single ``liste_produit``
    list partitioned by each product's top-pick flag.
    """
    if isinstance(payload, MatchingResponse):
        return list(payload.top_products), list(payload.other_products)
    if not isinstance(payload, Mapping):
        raise InvalidInputError("payload", "a matching response object", payload)

    if "liste_produit" in payload:
        products = _validate_products(payload["liste_produit"] or [], "liste_produit")
        return ([p for p in products if p.is_top_pick],
                [p for p in products if not p.is_top_pick])

    response = MatchingResponse.model_validate(payload)
    return list(response.top_products), list(response.other_products)
