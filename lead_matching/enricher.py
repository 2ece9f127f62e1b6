"""
Lead Matching — Product Enricher

Merges late-arriving descriptive data (title, image, vendor) into normalized
supplier cards. Only display fields are touched; score, specs and gaps stay
exactly as the normalizer produced them.

The enricher is safe to run repeatedly as info streams in, typically once for
the recommended set and later for the others.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from lead_matching.exceptions import InvalidInputError
from lead_matching.models import EnrichedProduct, NormalizedProduct, ProductInfo

logger = logging.getLogger(__name__)


def vendor_name_from_domain(domain: Optional[str]) -> Optional[str]:
    """'www.acme.fr' → 'ACME'. None when there is nothing to derive from."""
    if not domain:
        return None
    host = domain.strip()
    if host.startswith("www."):
        host = host[len("www."):]
    name = host.split(".", 1)[0].strip()
    return name.upper() or None


def parse_product_info(info_by_product_id: Any) -> dict[str, ProductInfo]:
    """
    Validate the product info map, keyed by product id as a string.

    Entries that cannot be read are skipped; the matching product then keeps
    its placeholders.
    """
    if info_by_product_id is None:
        return {}
    if not isinstance(info_by_product_id, Mapping):
        raise InvalidInputError("info_by_product_id", "a mapping of product id to info",
                                info_by_product_id)

    parsed: dict[str, ProductInfo] = {}
    for product_id, raw in info_by_product_id.items():
        if isinstance(raw, ProductInfo):
            parsed[str(product_id)] = raw
            continue
        try:
            parsed[str(product_id)] = ProductInfo.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping unreadable info for product %s: %s",
                           product_id, e.errors()[0]["msg"])
    return parsed


def enrich_product(product: NormalizedProduct, info: ProductInfo) -> EnrichedProduct:
    update: dict[str, Any] = {}
    if info.title:
        update["title"] = info.title
    if info.image:
        update["image"] = info.image
        update["images"] = [info.image]
    vendor = vendor_name_from_domain(info.vendor_domain)
    if vendor:
        update["vendor_name"] = vendor
    if info.description:
        update["description_html"] = info.description
    return product.model_copy(update=update, deep=True)


def enrich(
    products: Sequence[NormalizedProduct],
    info_by_product_id: Mapping[Any, Any],
) -> list[EnrichedProduct]:
    """
    Fill display fields from product info, preserving order.

    Products without an info entry come back unchanged. Fields absent from an
    info entry keep their current value, so enriching twice with the same or
    additional data converges.
    """
    if not isinstance(products, (list, tuple)):
        raise InvalidInputError("products", "a list of normalized products", products)
    infos = parse_product_info(info_by_product_id)

    enriched = []
    for product in products:
        info = infos.get(str(product.id))
        enriched.append(enrich_product(product, info) if info else product.model_copy(deep=True))

    logger.debug("Enriched %d of %d products",
                 sum(1 for p in products if str(p.id) in infos), len(products))
    return enriched
