"""
Lead Matching — buyer criteria consolidation and matching-result normalization.

    answers → consolidate() → normalize() → enrich()
"""
from lead_matching.config import Settings, configure_logging, get_settings
from lead_matching.consolidator import build_matching_criteria, consolidate, describe_requirements
from lead_matching.enricher import enrich, vendor_name_from_domain
from lead_matching.exceptions import InvalidInputError, LeadMatchingError
from lead_matching.models import (
    AnswerSet,
    CharacteristicKind,
    ConsolidatedCharacteristic,
    EnrichedProduct,
    MatchingCharacteristic,
    MatchingProduct,
    MatchStatus,
    NormalizedMatchingResult,
    NormalizedProduct,
    NumericRange,
    NumericRequirement,
    Priority,
    ProductInfo,
    ProductSpec,
    TextualRequirement,
    infer_kind,
)
from lead_matching.normalizer import normalize, scale_score, split_matching_response
from lead_matching.registry import CharacteristicDefinition, CharacteristicRegistry, RegistryCache

__version__ = "1.0.0"

__all__ = [
    "AnswerSet",
    "CharacteristicDefinition",
    "CharacteristicKind",
    "CharacteristicRegistry",
    "ConsolidatedCharacteristic",
    "EnrichedProduct",
    "InvalidInputError",
    "LeadMatchingError",
    "MatchStatus",
    "MatchingCharacteristic",
    "MatchingProduct",
    "NormalizedMatchingResult",
    "NormalizedProduct",
    "NumericRange",
    "NumericRequirement",
    "Priority",
    "ProductInfo",
    "ProductSpec",
    "RegistryCache",
    "Settings",
    "TextualRequirement",
    "build_matching_criteria",
    "configure_logging",
    "consolidate",
    "describe_requirements",
    "enrich",
    "get_settings",
    "infer_kind",
    "normalize",
    "scale_score",
    "split_matching_response",
    "vendor_name_from_domain",
]
