"""
Lead Matching — Core Pydantic Models

Every shape that crosses the boundary of the matching core lives here:
questionnaire equivalences, consolidated buyer requirements, the scored
product list returned by the matching engine, product info used for
enrichment, and the display records handed to the UI layer.

External payloads mix French, snake_case and camelCase keys; each field
accepts all of them through ``AliasChoices``.
"""
from __future__ import annotations

import logging
import math
import unicodedata
from collections.abc import Mapping
from enum import Enum, IntEnum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from lead_matching.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


# ============================================================
# Enums
# ============================================================

_CRITICAL_NAMES = {"critique", "critical"}


class Priority(str, Enum):
    CRITICAL = "critique"
    SECONDARY = "secondaire"

    @classmethod
    def parse(cls, value: Any) -> Priority:
        """Anything that is not recognisably critical is secondary."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().lower() in _CRITICAL_NAMES:
            return cls.CRITICAL
        return cls.SECONDARY


class CharacteristicKind(str, Enum):
    TEXTUAL = "textuelle"
    NUMERIC = "numerique"

    @classmethod
    def parse(cls, value: Any) -> Optional[CharacteristicKind]:
        """Read 'Textuelle', 'Numérique', 'numeric', ... Returns None when unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode()
        folded = folded.strip().lower()
        if folded.startswith("num"):
            return cls.NUMERIC
        if folded.startswith("text"):
            return cls.TEXTUAL
        return None


class MatchStatus(IntEnum):
    MATCH = 1
    GAP = 2
    BLOCKING = 3
    NOT_PROVIDED = 4

    @classmethod
    def parse(cls, value: Any) -> MatchStatus:
        if isinstance(value, cls):
            return value
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            logger.warning("Unknown match status %r, reading it as a gap", value)
            return cls.GAP

    @property
    def is_mismatch(self) -> bool:
        return self in (MatchStatus.GAP, MatchStatus.BLOCKING)


# ============================================================
# Coercion Helpers
# ============================================================

def coerce_id(value: Any) -> Optional[int]:
    """Parse an id that may arrive as int, integral float or numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def coerce_id_list(value: Any) -> list[int]:
    """Keep the parseable ids of a list, preserving order and dropping repeats."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set, frozenset)):
        value = [value]
    ids: list[int] = []
    for item in value:
        parsed = coerce_id(item)
        if parsed is None:
            logger.debug("Dropping unparseable value id %r", item)
            continue
        if parsed not in ids:
            ids.append(parsed)
    return ids


def coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def is_numeric_shape(value: Any) -> bool:
    """True for ``{exact?, min?, max?}`` mappings."""
    return isinstance(value, Mapping) and any(k in value for k in ("exact", "min", "max"))


def _clean_unit(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def first_present(raw: Mapping, *keys: str) -> Any:
    """Value of the first key that is present and not None."""
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


# ============================================================
# Numeric Ranges
# ============================================================

class NumericRange(BaseModel):
    """``{exact?, min?, max?}`` with absent bounds left as None, never ±inf."""
    model_config = ConfigDict(frozen=True)

    exact: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_bounds(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        if not isinstance(data, Mapping):
            return {}
        return {k: coerce_number(data.get(k)) for k in ("exact", "min", "max")}

    @property
    def is_empty(self) -> bool:
        return self.exact is None and self.min is None and self.max is None

    def interval(self, include_exact: bool = True) -> Optional[tuple[float, float]]:
        """Closed interval using ±inf for open bounds, None when nothing is set."""
        if include_exact and self.exact is not None:
            return self.exact, self.exact
        if self.min is None and self.max is None:
            return None
        low = self.min if self.min is not None else -math.inf
        high = self.max if self.max is not None else math.inf
        return low, high


# ============================================================
# Questionnaire Equivalences (ingestion boundary)
# ============================================================

_ID_KEYS = ("characteristic_id", "characteristicId", "id_caracteristique")
_KIND_KEYS = ("kind", "type_caracteristique", "type")
_TARGET_KEYS = ("target_values", "targetValues", "valeurs_cibles")
_BLOCKING_KEYS = ("blocking_values", "blockingValues", "valeurs_bloquantes")
_UNIT_KEYS = ("unit", "unite")


class _EquivalenceBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    characteristic_id: int = Field(
        validation_alias=AliasChoices(*_ID_KEYS))
    priority: Priority = Field(
        default=Priority.SECONDARY,
        validation_alias=AliasChoices("priority", "poids", "poids_caracteristique"))
    unit: Optional[str] = Field(default=None, validation_alias=AliasChoices(*_UNIT_KEYS))

    @field_validator("characteristic_id", mode="before")
    @classmethod
    def _parse_id(cls, v: Any) -> Any:
        parsed = coerce_id(v)
        return v if parsed is None else parsed

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, v: Any) -> Priority:
        return Priority.parse(v)

    @field_validator("unit", mode="before")
    @classmethod
    def _parse_unit(cls, v: Any) -> Optional[str]:
        return _clean_unit(v)


class TextualEquivalence(_EquivalenceBase):
    kind: Literal[CharacteristicKind.TEXTUAL] = CharacteristicKind.TEXTUAL
    target_values: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices(*_TARGET_KEYS))
    blocking_values: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices(*_BLOCKING_KEYS))

    @field_validator("target_values", "blocking_values", mode="before")
    @classmethod
    def _parse_ids(cls, v: Any) -> list[int]:
        if isinstance(v, Mapping):
            return []
        return coerce_id_list(v)


class NumericEquivalence(_EquivalenceBase):
    kind: Literal[CharacteristicKind.NUMERIC] = CharacteristicKind.NUMERIC
    target_values: NumericRange = Field(
        default_factory=NumericRange, validation_alias=AliasChoices(*_TARGET_KEYS))
    blocking_values: NumericRange = Field(
        default_factory=NumericRange, validation_alias=AliasChoices(*_BLOCKING_KEYS))


Equivalence = Annotated[
    Union[TextualEquivalence, NumericEquivalence], Field(discriminator="kind")
]


def infer_kind(raw: Mapping) -> CharacteristicKind:
    """Explicit kind when recognisable, else numeric-shaped values or a unit mean numeric."""
    explicit = CharacteristicKind.parse(first_present(raw, *_KIND_KEYS))
    if explicit is not None:
        return explicit
    if is_numeric_shape(first_present(raw, *_TARGET_KEYS)):
        return CharacteristicKind.NUMERIC
    if is_numeric_shape(first_present(raw, *_BLOCKING_KEYS)):
        return CharacteristicKind.NUMERIC
    if _clean_unit(first_present(raw, *_UNIT_KEYS)):
        return CharacteristicKind.NUMERIC
    return CharacteristicKind.TEXTUAL


def parse_equivalence(raw: Any) -> Optional[Union[TextualEquivalence, NumericEquivalence]]:
    """Validate one raw equivalence. Returns None when it has no usable characteristic id."""
    if isinstance(raw, (TextualEquivalence, NumericEquivalence)):
        return raw
    if not isinstance(raw, Mapping):
        logger.warning("Ignoring equivalence that is not an object: %r", raw)
        return None

    data = {k: v for k, v in raw.items() if k not in _KIND_KEYS}
    model = (NumericEquivalence if infer_kind(raw) is CharacteristicKind.NUMERIC
             else TextualEquivalence)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("Ignoring malformed equivalence %r: %s", raw, e.errors()[0]["msg"])
        return None


class AnswerSet(BaseModel):
    """Equivalences grouped by question code, in questionnaire order."""
    model_config = ConfigDict(frozen=True)

    answers: dict[str, list[Equivalence]] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, answers_by_question: Any) -> AnswerSet:
        if isinstance(answers_by_question, AnswerSet):
            return answers_by_question
        if not isinstance(answers_by_question, Mapping):
            raise InvalidInputError(
                "answers_by_question", "a mapping of question code to equivalences",
                answers_by_question)

        answers: dict[str, list] = {}
        for code, items in answers_by_question.items():
            if items is None:
                items = []
            elif isinstance(items, Mapping):
                items = [items]
            elif not isinstance(items, (list, tuple)):
                logger.warning("Question %s carries no equivalence list: %r", code, items)
                items = []
            parsed = (parse_equivalence(item) for item in items)
            answers[str(code)] = [eq for eq in parsed if eq is not None]
        return cls(answers=answers)

    @property
    def question_codes(self) -> list[str]:
        return list(self.answers)

    def __len__(self) -> int:
        return len(self.answers)


# ============================================================
# Consolidated Requirements
# ============================================================

class _RequirementBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    characteristic_id: int = Field(
        validation_alias=AliasChoices("characteristic_id", "id_caracteristique"),
        serialization_alias="id_caracteristique")
    priority: Priority = Field(
        validation_alias=AliasChoices("priority", "poids_caracteristique"),
        serialization_alias="poids_caracteristique")
    question_weight: int = Field(
        validation_alias=AliasChoices("question_weight", "poids_question"),
        serialization_alias="poids_question")
    unit: Optional[str] = Field(
        default=None, validation_alias=AliasChoices(*_UNIT_KEYS), serialization_alias="unite")

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, v: Any) -> Priority:
        return Priority.parse(v)

    @field_validator("unit", mode="before")
    @classmethod
    def _parse_unit(cls, v: Any) -> Optional[str]:
        return _clean_unit(v)

    @property
    def is_critical(self) -> bool:
        return self.priority is Priority.CRITICAL


class TextualRequirement(_RequirementBase):
    kind: Literal[CharacteristicKind.TEXTUAL] = Field(
        default=CharacteristicKind.TEXTUAL,
        validation_alias=AliasChoices("kind", "type_caracteristique"),
        serialization_alias="type_caracteristique")
    target_values: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices(*_TARGET_KEYS),
        serialization_alias="valeurs_cibles")
    blocking_values: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices(*_BLOCKING_KEYS),
        serialization_alias="valeurs_bloquantes")

    @field_validator("target_values", "blocking_values", mode="before")
    @classmethod
    def _parse_ids(cls, v: Any) -> list[int]:
        if isinstance(v, Mapping):
            return []
        return coerce_id_list(v)


class NumericRequirement(_RequirementBase):
    kind: Literal[CharacteristicKind.NUMERIC] = Field(
        default=CharacteristicKind.NUMERIC,
        validation_alias=AliasChoices("kind", "type_caracteristique"),
        serialization_alias="type_caracteristique")
    target_values: NumericRange = Field(
        default_factory=NumericRange, validation_alias=AliasChoices(*_TARGET_KEYS),
        serialization_alias="valeurs_cibles")
    blocking_values: NumericRange = Field(
        default_factory=NumericRange, validation_alias=AliasChoices(*_BLOCKING_KEYS),
        serialization_alias="valeurs_bloquantes")


ConsolidatedCharacteristic = Annotated[
    Union[TextualRequirement, NumericRequirement], Field(discriminator="kind")
]


def parse_requirement(raw: Any) -> Union[TextualRequirement, NumericRequirement]:
    """Rebuild a requirement from its model or its serialised (wire) form."""
    if isinstance(raw, (TextualRequirement, NumericRequirement)):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidInputError("requirement", "a consolidated characteristic", raw)
    data = {k: v for k, v in raw.items() if k not in _KIND_KEYS}
    if infer_kind(raw) is CharacteristicKind.NUMERIC:
        return NumericRequirement.model_validate(data)
    return TextualRequirement.model_validate(data)


# ============================================================
# Matching Engine Response
# ============================================================

class MatchingCharacteristic(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    characteristic_id: int = Field(
        validation_alias=AliasChoices(*_ID_KEYS))
    match_status: MatchStatus = Field(
        default=MatchStatus.NOT_PROVIDED,
        validation_alias=AliasChoices("match_status", "matchStatus", "statut_matching"))
    value_ids: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices("value_ids", "valueIds", "id_valeur"))
    value: Optional[float] = Field(default=None, validation_alias=AliasChoices("value", "valeur"))
    unit: Optional[str] = Field(default=None, validation_alias=AliasChoices(*_UNIT_KEYS))
    kind: Optional[CharacteristicKind] = Field(
        default=None, validation_alias=AliasChoices("kind", "type_caracteristique"))
    weight: float = Field(default=0.0, validation_alias=AliasChoices("weight", "poids"))

    @field_validator("characteristic_id", mode="before")
    @classmethod
    def _parse_id(cls, v: Any) -> Any:
        parsed = coerce_id(v)
        return v if parsed is None else parsed

    @field_validator("match_status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> MatchStatus:
        return MatchStatus.parse(v)

    @field_validator("value_ids", mode="before")
    @classmethod
    def _parse_value_ids(cls, v: Any) -> list[int]:
        return coerce_id_list(v)

    @field_validator("value", mode="before")
    @classmethod
    def _parse_value(cls, v: Any) -> Optional[float]:
        number = coerce_number(v)
        if number is None and v is not None:
            logger.debug("Dropping non-numeric characteristic value %r", v)
        return number

    @field_validator("unit", mode="before")
    @classmethod
    def _parse_unit(cls, v: Any) -> Optional[str]:
        return _clean_unit(v)

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, v: Any) -> Optional[CharacteristicKind]:
        return CharacteristicKind.parse(v)

    @field_validator("weight", mode="before")
    @classmethod
    def _parse_weight(cls, v: Any) -> float:
        return coerce_number(v) or 0.0


class MatchingProduct(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_id: str = Field(
        validation_alias=AliasChoices("product_id", "productId", "id_produit", "id"))
    score: float = 0.0
    rank: int = Field(default=0, validation_alias=AliasChoices("rank", "rang"))
    characteristics: list[MatchingCharacteristic] = Field(
        default_factory=list,
        validation_alias=AliasChoices("characteristics", "caracteristique", "caracteristiques"))
    is_top_pick: bool = Field(
        default=False, validation_alias=AliasChoices("is_top_pick", "isTopPick", "top_produit"))
    debug_coefficients: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("debug_coefficients", "debugCoefficients", "coefficients"))

    @field_validator("product_id", mode="before")
    @classmethod
    def _parse_product_id(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            parsed = coerce_id(v)
            return str(v if parsed is None else parsed)
        return v

    @field_validator("score", mode="before")
    @classmethod
    def _parse_score(cls, v: Any) -> float:
        return coerce_number(v) or 0.0

    @field_validator("rank", mode="before")
    @classmethod
    def _parse_rank(cls, v: Any) -> int:
        parsed = coerce_id(v)
        return 0 if parsed is None else parsed

    @field_validator("characteristics", mode="before")
    @classmethod
    def _drop_non_objects(cls, v: Any) -> list:
        if not isinstance(v, (list, tuple)):
            return []
        kept = []
        for item in v:
            if isinstance(item, MatchingCharacteristic):
                kept.append(item)
            elif isinstance(item, Mapping) and coerce_id(first_present(item, *_ID_KEYS)) is not None:
                data = {key: value for key, value in item.items() if key not in _ID_KEYS}
                data["characteristic_id"] = coerce_id(first_present(item, *_ID_KEYS))
                kept.append(data)
            else:
                logger.warning("Dropping matching characteristic without an id: %r", item)
        return kept

    @field_validator("debug_coefficients", mode="before")
    @classmethod
    def _parse_debug(cls, v: Any) -> dict:
        return dict(v) if isinstance(v, Mapping) else {}


class MatchingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    top_products: list[MatchingProduct] = Field(
        default_factory=list, validation_alias=AliasChoices("top_products", "topProducts"))
    other_products: list[MatchingProduct] = Field(
        default_factory=list, validation_alias=AliasChoices("other_products", "otherProducts"))
    processing_time: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("processing_time", "temps_de_traitement"))


# ============================================================
# Product Info (enrichment input)
# ============================================================

class ProductInfo(BaseModel):
    """Descriptive product data, flat or in the ``{produit, vendeur}`` envelope."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("product_id", "productId", "id_produit"))
    title: Optional[str] = Field(default=None, validation_alias=AliasChoices("title", "titre_produit"))
    description: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("description", "description_produit"))
    image: Optional[str] = Field(default=None, validation_alias=AliasChoices("image", "image_produit"))
    vendor_domain: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("vendor_domain", "vendorDomain", "domaine"))

    @model_validator(mode="before")
    @classmethod
    def _flatten_envelope(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or "produit" not in data:
            return data
        flat = dict(data.get("produit") or {})
        vendor = data.get("vendeur") or {}
        if isinstance(vendor, Mapping) and "domaine" in vendor:
            flat["domaine"] = vendor["domaine"]
        return flat

    @field_validator("product_id", "title", "description", "image", "vendor_domain",
                     mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


# ============================================================
# Display Records (UI contract)
# ============================================================

class ProductSpec(BaseModel):
    """One row of a product's requirement report."""
    characteristic_id: int
    label: str
    value: str
    matches: bool
    expected: Optional[str] = None
    is_requested: bool = True


class NormalizedProduct(BaseModel):
    """
    Supplier card record. Matching fields (score, specs, gaps) are set once by
    the normalizer; display fields start as placeholders and are only ever
    overwritten by the enricher.
    """
    id: str
    score: int
    rank: int = 0
    is_recommended: bool = False
    specs: list[ProductSpec] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)

    # Display fields
    title: str
    image: str
    images: list[str] = Field(default_factory=list)
    vendor_name: str
    description_html: Optional[str] = None


# Same shape once display fields are filled in
EnrichedProduct = NormalizedProduct


class NormalizedMatchingResult(BaseModel):
    recommended: list[NormalizedProduct] = Field(default_factory=list)
    others: list[NormalizedProduct] = Field(default_factory=list)
