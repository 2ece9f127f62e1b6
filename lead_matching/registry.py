"""
Lead Matching — Characteristic Registry

Read-only lookup of characteristic id → name, unit, kind and, for textual
characteristics, value id → label. Loaded once per category and consulted by
the normalizer and the criteria display helpers.

Lookups never fail: unknown ids resolve to placeholder labels built from the
id, so a missing or failed registry degrades the report instead of breaking it.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Callable, Iterator, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from lead_matching.config import Settings, get_settings
from lead_matching.exceptions import InvalidInputError
from lead_matching.models import CharacteristicKind, NumericRange, coerce_id, first_present

logger = logging.getLogger(__name__)


# ============================================================
# Registry Models
# ============================================================

class CharacteristicValue(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(validation_alias=AliasChoices("id", "id_valeur"))
    label: str = Field(default="", validation_alias=AliasChoices("label", "valeur", "name", "nom"))

    @field_validator("label", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


class CharacteristicDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(validation_alias=AliasChoices("id", "id_caracteristique"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "nom"))
    unit: Optional[str] = Field(default=None, validation_alias=AliasChoices("unit", "unite"))
    kind: CharacteristicKind = Field(
        default=CharacteristicKind.TEXTUAL,
        validation_alias=AliasChoices("kind", "type", "type_caracteristique"))
    values: list[CharacteristicValue] = Field(
        default_factory=list, validation_alias=AliasChoices("values", "valeurs"))

    @field_validator("name", mode="before")
    @classmethod
    def _parse_name(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("unit", mode="before")
    @classmethod
    def _parse_unit(cls, v: Any) -> Optional[str]:
        if isinstance(v, str) and v.strip():
            return v.strip()
        return None

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, v: Any) -> CharacteristicKind:
        return CharacteristicKind.parse(v) or CharacteristicKind.TEXTUAL

    @field_validator("values", mode="before")
    @classmethod
    def _keep_valid_values(cls, v: Any) -> list:
        if not isinstance(v, (list, tuple)):
            return []
        kept = []
        for item in v:
            if isinstance(item, CharacteristicValue):
                kept.append(item)
            elif isinstance(item, Mapping):
                value_id = coerce_id(first_present(item, "id", "id_valeur"))
                if value_id is not None:
                    kept.append({**item, "id": value_id})
        return kept

    def value_label(self, value_id: int) -> Optional[str]:
        for value in self.values:
            if value.id == value_id:
                return value.label or None
        return None


# ============================================================
# Formatting
# ============================================================

def format_number(value: float) -> str:
    """10.0 → '10', 2.5 → '2.5'."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_range(rng: NumericRange, unit: Optional[str] = None) -> Optional[str]:
    """
    Render a numeric requirement. ``exact`` wins over bounds; returns None when
    the range carries nothing to show.
    """
    suffix = f" {unit}" if unit else ""
    if rng.exact is not None:
        return f"{format_number(rng.exact)}{suffix}"
    if rng.min is not None and rng.max is not None:
        return f"{format_number(rng.min)}–{format_number(rng.max)}{suffix}"
    if rng.min is not None:
        return f"≥{format_number(rng.min)}{suffix}"
    if rng.max is not None:
        return f"≤{format_number(rng.max)}{suffix}"
    return None


# ============================================================
# Registry
# ============================================================

class CharacteristicRegistry:
    """Characteristic definitions of one category, keyed by id."""

    def __init__(
        self,
        definitions: Optional[Iterable[CharacteristicDefinition]] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._by_id: dict[int, CharacteristicDefinition] = {}
        for definition in definitions or []:
            self._by_id[definition.id] = definition

    @classmethod
    def from_records(
        cls, records: Any, settings: Optional[Settings] = None
    ) -> CharacteristicRegistry:
        """
        Build a registry from the characteristics API payload.

        Accepts the bare list, the ``{code, response: [...]}`` envelope or an
        id-keyed map. Records that fail validation are skipped.
        """
        if isinstance(records, Mapping) and "response" in records:
            records = records["response"]
        if records is None:
            records = []
        elif isinstance(records, Mapping):
            records = list(records.values())
        if not isinstance(records, (list, tuple)):
            raise InvalidInputError("records", "a list of characteristic definitions", records)

        definitions = []
        for record in records:
            if isinstance(record, CharacteristicDefinition):
                definitions.append(record)
                continue
            try:
                definitions.append(CharacteristicDefinition.model_validate(record))
            except ValidationError as e:
                logger.warning("Skipping invalid characteristic record %r: %s",
                               record, e.errors()[0]["msg"])
        logger.debug("Loaded %d characteristic definitions", len(definitions))
        return cls(definitions, settings=settings)

    def __contains__(self, characteristic_id: object) -> bool:
        return characteristic_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[CharacteristicDefinition]:
        return iter(self._by_id.values())

    def get(self, characteristic_id: int) -> Optional[CharacteristicDefinition]:
        return self._by_id.get(characteristic_id)

    def with_settings(self, settings: Settings) -> CharacteristicRegistry:
        """Same definitions, other placeholder and wording settings."""
        return CharacteristicRegistry(self._by_id.values(), settings=settings)

    # ----------------------------------------------------------
    # Lookups
    # ----------------------------------------------------------

    def label(self, characteristic_id: int) -> str:
        definition = self._by_id.get(characteristic_id)
        if definition and definition.name:
            return definition.name
        return self.settings.characteristic_label_for(characteristic_id)

    def unit(self, characteristic_id: int) -> Optional[str]:
        definition = self._by_id.get(characteristic_id)
        return definition.unit if definition else None

    def kind(self, characteristic_id: int) -> Optional[CharacteristicKind]:
        definition = self._by_id.get(characteristic_id)
        return definition.kind if definition else None

    def value_label(self, characteristic_id: int, value_id: int) -> str:
        definition = self._by_id.get(characteristic_id)
        label = definition.value_label(value_id) if definition else None
        return label or self.settings.value_label_for(value_id)

    def value_labels(self, characteristic_id: int, value_ids: Iterable[int]) -> list[str]:
        return [self.value_label(characteristic_id, vid) for vid in value_ids]

    def options(self, characteristic_id: int) -> list[dict[str, Any]]:
        """Selectable values of a textual characteristic, for dropdowns."""
        definition = self._by_id.get(characteristic_id)
        if not definition:
            return []
        return [{"id": v.id, "label": v.label} for v in definition.values]

    # ----------------------------------------------------------
    # Formatting
    # ----------------------------------------------------------

    def format_numeric_value(
        self, characteristic_id: int, value: float, unit: Optional[str] = None
    ) -> str:
        unit = unit or self.unit(characteristic_id)
        text = format_number(value)
        return f"{text} {unit}" if unit else text

    def format_selected_values(
        self,
        characteristic_id: int,
        selected: Union[Iterable[int], NumericRange, Mapping],
        unit: Optional[str] = None,
    ) -> str:
        """Value ids become joined labels; numeric ranges use ``format_range``."""
        if isinstance(selected, Mapping):
            selected = NumericRange.model_validate(selected)
        if isinstance(selected, NumericRange):
            return format_range(selected, unit or self.unit(characteristic_id)) or ""
        return ", ".join(self.value_labels(characteristic_id, selected))


def as_registry(
    registry: Any, settings: Optional[Settings] = None
) -> CharacteristicRegistry:
    """
    Accept a registry, raw records, or None (nothing resolvable).

    Explicit ``settings`` win over the ones a registry instance was built with.
    """
    if isinstance(registry, CharacteristicRegistry):
        if settings is None or settings is registry.settings:
            return registry
        return registry.with_settings(settings)
    if registry is None:
        return CharacteristicRegistry(settings=settings)
    if isinstance(registry, (Mapping, list, tuple)):
        return CharacteristicRegistry.from_records(registry, settings=settings)
    raise InvalidInputError("registry", "a CharacteristicRegistry or characteristic records",
                            registry)


# ============================================================
# Session Cache
# ============================================================

class RegistryCache:
    """
    Keeps one registry per category for the whole session.

    A failing loader yields an empty registry that is not cached, so the next
    call retries while the current report degrades to placeholder labels.
    """

    def __init__(self, loader: Callable[[int], Any], settings: Optional[Settings] = None):
        self._loader = loader
        self.settings = settings or get_settings()
        self._registries: dict[int, CharacteristicRegistry] = {}

    def get(self, category_id: int) -> CharacteristicRegistry:
        cached = self._registries.get(category_id)
        if cached is not None:
            return cached
        try:
            records = self._loader(category_id)
            registry = CharacteristicRegistry.from_records(records, settings=self.settings)
        except Exception:
            logger.exception("Characteristic registry unavailable for category %s", category_id)
            return CharacteristicRegistry(settings=self.settings)
        self._registries[category_id] = registry
        logger.info("Cached %d characteristics for category %s", len(registry), category_id)
        return registry

    def invalidate(self, category_id: Optional[int] = None) -> None:
        if category_id is None:
            self._registries.clear()
        else:
            self._registries.pop(category_id, None)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._registries
