"""
Unit tests for the characteristic registry.

Covers:
- Loading from the API payload shapes
- Label / unit / kind lookups with placeholder fallbacks
- Selected-value and range formatting
- Per-category session cache
"""
import pytest

from lead_matching.exceptions import InvalidInputError
from lead_matching.models import CharacteristicKind, NumericRange
from lead_matching.registry import (
    CharacteristicRegistry,
    RegistryCache,
    as_registry,
    format_number,
    format_range,
)


@pytest.mark.unit
class TestLoading:
    """Registry construction from raw records."""

    def test_envelope_payload(self, registry):
        assert len(registry) == 3
        assert 10 in registry
        assert 30 in registry

    def test_bare_list(self, registry_records, settings):
        registry = CharacteristicRegistry.from_records(registry_records["response"], settings)
        assert len(registry) == 3

    def test_id_keyed_map(self, registry_records, settings):
        by_id = {r.get("id", r.get("id_caracteristique")): r for r in registry_records["response"]}
        registry = CharacteristicRegistry.from_records(by_id, settings)
        assert sorted(d.id for d in registry) == [10, 20, 30]

    def test_invalid_record_is_skipped(self, settings):
        registry = CharacteristicRegistry.from_records(
            [{"nom": "Sans id"}, {"id": 1, "nom": "Hauteur", "unite": "m"}], settings)

        assert len(registry) == 1
        assert registry.label(1) == "Hauteur"

    def test_values_without_id_are_dropped(self, settings):
        registry = CharacteristicRegistry.from_records(
            [{"id": 1, "nom": "Couleur", "valeurs": [{"valeur": "Rouge"}, {"id": 3, "valeur": "Bleu"}]}],
            settings)
        assert registry.options(1) == [{"id": 3, "label": "Bleu"}]

    def test_null_value_id_falls_back_to_id_valeur(self, settings):
        registry = CharacteristicRegistry.from_records(
            [{"id": 1, "nom": "Couleur", "valeurs": [{"id": None, "id_valeur": "4", "valeur": "Vert"}]}],
            settings)

        assert registry.options(1) == [{"id": 4, "label": "Vert"}]
        assert registry.value_label(1, 4) == "Vert"

    def test_none_gives_empty_registry(self, settings):
        assert len(CharacteristicRegistry.from_records(None, settings)) == 0

    def test_unsupported_payload_raises(self, settings):
        with pytest.raises(InvalidInputError):
            CharacteristicRegistry.from_records("Capacité", settings)

    def test_as_registry_rejects_other_types(self, settings):
        with pytest.raises(InvalidInputError):
            as_registry(42, settings)


@pytest.mark.unit
class TestLookups:
    """Lookups never fail."""

    def test_known_characteristic(self, registry):
        assert registry.label(20) == "Capacité"
        assert registry.unit(20) == "kg"
        assert registry.kind(20) is CharacteristicKind.NUMERIC
        assert registry.kind(10) is CharacteristicKind.TEXTUAL

    def test_string_ids_are_coerced(self, registry):
        assert registry.value_label(10, 5) == "Bipoutre"

    def test_unknown_characteristic(self, registry):
        assert registry.label(404) == "Characteristic #404"
        assert registry.unit(404) is None
        assert registry.kind(404) is None

    def test_unknown_value(self, registry):
        assert registry.value_label(10, 99) == "Value #99"
        assert registry.value_label(404, 5) == "Value #5"

    def test_value_labels_keep_order(self, registry):
        assert registry.value_labels(10, [7, 5]) == ["Portique", "Bipoutre"]

    def test_options(self, registry):
        assert registry.options(30) == [
            {"id": 1, "label": "Électrique"},
            {"id": 2, "label": "Manuelle"},
        ]
        assert registry.options(404) == []

    def test_with_settings_keeps_definitions(self, registry, settings):
        custom = settings.model_copy(update={"value_placeholder": "Valeur {value_id}"})
        rebound = as_registry(registry, custom)

        assert rebound.settings is custom
        assert rebound.label(10) == "Type de pont"
        assert rebound.value_label(10, 99) == "Valeur 99"
        assert as_registry(registry) is registry

    def test_placeholders_follow_settings(self, settings):
        custom = settings.model_copy(update={"characteristic_placeholder": "Critère {characteristic_id}"})
        assert CharacteristicRegistry(settings=custom).label(3) == "Critère 3"


@pytest.mark.unit
class TestFormatting:
    """Number, range and selection rendering."""

    @pytest.mark.parametrize("value,expected", [
        (10.0, "10"),
        (2.5, "2.5"),
        (0, "0"),
    ])
    def test_format_number(self, value, expected):
        assert format_number(value) == expected

    @pytest.mark.parametrize("rng,unit,expected", [
        (NumericRange(exact=5), "kg", "5 kg"),
        (NumericRange(min=10, max=100), "kg", "10–100 kg"),
        (NumericRange(min=10), "kg", "≥10 kg"),
        (NumericRange(max=100), None, "≤100"),
        (NumericRange(exact=5, min=1, max=9), "m", "5 m"),
    ])
    def test_format_range(self, rng, unit, expected):
        assert format_range(rng, unit) == expected

    def test_empty_range(self):
        assert format_range(NumericRange(), "kg") is None

    def test_selected_ids(self, registry):
        assert registry.format_selected_values(10, [5, 6]) == "Bipoutre, Monopoutre"

    def test_selected_range_uses_registry_unit(self, registry):
        assert registry.format_selected_values(20, {"min": 500, "max": 2000}) == "500–2000 kg"

    def test_selected_range_prefers_given_unit(self, registry):
        assert registry.format_selected_values(20, NumericRange(exact=2), "t") == "2 t"

    def test_nothing_selected(self, registry):
        assert registry.format_selected_values(10, []) == ""
        assert registry.format_selected_values(20, {}) == ""

    def test_numeric_value(self, registry):
        assert registry.format_numeric_value(20, 750.0) == "750 kg"
        assert registry.format_numeric_value(404, 1.5) == "1.5"


@pytest.mark.unit
class TestRegistryCache:
    """One registry per category for the session."""

    def test_loads_once_per_category(self, registry_records, settings):
        calls = []

        def loader(category_id):
            calls.append(category_id)
            return registry_records

        cache = RegistryCache(loader, settings)
        first = cache.get(7)
        second = cache.get(7)

        assert first is second
        assert calls == [7]
        assert 7 in cache

    def test_failed_load_degrades_and_retries(self, registry_records, settings):
        attempts = []

        def loader(category_id):
            attempts.append(category_id)
            if len(attempts) == 1:
                raise ConnectionError("characteristics service down")
            return registry_records

        cache = RegistryCache(loader, settings)

        degraded = cache.get(7)
        assert len(degraded) == 0
        assert degraded.label(10) == "Characteristic #10"
        assert 7 not in cache

        recovered = cache.get(7)
        assert recovered.label(10) == "Type de pont"
        assert attempts == [7, 7]

    def test_invalidate(self, registry_records, settings):
        cache = RegistryCache(lambda _: registry_records, settings)
        cache.get(1)
        cache.get(2)

        cache.invalidate(1)
        assert 1 not in cache
        assert 2 in cache

        cache.invalidate()
        assert 2 not in cache
