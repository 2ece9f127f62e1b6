"""
Shared fixtures: a small overhead-crane category registry and helpers to
build matching products the way the matching engine returns them.
"""
import pytest

from lead_matching.config import Settings
from lead_matching.registry import CharacteristicRegistry


@pytest.fixture
def settings():
    """Default settings, independent of the process environment."""
    return Settings(_env_file=None)


@pytest.fixture
def registry_records():
    """Characteristics API payload, with the French keys the backend sends."""
    return {
        "code": 200,
        "response": [
            {
                "id": "10",
                "nom": "Type de pont",
                "unite": None,
                "type": "Textuelle",
                "valeurs": [
                    {"id": "5", "valeur": "Bipoutre"},
                    {"id": "6", "valeur": "Monopoutre"},
                    {"id": "7", "valeur": "Portique"},
                ],
            },
            {
                "id": 20,
                "nom": "Capacité",
                "unite": "kg",
                "type": "Numérique",
                "valeurs": [],
            },
            {
                "id_caracteristique": 30,
                "nom": "Alimentation",
                "type": "Textuelle",
                "valeurs": [
                    {"id": 1, "valeur": "Électrique"},
                    {"id": 2, "valeur": "Manuelle"},
                ],
            },
        ],
    }


@pytest.fixture
def registry(registry_records, settings):
    return CharacteristicRegistry.from_records(registry_records, settings=settings)


@pytest.fixture
def make_product():
    """Factory for matching-engine product payloads."""
    def _make(product_id, score, characteristics=(), rank=1, top=False):
        return {
            "id_produit": product_id,
            "score": score,
            "rang": rank,
            "top_produit": top,
            "caracteristique": [
                {"id_caracteristique": cid, "statut_matching": status, **extra}
                for cid, status, extra in characteristics
            ],
        }
    return _make
