"""
Unit tests for environment-based settings and logging setup.
"""
import logging

import pytest
from pydantic import ValidationError

from lead_matching.config import Settings, configure_logging


@pytest.fixture
def restore_root_logger():
    """Drop the handler configure_logging installs and restore the root level."""
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.mark.unit
class TestSettings:

    def test_defaults(self, settings):
        assert settings.placeholder_vendor == "Fournisseur"
        assert settings.missing_value == "-"
        assert settings.title_for("P1") == "Produit P1"
        assert settings.characteristic_label_for(12) == "Characteristic #12"
        assert settings.value_label_for(3) == "Value #3"
        assert settings.log_level == "INFO"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LEAD_MATCHING_PLACEHOLDER_VENDOR", "Supplier")
        monkeypatch.setenv("LEAD_MATCHING_LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.placeholder_vendor == "Supplier"
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")


@pytest.mark.unit
class TestConfigureLogging:

    def test_sets_root_level(self, restore_root_logger):
        configure_logging(Settings(_env_file=None, log_level="WARNING"))
        assert restore_root_logger.level == logging.WARNING

    def test_json_format(self, restore_root_logger):
        configure_logging(Settings(_env_file=None, log_format="json"))
        handler = next(h for h in restore_root_logger.handlers
                       if type(h) is logging.StreamHandler)
        assert handler.formatter._fmt.startswith('{"ts"')
