"""
Tests for configuration loading (issuance_config).

Covers:
- Bundled default configuration
- YAML parsing, section handling and validation
- ISSUANCE_CONFIG_TRACE emission
"""

import pytest
import yaml

from issuance_config import get_active_config
from issuance_config.loader import compute_checksum, load_yaml_file, parse_config
from issuance_config.schema import IssuanceConfig


class TestDefaultConfig:
    def test_bundled_defaults(self):
        config = get_active_config()

        assert config.api_base_url == "http://localhost:5002/api"
        assert config.overdue_after_days == 30
        assert config.recent_within_days == 7
        assert config.audit_storage_key == "issuanceAuditTrail"
        assert config.unknown_label == "Unknown"

    def test_emits_config_trace(self, captured_logs):
        get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "ISSUANCE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert len(traces[0]["checksum"]) == 64
        assert traces[0]["config_path"].endswith("default.yaml")


class TestLoadFromFile:
    def test_custom_file(self, tmp_path):
        path = tmp_path / "site.yaml"
        path.write_text(
            "issuance:\n"
            "  api_base_url: https://inventory.example.com/api/\n"
            "  overdue_after_days: 14\n"
        )

        config = get_active_config(path)

        assert config.api_base_url == "https://inventory.example.com/api"
        assert config.overdue_after_days == 14
        assert config.recent_within_days == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("issuance: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_empty_document(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_yaml_file(path) == {}


class TestParseConfig:
    def test_top_level_keys_accepted(self):
        config = parse_config({"api_base_url": "http://x/api", "recent_within_days": 3})

        assert config.recent_within_days == 3

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="overdue_days"):
            parse_config({"issuance": {"api_base_url": "http://x", "overdue_days": 10}})

    def test_api_base_url_required(self):
        with pytest.raises(ValueError, match="api_base_url"):
            parse_config({"issuance": {"overdue_after_days": 10}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            parse_config({"issuance": "http://x"})

    def test_string_values_coerced(self):
        config = parse_config({"issuance": {
            "api_base_url": "http://x",
            "request_timeout_seconds": "2.5",
            "overdue_after_days": "45",
        }})

        assert config.request_timeout_seconds == 2.5
        assert config.overdue_after_days == 45


class TestSchemaValidation:
    @pytest.mark.parametrize("kwargs", [
        {"api_base_url": ""},
        {"api_base_url": "http://x", "request_timeout_seconds": 0},
        {"api_base_url": "http://x", "overdue_after_days": -1},
        {"api_base_url": "http://x", "recent_within_days": -1},
        {"api_base_url": "http://x", "audit_storage_key": ""},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            IssuanceConfig(**kwargs)


class TestChecksum:
    def test_key_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
