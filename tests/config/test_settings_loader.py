"""
Tests for settings loading, validation, the config trace and the bridges.
"""

from decimal import Decimal
from pathlib import Path
from uuid import UUID

import pytest
import yaml

from condo_config import DEFAULT_SETTINGS_PATH, CondoSettings, get_active_settings
from condo_config.bridges import (
    build_charge_fallbacks,
    build_deposit_matcher,
    build_house_bounds,
    build_house_identifier,
    build_matching_policy,
)
from condo_config.loader import compute_checksum, load_settings, parse_settings
from condo_engines.house_identifier import ConceptConfidence
from condo_engines.matching import MatchingPolicy
from condo_kernel.domain.payments import ChargeFallbacks


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_defaults_file_matches_schema_defaults(self):
        loaded = load_settings(DEFAULT_SETTINGS_PATH)
        builtin = CondoSettings()

        assert loaded.houses == builtin.houses
        assert loaded.reconciliation == builtin.reconciliation
        assert loaded.payments == builtin.payments
        assert loaded.system == builtin.system

    def test_values_are_decimals(self):
        settings = load_settings(DEFAULT_SETTINGS_PATH)
        assert settings.reconciliation.auto_confirm_threshold == Decimal("0.95")
        assert isinstance(settings.payments.maintenance_amount, Decimal)
        assert settings.system.record_id == UUID(int=0)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        settings = load_settings(path)
        assert settings.houses.max_number == 66

    def test_float_parsed_through_str(self):
        settings = parse_settings({"reconciliation": {"auto_confirm_threshold": 0.9}})
        assert settings.reconciliation.auto_confirm_threshold == Decimal("0.9")


class TestChecksum:

    def test_deterministic(self):
        data = {"name": "x", "houses": {"max_number": 40}}
        assert compute_checksum(data) == compute_checksum({"houses": {"max_number": 40}, "name": "x"})

    def test_changes_with_content(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})

    def test_loaded_settings_carry_checksum(self):
        assert len(load_settings(DEFAULT_SETTINGS_PATH).checksum) == 64


class TestValidation:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown settings sections"):
            parse_settings({"matching": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown keys in 'houses'"):
            parse_settings({"houses": {"maximum": 10}})

    @pytest.mark.parametrize(
        "data",
        [
            {"houses": {"min_number": 0}},
            {"houses": {"min_number": 10, "max_number": 5}},
            {"reconciliation": {"date_tolerance_hours": "0"}},
            {"reconciliation": {"chunk_size": 0}},
            {"payments": {"payment_due_day": 32}},
            {"payments": {"maintenance_amount": "eight hundred"}},
            {"payments": {"payment_due_day": "15"}},
            {"payments": {"maintenance_amount": True}},
        ],
    )
    def test_bad_values(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yaml")


class TestActiveSettings:

    def test_config_trace_logged(self, tmp_path, captured_logs):
        path = _write(tmp_path, {"name": "pilot", "version": 3, "houses": {"max_number": 40}})

        settings = get_active_settings(path)

        traces = [r for r in captured_logs() if r["message"] == "CONDO_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["settings_name"] == "pilot"
        assert traces[0]["settings_version"] == 3
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["house_range"] == "1-40"


class TestBridges:

    def setup_method(self):
        self.settings = parse_settings({
            "houses": {"min_number": 1, "max_number": 40},
            "reconciliation": {
                "auto_confirm_threshold": "0.9",
                "min_concept_confidence": "high",
            },
            "payments": {"maintenance_amount": "950", "max_periods_for_distribution": 6},
        })

    def test_house_bounds(self):
        bounds = build_house_bounds(self.settings)
        assert bounds.contains(40)
        assert not bounds.contains(41)

    def test_matching_policy(self):
        policy = build_matching_policy(self.settings)
        assert policy == MatchingPolicy(auto_confirm_threshold=Decimal("0.9"))

    def test_house_identifier(self):
        identifier = build_house_identifier(self.settings)
        assert identifier.min_concept_confidence is ConceptConfidence.HIGH
        assert identifier.bounds.max_number == 40

    def test_deposit_matcher(self):
        matcher = build_deposit_matcher(self.settings)
        assert matcher.policy.auto_confirm_threshold == Decimal("0.9")

    def test_charge_fallbacks(self):
        fallbacks = build_charge_fallbacks(self.settings)
        assert fallbacks == ChargeFallbacks(
            maintenance_amount=Decimal("950"), max_periods_for_distribution=6,
        )
