#!/usr/bin/env python3
"""
Pruebas de configuración: overrides por código, variables de entorno y YAML
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent / "src"))

from policy_mapper.settings import DEFAULT_CONFIG, MappingConfig, MappingQuality, load_yaml_overrides


def test_defaults():
    assert DEFAULT_CONFIG.DEFAULT_CURRENCY == "UYU"
    assert DEFAULT_CONFIG.DEFAULT_ENDORSEMENT == "0"
    assert DEFAULT_CONFIG.acceptance_threshold("departamento") == 0.8
    assert DEFAULT_CONFIG.acceptance_threshold("combustible") == 0.7


def test_overrides_keep_types_and_do_not_leak():
    config = MappingConfig.from_overrides({"premium_high": "250000", "date_swap_day_year": "no", "top_k_alternatives": "5"})

    assert config.PREMIUM_HIGH == Decimal("250000")
    assert config.DATE_SWAP_DAY_YEAR is False
    assert config.TOP_K_ALTERNATIVES == 5
    assert MappingConfig().PREMIUM_HIGH == Decimal("500000")


def test_unknown_parameter():
    with pytest.raises(KeyError):
        MappingConfig(NO_EXISTE=1)


def test_from_env_with_yaml(tmp_path, monkeypatch):
    yaml_path = tmp_path / "mapper.yaml"
    yaml_path.write_text(
        "min_confidence_floor: 0.65\n"
        "quality_thresholds:\n"
        "  excelente: 0.95\n"
        "  buena: 0.8\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("POLICY_MAPPER_DEFAULT_CURRENCY", "USD")
    monkeypatch.setenv("POLICY_MAPPER_MIN_CONFIDENCE", "0.5")
    monkeypatch.setenv("POLICY_MAPPER_CONFIG", str(yaml_path))

    config = MappingConfig.from_env()

    assert config.DEFAULT_CURRENCY == "USD"
    # el YAML tiene precedencia sobre las variables de entorno
    assert config.MIN_CONFIDENCE_FLOOR == 0.65
    assert config.quality_for(0.9) == MappingQuality.GOOD
    assert config.quality_for(0.5) == MappingQuality.PROBLEMATIC


def test_missing_yaml_is_ignored(tmp_path):
    assert load_yaml_overrides(str(tmp_path / "no_existe.yaml")) == {}


def test_yaml_must_be_a_mapping(tmp_path):
    path = tmp_path / "lista.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml_overrides(str(path))
