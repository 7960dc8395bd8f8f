#!/usr/bin/env python3
"""
Pruebas de selección de estrategia por compañía y limpieza previa del registro
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent / "src"))

from policy_mapper.extractors.company_strategies import (
    BSEStrategy,
    GenericStrategy,
    MapfreStrategy,
    StrategyFactory,
    SuraStrategy,
    installment_count,
    normalize_modalidad,
)
from policy_mapper.models.canonical import CanonicalField as CF
from policy_mapper.utils.errors import ValueNotFound


@pytest.mark.parametrize("company,expected", [
    (1, BSEStrategy),
    (2, SuraStrategy),
    (4, SuraStrategy),
    (3, MapfreStrategy),
    ("3", MapfreStrategy),
    ("mapfre", MapfreStrategy),
    ("Seguros Sura", SuraStrategy),
    ("BSE", BSEStrategy),
    (99, GenericStrategy),
    ("Aseguradora Nueva", GenericStrategy),
    (None, GenericStrategy),
])
def test_factory_selects_strategy(company, expected):
    assert type(StrategyFactory().for_company(company)) is expected


def test_factory_lists_known_codes():
    assert StrategyFactory().available() == {1: "BSE", 2: "SURA", 3: "MAPFRE", 4: "SURA"}


def test_factory_register_new_company():
    class PortoStrategy(BSEStrategy):
        name = "PORTO"
        company_codes = (7,)
        aliases = ("PORTO SEGURO",)

    factory = StrategyFactory()
    factory.register(PortoStrategy)
    assert type(factory.for_company(7)) is PortoStrategy
    assert type(factory.for_company("porto seguro")) is PortoStrategy


def test_required_fields_are_flagged():
    specs = BSEStrategy().candidate_specs()
    assert specs[CF.POLICY_NUMBER].required
    assert specs[CF.START_DATE].required
    assert specs[CF.PREMIUM].required
    assert not specs[CF.ENDORSEMENT].required
    assert not specs[CF.VEHICLE_PLATE].required


def test_generic_strategy_adds_flat_keys():
    keys = [c.key for c in GenericStrategy().candidate_specs()[CF.POLICY_NUMBER].candidates]
    assert keys[0] == "poliza.numero"
    assert "numeroPoliza" in keys
    assert "policy_number" in keys


def test_sura_preprocess():
    record = {
        "premio.premio": "$ 12.000,00",
        "premio.total": "$ 14.640,00",
        "pago.forma_de_pago": "TARJETA 10 PAGOS",
        "vehiculo.marca": "Marca: TOYOTA",
        "vehiculo.matricula": "Matrícula SBC1234",
    }
    original = dict(record)

    data = SuraStrategy().preprocess(record)

    assert data["poliza.prima_comercial"] == "$ 12.000,00"
    assert data["financiero.premio_total"] == "$ 14.640,00"
    assert data["pago.cantidad_cuotas"] == "10"
    assert data["vehiculo.marca"] == "TOYOTA"
    assert data["vehiculo.matricula"] == "SBC1234"
    assert record == original


def test_sura_does_not_overwrite_existing_premium():
    data = SuraStrategy().preprocess({
        "premio.premio": "$ 1,00",
        "poliza.prima_comercial": "$ 9.000,00",
    })
    assert data["poliza.prima_comercial"] == "$ 9.000,00"


def test_mapfre_preprocess_installments_and_modalidad():
    record = {
        "costo.costo": "10.000,00",
        "costo.premio_total": "12.200,00",
        "pago.vencimiento_cuota[1]": "10/02/2024",
        "pago.cuota_monto[1]": "6.100,00",
        "pago.vencimiento_cuota[2]": "10/03/2024",
        "pago.cuota_monto[2]": "6.100,00",
        "poliza.modalidad": "Todo Riesgo Total c/ deducible",
    }
    original = dict(record)

    data = MapfreStrategy().preprocess(record)

    assert data["pago.cantidad_cuotas"] == "2"
    assert data["pago.cuotas[0].vencimiento"] == "10/02/2024"
    assert data["pago.cuotas[1].prima"] == "6.100,00"
    assert data["poliza.prima_comercial"] == "10.000,00"
    assert data["financiero.premio_total"] == "12.200,00"
    assert data["poliza.modalidad_normalizada"] == "TODO RIESGO TOTAL"
    assert record == original

    tariff_keys = [c.key for c in MapfreStrategy().candidate_specs()[CF.TARIFF].candidates]
    assert tariff_keys[0] == "poliza.modalidad_normalizada"


def test_postprocess_collapses_whitespace_in_text_values():
    values = {CF.VEHICLE_MODEL: " GOL\n  TREND ", CF.VEHICLE_YEAR: 2020}
    out = BSEStrategy().postprocess(values)

    assert out == {CF.VEHICLE_MODEL: "GOL TREND", CF.VEHICLE_YEAR: 2020}
    assert values[CF.VEHICLE_MODEL] == " GOL\n  TREND "


@pytest.mark.parametrize("raw,expected", [
    ("TODO RIESGO", "TODO RIESGO"),
    ("Responsabilidad Civil RC", "TERCEROS"),
    ("Cobertura Total", "TOTAL"),
    ("Basica", "BASICA"),
    ("Especial", "Especial"),
])
def test_normalize_modalidad(raw, expected):
    assert normalize_modalidad(raw) == expected


def test_installment_count_converter():
    assert installment_count("3 PAGOS") == 3
    assert installment_count("10 cuotas mensuales") == 10
    assert installment_count("12") == 12
    with pytest.raises(ValueNotFound):
        installment_count("0")
    with pytest.raises(ValueNotFound):
        installment_count("Contado")
    with pytest.raises(ValueNotFound):
        installment_count("120", max_value=60)
