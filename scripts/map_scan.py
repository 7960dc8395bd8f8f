#!/usr/bin/env python3
"""
Mapea un escaneo de póliza (JSON clave/valor del OCR) y muestra el resultado.

Uso:
    python scripts/map_scan.py escaneo.json --company 2
    python scripts/map_scan.py escaneo.json --company MAPFRE --catalogs maestros.json --json
    python scripts/map_scan.py escaneo.json --intent renovacion --previous-number 9876543
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Añadir la raíz del proyecto al path de Python
project_root = Path(__file__).resolve().parents[1]
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from policy_mapper.models.canonical import IntentRequest
from policy_mapper.parsers.types import MasterDataCatalogs
from policy_mapper.pipelines.field_map import FieldMap
from policy_mapper.pipelines.mapper import PolicyMappingEngine
from policy_mapper.extractors.company_strategies import StrategyFactory
from policy_mapper.settings import MappingConfig, MappingIntent
from policy_mapper.ui.report_console import console, render_result
from policy_mapper.utils.errors import StructuralError

logger = logging.getLogger("policy_mapper.map_scan")


def _load_json(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _company(value: str):
    value = value.strip()
    return int(value) if value.isdigit() else value


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Mapeo de pólizas escaneadas")
    parser.add_argument("record", help="JSON con el registro extraído por OCR")
    parser.add_argument("--company", type=_company, default=None, help="Id o nombre de la compañía")
    parser.add_argument("--catalogs", help="JSON con los catálogos maestros")
    parser.add_argument("--intent", choices=[i.value for i in MappingIntent], default=MappingIntent.NEW.value)
    parser.add_argument("--previous-number", help="Número de la póliza anterior (renovación/cambio)")
    parser.add_argument("--previous-id", help="Id de la póliza anterior")
    parser.add_argument("--change-type", help="Tipo de cambio (sólo cambio)")
    parser.add_argument("--notes", help="Notas del usuario")
    parser.add_argument("--config", help="YAML con parámetros del motor")
    parser.add_argument("--field-map", help="YAML con claves candidatas adicionales")
    parser.add_argument("--json", action="store_true", help="Imprimir el resultado como JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = MappingConfig.from_env(args.config)
    factory = StrategyFactory(config, FieldMap(args.field_map) if args.field_map else None)
    engine = PolicyMappingEngine(config=config, factory=factory)

    catalogs = MasterDataCatalogs.from_dict(_load_json(args.catalogs)) if args.catalogs else None
    request = IntentRequest(
        notes=args.notes,
        previous_policy_number=args.previous_number,
        previous_policy_id=args.previous_id,
        change_type=args.change_type,
    )

    try:
        result = engine.map_policy(
            _load_json(args.record), args.company, catalogs, MappingIntent(args.intent), request
        )
    except StructuralError as e:
        logger.error(f"Registro inválido: {e}")
        return 2

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        render_result(result, console)
    return 0 if result.is_complete else 1


if __name__ == "__main__":
    sys.exit(main())
