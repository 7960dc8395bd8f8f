# src/policy_mapper/extractors/company_strategies.py
"""
Estrategias de mapeo por aseguradora.

Cada compañía imprime sus pólizas con su propio vocabulario de etiquetas, así
que cada estrategia aporta:
- el orden y nombre de las claves candidatas por campo canónico
- la limpieza previa del registro (prefijos, blobs, claves propias)

El algoritmo de resolución es siempre el mismo (pipelines.field_map).
Para soportar una compañía nueva se registra una estrategia en la fábrica.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from policy_mapper.models.canonical import CanonicalField as CF
from policy_mapper.pipelines.field_map import FieldCandidateSpec, FieldMap, keys
from policy_mapper.pipelines.normalizers import as_text, parse_amount, parse_date, parse_int
from policy_mapper.settings import DEFAULT_CONFIG, CompanyCode, MappingConfig
from policy_mapper.utils.errors import ValueNotFound
from policy_mapper.utils.validators import PolicyDataValidator

logger = logging.getLogger(__name__)


# ==================== CONVERSORES ====================

def positive_amount(s: str) -> Decimal:
    v = parse_amount(s)
    ok, error = PolicyDataValidator.validate_amount(v)
    if not ok:
        raise ValueNotFound(error)
    return v


def installment_count(s: str, max_value: int = 60) -> int:
    """'10 cuotas', '3 PAGOS' o un número suelto entre 1 y max_value"""
    m = re.search(r"(\d+)\s*(?:cuotas?|pagos?)", s, re.IGNORECASE)
    if m:
        n = int(m.group(1))
    else:
        n = parse_int(s, max_value=max_value)
    if not 1 <= n <= max_value:
        raise ValueNotFound(f"Cantidad de cuotas fuera de rango: {n}")
    return n


def detect_currency(s: str) -> str:
    upper = s.upper()
    if "USD" in upper or "DOLAR" in upper or "DÓLAR" in upper or "U$S" in upper:
        return "USD"
    if "UYU" in upper or "PESO" in upper or upper.strip() == "$":
        return "UYU"
    raise ValueNotFound(f"Moneda no reconocida: {s}")


def vehicle_year(s: str) -> int:
    return int(s)


def strip_label(*labels: str) -> Callable[[str], str]:
    """Quita una etiqueta inicial ('MOTOR', 'Chasis:') y colapsa espacios"""
    rx = re.compile(r"^\s*(?:%s)(?:\s*:\s*|\s+|$)" % "|".join(re.escape(l) for l in labels), re.IGNORECASE)

    def _clean(s: str) -> str:
        t = re.sub(r"\s+", " ", rx.sub("", s.replace("\r", " ").replace("\n", " "))).strip()
        if not t:
            raise ValueNotFound("Sólo contenía la etiqueta")
        return t
    return _clean


def _date_converter(config: MappingConfig) -> Callable[[str], Any]:
    def _conv(s: str):
        return parse_date(s, swap_day_year=config.DATE_SWAP_DAY_YEAR)
    return _conv


def clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def clean_prefixed_value(value: str, prefixes: List[str]) -> str:
    cleaned = clean_text(value)
    for prefix in prefixes:
        m = re.match(r"%s(?:\s*:\s*|\s+)" % re.escape(prefix), cleaned, re.IGNORECASE)
        if m:
            cleaned = cleaned[m.end():].strip()
            break
    return cleaned


_DATE = r"(\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}-\d{1,2}-\d{1,2})"


# ==================== ESTRATEGIA BASE ====================

class MappingStrategy:
    """
    Estrategia por defecto: vocabulario BSE, que es el formato de referencia
    al que las demás compañías se normalizan.
    """

    name = "BSE"
    company_codes: tuple = (CompanyCode.BSE.value,)
    aliases: tuple = ("BSE", "BANCO DE SEGUROS", "BANCO DE SEGUROS DEL ESTADO")

    # Prefijos a limpiar en campos de vehículo (clave -> prefijos)
    VEHICLE_PREFIXES: Dict[str, List[str]] = {}

    # Claves candidatas: campo -> lista de 'clave' o ('clave', patrón)
    CANDIDATES: Dict[CF, list] = {
        CF.POLICY_NUMBER: [
            ("poliza.numero", r"(\d{7,9})"),
            ("datos_poliza", r"(\d{7,9})"),
            ("Nº de Póliza", r"(\d{7,9})"),
            ("poliza_numero", r"(\d{7,9})"),
            ("numero_poliza", r"(\d{7,9})"),
        ],
        CF.ENDORSEMENT: [
            ("poliza.endoso", r"(\d+)"),
            ("endoso", r"(\d+)"),
            ("datos_poliza", r"Endoso:\s*(\d+)"),
        ],
        CF.START_DATE: [
            "poliza.fecha-desde", "poliza.vigencia.desde", "poliza.fecha_desde",
            "vigencia_desde", "confchdes",
            ("datos_poliza", r"desde:?\s*" + _DATE),
            "vigencia.desde",
        ],
        CF.END_DATE: [
            "poliza.fecha-hasta", "poliza.vigencia.hasta", "poliza.fecha_hasta",
            "vigencia_hasta", "confchhas",
            ("datos_poliza", r"hasta:?\s*" + _DATE),
            "vigencia.hasta",
        ],
        CF.VEHICLE_BRAND: ["vehiculo.marca", "marca", "MARCA", "conmaraut"],
        CF.VEHICLE_MODEL: ["vehiculo.modelo", "modelo", "MODELO", "conmodaut"],
        CF.VEHICLE_YEAR: [
            ("vehiculo.anio", r"\b(20\d{2}|19\d{2})\b"),
            ("vehiculo.año", r"\b(20\d{2}|19\d{2})\b"),
            ("año", r"\b(20\d{2}|19\d{2})\b"),
            ("AÑO", r"\b(20\d{2}|19\d{2})\b"),
            ("conanioaut", r"\b(20\d{2}|19\d{2})\b"),
        ],
        CF.VEHICLE_PLATE: ["vehiculo.matricula", "matricula", "MATRICULA", "placa", "patente"],
        CF.MOTOR_NUMBER: ["vehiculo.motor", "motor", "MOTOR", "numero_motor"],
        CF.CHASSIS_NUMBER: ["vehiculo.chasis", "chasis", "CHASIS", "numero_chasis"],
        CF.PREMIUM: [
            "poliza.prima_comercial", "financiero.prima_comercial", "pago.cuotas[0].prima",
            "prima_comercial", "conpremio", "premio",
            ("datos_financiero", r"Prima Comercial:\s*\$?\s*([\d.,]+)"),
        ],
        CF.TOTAL_AMOUNT: [
            "financiero.premio_total",
            ("datos_financiero", r"Premio Total a Pagar:\s*\$?\s*([\d.,]+)"),
            "premio_total", "contot", "total", "PREMIO TOTAL A PAGAR",
        ],
        CF.INSTALLMENT_COUNT: [
            "pago.cantidad_cuotas", "cantidadCuotas", "pago.modo_facturacion",
            "cantidad_cuotas", "cuotas", "concuo",
        ],
        CF.PAYMENT_METHOD: ["pago.medio", "pago.forma", "forma_pago", "payment_method", "metodo_pago"],
        CF.CURRENCY: ["conmoneda", "moneda", "currency", "divisa", "financiero.moneda"],
        CF.MOVEMENT_TYPE: ["tipoMovimiento", "tipo_movimiento", "operacion"],
        CF.CLIENT: ["asegurado.nombre", "asegurado", "nombre_asegurado", "cliente.nombre", "tomador"],
        CF.BROKER: ["corredor.nombre", "corredor", "corredor.codigo", "datos_corredor"],
        CF.DEPARTMENT: ["asegurado.departamento", "departamento", "depto", "dptnom", "asegurado.localidad"],
        CF.FUEL: ["vehiculo.combustible", "combustible", "COMBUSTIBLE"],
        CF.DESTINATION: ["vehiculo.destino_del_vehiculo", "destino", "DESTINO DEL VEHÍCULO"],
        CF.CATEGORY: [
            "vehiculo.tipo_vehiculo", "vehiculo.tipo_de_vehiculo", "vehiculo.tipo",
            "categoria", "TIPO DE VEHÍCULO",
        ],
        CF.QUALITY: ["vehiculo.calidad_de_contratante", "CALIDAD DE CONTRATANTE", "calidad"],
        CF.TARIFF: ["poliza.modalidad", "vehiculo.modalidad", "modalidad"],
    }

    REQUIRED = (CF.POLICY_NUMBER, CF.START_DATE, CF.END_DATE, CF.PREMIUM, CF.VEHICLE_BRAND)

    def __init__(self, config: Optional[MappingConfig] = None, field_map: Optional[FieldMap] = None):
        self.config = config or DEFAULT_CONFIG
        self.field_map = field_map

    # -------------------- candidatos --------------------

    def converters(self) -> Dict[CF, Callable[[str], Any]]:
        to_date = _date_converter(self.config)
        max_inst = self.config.MAX_INSTALLMENTS
        return {
            CF.START_DATE: to_date,
            CF.END_DATE: to_date,
            CF.VEHICLE_YEAR: vehicle_year,
            CF.MOTOR_NUMBER: strip_label("MOTOR", "Nº MOTOR", "NRO MOTOR"),
            CF.CHASSIS_NUMBER: strip_label("CHASIS", "Nº CHASIS", "NRO CHASIS"),
            CF.PREMIUM: positive_amount,
            CF.TOTAL_AMOUNT: positive_amount,
            CF.INSTALLMENT_COUNT: lambda s: installment_count(s, max_inst),
            CF.CURRENCY: detect_currency,
        }

    def candidate_specs(self) -> Dict[CF, FieldCandidateSpec]:
        conv = self.converters()
        specs = {
            f: FieldCandidateSpec(
                field=f.value,
                candidates=keys(*items),
                converter=conv.get(f),
                required=f in self.REQUIRED,
            )
            for f, items in self.CANDIDATES.items()
        }
        if self.field_map is not None:
            specs = self.field_map.apply(self.name, specs)
        return specs

    # -------------------- limpieza --------------------

    def preprocess(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Copia limpia del registro; el original no se toca"""
        data = dict(record)
        self.clean_vehicle_fields(data)
        return data

    def clean_vehicle_fields(self, data: Dict[str, Any]) -> None:
        for key, prefixes in self.VEHICLE_PREFIXES.items():
            original = as_text(data.get(key))
            if not original:
                continue
            cleaned = clean_prefixed_value(original, prefixes)
            if cleaned != original:
                data[key] = cleaned
                logger.debug(f"{self.name} - Campo limpiado: {key} '{original}' -> '{cleaned}'")

    def postprocess(self, values: Dict[CF, Any]) -> Dict[CF, Any]:
        """Limpieza final de los valores ya resueltos (devuelve una copia)"""
        out = dict(values)
        for f, v in values.items():
            if isinstance(v, str):
                out[f] = clean_text(v)
        return out

    def _copy_if_absent(self, data: Dict[str, Any], src: str, dst: str) -> None:
        if as_text(data.get(src)) and not as_text(data.get(dst)):
            data[dst] = data[src]
            logger.debug(f"{self.name} - Mapeado {src} -> {dst}")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class BSEStrategy(MappingStrategy):
    """BSE es el formato de referencia: sin limpieza adicional"""


_COMMON_VEHICLE_PREFIXES = {
    "vehiculo.marca": ["Marca"],
    "vehiculo.modelo": ["Modelo"],
    "vehiculo.motor": ["Motor"],
    "vehiculo.chasis": ["Chasis"],
    "vehiculo.anio": ["Año"],
}


class SuraStrategy(BSEStrategy):
    name = "SURA"
    company_codes = (CompanyCode.SURA.value, CompanyCode.SURA_ALT.value)
    aliases = ("SURA", "SEGUROS SURA")

    VEHICLE_PREFIXES = {
        **_COMMON_VEHICLE_PREFIXES,
        "vehiculo.color": ["Color"],
        "vehiculo.tipo": ["Tipo"],
        "vehiculo.matricula": ["Matrícula", "Matricula"],
        "vehiculo.patente": ["Patente"],
    }

    CANDIDATES = {
        **BSEStrategy.CANDIDATES,
        CF.VEHICLE_PLATE: ["vehiculo.matricula", "vehiculo.patente", "matricula", "patente", "placa"],
        CF.PAYMENT_METHOD: ["pago.medio", "pago.forma", "pago.forma_de_pago", "forma_pago"],
    }

    def preprocess(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        self._copy_if_absent(data, "premio.premio", "poliza.prima_comercial")
        self._copy_if_absent(data, "premio.total", "financiero.premio_total")

        forma = as_text(data.get("pago.forma_de_pago"))
        m = re.search(r"(\d+)\s*PAGOS", forma, re.IGNORECASE)
        if m:
            data["pago.cantidad_cuotas"] = m.group(1)
            logger.debug(f"SURA - Extraídas {m.group(1)} cuotas desde: {forma}")

        self.clean_vehicle_fields(data)
        return data


class MapfreStrategy(MappingStrategy):
    name = "MAPFRE"
    company_codes = (CompanyCode.MAPFRE.value,)
    aliases = ("MAPFRE", "MAPFRE URUGUAY")

    VEHICLE_PREFIXES = dict(_COMMON_VEHICLE_PREFIXES)
    MAX_SCANNED_INSTALLMENTS = 12

    CANDIDATES = {
        **MappingStrategy.CANDIDATES,
        CF.PREMIUM: ["poliza.prima_comercial", "costo.costo", "pago.cuotas[0].prima", "prima_comercial", "premio"],
        CF.TOTAL_AMOUNT: ["financiero.premio_total", "costo.premio_total", "premio_total", "total"],
        CF.TARIFF: ["poliza.modalidad_normalizada", "poliza.modalidad", "vehiculo.modalidad", "modalidad"],
    }

    def preprocess(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        self.clean_vehicle_fields(data)
        self._copy_if_absent(data, "costo.costo", "poliza.prima_comercial")
        self._copy_if_absent(data, "costo.premio_total", "financiero.premio_total")

        found = [i for i in range(1, self.MAX_SCANNED_INSTALLMENTS + 1)
                 if f"pago.vencimiento_cuota[{i}]" in data]
        if found:
            data["pago.cantidad_cuotas"] = str(len(found))
            logger.debug(f"MAPFRE - Detectadas {len(found)} cuotas")

        # cuotas al formato BSE: pago.cuotas[i-1].vencimiento / .prima
        for i in range(1, self.MAX_SCANNED_INSTALLMENTS + 1):
            due = data.get(f"pago.vencimiento_cuota[{i}]")
            amount = data.get(f"pago.cuota_monto[{i}]")
            if due is not None:
                data[f"pago.cuotas[{i - 1}].vencimiento"] = due
            if amount is not None:
                data[f"pago.cuotas[{i - 1}].prima"] = amount

        modalidad = as_text(data.get("poliza.modalidad"))
        if modalidad:
            normalized = normalize_modalidad(modalidad)
            if normalized != modalidad:
                data["poliza.modalidad_normalizada"] = normalized
                logger.debug(f"MAPFRE - Modalidad normalizada: '{modalidad}' -> '{normalized}'")
        return data


def normalize_modalidad(modalidad: str) -> str:
    upper = modalidad.upper()
    if "TODO RIESGO" in upper and "TOTAL" in upper:
        return "TODO RIESGO TOTAL"
    if "TODO RIESGO" in upper:
        return "TODO RIESGO"
    if "TOTAL" in upper and "BASICO" not in upper:
        return "TOTAL"
    if "TERCEROS" in upper or re.search(r"\bRC\b", upper):
        return "TERCEROS"
    if "BASICA" in upper or "MINIMA" in upper:
        return "BASICA"
    return modalidad


class GenericStrategy(MappingStrategy):
    """
    Plantillas no entrenadas: vocabulario BSE más claves planas habituales
    de otros extractores.
    """
    name = "GENERICO"
    company_codes = ()
    aliases = ()

    CANDIDATES = {
        **MappingStrategy.CANDIDATES,
        CF.POLICY_NUMBER: MappingStrategy.CANDIDATES[CF.POLICY_NUMBER] + [
            ("numeroPoliza", r"(\d{7,9})"),
            ("policy_number", r"(\d{7,9})"),
            ("poliza", r"(\d{7,9})"),
            ("certificado", r"(\d{7,9})"),
        ],
        CF.ENDORSEMENT: MappingStrategy.CANDIDATES[CF.ENDORSEMENT] + [
            ("endorsement", r"(\d+)"), ("numero_endoso", r"(\d+)"),
        ],
        CF.START_DATE: MappingStrategy.CANDIDATES[CF.START_DATE] + [
            "vigenciaDesde", "vigencia_inicio", "fecha_inicio", "start_date", "desde",
        ],
        CF.END_DATE: MappingStrategy.CANDIDATES[CF.END_DATE] + [
            "vigenciaHasta", "vigencia_fin", "fecha_fin", "end_date", "hasta",
        ],
        CF.VEHICLE_BRAND: MappingStrategy.CANDIDATES[CF.VEHICLE_BRAND] + ["brand", "make"],
        CF.VEHICLE_MODEL: MappingStrategy.CANDIDATES[CF.VEHICLE_MODEL] + ["model", "version"],
        CF.VEHICLE_PLATE: MappingStrategy.CANDIDATES[CF.VEHICLE_PLATE] + ["plate", "license_plate", "padron"],
        CF.PREMIUM: MappingStrategy.CANDIDATES[CF.PREMIUM] + ["primaComercial", "prima", "premium"],
        CF.TOTAL_AMOUNT: MappingStrategy.CANDIDATES[CF.TOTAL_AMOUNT] + ["monto_total", "amount"],
        CF.INSTALLMENT_COUNT: MappingStrategy.CANDIDATES[CF.INSTALLMENT_COUNT] + ["installments"],
        CF.PAYMENT_METHOD: MappingStrategy.CANDIDATES[CF.PAYMENT_METHOD] + ["formaPago"],
        CF.CLIENT: MappingStrategy.CANDIDATES[CF.CLIENT] + ["cliente", "cliente_nombre", "contratante"],
        CF.BROKER: MappingStrategy.CANDIDATES[CF.BROKER] + ["broker", "agent"],
    }


# ==================== FÁBRICA ====================

class StrategyFactory:
    """Tabla código/alias de compañía -> estrategia, con GenericStrategy por defecto"""

    def __init__(self, config: Optional[MappingConfig] = None, field_map: Optional[FieldMap] = None,
                 default: Type[MappingStrategy] = GenericStrategy):
        self.config = config or DEFAULT_CONFIG
        self.field_map = field_map
        self.default = default
        self._by_code: Dict[int, Type[MappingStrategy]] = {}
        self._by_alias: Dict[str, Type[MappingStrategy]] = {}
        for cls in (BSEStrategy, SuraStrategy, MapfreStrategy):
            self.register(cls)

    def register(self, strategy_cls: Type[MappingStrategy], codes=None, aliases=None) -> None:
        for code in (codes if codes is not None else strategy_cls.company_codes):
            self._by_code[int(code)] = strategy_cls
        for alias in (aliases if aliases is not None else strategy_cls.aliases):
            self._by_alias[alias.strip().upper()] = strategy_cls

    def strategy_class(self, company: Union[int, str, None]) -> Type[MappingStrategy]:
        if company is None:
            return self.default
        if isinstance(company, int) or (isinstance(company, str) and company.strip().isdigit()):
            return self._by_code.get(int(company), self.default)
        return self._by_alias.get(str(company).strip().upper(), self.default)

    def for_company(self, company: Union[int, str, None]) -> MappingStrategy:
        cls = self.strategy_class(company)
        if cls is self.default and company is not None:
            logger.warning(f"Compañía sin estrategia propia: {company!r}. Usando {cls.__name__}")
        strategy = cls(self.config, self.field_map)
        logger.info(f"🎯 Estrategia para compañía {company!r}: {strategy.name}")
        return strategy

    def available(self) -> Dict[int, str]:
        return {code: cls.name for code, cls in sorted(self._by_code.items())}
