"""
Reporte de consola de un resultado de mapeo
"""
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from policy_mapper.models.canonical import IssueSeverity, MappingResult
from policy_mapper.pipelines.normalizers import format_amount, format_date

console = Console()

_QUALITY_STYLE = {
    "excelente": "bold green",
    "buena": "green",
    "aceptable": "yellow",
    "necesita_mejoras": "dark_orange",
    "problematica": "bold red",
}
_SEVERITY_STYLE = {
    IssueSeverity.ERROR: "red",
    IssueSeverity.WARNING: "yellow",
    IssueSeverity.INFO: "dim",
}


def _fmt(v) -> str:
    if v is None or v == "":
        return "[dim]-[/dim]"
    if hasattr(v, "strftime"):
        return format_date(v)
    if hasattr(v, "quantize"):
        return format_amount(v)
    return str(v)


def render_result(result: MappingResult, out: Optional[Console] = None) -> None:
    """Muestra datos, sugerencias, issues y observaciones"""
    out = out or console
    m = result.metrics
    style = _QUALITY_STYLE.get(m.mapping_quality.value, "white")

    out.print(Panel.fit(
        f"[bold cyan]📄 Póliza {_fmt(result.data.numero_poliza)}[/bold cyan] "
        f"({result.data.company_name} · {result.intent.value})\n"
        f"├─ Calidad: [{style}]{m.mapping_quality.value}[/{style}] "
        f"(confianza {m.overall_confidence:.2f})\n"
        f"├─ Campos: {m.fields_mapped} mapeados de {m.total_fields_scanned} escaneados\n"
        f"└─ Completitud: {m.completion_percentage:.0f}% "
        f"{'✅' if result.is_complete else '⚠️'}",
        border_style="cyan",
    ))

    data = Table(title="Datos mapeados", box=box.ROUNDED)
    data.add_column("Campo", style="cyan")
    data.add_column("Valor")
    data.add_column("Origen", style="dim")
    for name, value in result.data.model_dump(exclude={"raw_values", "source_keys"}).items():
        data.add_row(name, _fmt(value), result.data.source_keys.get(name, ""))
    out.print(data)

    if result.suggestions:
        sug = Table(title="Conciliación con maestros", box=box.ROUNDED)
        sug.add_column("Campo", style="cyan")
        sug.add_column("Escaneado")
        sug.add_column("Sugerido")
        sug.add_column("Conf.", justify="right")
        sug.add_column("Fuente")
        for s in result.suggestions:
            mark = "✓" if s.accepted else "?"
            sug.add_row(s.field, s.scanned_value, f"{s.suggested_label} ({s.suggested_id})",
                        f"{s.confidence:.2f} {mark}", s.source.value)
        out.print(sug)

    if result.issues:
        iss = Table(title="Issues", box=box.SIMPLE)
        iss.add_column("Campo", style="cyan")
        iss.add_column("Tipo")
        iss.add_column("Detalle")
        for i in result.issues:
            color = _SEVERITY_STYLE.get(i.severity, "white")
            iss.add_row(i.field, f"[{color}]{i.issue_type.value}[/{color}]", i.description)
        out.print(iss)

    if m.missing_critical_fields:
        out.print(f"[bold red]Faltan críticos:[/bold red] {', '.join(m.missing_critical_fields)}")

    for finding in result.findings:
        out.print(f"[yellow]{finding}[/yellow]")

    out.print(Panel(result.observations.text, title="Observaciones", box=box.ROUNDED))
