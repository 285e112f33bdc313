import asyncio
import json
import os
import sys
from typing import List, Optional

import typer
import yaml

from handover.commons.errors import DomainError, StructuralParseError
from handover.commons.logger import setup_logging
from handover.commons.types import Settings
from handover.helpers.locks import WardLocks
from handover.rules.laboratory import generate_auto_diagnoses
from handover.rules.models import worst
from handover.rules.respiratory import calculate_tal, calculate_wood_downes
from handover.services.import_service import HandoverImportService
from handover.services.reconciler import HandoverReconciler
from handover.stores.sql import SqlStore

app = typer.Typer(add_completion=False, help="Handover Service")


def resource_path(relative_path: str) -> str:
    """Devuelve la ruta absoluta a un recurso, ya sea ejecutando como .exe o en desarrollo"""
    if hasattr(sys, "_MEIPASS"):
        # Si es un ejecutable generado por PyInstaller
        base_path = sys._MEIPASS
    else:
        # Si es ejecución normal (dev)
        base_path = os.path.abspath(".")

    return os.path.join(base_path, relative_path)


def load_cfg(path: Optional[str] = None) -> Settings:
    config_path = resource_path(path or os.getenv("HANDOVER_CONFIG", "handover/configs/settings.yaml"))
    with open(config_path, "r", encoding="utf-8") as f:
        return Settings.model_validate(yaml.safe_load(f) or {})


def _setup_logging(cfg: Settings):
    return setup_logging(
        cfg.paths.logs_root,
        os.getenv("LOG_LEVEL", "INFO"),
        filename=cfg.logging.filename,
        retention=cfg.logging.retention,
        console=cfg.logging.console,
    )


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _build_import_service(cfg: Settings):
    store = SqlStore(cfg.database.url, echo=cfg.database.echo)
    reconciler = HandoverReconciler(
        store.patients,
        store.admissions,
        store.beds,
        locks=WardLocks(),
        max_workers=cfg.reconciler.max_workers,
        occupied_bed=cfg.reconciler.occupied_bed,
    )
    return store, HandoverImportService(reconciler, cfg)


@app.command("import-sheet")
def import_sheet(path: str = typer.Argument(..., help="planilla .xlsx de entrega de turno")):
    """Importa una planilla contra la base configurada e imprime el resumen."""
    cfg = load_cfg()
    logger = _setup_logging(cfg)
    logger.log("INFO", f"Importando planilla {path}")
    store, svc = _build_import_service(cfg)
    try:
        outcome = asyncio.run(svc.import_file(path))
    except (StructuralParseError, FileNotFoundError) as ex:
        logger.error(f"No se pudo importar {path}: {ex}")
        raise typer.Exit(code=1)
    finally:
        store.dispose()
    _echo_json(outcome.as_dict())


@app.command()
def watch():
    """Procesa el backlog del inbox y luego queda escuchando nuevas planillas."""
    cfg = load_cfg()
    logger = _setup_logging(cfg)
    logger.log("INFO", "Iniciando lectura de planillas pendientes por procesar")
    store, svc = _build_import_service(cfg)
    try:
        asyncio.run(svc.run_watch_mode(cfg.watch.filename_glob))
    except KeyboardInterrupt:
        logger.info("Detenido por el usuario")
    finally:
        store.dispose()


@app.command("score-tal")
def score_tal(
    edad_meses: float = typer.Option(..., help="edad en meses (< 36)"),
    frecuencia_respiratoria: float = typer.Option(..., "--fr"),
    sibilancias: str = typer.Option("ausentes", help="ausentes|fin_espiracion|toda_espiracion|insp_y_esp|audibles"),
    uso_musc_accesorios: str = typer.Option("ausente", "--musculos", help="ausente|leve|moderado|grave"),
    cianosis: str = typer.Option("ausente", help="ausente|perioral_llanto|perioral_reposo|generalizada"),
    nivel_conciencia: str = typer.Option("normal", "--conciencia", help="normal|hiporeactivo|agitado|confuso_letargico"),
):
    """Score TAL (SOCHIPE)."""
    try:
        result = calculate_tal(
            {
                "edad_meses": edad_meses,
                "frecuencia_respiratoria": frecuencia_respiratoria,
                "sibilancias": sibilancias,
                "uso_musc_accesorios": uso_musc_accesorios,
                "cianosis": cianosis,
                "nivel_conciencia": nivel_conciencia,
            }
        )
    except DomainError as ex:
        typer.echo(f"Error: {ex}", err=True)
        raise typer.Exit(code=2)
    _echo_json(result.model_dump())


@app.command("score-wood-downes")
def score_wood_downes(
    edad_meses: float = typer.Option(...),
    frecuencia_respiratoria: float = typer.Option(..., "--fr"),
    frecuencia_cardiaca: float = typer.Option(..., "--fc"),
    cianosis: str = typer.Option("ausente", help="ausente|aire_ambiente|fio2_40"),
    tiraje: str = typer.Option("ausente", help="ausente|leve|moderado|grave"),
    sibilancias: str = typer.Option("ausentes", help="ausentes|fin_espiracion|toda_espiracion|insp_y_esp_audibles"),
):
    """Wood-Downes modificado por Ferrés."""
    try:
        result = calculate_wood_downes(
            {
                "edad_meses": edad_meses,
                "frecuencia_respiratoria": frecuencia_respiratoria,
                "frecuencia_cardiaca": frecuencia_cardiaca,
                "cianosis": cianosis,
                "tiraje": tiraje,
                "sibilancias": sibilancias,
            }
        )
    except DomainError as ex:
        typer.echo(f"Error: {ex}", err=True)
        raise typer.Exit(code=2)
    _echo_json(result.model_dump())


@app.command()
def labs(
    values: List[str] = typer.Argument(..., help="analito=valor, p.ej. potasio=6.8 hemoglobina=9.5"),
    age_months: Optional[float] = typer.Option(None, "--age-months", help="edad en meses"),
):
    """Diagnósticos automáticos a partir de valores de laboratorio."""
    lab_values = {}
    for item in values:
        name, sep, raw = item.partition("=")
        try:
            if not sep:
                raise ValueError
            lab_values[name] = float(raw.replace(",", "."))
        except ValueError:
            typer.echo(f"Error: se esperaba analito=valor, se recibió {item!r}", err=True)
            raise typer.Exit(code=2)
    try:
        diagnoses = generate_auto_diagnoses(lab_values, age_months)
    except DomainError as ex:
        typer.echo(f"Error: {ex}", err=True)
        raise typer.Exit(code=2)
    _echo_json([d.model_dump() for d in diagnoses])
    top = worst(diagnoses)
    if top is not None:
        typer.echo(f"Más severo: {top.code} {top.description} ({top.severity})", err=True)


if __name__ == "__main__":
    app()
