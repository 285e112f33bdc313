# handover/services/import_service.py
import asyncio
import re
import shutil
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Union

from handover.commons.errors import StructuralParseError
from handover.commons.logger import logger
from handover.commons.types import Settings
from handover.helpers.file_transport import FileWatcher
from handover.helpers.workbook_reader import read_sheet_rows
from handover.parsers.handover_sheet import parse_handover_rows
from handover.parsers.models import ParseWarning, RowSkipDiagnostic

from .reconciler import HandoverReconciler, ReconciliationReport


def generate_archive_filename(source: Union[str, Path], status: str = "ok") -> str:
    """
    Nombre de archivo para archive/ o error/, con timestamp para orden natural.
    Ej: 20250821-170605-123456_ok_entrega_turno_sala_5.xlsx
    """
    src = Path(source)
    ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    safe_base = re.sub(r"[^a-zA-Z0-9_\-]", "_", src.stem)
    return f"{ts}_{status}_{safe_base}{src.suffix}"


@dataclass
class ImportOutcome:
    source: str
    report: ReconciliationReport = field(default_factory=ReconciliationReport)
    skipped: List[RowSkipDiagnostic] = field(default_factory=list)
    warnings: List[ParseWarning] = field(default_factory=list)
    total_data_rows: int = 0

    def as_dict(self) -> dict:
        return {
            "source": self.source,
            **self.report.as_dict(),
            "skipped": [{"row": s.row_index, "reason": s.reason} for s in self.skipped],
            "warnings": [{"row": w.row_index, "message": w.message} for w in self.warnings],
            "total_data_rows": self.total_data_rows,
        }


class HandoverImportService:
    """Planilla -> parser -> conciliación, con carpetas archive/ y error/ como el resto del servicio."""

    def __init__(self, reconciler: HandoverReconciler, settings: Settings):
        self.reconciler = reconciler
        self.settings = settings
        self.paths = settings.paths
        Path(self.paths.archive).mkdir(parents=True, exist_ok=True)
        Path(self.paths.error).mkdir(parents=True, exist_ok=True)

    async def import_file(self, path: Union[str, Path], today: Optional[date] = None) -> ImportOutcome:
        """Importa una planilla. StructuralParseError se propaga: la importación no empieza."""
        src = Path(path)
        rows = await asyncio.to_thread(read_sheet_rows, src)
        parsed = parse_handover_rows(
            rows,
            today=today,
            header_scan_rows=self.settings.parser.header_scan_rows,
            placeholder_birthdate=self.settings.parser.placeholder_birthdate,
        )
        logger.info(
            f"{src.name}: {len(parsed.records)} registro(s), {len(parsed.skipped)} fila(s) omitida(s), "
            f"{len(parsed.warnings)} advertencia(s)"
        )
        report = await self.reconciler.reconcile(
            parsed.records, deadline_sec=self.settings.reconciler.deadline_sec
        )
        return ImportOutcome(
            source=str(src),
            report=report,
            skipped=parsed.skipped,
            warnings=parsed.warnings,
            total_data_rows=parsed.total_data_rows,
        )

    async def _process_file(self, path: Union[str, Path]) -> Optional[ImportOutcome]:
        src = Path(path)
        try:
            outcome = await self.import_file(src)
        except StructuralParseError as ex:
            # → Esta planilla está mal: llévala a error/ y NO tumbar el servicio
            errp = self._move(src, self.paths.error, "error")
            logger.error(f"Planilla rechazada {src.name}: {ex}. Movida a {errp}")
            return None
        except FileNotFoundError:
            logger.warning(f"{src} ya no existe; se omite")
            return None
        except Exception as ex:
            errp = self._move(src, self.paths.error, "error")
            logger.exception(f"Error procesando {src.name}: {ex}. Movida a {errp}")
            return None

        dst = self._move(src, self.paths.archive, "ok")
        logger.info(
            f"Planilla procesada y archivada: {dst} "
            f"({outcome.report.success} ok, {len(outcome.report.errors)} con error)"
        )
        return outcome

    def _move(self, src: Path, folder: str, status: str) -> Optional[Path]:
        if not src.exists():
            return None
        dst = Path(folder) / generate_archive_filename(src, status)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), dst)
        return dst

    async def process_backlog(self, glob_pat: Optional[str] = None) -> List[ImportOutcome]:
        glob_pat = glob_pat or self.settings.watch.filename_glob
        inbox = Path(self.paths.inbox)
        files = sorted(f for f in inbox.glob(glob_pat) if not f.name.startswith("~$"))
        if not files:
            return []
        logger.info(f"Backlog detectado: {len(files)} planilla(s) en {inbox}")
        outcomes = []
        for f in files:
            # Asegura que un fallo no detenga el backlog completo
            outcome = await self._process_file(f)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def run_watch_mode(
        self, glob_pat: Optional[str] = None, stop_event: Optional[asyncio.Event] = None
    ):
        glob_pat = glob_pat or self.settings.watch.filename_glob
        loop = asyncio.get_running_loop()

        # 1) Procesar backlog existente
        await self.process_backlog(glob_pat)

        # 2) Arrancar watcher para nuevas planillas
        watcher = FileWatcher(self.paths.inbox, glob_pat, self._process_file, loop)
        watcher.start()
        logger.info(f"Escuchando carpeta de planillas {self.paths.inbox} ({glob_pat})...")
        try:
            await (stop_event or asyncio.Event()).wait()
        finally:
            watcher.stop()
