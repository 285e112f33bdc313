import re
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Union

from handover.commons.errors import StructuralParseError
from handover.commons.logger import logger

from .base import build_column_map, cell_or_none, find_header_row, is_blank_row, missing_columns, raw_cell
from .models import HandoverRecord, ParseWarning, RowSkipDiagnostic, SheetParseResult
from .normalizers import (
    birthdate_from_age,
    clean_rut,
    parse_age,
    parse_date,
    parse_oxygen,
    split_diagnoses,
    split_name_and_birthdate,
)

DEFAULT_HEADER_SCAN_ROWS = 20
DEFAULT_PLACEHOLDER_BIRTHDATE = date(2000, 1, 1)

# "501-2", "501 / 2", "501" (subcama 1 por defecto)
_BED = re.compile(r"^\s*([A-Za-z0-9]+)\s*(?:[-/]\s*(\d+))?\s*$")


def parse_bed(text: Optional[str]):
    """'501-2' -> ('501', 2); '501' -> ('501', 1); texto no reconocible -> None."""
    if not text:
        return None
    m = _BED.match(text)
    if not m:
        return None
    return m.group(1), int(m.group(2) or 1)


def _as_date(value: Union[str, date, None]) -> date:
    if isinstance(value, date):
        return value
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Fecha inválida: {value!r}")
    return parsed


def parse_handover_rows(
    rows: Sequence[Sequence[Any]],
    today: Optional[date] = None,
    header_scan_rows: int = DEFAULT_HEADER_SCAN_ROWS,
    placeholder_birthdate: Union[str, date] = DEFAULT_PLACEHOLDER_BIRTHDATE,
) -> SheetParseResult:
    """Convierte las filas de la hoja de entrega de turno en HandoverRecord.

    Cada fila de datos (posterior al encabezado) produce exactamente un registro
    o exactamente un diagnóstico de omisión. Sólo la ausencia de encabezado es fatal.
    """
    today = today or date.today()
    placeholder = _as_date(placeholder_birthdate)

    header_idx = find_header_row(rows, header_scan_rows)
    if header_idx is None:
        raise StructuralParseError(
            f"No se encontró fila de encabezado con columna 'Cama' en las primeras {header_scan_rows} filas"
        )
    cols = build_column_map(rows[header_idx])
    logger.debug(f"Encabezado en fila {header_idx + 1}: {cols}")
    absent = missing_columns(cols)
    if absent:
        logger.info(f"Columnas no encontradas en la planilla: {', '.join(absent)}")

    records: List[HandoverRecord] = []
    skipped: List[RowSkipDiagnostic] = []
    warnings: List[ParseWarning] = []
    data_rows = rows[header_idx + 1:]

    for offset, row in enumerate(data_rows):
        row_index = header_idx + offset + 2  # numeración de la hoja (1-based)
        reason = _skip_reason(row, cols)
        if reason:
            skipped.append(RowSkipDiagnostic(row_index, reason))
            continue
        records.append(_build_record(row, row_index, cols, today, placeholder, warnings))

    for s in skipped:
        logger.warning(f"Fila {s.row_index} omitida: {s.reason}")
    for w in warnings:
        logger.warning(f"Fila {w.row_index}: {w.message}")

    return SheetParseResult(
        records=records,
        skipped=skipped,
        warnings=warnings,
        header_row=header_idx + 1,
        total_data_rows=len(data_rows),
    )


def _skip_reason(row: Sequence[Any], cols: Dict[str, int]) -> Optional[str]:
    if is_blank_row(row):
        return "fila vacía"
    bed_text = cell_or_none(row, cols["bed"])
    if not bed_text:
        return "cama vacía"
    if parse_bed(bed_text) is None:
        return f"cama no reconocible: {bed_text!r}"
    name, _ = split_name_and_birthdate(cell_or_none(row, cols["name"]))
    if not name:
        return "nombre vacío"
    if not clean_rut(cell_or_none(row, cols["rut"])):
        return "RUT vacío"
    return None


def _build_record(
    row: Sequence[Any],
    row_index: int,
    cols: Dict[str, int],
    today: date,
    placeholder: date,
    warnings: List[ParseWarning],
) -> HandoverRecord:
    room, bed = parse_bed(cell_or_none(row, cols["bed"]))
    name, explicit_dob = split_name_and_birthdate(cell_or_none(row, cols["name"]))
    age = parse_age(cell_or_none(row, cols["age"]))

    dob = None
    if explicit_dob:
        dob, dob_source = explicit_dob, "explicit"
    elif age:
        try:
            dob, dob_source = birthdate_from_age(age, today), "age"
        except (ValueError, OverflowError) as ex:
            warnings.append(ParseWarning(row_index, f"edad no plausible ({ex})"))
    if dob is None:
        dob, dob_source = placeholder, "placeholder"
        warnings.append(ParseWarning(row_index, f"sin edad legible, fecha de nacimiento {placeholder.isoformat()}"))

    admission_date = parse_date(raw_cell(row, cols["admission_date"]))
    if admission_date is None:
        admission_date = today
        warnings.append(ParseWarning(row_index, "fecha de ingreso no reconocible, se usa la fecha de importación"))

    oxygen_text = cell_or_none(row, cols["oxygen"])
    oxygen = parse_oxygen(oxygen_text)
    if oxygen_text and oxygen is None:
        warnings.append(ParseWarning(row_index, f"requerimiento de O2 no reconocido: {oxygen_text!r}"))

    return HandoverRecord(
        row_index=row_index,
        room=room,
        bed=bed,
        name=name,
        rut=clean_rut(cell_or_none(row, cols["rut"])),
        date_of_birth=dob,
        dob_source=dob_source,
        admission_date=admission_date,
        age=age,
        diagnoses=split_diagnoses(cell_or_none(row, cols["diagnoses"])),
        viral_panel=cell_or_none(row, cols["viral_panel"]),
        oxygen=oxygen,
        respiratory_score=cell_or_none(row, cols["respiratory_score"]),
        pending_tasks=cell_or_none(row, cols["pending"]),
        plan=cell_or_none(row, cols["plan"]),
    )
