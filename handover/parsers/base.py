import re
import unicodedata
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Pattern, Sequence

# Campo lógico -> patrón que lo identifica en el encabezado (texto normalizado).
# El orden importa: "Diagnóstico de ingreso" cae en diagnoses y no en admission_date,
# "Pendientes paciente" cae en pending y no en name.
COLUMN_PATTERNS: Dict[str, Pattern[str]] = {
    "pending": re.compile(r"pendiente"),
    "bed": re.compile(r"\bcama"),
    "name": re.compile(r"\bnombre|\bpaciente"),
    "age": re.compile(r"\bedad\b"),
    "rut": re.compile(r"\bru[tn]\b"),
    "diagnoses": re.compile(r"diagn"),
    "viral_panel": re.compile(r"\bpanel|\bviral"),
    "oxygen": re.compile(r"oxig|\bo2\b"),
    "respiratory_score": re.compile(r"\bscore|\bpuntaje"),
    "plan": re.compile(r"\bplan|antibi|\batb\b"),
    "admission_date": re.compile(r"ingreso"),
}

BED_MARKER = COLUMN_PATTERNS["bed"]
ABSENT = -1


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    return str(value).strip()


def normalize_text(value: Any) -> str:
    """Minúsculas, sin tildes y con espacios colapsados."""
    text = unicodedata.normalize("NFKD", cell_text(value))
    text = "".join(c for c in text if not unicodedata.combining(c))
    return re.sub(r"\s+", " ", text).strip().lower()


def cell_or_none(row: Sequence[Any], idx: int) -> Optional[str]:
    """Texto de la celda o None si la columna no existe o viene vacía."""
    if idx == ABSENT or idx >= len(row):
        return None
    return cell_text(row[idx]) or None


def raw_cell(row: Sequence[Any], idx: int) -> Any:
    if idx == ABSENT or idx >= len(row):
        return None
    return row[idx]


def is_blank_row(row: Sequence[Any]) -> bool:
    return all(not cell_text(c) for c in row)


def find_header_row(rows: Sequence[Sequence[Any]], max_rows: int) -> Optional[int]:
    for i, row in enumerate(rows[:max_rows]):
        if any(BED_MARKER.search(normalize_text(c)) for c in row):
            return i
    return None


def build_column_map(header: Sequence[Any]) -> Dict[str, int]:
    """Mapa campo -> índice de columna; las columnas no encontradas quedan en ABSENT."""
    cols = {name: ABSENT for name in COLUMN_PATTERNS}
    for idx, cell in enumerate(header):
        text = normalize_text(cell)
        if not text:
            continue
        for name, pattern in COLUMN_PATTERNS.items():
            if pattern.search(text):
                if cols[name] == ABSENT:
                    cols[name] = idx
                break
    return cols


def missing_columns(cols: Dict[str, int]) -> List[str]:
    return [name for name, idx in cols.items() if idx == ABSENT]
