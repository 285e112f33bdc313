# ===============================
# File: handover/parsers/models.py
# ===============================
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Union

Number = Union[int, float]
DobSource = Literal["explicit", "age", "placeholder"]


@dataclass
class AgeParts:
    years: Optional[int] = None
    months: Optional[int] = None
    days: Optional[int] = None


@dataclass
class OxygenRequirement:
    type: str  # CN | CPAP | AM | lo que venga en el JSON embebido
    flow: Optional[Number] = None  # L/min
    peep: Optional[Number] = None  # cmH2O
    fio2: Optional[Number] = None  # %
    usage: Optional[str] = None  # p.ej. "Nocturno"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type}
        for key in ("flow", "peep", "fio2", "usage"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass
class HandoverRecord:
    row_index: int  # número de fila en la hoja (1-based)
    room: str
    bed: int
    name: str
    rut: str
    date_of_birth: date
    dob_source: DobSource
    admission_date: date
    age: Optional[AgeParts] = None
    diagnoses: List[str] = field(default_factory=list)
    viral_panel: Optional[str] = None
    oxygen: Optional[OxygenRequirement] = None
    respiratory_score: Optional[str] = None
    pending_tasks: Optional[str] = None
    plan: Optional[str] = None

    @property
    def bed_label(self) -> str:
        return f"{self.room}-{self.bed}"


@dataclass
class RowSkipDiagnostic:
    row_index: int
    reason: str


@dataclass
class ParseWarning:
    row_index: int
    message: str


@dataclass
class SheetParseResult:
    records: List[HandoverRecord]
    skipped: List[RowSkipDiagnostic]
    warnings: List[ParseWarning]
    header_row: int
    total_data_rows: int
