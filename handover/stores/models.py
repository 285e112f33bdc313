# ===============================
# File: handover/stores/models.py
# ===============================
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

AdmissionStatus = Literal["active", "discharged", "transferred", "deceased"]
PatientStatus = Literal["active", "discharged", "transferred", "deceased"]


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class AntibioticTracking:
    name: str
    start_date: date
    planned_days: Optional[int] = None
    end_date: Optional[date] = None
    current_day: Optional[int] = None


@dataclass
class RespiratoryScoreTracking:
    at_admission: int
    current: int
    date_measured: date


@dataclass
class Patient:
    rut: str
    name: str
    date_of_birth: date
    admission_date: Optional[date] = None
    status: PatientStatus = "active"
    id: str = field(default_factory=new_id)


@dataclass
class ClinicalContext:
    """Campos clínicos de la hospitalización que la planilla sobrescribe en cada importación."""

    diagnoses: List[str] = field(default_factory=list)
    oxygen_requirement: Optional[Dict[str, Any]] = None
    respiratory_score: Optional[str] = None
    viral_panel: Optional[str] = None
    pending_tasks: Optional[str] = None
    treatment_plan: Optional[str] = None


@dataclass
class Admission:
    patient_id: str
    admission_date: date
    status: AdmissionStatus = "active"
    context: ClinicalContext = field(default_factory=ClinicalContext)
    antibiotics: List[AntibioticTracking] = field(default_factory=list)
    respiratory_scores: Dict[str, RespiratoryScoreTracking] = field(default_factory=dict)
    discharge_date: Optional[date] = None
    id: str = field(default_factory=new_id)


@dataclass
class BedAssignment:
    patient_id: str
    admission_id: str
    room_number: str
    bed_number: int
    is_active: bool = True
    assigned_at: datetime = field(default_factory=datetime.now)
    discharged_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    @property
    def slot(self):
        return (self.room_number, self.bed_number)
