import copy
import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from handover.commons.errors import StoreIntegrityError

from .models import Admission, AdmissionStatus, BedAssignment, ClinicalContext, Patient


class _Table:
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._rows: Dict[str, object] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def all(self) -> list:
        with self._lock:
            return [copy.deepcopy(r) for r in self._rows.values()]


class InMemoryPatientStore(_Table):
    def get(self, patient_id: str) -> Optional[Patient]:
        with self._lock:
            row = self._rows.get(patient_id)
            return copy.deepcopy(row) if row else None

    def find_by_rut(self, rut: str) -> Optional[Patient]:
        with self._lock:
            row = next((p for p in self._rows.values() if p.rut == rut), None)
            return copy.deepcopy(row) if row else None

    def create(self, patient: Patient) -> Patient:
        with self._lock:
            if any(p.rut == patient.rut for p in self._rows.values()):
                raise StoreIntegrityError(f"Ya existe un paciente con RUT {patient.rut}")
            self._rows[patient.id] = copy.deepcopy(patient)
            return copy.deepcopy(patient)

    def update_demographics(
        self, patient_id: str, name: str, date_of_birth: Optional[date] = None
    ) -> Patient:
        with self._lock:
            row = self._rows[patient_id]
            row = replace(row, name=name, date_of_birth=date_of_birth or row.date_of_birth)
            self._rows[patient_id] = row
            return copy.deepcopy(row)


class InMemoryAdmissionStore(_Table):
    def find_active(self, patient_id: str) -> Optional[Admission]:
        with self._lock:
            row = next(
                (a for a in self._rows.values() if a.patient_id == patient_id and a.status == "active"),
                None,
            )
            return copy.deepcopy(row) if row else None

    def create(self, admission: Admission) -> Admission:
        with self._lock:
            if admission.status == "active" and self.find_active(admission.patient_id):
                raise StoreIntegrityError("El paciente ya tiene una hospitalización activa")
            self._rows[admission.id] = copy.deepcopy(admission)
            return copy.deepcopy(admission)

    def update_context(self, admission_id: str, context: ClinicalContext) -> Admission:
        with self._lock:
            row = replace(self._rows[admission_id], context=copy.deepcopy(context))
            self._rows[admission_id] = row
            return copy.deepcopy(row)

    def close(self, admission_id: str, status: AdmissionStatus, discharge_date: date) -> Admission:
        with self._lock:
            row = replace(self._rows[admission_id], status=status, discharge_date=discharge_date)
            self._rows[admission_id] = row
            return copy.deepcopy(row)


class InMemoryBedAssignmentStore(_Table):
    def find_active_by_patient(self, patient_id: str) -> Optional[BedAssignment]:
        with self._lock:
            row = next(
                (b for b in self._rows.values() if b.is_active and b.patient_id == patient_id), None
            )
            return copy.deepcopy(row) if row else None

    def find_active_by_bed(self, room_number: str, bed_number: int) -> Optional[BedAssignment]:
        with self._lock:
            row = next(
                (b for b in self._rows.values() if b.is_active and b.slot == (room_number, bed_number)),
                None,
            )
            return copy.deepcopy(row) if row else None

    def list_active(self) -> List[BedAssignment]:
        with self._lock:
            return [copy.deepcopy(b) for b in self._rows.values() if b.is_active]

    def transfer(
        self,
        deactivate_ids: Sequence[str],
        new_assignment: Optional[BedAssignment],
        discharged_at: datetime,
    ) -> Optional[BedAssignment]:
        with self._lock:
            for aid in deactivate_ids:
                row = self._rows.get(aid)
                if row is None or not row.is_active:
                    raise StoreIntegrityError(f"La asignación {aid} ya no está activa")
            if new_assignment is not None:
                released = set(deactivate_ids)
                for b in self._rows.values():
                    if not b.is_active or b.id in released:
                        continue
                    if b.slot == new_assignment.slot:
                        raise StoreIntegrityError(
                            f"La cama {b.room_number}-{b.bed_number} ya tiene una asignación activa"
                        )
                    if b.patient_id == new_assignment.patient_id:
                        raise StoreIntegrityError("El paciente ya tiene una cama activa")

            for aid in deactivate_ids:
                self._rows[aid] = replace(self._rows[aid], is_active=False, discharged_at=discharged_at)
            if new_assignment is None:
                return None
            self._rows[new_assignment.id] = copy.deepcopy(new_assignment)
            return copy.deepcopy(new_assignment)


class InMemoryStore:
    """Implementación en memoria de los tres almacenes, con un lock común."""

    def __init__(self):
        self._lock = threading.RLock()
        self.patients = InMemoryPatientStore(self._lock)
        self.admissions = InMemoryAdmissionStore(self._lock)
        self.beds = InMemoryBedAssignmentStore(self._lock)
