from datetime import date, datetime
from typing import List, Optional, Protocol, Sequence

from .models import Admission, AdmissionStatus, BedAssignment, ClinicalContext, Patient


class PatientStore(Protocol):
    def get(self, patient_id: str) -> Optional[Patient]: ...

    def find_by_rut(self, rut: str) -> Optional[Patient]: ...

    def create(self, patient: Patient) -> Patient: ...

    def update_demographics(
        self, patient_id: str, name: str, date_of_birth: Optional[date] = None
    ) -> Patient: ...


class AdmissionStore(Protocol):
    def find_active(self, patient_id: str) -> Optional[Admission]: ...

    def create(self, admission: Admission) -> Admission: ...

    def update_context(self, admission_id: str, context: ClinicalContext) -> Admission: ...

    def close(self, admission_id: str, status: AdmissionStatus, discharge_date: date) -> Admission: ...


class BedAssignmentStore(Protocol):
    def find_active_by_patient(self, patient_id: str) -> Optional[BedAssignment]: ...

    def find_active_by_bed(self, room_number: str, bed_number: int) -> Optional[BedAssignment]: ...

    def list_active(self) -> List[BedAssignment]: ...

    def transfer(
        self,
        deactivate_ids: Sequence[str],
        new_assignment: Optional[BedAssignment],
        discharged_at: datetime,
    ) -> Optional[BedAssignment]:
        """Desactiva las asignaciones indicadas e inserta la nueva en una sola unidad.

        Falla (sin aplicar nada) si alguna asignación a desactivar ya no está activa
        o si la inserción dejaría dos asignaciones activas para la cama o el paciente.
        """
        ...
