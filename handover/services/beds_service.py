# handover/services/beds_service.py
import asyncio
from datetime import datetime
from typing import Callable, Optional

from handover.commons.errors import BedOccupiedError, ReconciliationError
from handover.commons.logger import logger
from handover.helpers.locks import WardLocks
from handover.stores.base import AdmissionStore, BedAssignmentStore, PatientStore
from handover.stores.models import AdmissionStatus, BedAssignment, Patient

CLOSING_STATUSES = ("discharged", "transferred", "deceased")


class BedService:
    """Operaciones manuales de camas (asignar, cambiar, liberar).

    Comparte el registro de locks con la conciliación, así una importación y un
    cambio manual del mismo paciente o de la misma cama nunca se intercalan.
    """

    def __init__(
        self,
        patients: PatientStore,
        admissions: AdmissionStore,
        beds: BedAssignmentStore,
        locks: WardLocks,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.patients = patients
        self.admissions = admissions
        self.beds = beds
        self.locks = locks
        self.clock = clock

    def _patient(self, patient_id: str) -> Patient:
        patient = self.patients.get(patient_id)
        if patient is None:
            raise ReconciliationError(f"Paciente {patient_id} no existe")
        return patient

    async def assign_bed(self, patient_id: str, room: str, bed: int) -> BedAssignment:
        patient = await asyncio.to_thread(self._patient, patient_id)
        async with self.locks.patient_and_bed(patient.rut, room, bed):
            return await asyncio.to_thread(self._assign, patient, room, bed)

    async def change_bed(self, patient_id: str, room: str, bed: int) -> BedAssignment:
        patient = await asyncio.to_thread(self._patient, patient_id)
        async with self.locks.patient_and_bed(patient.rut, room, bed):
            return await asyncio.to_thread(self._change, patient, room, bed)

    async def release_bed(
        self, patient_id: str, status: AdmissionStatus = "discharged"
    ) -> Optional[BedAssignment]:
        if status not in CLOSING_STATUSES:
            raise ValueError(f"Estado de egreso inválido: {status}")
        patient = await asyncio.to_thread(self._patient, patient_id)
        async with self.locks.patient(patient.rut):
            return await asyncio.to_thread(self._release, patient, status)

    def _assign(self, patient: Patient, room: str, bed: int) -> BedAssignment:
        admission = self.admissions.find_active(patient.id)
        if admission is None:
            raise ReconciliationError(f"{patient.name} no tiene una hospitalización activa")
        if self.beds.find_active_by_patient(patient.id) is not None:
            raise ReconciliationError(f"{patient.name} ya tiene una cama asignada; use cambio de cama")
        if self.beds.find_active_by_bed(room, bed) is not None:
            raise BedOccupiedError(room, bed)

        now = self.clock()
        assignment = self.beds.transfer(
            [],
            BedAssignment(
                patient_id=patient.id,
                admission_id=admission.id,
                room_number=room,
                bed_number=bed,
                assigned_at=now,
            ),
            now,
        )
        logger.info(f"Cama {room}-{bed} asignada a {patient.rut}")
        return assignment

    def _change(self, patient: Patient, room: str, bed: int) -> BedAssignment:
        current = self.beds.find_active_by_patient(patient.id)
        if current is None:
            raise ReconciliationError(f"{patient.name} no tiene una cama asignada")
        if current.slot == (room, bed):
            raise ReconciliationError("La nueva cama debe ser diferente a la actual")
        if self.beds.find_active_by_bed(room, bed) is not None:
            raise BedOccupiedError(room, bed)

        now = self.clock()
        assignment = self.beds.transfer(
            [current.id],
            BedAssignment(
                patient_id=patient.id,
                admission_id=current.admission_id,
                room_number=room,
                bed_number=bed,
                assigned_at=now,
            ),
            now,
        )
        logger.info(
            f"{patient.rut}: cambio de cama {current.room_number}-{current.bed_number} -> {room}-{bed}"
        )
        return assignment

    def _release(self, patient: Patient, status: AdmissionStatus) -> Optional[BedAssignment]:
        now = self.clock()
        current = self.beds.find_active_by_patient(patient.id)
        if current is not None:
            self.beds.transfer([current.id], None, now)
        admission = self.admissions.find_active(patient.id)
        if admission is not None:
            self.admissions.close(admission.id, status, now.date())
        logger.info(f"{patient.rut}: egreso ({status})")
        return current
