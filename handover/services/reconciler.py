# handover/services/reconciler.py
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Literal, Optional, Sequence, Tuple

from handover.commons.errors import BedOccupiedError, ReconciliationError, StoreIntegrityError
from handover.commons.logger import logger
from handover.helpers.locks import WardLocks
from handover.parsers.models import HandoverRecord
from handover.stores.base import AdmissionStore, BedAssignmentStore, PatientStore
from handover.stores.models import Admission, BedAssignment, ClinicalContext, Patient

OccupiedBedPolicy = Literal["displace", "reject"]
DEADLINE_EXCEEDED = "plazo de importación excedido"
DUPLICATE_BED = "cama duplicada en la planilla"
DUPLICATE_RUT = "RUT duplicado en la planilla"


@dataclass
class ReconciliationReport:
    success: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {"success": self.success, "errors": list(self.errors)}


def split_duplicates(records: Sequence[HandoverRecord]):
    """
    Separa los registros que repiten cama o RUT dentro del mismo lote.

    Gana la primera fila; las siguientes vuelven como (registro, motivo).
    """
    unique: List[HandoverRecord] = []
    duplicates: List[Tuple[HandoverRecord, str]] = []
    beds: Dict[Tuple[str, int], int] = {}
    ruts: Dict[str, int] = {}
    for record in records:
        slot = (record.room, record.bed)
        if slot in beds:
            duplicates.append((record, f"{DUPLICATE_BED} (fila {beds[slot]})"))
        elif record.rut in ruts:
            duplicates.append((record, f"{DUPLICATE_RUT} (fila {ruts[record.rut]})"))
        else:
            beds[slot] = ruts[record.rut] = record.row_index
            unique.append(record)
    return unique, duplicates


def context_from_record(record: HandoverRecord) -> ClinicalContext:
    return ClinicalContext(
        diagnoses=list(record.diagnoses),
        oxygen_requirement=record.oxygen.to_dict() if record.oxygen else None,
        respiratory_score=record.respiratory_score,
        viral_panel=record.viral_panel,
        pending_tasks=record.pending_tasks,
        treatment_plan=record.plan,
    )


class HandoverReconciler:
    """
    Lleva los registros de la planilla al almacén: paciente -> hospitalización -> cama.

    Cada registro se procesa completo por un worker, con el lock del paciente (RUT) y
    luego el de la cama destino tomados durante toda la secuencia. Un registro que falla
    queda en `errors` como "<nombre>: <motivo>" y el lote continúa.
    """

    def __init__(
        self,
        patients: PatientStore,
        admissions: AdmissionStore,
        beds: BedAssignmentStore,
        locks: Optional[WardLocks] = None,
        max_workers: int = 4,
        occupied_bed: OccupiedBedPolicy = "displace",
        clock: Callable[[], datetime] = datetime.now,
    ):
        if max_workers < 1:
            raise ValueError("max_workers debe ser >= 1")
        self.patients = patients
        self.admissions = admissions
        self.beds = beds
        self.locks = locks or WardLocks()
        self.max_workers = max_workers
        self.occupied_bed = occupied_bed
        self.clock = clock

    async def reconcile(
        self, records: Sequence[HandoverRecord], deadline_sec: Optional[float] = None
    ) -> ReconciliationReport:
        report = ReconciliationReport()
        if not records:
            return report

        unique, duplicates = split_duplicates(records)
        for record, reason in duplicates:
            logger.warning(f"Fila {record.row_index} ({record.name}, cama {record.bed_label}): {reason}")
            report.errors.append(f"{record.name}: {reason}")

        loop = asyncio.get_running_loop()
        expires_at = loop.time() + deadline_sec if deadline_sec is not None else None
        queue: "asyncio.Queue[HandoverRecord]" = asyncio.Queue()
        for record in unique:
            queue.put_nowait(record)

        async def worker():
            while True:
                try:
                    record = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                # los registros en curso terminan; sólo se dejan de iniciar nuevos
                if expires_at is not None and loop.time() >= expires_at:
                    report.errors.append(f"{record.name}: {DEADLINE_EXCEEDED}")
                    continue
                try:
                    await self.reconcile_record(record)
                    report.success += 1
                except ReconciliationError as ex:
                    logger.error(f"Fila {record.row_index} ({record.name}, cama {record.bed_label}): {ex}")
                    report.errors.append(f"{record.name}: {ex}")

        workers = max(1, min(self.max_workers, len(unique)))
        await asyncio.gather(*(worker() for _ in range(workers)))
        logger.info(
            f"Conciliación terminada: {report.success} ok, {len(report.errors)} con error "
            f"({len(records)} registros, {workers} workers)"
        )
        return report

    async def reconcile_record(self, record: HandoverRecord) -> BedAssignment:
        try:
            async with self.locks.patient_and_bed(record.rut, record.room, record.bed):
                try:
                    return await asyncio.to_thread(self._apply, record)
                except StoreIntegrityError as ex:
                    # el ocupante desplazado pudo moverse en paralelo: se relee y se intenta una vez más
                    logger.warning(f"Fila {record.row_index}: {ex}; reintentando")
                    return await asyncio.to_thread(self._apply, record)
        except ReconciliationError:
            raise
        except Exception as ex:
            raise ReconciliationError(str(ex) or type(ex).__name__) from ex

    # ---- secuencia síncrona, ejecutada con los locks tomados ----
    def _apply(self, record: HandoverRecord) -> BedAssignment:
        if self.occupied_bed == "reject":
            self._ensure_bed_available(record)
        patient = self._resolve_patient(record)
        admission = self._resolve_admission(patient, record)
        return self._place(patient, admission, record)

    def _ensure_bed_available(self, record: HandoverRecord) -> None:
        """Con política reject se falla antes de crear paciente u hospitalización."""
        occupant = self.beds.find_active_by_bed(record.room, record.bed)
        if occupant is None:
            return
        patient = self.patients.find_by_rut(record.rut)
        if patient is None or occupant.patient_id != patient.id:
            raise BedOccupiedError(record.room, record.bed)

    def _resolve_patient(self, record: HandoverRecord) -> Patient:
        patient = self.patients.find_by_rut(record.rut)
        if patient is None:
            logger.debug(f"Paciente nuevo {record.rut}")
            return self.patients.create(
                Patient(
                    rut=record.rut,
                    name=record.name,
                    date_of_birth=record.date_of_birth,
                    admission_date=record.admission_date,
                )
            )
        # la fecha de nacimiento sólo se corrige con un dato explícito de la planilla
        dob = record.date_of_birth if record.dob_source == "explicit" else None
        if patient.name != record.name or (dob and dob != patient.date_of_birth):
            patient = self.patients.update_demographics(patient.id, record.name, dob)
        return patient

    def _resolve_admission(self, patient: Patient, record: HandoverRecord) -> Admission:
        context = context_from_record(record)
        admission = self.admissions.find_active(patient.id)
        if admission is not None:
            return self.admissions.update_context(admission.id, context)
        return self.admissions.create(
            Admission(patient_id=patient.id, admission_date=record.admission_date, context=context)
        )

    def _place(self, patient: Patient, admission: Admission, record: HandoverRecord) -> BedAssignment:
        prior = self.beds.find_active_by_patient(patient.id)
        if (
            prior is not None
            and prior.slot == (record.room, record.bed)
            and prior.admission_id == admission.id
        ):
            return prior

        deactivate = [prior.id] if prior is not None else []
        occupant = self.beds.find_active_by_bed(record.room, record.bed)
        if occupant is not None and occupant.patient_id != patient.id:
            if self.occupied_bed == "reject":
                raise BedOccupiedError(record.room, record.bed)
            logger.warning(
                f"Cama {record.bed_label}: se libera la asignación {occupant.id} "
                f"del paciente {occupant.patient_id} para {record.rut}"
            )
            deactivate.append(occupant.id)

        now = self.clock()
        return self.beds.transfer(
            deactivate,
            BedAssignment(
                patient_id=patient.id,
                admission_id=admission.id,
                room_number=record.room,
                bed_number=record.bed,
                assigned_at=now,
            ),
            now,
        )
