"""
Almacén relacional con SQLAlchemy 2.

Los invariantes de camas quedan también en la base: índices únicos parciales sobre
asignaciones activas por (sala, subcama) y por paciente, y sobre hospitalizaciones
activas por paciente.
"""
import threading
from contextlib import contextmanager, nullcontext
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, create_engine, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from handover.commons.errors import StoreIntegrityError

from .models import (
    Admission,
    AdmissionStatus,
    AntibioticTracking,
    BedAssignment,
    ClinicalContext,
    Patient,
    RespiratoryScoreTracking,
)


class Base(DeclarativeBase):
    pass


class PatientRow(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    rut: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    date_of_birth: Mapped[date] = mapped_column(Date)
    admission_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")


class AdmissionRow(Base):
    __tablename__ = "admissions"
    __table_args__ = (
        Index(
            "ux_admissions_active_patient",
            "patient_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), index=True)
    admission_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default="active")
    admission_diagnoses: Mapped[List[str]] = mapped_column(JSON, default=list)
    oxygen_requirement: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    respiratory_score: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    viral_panel: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pending_tasks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    treatment_plan: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    antibiotics: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    respiratory_scores: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    discharge_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class BedAssignmentRow(Base):
    __tablename__ = "bed_assignments"
    __table_args__ = (
        Index(
            "ux_bed_assignments_active_slot",
            "room_number",
            "bed_number",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index(
            "ux_bed_assignments_active_patient",
            "patient_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"))
    admission_id: Mapped[str] = mapped_column(ForeignKey("admissions.id"))
    room_number: Mapped[str] = mapped_column(String(20))
    bed_number: Mapped[int] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime)
    discharged_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# --------- Conversión fila <-> entidad ----------
def _patient(row: PatientRow) -> Patient:
    return Patient(
        id=row.id,
        rut=row.rut,
        name=row.name,
        date_of_birth=row.date_of_birth,
        admission_date=row.admission_date,
        status=row.status,
    )


def _antibiotics_to_json(items: List[AntibioticTracking]) -> List[Dict[str, Any]]:
    return [
        {
            "name": a.name,
            "start_date": a.start_date.isoformat(),
            "planned_days": a.planned_days,
            "end_date": a.end_date.isoformat() if a.end_date else None,
            "current_day": a.current_day,
        }
        for a in items
    ]


def _antibiotics_from_json(items: Optional[List[Dict[str, Any]]]) -> List[AntibioticTracking]:
    return [
        AntibioticTracking(
            name=a["name"],
            start_date=date.fromisoformat(a["start_date"]),
            planned_days=a.get("planned_days"),
            end_date=date.fromisoformat(a["end_date"]) if a.get("end_date") else None,
            current_day=a.get("current_day"),
        )
        for a in items or []
    ]


def _scores_to_json(scores: Dict[str, RespiratoryScoreTracking]) -> Dict[str, Any]:
    return {
        k: {"at_admission": s.at_admission, "current": s.current, "date_measured": s.date_measured.isoformat()}
        for k, s in scores.items()
    }


def _scores_from_json(data: Optional[Dict[str, Any]]) -> Dict[str, RespiratoryScoreTracking]:
    return {
        k: RespiratoryScoreTracking(
            at_admission=s["at_admission"],
            current=s["current"],
            date_measured=date.fromisoformat(s["date_measured"]),
        )
        for k, s in (data or {}).items()
    }


def _admission(row: AdmissionRow) -> Admission:
    return Admission(
        id=row.id,
        patient_id=row.patient_id,
        admission_date=row.admission_date,
        status=row.status,
        context=ClinicalContext(
            diagnoses=list(row.admission_diagnoses or []),
            oxygen_requirement=row.oxygen_requirement,
            respiratory_score=row.respiratory_score,
            viral_panel=row.viral_panel,
            pending_tasks=row.pending_tasks,
            treatment_plan=row.treatment_plan,
        ),
        antibiotics=_antibiotics_from_json(row.antibiotics),
        respiratory_scores=_scores_from_json(row.respiratory_scores),
        discharge_date=row.discharge_date,
    )


def _apply_context(row: AdmissionRow, ctx: ClinicalContext) -> None:
    row.admission_diagnoses = list(ctx.diagnoses)
    row.oxygen_requirement = ctx.oxygen_requirement
    row.respiratory_score = ctx.respiratory_score
    row.viral_panel = ctx.viral_panel
    row.pending_tasks = ctx.pending_tasks
    row.treatment_plan = ctx.treatment_plan


def _bed(row: BedAssignmentRow) -> BedAssignment:
    return BedAssignment(
        id=row.id,
        patient_id=row.patient_id,
        admission_id=row.admission_id,
        room_number=row.room_number,
        bed_number=row.bed_number,
        is_active=row.is_active,
        assigned_at=row.assigned_at,
        discharged_at=row.discharged_at,
    )


class _SqlTable:
    def __init__(self, session_factory, guard=None):
        self._session_factory = session_factory
        # con una sola conexión compartida (StaticPool) las sesiones deben ir de a una
        self._guard = guard if guard is not None else nullcontext()

    @contextmanager
    def _scope(self):
        with self._guard:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except IntegrityError as ex:
                session.rollback()
                raise StoreIntegrityError(str(ex.orig)) from ex
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()


class SqlPatientStore(_SqlTable):
    def get(self, patient_id: str) -> Optional[Patient]:
        with self._scope() as s:
            row = s.get(PatientRow, patient_id)
            return _patient(row) if row else None

    def find_by_rut(self, rut: str) -> Optional[Patient]:
        with self._scope() as s:
            row = s.scalars(select(PatientRow).where(PatientRow.rut == rut)).first()
            return _patient(row) if row else None

    def create(self, patient: Patient) -> Patient:
        with self._scope() as s:
            s.add(
                PatientRow(
                    id=patient.id,
                    rut=patient.rut,
                    name=patient.name,
                    date_of_birth=patient.date_of_birth,
                    admission_date=patient.admission_date,
                    status=patient.status,
                )
            )
        return patient

    def update_demographics(
        self, patient_id: str, name: str, date_of_birth: Optional[date] = None
    ) -> Patient:
        with self._scope() as s:
            row = s.get(PatientRow, patient_id)
            if row is None:
                raise KeyError(patient_id)
            row.name = name
            if date_of_birth:
                row.date_of_birth = date_of_birth
            s.flush()
            return _patient(row)

    def count(self) -> int:
        with self._scope() as s:
            return len(s.scalars(select(PatientRow.id)).all())


class SqlAdmissionStore(_SqlTable):
    def find_active(self, patient_id: str) -> Optional[Admission]:
        with self._scope() as s:
            row = s.scalars(
                select(AdmissionRow).where(
                    AdmissionRow.patient_id == patient_id, AdmissionRow.status == "active"
                )
            ).first()
            return _admission(row) if row else None

    def create(self, admission: Admission) -> Admission:
        with self._scope() as s:
            row = AdmissionRow(
                id=admission.id,
                patient_id=admission.patient_id,
                admission_date=admission.admission_date,
                status=admission.status,
                antibiotics=_antibiotics_to_json(admission.antibiotics),
                respiratory_scores=_scores_to_json(admission.respiratory_scores),
                discharge_date=admission.discharge_date,
            )
            _apply_context(row, admission.context)
            s.add(row)
        return admission

    def update_context(self, admission_id: str, context: ClinicalContext) -> Admission:
        with self._scope() as s:
            row = s.get(AdmissionRow, admission_id)
            if row is None:
                raise KeyError(admission_id)
            _apply_context(row, context)
            s.flush()
            return _admission(row)

    def close(self, admission_id: str, status: AdmissionStatus, discharge_date: date) -> Admission:
        with self._scope() as s:
            row = s.get(AdmissionRow, admission_id)
            if row is None:
                raise KeyError(admission_id)
            row.status = status
            row.discharge_date = discharge_date
            s.flush()
            return _admission(row)

    def count(self) -> int:
        with self._scope() as s:
            return len(s.scalars(select(AdmissionRow.id)).all())


class SqlBedAssignmentStore(_SqlTable):
    def find_active_by_patient(self, patient_id: str) -> Optional[BedAssignment]:
        with self._scope() as s:
            row = s.scalars(
                select(BedAssignmentRow).where(
                    BedAssignmentRow.patient_id == patient_id, BedAssignmentRow.is_active.is_(True)
                )
            ).first()
            return _bed(row) if row else None

    def find_active_by_bed(self, room_number: str, bed_number: int) -> Optional[BedAssignment]:
        with self._scope() as s:
            row = s.scalars(
                select(BedAssignmentRow).where(
                    BedAssignmentRow.room_number == room_number,
                    BedAssignmentRow.bed_number == bed_number,
                    BedAssignmentRow.is_active.is_(True),
                )
            ).first()
            return _bed(row) if row else None

    def list_active(self) -> List[BedAssignment]:
        with self._scope() as s:
            rows = s.scalars(
                select(BedAssignmentRow)
                .where(BedAssignmentRow.is_active.is_(True))
                .order_by(BedAssignmentRow.room_number, BedAssignmentRow.bed_number)
            ).all()
            return [_bed(r) for r in rows]

    def transfer(
        self,
        deactivate_ids: Sequence[str],
        new_assignment: Optional[BedAssignment],
        discharged_at: datetime,
    ) -> Optional[BedAssignment]:
        with self._scope() as s:
            for aid in deactivate_ids:
                row = s.get(BedAssignmentRow, aid)
                if row is None or not row.is_active:
                    raise StoreIntegrityError(f"La asignación {aid} ya no está activa")
                row.is_active = False
                row.discharged_at = discharged_at
            # la desactivación debe llegar a la base antes de que el índice parcial vea la nueva fila
            s.flush()
            if new_assignment is not None:
                s.add(
                    BedAssignmentRow(
                        id=new_assignment.id,
                        patient_id=new_assignment.patient_id,
                        admission_id=new_assignment.admission_id,
                        room_number=new_assignment.room_number,
                        bed_number=new_assignment.bed_number,
                        is_active=True,
                        assigned_at=new_assignment.assigned_at,
                    )
                )
        return new_assignment

    def count(self) -> int:
        with self._scope() as s:
            return len(s.scalars(select(BedAssignmentRow.id)).all())


class SqlStore:
    def __init__(self, url: str, echo: bool = False):
        kwargs: Dict[str, Any] = {"echo": echo}
        guard = None
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
                guard = threading.RLock()
            else:
                db_file = url.split("sqlite:///", 1)[-1]
                Path(db_file).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(url, **kwargs)
        Base.metadata.create_all(self.engine)
        factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.patients = SqlPatientStore(factory, guard)
        self.admissions = SqlAdmissionStore(factory, guard)
        self.beds = SqlBedAssignmentStore(factory, guard)

    def dispose(self) -> None:
        self.engine.dispose()
