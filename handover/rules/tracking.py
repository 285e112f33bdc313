"""
Estado derivado para la vista de turno: días de antibiótico, tendencia de scores,
días de hospitalización y edad pediátrica.

Funciones puras; la fecha de referencia (`today`) siempre puede inyectarse.
"""
from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable, List, Literal, Optional

from handover.commons.errors import DomainError
from handover.stores.models import AntibioticTracking, RespiratoryScoreTracking

Trend = Literal["mejoria", "empeoramiento", "sin_cambio"]

NEWBORN_MAX_DAYS = 28
INFANT_MAX_MONTHS = 24


# ---------------- Antibióticos ----------------
def antibiotic_current_day(start_date: date, today: Optional[date] = None) -> int:
    """Día de tratamiento: el día de inicio es el día 1."""
    today = today or date.today()
    return (today - start_date).days + 1


def antibiotic_end_date(start_date: date, planned_days: int) -> date:
    return start_date + timedelta(days=planned_days - 1)


def planned_days_from_end(start_date: date, end_date: date) -> int:
    if end_date < start_date:
        raise DomainError(f"Fecha de término {end_date} anterior al inicio {start_date}")
    return (end_date - start_date).days + 1


def _planned(t: AntibioticTracking) -> int:
    if t.planned_days is not None:
        return t.planned_days
    if t.end_date is not None:
        return planned_days_from_end(t.start_date, t.end_date)
    raise DomainError(f"Antibiótico {t.name!r} sin días planificados ni fecha de término")


def antibiotic_progress(current_day: int, planned_days: int) -> float:
    if planned_days <= 0:
        raise DomainError(f"Días planificados inválidos: {planned_days}")
    return max(0.0, min(100.0, current_day / planned_days * 100))


def is_ending_soon(current_day: int, planned_days: int) -> bool:
    """
    Verdadero cuando quedan 1 día o menos: `planned_days - current_day <= 1`.

    Incluye los tratamientos ya terminados (días restantes <= 0); combinar con
    `is_ended` para mostrar sólo los que están por terminar.
    """
    return planned_days - current_day <= 1


def is_ended(current_day: int, planned_days: int) -> bool:
    return current_day >= planned_days


def antibiotic_label(current_day: int, planned_days: int) -> str:
    return f"D{current_day}/{planned_days}"


def refresh_antibiotic(t: AntibioticTracking, today: Optional[date] = None) -> AntibioticTracking:
    planned = _planned(t)
    return replace(
        t,
        planned_days=planned,
        end_date=t.end_date or antibiotic_end_date(t.start_date, planned),
        current_day=antibiotic_current_day(t.start_date, today),
    )


def refresh_antibiotics(
    items: Iterable[AntibioticTracking], today: Optional[date] = None
) -> List[AntibioticTracking]:
    today = today or date.today()
    return [refresh_antibiotic(t, today) for t in items]


# ---------------- Scores ----------------
def score_delta(t: RespiratoryScoreTracking) -> int:
    return t.current - t.at_admission


def score_trend(t: RespiratoryScoreTracking) -> Trend:
    delta = score_delta(t)
    if delta < 0:
        return "mejoria"
    if delta > 0:
        return "empeoramiento"
    return "sin_cambio"


# ---------------- Hospitalización / edad ----------------
def days_hospitalized(
    admission_date: date, discharge_date: Optional[date] = None, today: Optional[date] = None
) -> int:
    end = discharge_date or today or date.today()
    return (end - admission_date).days


def age_in_months(date_of_birth: date, today: Optional[date] = None) -> int:
    """Meses cumplidos."""
    today = today or date.today()
    months = (today.year - date_of_birth.year) * 12 + (today.month - date_of_birth.month)
    if today.day < date_of_birth.day:
        months -= 1
    return max(months, 0)


def age_in_months_for_scoring(
    date_of_birth: date, source: str, today: Optional[date] = None
) -> int:
    if source == "placeholder":
        raise DomainError(
            "Fecha de nacimiento desconocida (valor por defecto); ingrese la edad del paciente"
        )
    return age_in_months(date_of_birth, today)


def _plural(n: int, one: str, many: str) -> str:
    return f"{n} {one if n == 1 else many}"


def pediatric_age_label(date_of_birth: date, today: Optional[date] = None, short: bool = False) -> str:
    """
    0-28 días en días, hasta 24 meses en meses, después años y meses.
    `short=True` produce la forma compacta para gráficos (RN, 12d, 5m, 3a 2m).
    """
    today = today or date.today()
    days = (today - date_of_birth).days
    if days < 0:
        raise DomainError(f"Fecha de nacimiento futura: {date_of_birth}")
    if days <= NEWBORN_MAX_DAYS:
        if days == 0:
            return "RN" if short else "Recién nacido"
        return f"{days}d" if short else _plural(days, "día", "días")

    months = age_in_months(date_of_birth, today)
    if months <= INFANT_MAX_MONTHS:
        return f"{months}m" if short else _plural(months, "mes", "meses")

    years, rest = divmod(months, 12)
    if short:
        return f"{years}a {rest}m" if rest else f"{years}a"
    label = _plural(years, "año", "años")
    if rest:
        label += " y " + _plural(rest, "mes", "meses")
    return label
