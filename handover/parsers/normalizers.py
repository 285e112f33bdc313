"""
Normalizadores clínicos compartidos por el parser de planillas y el motor de reglas.

Fechas en formatos locales, edad en texto libre ("3 años 2 meses"), fecha de nacimiento
estimada desde la edad, requerimiento de oxígeno y listas de diagnósticos.
Todas las funciones son puras; las que dependen del día actual reciben `today`.
"""
import calendar
import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, List, Optional, Tuple

from .models import AgeParts, Number, OxygenRequirement

_DMY = re.compile(r"(?<!\d)(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})(?!\d)")
_ISO = re.compile(r"(\d{4})-(\d{2})-(\d{2})")

_YEARS = re.compile(r"(\d+)\s*a[ñn]os?", re.IGNORECASE)
_MONTHS = re.compile(r"(\d+)\s*m(?:eses|es)\b", re.IGNORECASE)
_DAYS = re.compile(r"(\d+)\s*d[íi]as?", re.IGNORECASE)

# edad máxima creíble en una sala pediátrica
MAX_AGE_YEARS = 25

_NAME_WITH_DOB = re.compile(r"^(.+?)\s*\((\d{1,2}[/-]\d{1,2}[/-]\d{2,4})\)\s*$")

# "/" separa diagnósticos salvo entre dígitos ("operado (05/06/25)")
_DIAGNOSIS_SEP = re.compile(r"\s*(?:\r?\n|;|•|(?<!\d)/|/(?!\d))\s*")


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    """Primera fecha reconocible en la celda.

    Acepta celdas fecha nativas, DD-MM-YYYY, DD/MM/YYYY, DD/MM/YY y YYYY-MM-DD,
    también embebidas en texto ("UCIN 14/04/2025 SALA 27/08/2025" -> 2025-04-14).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    m = _DMY.search(text)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), m.group(3)
        full_year = int(year) + 2000 if len(year) == 2 else int(year)
        parsed = _safe_date(full_year, month, day)
        if parsed:
            return parsed
    m = _ISO.search(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    return None


def parse_age(text: Optional[str]) -> Optional[AgeParts]:
    if not text:
        return None
    years = _YEARS.search(text)
    months = _MONTHS.search(text)
    days = _DAYS.search(text)
    if not (years or months or days):
        return None
    return AgeParts(
        years=int(years.group(1)) if years else None,
        months=int(months.group(1)) if months else None,
        days=int(days.group(1)) if days else None,
    )


def _minus_months(d: date, months: int) -> date:
    total = d.year * 12 + (d.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def birthdate_from_age(age: AgeParts, today: date) -> date:
    """Fecha de nacimiento estimada restando años, meses y días a `today`.

    Lanza ValueError si la edad supera MAX_AGE_YEARS (p.ej. "2025 años", un año tipeado en la columna edad).
    """
    total_days = (age.years or 0) * 365 + (age.months or 0) * 30 + (age.days or 0)
    if total_days > MAX_AGE_YEARS * 366:
        raise ValueError(f"edad fuera de rango: {age}")
    dob = _minus_months(today, (age.years or 0) * 12 + (age.months or 0))
    return dob - timedelta(days=age.days or 0)


def split_name_and_birthdate(text: Optional[str]) -> Tuple[str, Optional[date]]:
    """'Aymara Urrea (27/04/2025)' -> ('Aymara Urrea', date(2025, 4, 27))."""
    if not text:
        return "", None
    text = text.strip()
    m = _NAME_WITH_DOB.match(text)
    if m:
        dob = parse_date(m.group(2))
        if dob:
            return m.group(1).strip(), dob
    return text, None


def clean_rut(text: Optional[str]) -> str:
    # Sólo se recorta y pasa a mayúsculas; puntos y guión se conservan tal cual.
    return (text or "").strip().upper()


def split_diagnoses(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [d for d in (p.strip() for p in _DIAGNOSIS_SEP.split(text)) if d]


# ---------------------------------------------------------------------------
# Oxígeno: reglas (predicado, extractor) evaluadas en orden; gana la primera.
# ---------------------------------------------------------------------------

def _number(raw: str) -> Number:
    value = float(raw.replace(",", "."))
    return int(value) if value.is_integer() else value


def _first(patterns, text: str) -> Optional[Number]:
    for p in patterns:
        m = re.search(p, text)
        if m:
            return _number(m.group(1))
    return None


def _load_json(text: str) -> Optional[dict]:
    if not text.lstrip().startswith("{"):
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) and data.get("type") else None


def _is_json(text: str) -> bool:
    return _load_json(text) is not None


def _from_json(text: str) -> OxygenRequirement:
    data = _load_json(text)
    return OxygenRequirement(
        type=str(data["type"]).upper(),
        flow=data.get("flow"),
        peep=data.get("peep"),
        fio2=data.get("fio2"),
        usage=data.get("usage") or data.get("uso"),
    )


def _is_cpap(text: str) -> bool:
    return "CPAP" in text.upper()


def _from_cpap(text: str) -> OxygenRequirement:
    up = text.upper()
    return OxygenRequirement(
        type="CPAP",
        peep=_first([r"PEEP\s*(\d+(?:[.,]\d+)?)", r"CPAP\s*(\d+(?:[.,]\d+)?)"], up),
        fio2=_first([r"FIO2\s*:?\s*(\d+(?:[.,]\d+)?)", r"(\d+(?:[.,]\d+)?)\s*%"], up),
        usage="Nocturno" if "NOCTURN" in up else None,
    )


def _is_ambient(text: str) -> bool:
    return re.search(r"\bAMB|\bAM\b|\bAA\b|AIRE", text.upper()) is not None


def _from_ambient(text: str) -> OxygenRequirement:
    return OxygenRequirement(type="AM")


def _is_nasal(text: str) -> bool:
    return re.search(r"\bCN\b|NASAL|NARICERA", text.upper()) is not None


def _from_nasal(text: str) -> OxygenRequirement:
    return OxygenRequirement(
        type="CN",
        flow=_first([r"(\d+(?:[.,]\d+)?)\s*(?:L|LT|LTS|LPM)\b"], text.upper()),
    )


@dataclass(frozen=True)
class OxygenRule:
    name: str
    matches: Callable[[str], bool]
    extract: Callable[[str], OxygenRequirement]


OXYGEN_RULES: Tuple[OxygenRule, ...] = (
    OxygenRule("json", _is_json, _from_json),
    OxygenRule("cpap", _is_cpap, _from_cpap),
    OxygenRule("ambiente", _is_ambient, _from_ambient),
    OxygenRule("naricera", _is_nasal, _from_nasal),
)


def parse_oxygen(text: Optional[str]) -> Optional[OxygenRequirement]:
    """Requerimiento de O2 estructurado, o None si el texto no calza con ninguna regla."""
    if not text or not text.strip():
        return None
    for rule in OXYGEN_RULES:
        if rule.matches(text):
            return rule.extract(text)
    return None
