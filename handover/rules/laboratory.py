"""
Diagnósticos automáticos (CIE-10) a partir de valores de laboratorio.

Cada analito se evalúa de forma independiente contra su propia tabla. Todas las
comparaciones son estrictas: el valor es anormal si es < límite inferior o > límite
superior, y un grado aplica si el valor es < (lado bajo) o > (lado alto) su umbral.
La única excepción es el límite de anemia, que usa hemoglobina < umbral por edad.

La edad del paciente se recibe en meses; las bandas etarias de hemoglobina,
leucocitos y creatinina están expresadas en años.
"""
import math
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from handover.commons.errors import DomainError

from .models import AutoDiagnosis

Bounds = Tuple[Optional[float], Optional[float]]


@dataclass(frozen=True)
class Grade:
    threshold: float
    severity: str
    description: str
    code: Optional[str] = None
    relative: bool = False  # el umbral multiplica al límite del lado


@dataclass(frozen=True)
class Side:
    code: str
    description: str
    severity: str = "leve"
    grades: Tuple[Grade, ...] = ()  # del más severo al menos severo


@dataclass(frozen=True)
class AgeBand:
    max_age_years: Optional[float]  # exclusivo; None = resto
    bounds: Bounds


@dataclass(frozen=True)
class AnalyteRule:
    key: str
    label: str
    category: str
    bounds: Bounds
    reference: str
    low: Optional[Side] = None
    high: Optional[Side] = None
    age_bands: Tuple[AgeBand, ...] = ()

    def bounds_for(self, age_months: Optional[float]) -> Bounds:
        if age_months is None or not self.age_bands:
            return self.bounds
        years = age_months / 12
        for band in self.age_bands:
            if band.max_age_years is None or years < band.max_age_years:
                return band.bounds
        return self.bounds


HIDRO = "Hidroelectrolítico"
ACIDO_BASE = "Ácido-Base"
HEMATO = "Hematológico"

LAB_RULES: Tuple[AnalyteRule, ...] = (
    AnalyteRule(
        "potasio", "Potasio", HIDRO, (3.5, 5.0), "3.5-5.0 mEq/L",
        low=Side("E87.6", "Hipopotasemia leve", grades=(
            Grade(2.5, "severa", "Hipopotasemia severa"),
            Grade(3.0, "moderada", "Hipopotasemia moderada"),
        )),
        high=Side("E87.5", "Hiperpotasemia leve", grades=(
            Grade(6.5, "crítica", "Hiperpotasemia severa"),
            Grade(5.5, "moderada", "Hiperpotasemia moderada"),
        )),
    ),
    AnalyteRule(
        "sodio", "Sodio", HIDRO, (135, 145), "135-145 mEq/L",
        low=Side("E87.1", "Hiponatremia leve", grades=(
            Grade(125, "severa", "Hiponatremia severa"),
            Grade(130, "moderada", "Hiponatremia moderada"),
        )),
        high=Side("E87.0", "Hipernatremia leve", grades=(
            Grade(160, "severa", "Hipernatremia severa"),
            Grade(150, "moderada", "Hipernatremia moderada"),
        )),
    ),
    AnalyteRule(
        "calcio", "Calcio", HIDRO, (8.5, 10.5), "8.5-10.5 mg/dL",
        low=Side("E83.5", "Hipocalcemia leve", grades=(
            Grade(6.5, "crítica", "Hipocalcemia severa"),
            Grade(7.5, "moderada", "Hipocalcemia moderada"),
        )),
        high=Side("E83.5", "Hipercalcemia leve", grades=(
            Grade(14.0, "crítica", "Hipercalcemia severa"),
            Grade(12.0, "moderada", "Hipercalcemia moderada"),
        )),
    ),
    AnalyteRule(
        "magnesio", "Magnesio", HIDRO, (1.7, 2.4), "1.7-2.4 mg/dL",
        low=Side("E83.4", "Hipomagnesemia", "moderada", grades=(
            Grade(1.2, "severa", "Hipomagnesemia severa"),
        )),
        high=Side("E83.4", "Hipermagnesemia", "moderada", grades=(
            Grade(4.0, "severa", "Hipermagnesemia severa"),
        )),
    ),
    AnalyteRule(
        "ph", "pH", ACIDO_BASE, (7.35, 7.45), "7.35-7.45",
        low=Side("E87.2", "Acidosis leve", grades=(
            Grade(7.20, "crítica", "Acidosis severa"),
            Grade(7.30, "moderada", "Acidosis moderada"),
        )),
        high=Side("E87.3", "Alcalosis leve", grades=(
            Grade(7.55, "severa", "Alcalosis severa"),
            Grade(7.50, "moderada", "Alcalosis moderada"),
        )),
    ),
    AnalyteRule(
        "bicarbonato", "Bicarbonato", ACIDO_BASE, (22, 28), "22-28 mEq/L",
        low=Side("E87.2", "Acidosis metabólica", grades=(
            Grade(15, "severa", "Acidosis metabólica"),
            Grade(18, "moderada", "Acidosis metabólica"),
        )),
        high=Side("E87.3", "Alcalosis metabólica", grades=(
            Grade(35, "severa", "Alcalosis metabólica"),
            Grade(32, "moderada", "Alcalosis metabólica"),
        )),
    ),
    AnalyteRule(
        "hemoglobina", "Hemoglobina", HEMATO, (12.0, None), ">{low:g} g/dL",
        low=Side("D64.9", "Anemia leve", grades=(
            Grade(7.0, "severa", "Anemia severa"),
            Grade(10.0, "moderada", "Anemia moderada"),
        )),
        age_bands=(
            AgeBand(0.5, (13.5, None)),
            AgeBand(2, (11.0, None)),
            AgeBand(6, (11.5, None)),
            AgeBand(12, (12.0, None)),
            AgeBand(None, (12.5, None)),
        ),
    ),
    AnalyteRule(
        "plaquetas", "Plaquetas", HEMATO, (150000, 450000), "150,000-450,000/μL",
        low=Side("D69.6", "Trombocitopenia leve", grades=(
            Grade(50000, "crítica", "Trombocitopenia severa"),
            Grade(100000, "moderada", "Trombocitopenia moderada"),
        )),
        high=Side("D75.8", "Trombocitosis", "moderada", grades=(
            Grade(1000000, "severa", "Trombocitosis severa"),
        )),
    ),
    AnalyteRule(
        "leucocitos", "Leucocitos", HEMATO, (4500, 11000), "{low:g}-{high:g}/μL",
        low=Side("D72.8", "Leucopenia leve", grades=(
            Grade(1000, "crítica", "Leucopenia severa"),
            Grade(0.75, "moderada", "Leucopenia moderada", relative=True),
        )),
        high=Side("D72.8", "Leucocitosis leve", grades=(
            Grade(30000, "severa", "Leucocitosis severa"),
            Grade(1.5, "moderada", "Leucocitosis moderada", relative=True),
        )),
        age_bands=(
            AgeBand(1, (6000, 17500)),
            AgeBand(2, (6000, 17000)),
            AgeBand(6, (5500, 15500)),
            AgeBand(12, (4500, 13500)),
            AgeBand(None, (4500, 11000)),
        ),
    ),
    AnalyteRule(
        "neutrofilos", "Neutrófilos", HEMATO, (1500, None), ">1500/μL",
        low=Side("D70", "Neutropenia leve", grades=(
            Grade(500, "crítica", "Neutropenia severa"),
            Grade(1000, "moderada", "Neutropenia moderada"),
        )),
    ),
    AnalyteRule(
        "creatinina", "Creatinina", "Renal", (None, 1.2), "<{high:g} mg/dL",
        high=Side("N18.9", "Elevación leve de creatinina", grades=(
            Grade(3, "severa", "Insuficiencia renal aguda severa", code="N17.9", relative=True),
            Grade(1.5, "moderada", "Insuficiencia renal moderada", relative=True),
        )),
        age_bands=(
            AgeBand(1, (None, 0.4)),
            AgeBand(3, (None, 0.5)),
            AgeBand(6, (None, 0.6)),
            AgeBand(12, (None, 0.8)),
            AgeBand(None, (None, 1.2)),
        ),
    ),
    AnalyteRule(
        "alt", "ALT", "Hepático", (None, 40), "<40 U/L",
        high=Side("K76.9", "Elevación de ALT leve", grades=(
            Grade(200, "severa", "Elevación de ALT severa"),
            Grade(100, "moderada", "Elevación de ALT moderada"),
        )),
    ),
    AnalyteRule(
        "ast", "AST", "Hepático", (None, 40), "<40 U/L",
        high=Side("K76.9", "Elevación de AST leve", grades=(
            Grade(200, "severa", "Elevación de AST severa"),
            Grade(100, "moderada", "Elevación de AST moderada"),
        )),
    ),
    AnalyteRule(
        "pcr", "PCR", "Inflamatorio", (None, 10), "<10 mg/L",
        high=Side("R70.0", "Elevación moderada de PCR", "moderada", grades=(
            Grade(50, "severa", "Elevación severa de PCR"),
        )),
    ),
    AnalyteRule(
        "glucosa", "Glucosa", "Metabólico", (70, 126), "70-100 mg/dL",
        low=Side("E16.2", "Hipoglucemia leve", grades=(
            Grade(40, "crítica", "Hipoglucemia severa"),
            Grade(54, "moderada", "Hipoglucemia moderada"),
        )),
        high=Side("R73.9", "Hiperglucemia", grades=(
            Grade(250, "severa", "Hiperglucemia severa", code="E10.9"),
        )),
    ),
)

RULES_BY_KEY: Dict[str, AnalyteRule] = {r.key: r for r in LAB_RULES}

# nombre alternativo -> analito canónico (el canónico gana si vienen ambos)
ALIASES = {"hco3": "bicarbonato"}

# Subclasificación de anemia por índices eritrocitarios (requiere VCM y HCM)
MICROCYTIC_MCV = 80
HYPOCHROMIC_MCH = 27
MACROCYTIC_MCV = 100


def normalize_analyte(name: str) -> str:
    text = unicodedata.normalize("NFKD", name.strip().lower())
    return "".join(c for c in text if not unicodedata.combining(c))


def _canonical_values(values: Mapping[str, float]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    aliased: Dict[str, float] = {}
    for raw_name, raw_value in values.items():
        if raw_value is None:
            continue
        if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
            raise DomainError(f"Valor no numérico para {raw_name!r}: {raw_value!r}")
        if not math.isfinite(raw_value):
            raise DomainError(f"Valor no finito para {raw_name!r}")
        key = normalize_analyte(raw_name)
        if key in ALIASES:
            aliased.setdefault(ALIASES[key], float(raw_value))
        else:
            out[key] = float(raw_value)
    for key, value in aliased.items():
        out.setdefault(key, value)
    return out


def evaluate_analyte(
    rule: AnalyteRule, value: float, age_months: Optional[float] = None
) -> Optional[AutoDiagnosis]:
    low, high = rule.bounds_for(age_months)
    if rule.low and low is not None and value < low:
        side, limit, below = rule.low, low, True
    elif rule.high and high is not None and value > high:
        side, limit, below = rule.high, high, False
    else:
        return None

    code, severity, description = side.code, side.severity, side.description
    for g in side.grades:
        threshold = g.threshold * limit if g.relative else g.threshold
        if (value < threshold) if below else (value > threshold):
            code, severity, description = g.code or side.code, g.severity, g.description
            break

    return AutoDiagnosis(
        code=code,
        description=description,
        severity=severity,
        category=rule.category,
        parameter_name=rule.label,
        actual_value=value,
        reference_range=rule.reference.format(low=low, high=high),
    )


def classify_anemia(diag: AutoDiagnosis, mcv: Optional[float], mch: Optional[float]) -> AutoDiagnosis:
    if not mcv or not mch:
        return diag
    if mcv < MICROCYTIC_MCV and mch < HYPOCHROMIC_MCH:
        code, kind = "D50.9", "microcítica hipocrómica"
    elif mcv > MACROCYTIC_MCV:
        code, kind = "D51.9", "macrocítica"
    else:
        code, kind = "D64.9", "normocítica normocrómica"
    return diag.model_copy(update={"code": code, "description": f"Anemia {kind} {diag.severity}"})


def generate_auto_diagnoses(
    lab_values: Mapping[str, float], age_months: Optional[float] = None
) -> List[AutoDiagnosis]:
    """Evalúa cada analito conocido de forma independiente; los desconocidos se ignoran."""
    if age_months is not None and age_months < 0:
        raise DomainError(f"Edad negativa: {age_months}")
    values = _canonical_values(lab_values)
    diagnoses: List[AutoDiagnosis] = []
    for rule in LAB_RULES:
        if rule.key not in values:
            continue
        diag = evaluate_analyte(rule, values[rule.key], age_months)
        if diag is None:
            continue
        if rule.key == "hemoglobina":
            diag = classify_anemia(diag, values.get("vcm"), values.get("hcm"))
        diagnoses.append(diag)
    return diagnoses
