"""
Scores respiratorios pediátricos (SOCHIPE).

- TAL: crisis obstructiva en menores de 36 meses, 0-15 puntos.
- Wood-Downes modificado por Ferrés: bronquiolitis, con FR y FC ajustadas por edad.

Los umbrales viven en tablas; el código sólo recorre bandas. Una banda es
(límite, inclusivo, puntos): el valor cae en ella si es < límite, o == límite cuando
es inclusiva. Sobre la última banda corresponde el puntaje máximo (3).
"""
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from handover.commons.errors import DomainError

from .models import ScoreResult, TALParams, WoodDownesParams, coerce_params

Band = Tuple[float, bool, int]
Tier = Tuple[Optional[int], str, str, Tuple[str, ...]]

MAX_POINTS = 3
TAL_MAX_AGE_MONTHS = 36

# ---------------- TAL ----------------
# FR: <30 -> 0, 30-45 -> 1, 46-60 -> 2, >60 -> 3
TAL_RR_BANDS: Sequence[Band] = ((30, False, 0), (45, True, 1), (60, True, 2))

TAL_WHEEZE = {"ausentes": 0, "fin_espiracion": 1, "toda_espiracion": 2, "insp_y_esp": 3, "audibles": 3}
TAL_ACCESSORY = {"ausente": 0, "leve": 1, "moderado": 2, "grave": 3}
TAL_CYANOSIS = {"ausente": 0, "perioral_llanto": 1, "perioral_reposo": 2, "generalizada": 3}
TAL_CONSCIOUSNESS = {"normal": 0, "hiporeactivo": 1, "agitado": 2, "confuso_letargico": 3}

# (puntaje máximo inclusivo, severidad, interpretación, recomendaciones)
TAL_TIERS: Sequence[Tier] = (
    (5, "leve", "Crisis leve de asma/broncoobstrucción", (
        "Broncodilatador beta-2 agonista (Salbutamol) en dosis habituales",
        "Puede manejarse ambulatoriamente",
        "Reevaluar en 1 hora",
    )),
    (8, "moderado", "Crisis moderada de asma/broncoobstrucción", (
        "Broncodilatador beta-2 agonista (Salbutamol) cada 20 minutos x 3 dosis",
        "Considerar corticoides sistémicos (Prednisona 1-2 mg/kg)",
        "Observación por 1-2 horas",
        "Valorar hospitalización si no hay respuesta",
    )),
    (11, "grave", "Crisis grave de asma/broncoobstrucción", (
        "Hospitalización",
        "Oxígeno para mantener SatO2 > 92%",
        "Salbutamol nebulizado continuo",
        "Corticoides sistémicos IV (Metilprednisolona 1-2 mg/kg)",
        "Considerar sulfato de magnesio IV",
        "Monitoreo continuo",
    )),
    (None, "crítico", "Crisis crítica/Paro respiratorio inminente", (
        "Manejo en UCI pediátrica",
        "Preparar para ventilación mecánica",
        "Salbutamol nebulizado continuo",
        "Corticoides IV dosis altas",
        "Sulfato de magnesio IV",
        "Considerar broncodilatadores alternativos",
        "Monitoreo hemodinámico continuo",
    )),
)

# ---------------- Wood-Downes / Ferrés ----------------
WD_CYANOSIS = {"ausente": 0, "aire_ambiente": 2, "fio2_40": 3}
WD_RETRACTION = {"ausente": 0, "leve": 1, "moderado": 2, "grave": 3}
WD_WHEEZE = {"ausentes": 0, "fin_espiracion": 1, "toda_espiracion": 2, "insp_y_esp_audibles": 3}

# (edad en meses, exclusiva; None = resto) -> límite normal
WD_RR_LIMITS: Sequence[Tuple[Optional[float], float]] = ((6, 60), (12, 50), (None, 40))
WD_HR_LIMITS: Sequence[Tuple[Optional[float], float]] = ((6, 160), (12, 150), (None, 140))
WD_RR_STEP = 10
WD_HR_STEP = 20

WD_TIERS: Sequence[Tier] = (
    (3, "leve", "Bronquiolitis leve", (
        "Manejo ambulatorio",
        "Aseo nasal con suero fisiológico",
        "Alimentación fraccionada",
        "Posición semi-sentado para dormir",
        "Control en 24-48 horas",
        "Educación a padres sobre signos de alarma",
    )),
    (6, "moderado", "Bronquiolitis moderada", (
        "Hospitalización",
        "Oxígeno para mantener SatO2 > 92%",
        "Hidratación adecuada (oral o IV según tolerancia)",
        "Aseo nasal frecuente",
        "Monitoreo de frecuencia respiratoria y saturación",
        "Alimentación por SNG si hay dificultad respiratoria importante",
    )),
    (9, "grave", "Bronquiolitis grave", (
        "Hospitalización en unidad de cuidados intermedios",
        "Oxígeno de alto flujo o CPAP nasal",
        "Hidratación IV",
        "Monitoreo continuo de signos vitales",
        "Considerar prueba terapéutica con salbutamol",
        "Evaluación frecuente para traslado a UCI si no hay respuesta",
    )),
    (None, "crítico", "Bronquiolitis muy grave/Insuficiencia respiratoria", (
        "Manejo en UCI pediátrica",
        "Soporte ventilatorio (CPAP, ventilación mecánica)",
        "Hidratación IV",
        "Monitoreo hemodinámico continuo",
        "Considerar surfactante en casos seleccionados",
        "Vigilar complicaciones (apneas, atelectasias, neumonía)",
    )),
)


def band_points(value: float, bands: Sequence[Band], top: int = MAX_POINTS) -> int:
    for limit, inclusive, points in bands:
        if value < limit or (inclusive and value == limit):
            return points
    return top


def age_limit(age_months: float, table: Sequence[Tuple[Optional[float], float]]) -> float:
    for max_age, limit in table:
        if max_age is None or age_months < max_age:
            return limit
    raise DomainError(f"Edad fuera de tabla: {age_months}")


def relative_bands(limit: float, step: float) -> Sequence[Band]:
    """<lim -> 0, <lim+step -> 1, <lim+2*step -> 2, resto -> 3."""
    return ((limit, False, 0), (limit + step, False, 1), (limit + 2 * step, False, 2))


def tier_for(score: int, tiers: Sequence[Tier]) -> ScoreResult:
    for max_score, severity, interpretation, recommendations in tiers:
        if max_score is None or score <= max_score:
            return ScoreResult(
                score=score,
                interpretation=interpretation,
                severity=severity,
                recommendations=list(recommendations),
            )
    raise DomainError(f"Puntaje sin tramo de severidad: {score}")


def calculate_tal(params: Union[TALParams, Dict[str, Any]]) -> ScoreResult:
    p = coerce_params(TALParams, params)
    if p.edad_meses >= TAL_MAX_AGE_MONTHS:
        raise DomainError("El score TAL está indicado para niños menores de 3 años")

    score = (
        band_points(p.frecuencia_respiratoria, TAL_RR_BANDS)
        + TAL_WHEEZE[p.sibilancias]
        + TAL_ACCESSORY[p.uso_musc_accesorios]
        + TAL_CYANOSIS[p.cianosis]
        + TAL_CONSCIOUSNESS[p.nivel_conciencia]
    )
    return tier_for(score, TAL_TIERS)


def calculate_wood_downes(params: Union[WoodDownesParams, Dict[str, Any]]) -> ScoreResult:
    p = coerce_params(WoodDownesParams, params)
    rr_limit = age_limit(p.edad_meses, WD_RR_LIMITS)
    hr_limit = age_limit(p.edad_meses, WD_HR_LIMITS)

    score = (
        WD_CYANOSIS[p.cianosis]
        + WD_RETRACTION[p.tiraje]
        + WD_WHEEZE[p.sibilancias]
        + band_points(p.frecuencia_respiratoria, relative_bands(rr_limit, WD_RR_STEP))
        + band_points(p.frecuencia_cardiaca, relative_bands(hr_limit, WD_HR_STEP))
    )
    return tier_for(score, WD_TIERS)


SCALES = {
    "tal": calculate_tal,
    "wood_downes": calculate_wood_downes,
}


def calculate_score(scale: str, params: Dict[str, Any]) -> ScoreResult:
    try:
        fn = SCALES[scale]
    except KeyError:
        raise DomainError(f"Escala desconocida: {scale!r}") from None
    return fn(params)
