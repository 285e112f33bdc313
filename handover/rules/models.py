# handover/rules/models.py
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from handover.commons.errors import DomainError

ScoreSeverity = Literal["leve", "moderado", "grave", "crítico"]
LabSeverity = Literal["leve", "moderada", "severa", "crítica"]

LAB_SEVERITY_ORDER = ("leve", "moderada", "severa", "crítica")


class ScoreResult(BaseModel):
    score: int
    interpretation: str
    severity: ScoreSeverity
    recommendations: List[str]


class TALParams(BaseModel):
    """Score TAL (SOCHIPE), menores de 36 meses."""

    edad_meses: float = Field(ge=0)
    frecuencia_respiratoria: float = Field(ge=0)
    sibilancias: Literal["ausentes", "fin_espiracion", "toda_espiracion", "insp_y_esp", "audibles"]
    uso_musc_accesorios: Literal["ausente", "leve", "moderado", "grave"]
    cianosis: Literal["ausente", "perioral_llanto", "perioral_reposo", "generalizada"]
    nivel_conciencia: Literal["normal", "hiporeactivo", "agitado", "confuso_letargico"]


class WoodDownesParams(BaseModel):
    """Wood-Downes modificado por Ferrés, bronquiolitis."""

    edad_meses: float = Field(ge=0)
    frecuencia_respiratoria: float = Field(ge=0)
    frecuencia_cardiaca: float = Field(ge=0)
    cianosis: Literal["ausente", "aire_ambiente", "fio2_40"]
    tiraje: Literal["ausente", "leve", "moderado", "grave"]
    sibilancias: Literal["ausentes", "fin_espiracion", "toda_espiracion", "insp_y_esp_audibles"]


class AutoDiagnosis(BaseModel):
    code: str
    description: str
    severity: LabSeverity
    category: str
    parameter_name: str
    actual_value: float
    reference_range: str


P = TypeVar("P", bound=BaseModel)


def coerce_params(model: Type[P], params: Union[P, Dict[str, Any]]) -> P:
    """Acepta el modelo o un dict; los errores de validación se informan como DomainError."""
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(params)
    except ValidationError as ex:
        raise DomainError(f"Parámetros inválidos para {model.__name__}: {ex}") from ex


def severity_rank(severity: str, order=LAB_SEVERITY_ORDER) -> int:
    return order.index(severity)


def worst(diagnoses: List[AutoDiagnosis]) -> Optional[AutoDiagnosis]:
    if not diagnoses:
        return None
    return max(diagnoses, key=lambda d: severity_rank(d.severity))
