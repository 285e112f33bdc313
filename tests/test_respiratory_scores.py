# flake8: noqa
import pytest

from handover.commons.errors import DomainError
from handover.rules.models import TALParams
from handover.rules.respiratory import (
    TAL_ACCESSORY,
    TAL_CONSCIOUSNESS,
    TAL_CYANOSIS,
    TAL_WHEEZE,
    WD_CYANOSIS,
    WD_RETRACTION,
    WD_WHEEZE,
    calculate_score,
    calculate_tal,
    calculate_wood_downes,
)

TAL_BASE = {
    "edad_meses": 12,
    "frecuencia_respiratoria": 40,
    "sibilancias": "fin_espiracion",
    "uso_musc_accesorios": "leve",
    "cianosis": "ausente",
    "nivel_conciencia": "normal",
}

WD_BASE = {
    "edad_meses": 3,
    "frecuencia_respiratoria": 65,
    "frecuencia_cardiaca": 170,
    "cianosis": "ausente",
    "tiraje": "leve",
    "sibilancias": "fin_espiracion",
}


def tal(**overrides):
    return calculate_tal({**TAL_BASE, **overrides})


def wd(**overrides):
    return calculate_wood_downes({**WD_BASE, **overrides})


# ---------------- TAL ----------------
def test_tal_mild():
    res = tal()
    assert res.score == 3
    assert res.severity == "leve"
    assert res.interpretation.startswith("Crisis leve")
    assert res.recommendations


def test_tal_maximum_is_critical():
    res = tal(
        frecuencia_respiratoria=70,
        sibilancias="audibles",
        uso_musc_accesorios="grave",
        cianosis="generalizada",
        nivel_conciencia="confuso_letargico",
    )
    assert res.score == 15
    assert res.severity == "crítico"
    assert "Manejo en UCI pediátrica" in res.recommendations


@pytest.mark.parametrize(
    "fr, points",
    [(29.9, 0), (30, 1), (45, 1), (45.5, 2), (60, 2), (61, 3)],
)
def test_tal_respiratory_rate_breakpoints(fr, points):
    base = tal(frecuencia_respiratoria=20).score
    assert tal(frecuencia_respiratoria=fr).score - base == points


@pytest.mark.parametrize(
    "overrides, severity",
    [
        ({"cianosis": "perioral_reposo"}, "leve"),  # 5
        ({"cianosis": "generalizada"}, "moderado"),  # 6
        ({"cianosis": "generalizada", "nivel_conciencia": "agitado"}, "moderado"),  # 8
        ({"cianosis": "generalizada", "nivel_conciencia": "confuso_letargico"}, "grave"),  # 9
        ({"cianosis": "generalizada", "nivel_conciencia": "confuso_letargico", "uso_musc_accesorios": "grave"}, "grave"),  # 11
        (
            {
                "cianosis": "generalizada",
                "nivel_conciencia": "confuso_letargico",
                "uso_musc_accesorios": "grave",
                "sibilancias": "toda_espiracion",
            },
            "crítico",
        ),  # 12
    ],
)
def test_tal_severity_tiers(overrides, severity):
    assert tal(**overrides).severity == severity


@pytest.mark.parametrize("edad", [36, 40, 120])
def test_tal_rejects_age_36_months_or_more(edad):
    with pytest.raises(DomainError):
        tal(edad_meses=edad)


def test_tal_just_below_ceiling_is_scored():
    assert tal(edad_meses=35.9).score == 3


def test_tal_invalid_enum_is_domain_error():
    with pytest.raises(DomainError):
        tal(sibilancias="muchas")
    with pytest.raises(DomainError):
        tal(frecuencia_respiratoria=-1)


def test_tal_accepts_model_instance():
    assert calculate_tal(TALParams(**TAL_BASE)).score == 3


@pytest.mark.parametrize(
    "param, levels",
    [
        ("sibilancias", list(TAL_WHEEZE)),
        ("uso_musc_accesorios", list(TAL_ACCESSORY)),
        ("cianosis", list(TAL_CYANOSIS)),
        ("nivel_conciencia", list(TAL_CONSCIOUSNESS)),
        ("frecuencia_respiratoria", list(range(10, 90, 5))),
    ],
)
def test_tal_monotonic_in_each_parameter(param, levels):
    scores = [tal(**{param: level}).score for level in levels]
    assert scores == sorted(scores)


# ---------------- Wood-Downes / Ferrés ----------------
def test_wood_downes_moderate():
    res = wd()
    assert res.score == 4
    assert res.severity == "moderado"
    assert res.interpretation == "Bronquiolitis moderada"


@pytest.mark.parametrize(
    "edad, fr, points",
    [
        (3, 59, 0),
        (3, 60, 1),
        (3, 79, 2),
        (3, 80, 3),
        (8, 49, 0),
        (8, 55, 1),
        (12, 39, 0),
        (12, 45, 1),
        (24, 61, 3),
    ],
)
def test_wood_downes_respiratory_rate_by_age(edad, fr, points):
    base = wd(edad_meses=edad, frecuencia_respiratoria=0).score
    assert wd(edad_meses=edad, frecuencia_respiratoria=fr).score - base == points


@pytest.mark.parametrize(
    "edad, fc, points",
    [(3, 159, 0), (3, 180, 2), (7, 150, 1), (7, 190, 3), (13, 139, 0), (13, 159, 1)],
)
def test_wood_downes_heart_rate_by_age(edad, fc, points):
    base = wd(edad_meses=edad, frecuencia_cardiaca=0).score
    assert wd(edad_meses=edad, frecuencia_cardiaca=fc).score - base == points


def test_wood_downes_mild_and_critical():
    assert wd(frecuencia_respiratoria=40, frecuencia_cardiaca=120, tiraje="ausente").severity == "leve"
    res = wd(
        frecuencia_respiratoria=90,
        frecuencia_cardiaca=210,
        cianosis="fio2_40",
        tiraje="grave",
        sibilancias="insp_y_esp_audibles",
    )
    assert res.severity == "crítico"
    assert res.score == 15


@pytest.mark.parametrize(
    "param, levels",
    [
        ("cianosis", list(WD_CYANOSIS)),
        ("tiraje", list(WD_RETRACTION)),
        ("sibilancias", list(WD_WHEEZE)),
        ("frecuencia_respiratoria", list(range(20, 100, 5))),
        ("frecuencia_cardiaca", list(range(80, 230, 10))),
    ],
)
def test_wood_downes_monotonic_in_each_parameter(param, levels):
    scores = [wd(**{param: level}).score for level in levels]
    assert scores == sorted(scores)


def test_calculate_score_dispatch():
    assert calculate_score("tal", TAL_BASE).score == 3
    assert calculate_score("wood_downes", WD_BASE).score == 4
    with pytest.raises(DomainError):
        calculate_score("silverman", {})
