# flake8: noqa
from datetime import date

import pytest

from handover.commons.errors import DomainError
from handover.rules.tracking import (
    age_in_months,
    age_in_months_for_scoring,
    antibiotic_current_day,
    antibiotic_end_date,
    antibiotic_label,
    antibiotic_progress,
    days_hospitalized,
    is_ended,
    is_ending_soon,
    pediatric_age_label,
    planned_days_from_end,
    refresh_antibiotics,
    score_delta,
    score_trend,
)
from handover.stores.models import AntibioticTracking, RespiratoryScoreTracking

TODAY = date(2025, 9, 15)


def test_antibiotic_progress_is_clamped():
    assert antibiotic_progress(3, 7) == pytest.approx(42.857, rel=1e-3)
    assert antibiotic_progress(10, 7) == 100.0
    assert antibiotic_progress(-2, 7) == 0.0
    with pytest.raises(DomainError):
        antibiotic_progress(1, 0)


@pytest.mark.parametrize(
    "current, planned, soon, ended",
    [(3, 7, False, False), (6, 7, True, False), (7, 7, True, True), (9, 7, True, True)],
)
def test_ending_soon_and_ended(current, planned, soon, ended):
    assert is_ending_soon(current, planned) is soon
    assert is_ended(current, planned) is ended


def test_ending_soon_includes_finished_courses():
    # quedan 0 o menos días: sigue marcado, y is_ended permite separarlo
    assert is_ending_soon(8, 7) and is_ended(8, 7)
    assert [c for c in range(1, 10) if is_ending_soon(c, 7) and not is_ended(c, 7)] == [6]


def test_day_count_and_end_date():
    start = date(2025, 9, 13)
    assert antibiotic_current_day(start, TODAY) == 3
    assert antibiotic_current_day(TODAY, TODAY) == 1
    assert antibiotic_end_date(start, 7) == date(2025, 9, 19)
    assert planned_days_from_end(start, date(2025, 9, 19)) == 7
    with pytest.raises(DomainError):
        planned_days_from_end(start, date(2025, 9, 1))
    assert antibiotic_label(3, 7) == "D3/7"


def test_refresh_antibiotics():
    items = [
        AntibioticTracking(name="Ampicilina", start_date=date(2025, 9, 13), planned_days=7),
        AntibioticTracking(name="Ceftriaxona", start_date=date(2025, 9, 10), end_date=date(2025, 9, 16)),
    ]
    amp, cef = refresh_antibiotics(items, today=TODAY)
    assert (amp.current_day, amp.end_date) == (3, date(2025, 9, 19))
    assert (cef.current_day, cef.planned_days) == (6, 7)
    assert is_ending_soon(cef.current_day, cef.planned_days)
    # la lista original no se modifica
    assert items[0].current_day is None


def test_refresh_without_plan_is_domain_error():
    with pytest.raises(DomainError):
        refresh_antibiotics([AntibioticTracking(name="Vancomicina", start_date=TODAY)], today=TODAY)


@pytest.mark.parametrize(
    "at_admission, current, delta, trend",
    [(8, 5, -3, "mejoria"), (5, 8, 3, "empeoramiento"), (6, 6, 0, "sin_cambio")],
)
def test_score_trend_is_sign_of_delta(at_admission, current, delta, trend):
    t = RespiratoryScoreTracking(at_admission=at_admission, current=current, date_measured=TODAY)
    assert score_delta(t) == delta
    assert score_trend(t) == trend


def test_days_hospitalized():
    assert days_hospitalized(date(2025, 9, 10), today=TODAY) == 5
    assert days_hospitalized(date(2025, 9, 10), discharge_date=date(2025, 9, 12), today=TODAY) == 2


@pytest.mark.parametrize(
    "dob, label, short",
    [
        (TODAY, "Recién nacido", "RN"),
        (date(2025, 9, 14), "1 día", "1d"),
        (date(2025, 8, 18), "28 días", "28d"),
        (date(2025, 6, 15), "3 meses", "3m"),
        (date(2024, 8, 15), "13 meses", "13m"),
        (date(2023, 9, 15), "24 meses", "24m"),
        (date(2022, 9, 15), "3 años", "3a"),
        (date(2022, 7, 15), "3 años y 2 meses", "3a 2m"),
        (date(2021, 8, 15), "4 años y 1 mes", "4a 1m"),
    ],
)
def test_pediatric_age_label(dob, label, short):
    assert pediatric_age_label(dob, TODAY) == label
    assert pediatric_age_label(dob, TODAY, short=True) == short


def test_pediatric_age_label_rejects_future_birthdate():
    with pytest.raises(DomainError):
        pediatric_age_label(date(2025, 10, 1), TODAY)


def test_age_in_months():
    assert age_in_months(date(2025, 3, 15), TODAY) == 6
    assert age_in_months(date(2025, 3, 16), TODAY) == 5


def test_placeholder_birthdate_cannot_be_scored():
    with pytest.raises(DomainError):
        age_in_months_for_scoring(date(2000, 1, 1), "placeholder", TODAY)
    assert age_in_months_for_scoring(date(2025, 3, 15), "age", TODAY) == 6
