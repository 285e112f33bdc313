# flake8: noqa
from datetime import date, datetime

import pytest
from openpyxl import Workbook

from handover.commons.errors import StructuralParseError
from handover.helpers.workbook_reader import read_sheet_rows
from handover.parsers.base import ABSENT, build_column_map, find_header_row
from handover.parsers.handover_sheet import parse_bed, parse_handover_rows

TODAY = date(2025, 9, 15)

HEADER = [
    "Cama",
    "Nombre",
    "Edad",
    "RUT",
    "Diagnósticos",
    "Fecha ingreso",
    "Panel viral",
    "Oxígeno",
    "Score",
    "Plan / ATB",
    "Pendientes",
]

ANA = ["501-2", "Ana Pérez", "6 meses", "11.111.111-1", "Bronquiolitis", "01-03-2024", None, "CN 2L", None, None, None]


def sheet(*data_rows):
    return [["ENTREGA DE TURNO SALA 5", None], HEADER, *data_rows]


def test_parse_bed():
    assert parse_bed("501-2") == ("501", 2)
    assert parse_bed("501") == ("501", 1)
    assert parse_bed(" 502 / 3 ") == ("502", 3)
    assert parse_bed("pasillo norte") is None
    assert parse_bed(None) is None


def test_header_detection_and_column_map():
    rows = sheet(ANA)
    assert find_header_row(rows, 20) == 1
    cols = build_column_map(HEADER)
    assert cols["bed"] == 0 and cols["rut"] == 3 and cols["admission_date"] == 5
    assert cols["plan"] == 9 and cols["pending"] == 10


def test_diagnosis_of_admission_header_is_not_admission_date():
    cols = build_column_map(["Cama", "Diagnóstico de ingreso", "Fecha de ingreso"])
    assert cols["diagnoses"] == 1
    assert cols["admission_date"] == 2
    assert cols["oxygen"] == ABSENT


def test_pending_header_mentioning_patient_is_not_name():
    cols = build_column_map(["Cama", "Paciente", "Pendientes paciente", "RUT"])
    assert cols["name"] == 1
    assert cols["pending"] == 2


def test_reference_record():
    result = parse_handover_rows(sheet(ANA), today=TODAY)
    assert result.header_row == 2
    assert len(result.records) == 1
    rec = result.records[0]
    assert rec.row_index == 3
    assert (rec.room, rec.bed) == ("501", 2)
    assert rec.bed_label == "501-2"
    assert rec.name == "Ana Pérez"
    assert rec.rut == "11.111.111-1"
    assert rec.diagnoses == ["Bronquiolitis"]
    assert rec.admission_date == date(2024, 3, 1)
    assert rec.oxygen.to_dict() == {"type": "CN", "flow": 2}
    assert rec.date_of_birth == date(2025, 3, 15)
    assert rec.dob_source == "age"


def test_missing_header_is_structural_error():
    with pytest.raises(StructuralParseError):
        parse_handover_rows([["Nombre", "RUT"], ["Ana", "1-9"]], today=TODAY)


def test_header_beyond_scan_window_is_structural_error():
    rows = [[None]] * 5 + [HEADER, ANA]
    with pytest.raises(StructuralParseError):
        parse_handover_rows(rows, today=TODAY, header_scan_rows=3)


def test_each_data_row_is_record_or_skip():
    rows = sheet(
        ANA,
        [None] * len(HEADER),
        [None, "Sin Cama", "2 años", "2-7"],
        ["503", None, "2 años", "2-7"],
        ["504", "Sin Rut", "2 años", None],
        ["pasillo norte", "Pedro", "2 años", "3-5"],
        ["505-1", "Luis Soto", "3 años 2 meses", "22.222.222-2"],
    )
    result = parse_handover_rows(rows, today=TODAY)
    assert len(result.records) + len(result.skipped) == result.total_data_rows == 7
    assert [r.name for r in result.records] == ["Ana Pérez", "Luis Soto"]
    reasons = {s.row_index: s.reason for s in result.skipped}
    assert reasons[4] == "fila vacía"
    assert reasons[5] == "cama vacía"
    assert reasons[6] == "nombre vacío"
    assert reasons[7] == "RUT vacío"
    assert reasons[8].startswith("cama no reconocible")


def test_birthdate_precedence_and_warnings():
    rows = sheet(
        ["501-1", "Aymara Urrea (27/04/2025)", "3 meses", "3-3", None, "14/08/2025", None, "oxigenoterapia rara"],
        ["501-2", "Sin Edad", None, "4-4", None, None],
    )
    result = parse_handover_rows(rows, today=TODAY)
    explicit, placeholder = result.records
    assert explicit.name == "Aymara Urrea"
    assert (explicit.date_of_birth, explicit.dob_source) == (date(2025, 4, 27), "explicit")
    assert explicit.oxygen is None
    assert (placeholder.date_of_birth, placeholder.dob_source) == (date(2000, 1, 1), "placeholder")
    assert placeholder.admission_date == TODAY

    messages = [(w.row_index, w.message) for w in result.warnings]
    assert any(row == 3 and "O2" in msg for row, msg in messages)
    assert any(row == 4 and "2000-01-01" in msg for row, msg in messages)
    assert any(row == 4 and "fecha de ingreso" in msg for row, msg in messages)


def test_implausible_age_falls_back_to_placeholder():
    rows = sheet(
        ["501-1", "Ana", "2025 años", "1-9", "Asma", "01-09-2025"],
        ["501-2", "Luis", "99999999 días", "2-7", "Asma", "01-09-2025"],
        ["501-3", "Sofía", "3 años", "3-5", "Asma", "01-09-2025"],
    )
    result = parse_handover_rows(rows, today=TODAY)
    assert [r.name for r in result.records] == ["Ana", "Luis", "Sofía"]
    ana, luis, sofia = result.records
    assert (ana.date_of_birth, ana.dob_source) == (date(2000, 1, 1), "placeholder")
    assert luis.dob_source == "placeholder"
    assert (sofia.date_of_birth, sofia.dob_source) == (date(2022, 9, 15), "age")
    flagged = {w.row_index for w in result.warnings if "edad no plausible" in w.message}
    assert flagged == {3, 4}


def test_read_workbook_and_parse(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.append(["Entrega de turno"])
    ws.append(HEADER)
    ws.append([501, "Ana Pérez", "6 meses", "11.111.111-1", "Bronquiolitis", datetime(2024, 3, 1), "VRS (+)", "CN 2L", "TAL 4", "Ampicilina D3/7", "Control Rx"])
    path = tmp_path / "entrega.xlsx"
    wb.save(path)

    rows = read_sheet_rows(path)
    result = parse_handover_rows(rows, today=TODAY)
    rec = result.records[0]
    assert (rec.room, rec.bed) == ("501", 1)
    assert rec.admission_date == date(2024, 3, 1)
    assert rec.viral_panel == "VRS (+)"
    assert rec.respiratory_score == "TAL 4"
    assert rec.plan == "Ampicilina D3/7"
    assert rec.pending_tasks == "Control Rx"


def test_read_workbook_invalid_file(tmp_path):
    path = tmp_path / "roto.xlsx"
    path.write_text("esto no es un xlsx", encoding="utf-8")
    with pytest.raises(StructuralParseError):
        read_sheet_rows(path)
