# flake8: noqa
import asyncio
from datetime import date

import pytest
from openpyxl import Workbook

from handover.commons.types import PathsCfg, Settings
from handover.services.import_service import HandoverImportService, generate_archive_filename
from handover.services.reconciler import HandoverReconciler
from handover.stores.memory import InMemoryStore

HEADER = ["Cama", "Nombre", "Edad", "RUT", "Diagnósticos", "Fecha ingreso", "Oxígeno"]


def write_sheet(path, *rows, header=HEADER):
    wb = Workbook()
    ws = wb.active
    ws.append(["Entrega de turno Sala 5"])
    if header:
        ws.append(header)
    for r in rows:
        ws.append(r)
    wb.save(path)
    return path


@pytest.fixture
def env(tmp_path):
    settings = Settings(
        paths=PathsCfg(
            inbox=str(tmp_path / "inbox"),
            archive=str(tmp_path / "archive"),
            error=str(tmp_path / "error"),
            logs_root=str(tmp_path / "logs"),
        )
    )
    (tmp_path / "inbox").mkdir()
    store = InMemoryStore()
    reconciler = HandoverReconciler(store.patients, store.admissions, store.beds)
    return tmp_path, store, HandoverImportService(reconciler, settings)


def test_archive_filename_is_sanitized():
    name = generate_archive_filename("/x/entrega turno (sala 5).xlsx", "ok")
    assert name.endswith("_ok_entrega_turno__sala_5_.xlsx")


@pytest.mark.asyncio
async def test_import_file_reports_records_and_skips(env):
    tmp_path, store, svc = env
    path = write_sheet(
        tmp_path / "inbox" / "turno.xlsx",
        ["501-2", "Ana Pérez", "6 meses", "11.111.111-1", "Bronquiolitis", "01-03-2024", "CN 2L"],
        ["502-1", None, "1 año", "2-7", "Asma", "02-03-2024", "AMB"],
    )
    outcome = await svc.import_file(path, today=date(2025, 9, 15))
    data = outcome.as_dict()
    assert data["success"] == 1
    assert data["errors"] == []
    assert data["skipped"] == [{"row": 4, "reason": "nombre vacío"}]
    assert data["total_data_rows"] == 2
    assert len(store.patients) == 1
    # import_file no mueve la planilla
    assert path.exists()


@pytest.mark.asyncio
async def test_backlog_archives_good_and_moves_bad_sheets(env):
    tmp_path, store, svc = env
    write_sheet(
        tmp_path / "inbox" / "a_turno.xlsx",
        ["501-1", "Ana Pérez", "6 meses", "1-9", "Bronquiolitis", "01-03-2024", "CN 1L"],
    )
    write_sheet(tmp_path / "inbox" / "b_sin_encabezado.xlsx", ["sin", "datos"], header=None)
    (tmp_path / "inbox" / "c_roto.xlsx").write_text("no es excel", encoding="utf-8")

    outcomes = await svc.process_backlog()

    assert len(outcomes) == 1
    assert outcomes[0].report.success == 1
    assert list((tmp_path / "inbox").iterdir()) == []
    archived = [p.name for p in (tmp_path / "archive").iterdir()]
    errored = sorted(p.name for p in (tmp_path / "error").iterdir())
    assert len(archived) == 1 and archived[0].endswith("_ok_a_turno.xlsx")
    assert len(errored) == 2
    assert any(n.endswith("_error_b_sin_encabezado.xlsx") for n in errored)
    assert any(n.endswith("_error_c_roto.xlsx") for n in errored)


@pytest.mark.asyncio
async def test_watch_mode_processes_backlog_then_stops(env):
    tmp_path, store, svc = env
    write_sheet(
        tmp_path / "inbox" / "turno.xlsx",
        ["501-1", "Ana Pérez", "6 meses", "1-9", "Bronquiolitis", "01-03-2024", "CN 1L"],
    )
    stop = asyncio.Event()
    stop.set()
    await svc.run_watch_mode(stop_event=stop)
    assert len(store.patients) == 1
    assert len(list((tmp_path / "archive").iterdir())) == 1


@pytest.mark.asyncio
async def test_file_watcher_submits_new_sheets(tmp_path):
    from handover.helpers.file_transport import FileWatcher

    seen = []
    arrived = asyncio.Event()

    async def on_file(path):
        seen.append(path.name)
        arrived.set()

    watcher = FileWatcher(str(tmp_path / "inbox"), "*.xlsx", on_file, asyncio.get_running_loop())
    watcher.start()
    try:
        (tmp_path / "inbox" / "~$abierta.xlsx").write_bytes(b"lock")
        write_sheet(tmp_path / "inbox" / "nueva.xlsx", ["501-1", "Ana Pérez", "6 meses", "1-9", "Asma", "01-03-2024", "AMB"])
        await asyncio.wait_for(arrived.wait(), timeout=10)
    finally:
        watcher.stop()
    assert "nueva.xlsx" in seen
    assert "~$abierta.xlsx" not in seen
