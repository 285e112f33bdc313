from pathlib import Path
from typing import Any, List, Optional, Union

from openpyxl import load_workbook

from handover.commons.errors import StructuralParseError


def read_sheet_rows(path: Union[str, Path], sheet: Optional[str] = None) -> List[List[Any]]:
    """Filas de la hoja (por defecto la primera) como listas de valores crudos."""
    try:
        wb = load_workbook(filename=str(path), read_only=True, data_only=True)
    except FileNotFoundError:
        raise
    except Exception as ex:
        raise StructuralParseError(f"No se pudo abrir la planilla {Path(path).name}: {ex}") from ex
    try:
        if sheet is not None:
            if sheet not in wb.sheetnames:
                raise StructuralParseError(f"La planilla no tiene hoja {sheet!r}")
            ws = wb[sheet]
        else:
            ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise StructuralParseError("La planilla no tiene hojas")
        return [list(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()
