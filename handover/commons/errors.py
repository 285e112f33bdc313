"""
Taxonomía de errores del servicio de entrega de turno.

- StructuralParseError: la planilla no tiene fila de encabezado reconocible (fatal para la importación).
- ReconciliationError: falla de un registro durante la conciliación (no fatal para el lote).
- DomainError: precondición clínica violada en el motor de reglas (fatal para esa evaluación).
"""


class HandoverError(Exception):
    """Base de todos los errores propios del servicio."""


class StructuralParseError(HandoverError):
    pass


class ReconciliationError(HandoverError):
    pass


class BedOccupiedError(ReconciliationError):
    def __init__(self, room: str, bed: int):
        super().__init__(f"La cama {room}-{bed} ya está ocupada")
        self.room = room
        self.bed = bed


class StoreIntegrityError(HandoverError):
    """El almacén rechazó una escritura que rompería un invariante de camas."""


class DomainError(HandoverError, ValueError):
    pass
