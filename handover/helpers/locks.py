import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, Tuple


class KeyedLocks:
    """Locks exclusivos por clave (RUT, cama) creados bajo demanda.

    Una entrada se elimina cuando nadie la usa, así el registro no crece con cada
    paciente importado. Debe usarse siempre desde el mismo event loop.
    """

    def __init__(self):
        self._locks: Dict[Hashable, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


def patient_key(rut: str) -> Tuple[str, str]:
    return ("rut", rut)


def bed_key(room: str, bed: int) -> Tuple[str, str, int]:
    return ("cama", room, bed)


class WardLocks:
    """Registro compartido entre la conciliación y las operaciones manuales de camas.

    Orden de adquisición fijo: primero el paciente, luego la cama destino.
    """

    def __init__(self):
        self.keys = KeyedLocks()

    @asynccontextmanager
    async def patient_and_bed(self, rut: str, room: str, bed: int):
        async with self.keys.hold(patient_key(rut)):
            async with self.keys.hold(bed_key(room, bed)):
                yield

    @asynccontextmanager
    async def patient(self, rut: str):
        async with self.keys.hold(patient_key(rut)):
            yield
