import asyncio
import time
from pathlib import Path

from watchdog.events import PatternMatchingEventHandler
from watchdog.observers import Observer


class FileWatcher:
    def __init__(self, inbox: str, glob: str, on_file_async, loop: asyncio.AbstractEventLoop):
        self.inbox = Path(inbox)
        self.inbox.mkdir(parents=True, exist_ok=True)
        self.loop = loop
        self.on_file_async = on_file_async
        # Excel deja archivos temporales "~$planilla.xlsx" mientras está abierto
        self.handler = PatternMatchingEventHandler(
            patterns=[glob], ignore_patterns=["*~$*"], ignore_directories=True
        )

        def _submit(path: Path):
            # Si el archivo ya no existe, no hay nada que leer (pudo haberse movido)
            if not path.exists():
                return
            # Espera breve hasta que el tamaño se estabilice (copia en curso)
            last = -1
            for _ in range(20):
                try:
                    size = path.stat().st_size
                except FileNotFoundError:
                    return
                if size == last and size > 0:
                    break
                last = size
                time.sleep(0.1)

            # Ejecutar la corrutina en el loop principal (thread-safe)
            asyncio.run_coroutine_threadsafe(self.on_file_async(path), self.loop)

        # Usa src en created, dest en moved
        self.handler.on_created = lambda e: _submit(Path(e.src_path))
        self.handler.on_moved = lambda e: _submit(Path(e.dest_path))

        self.observer = Observer()

    def start(self):
        self.observer.schedule(self.handler, str(self.inbox), recursive=False)
        self.observer.start()

    def stop(self):
        self.observer.stop()
        self.observer.join()
