"""
Notificación de progreso del motor.

El callback es puramente observacional: sus errores se registran y no
detienen la búsqueda. En modo asíncrono los eventos pasan por una cola que
consume un único hilo, de modo que un consumidor lento no frena las
generaciones y el orden de los eventos se conserva. Al cerrar se espera a que
la cola se vacíe; con ``close_timeout`` la espera queda acotada y los eventos
pendientes se descartan al terminar el proceso.
"""
import logging
import queue
import threading
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str, int, Optional[float]], None]
ProgressEvent = Tuple[float, str, int, Optional[float]]

_STOP = object()


class ProgressReporter:
    def __init__(
        self,
        callback: Optional[ProgressCallback],
        asynchronous: bool = False,
        close_timeout: Optional[float] = None,
    ):
        self.callback = callback
        self.close_timeout = close_timeout
        self.asynchronous = asynchronous and callback is not None
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        if self.asynchronous:
            self._thread = threading.Thread(target=self._drain, name="horarios-progress", daemon=True)
            self._thread.start()

    def report(self, percent: float, phase: str, generation: int, best_fitness: Optional[float]) -> None:
        if self.callback is None:
            return
        event = (float(percent), phase, int(generation), best_fitness)
        if self.asynchronous:
            self._queue.put(event)
        else:
            self._deliver(event)

    def close(self, timeout: Optional[float] = None) -> None:
        if self._thread is None:
            return
        if timeout is None:
            timeout = self.close_timeout
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(
                "El callback de progreso sigue ocupado tras %.1fs; quedan %d eventos sin entregar",
                timeout, self._queue.qsize(),
            )
        self._thread = None

    def __enter__(self) -> "ProgressReporter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _deliver(self, event: ProgressEvent) -> None:
        try:
            self.callback(*event)
        except Exception:
            logger.exception("El callback de progreso falló en la generación %s", event[2])

    def _drain(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                return
            self._deliver(event)
