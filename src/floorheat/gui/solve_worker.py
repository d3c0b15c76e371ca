from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable, Optional

from PySide6.QtCore import QObject, QThread, QTimer, Signal, Slot

from floorheat.fem.analyzer import FloorFemAnalyzer
from floorheat.fem.pipeline import SolveResult, solve, with_auto_return
from floorheat.model import SolveRequest

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 150
DEFAULT_CACHE_SIZE = 32


class SolveWorker(QObject):
    progress = Signal(float)
    finished = Signal(int, object)
    error = Signal(int, str)

    def __init__(
        self,
        request: SolveRequest,
        generation: int,
        *,
        analyzer: Optional[FloorFemAnalyzer] = None,
    ) -> None:
        super().__init__()
        self._request = request
        self._generation = generation
        self._analyzer = analyzer

    @property
    def request(self) -> SolveRequest:
        return self._request

    @property
    def generation(self) -> int:
        return self._generation

    @Slot()
    def run(self) -> None:
        try:
            result = solve(
                self._request,
                analyzer=self._analyzer,
                progress_callback=self._handle_progress,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Floor solve failed: {exc}")
            self.error.emit(self._generation, str(exc))
            return
        self.finished.emit(self._generation, result)

    def _handle_progress(self, value: float) -> None:
        self.progress.emit(max(0.0, min(1.0, value)))


class SolveController(QObject):
    """
    Runs floor solves off the caller's thread as parameters change.

    Requests are debounced, at most one solve runs at a time, results that
    belong to an older request are dropped and the newest pending request is
    started once the running solve ends.  In auto-return mode a result whose
    hydraulic return estimate moved is followed by a re-solve with the new
    return temperature.
    """

    result_ready = Signal(object)
    solve_failed = Signal(str)
    progress = Signal(float)
    return_temperature_changed = Signal(float)

    def __init__(
        self,
        parent: Optional[QObject] = None,
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        cache_size: int = DEFAULT_CACHE_SIZE,
        analyzer_factory: Optional[Callable[[], FloorFemAnalyzer]] = None,
    ) -> None:
        super().__init__(parent)
        self._analyzer_factory = analyzer_factory or FloorFemAnalyzer
        self._cache: "OrderedDict[SolveRequest, SolveResult]" = OrderedDict()
        self._cache_size = max(0, int(cache_size))
        self._generation = 0
        self._pending: Optional[SolveRequest] = None
        self._worker: Optional[SolveWorker] = None
        self._worker_thread: Optional[QThread] = None
        self._latest: Optional[SolveResult] = None

        self._debounce = QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(max(0, int(debounce_ms)))
        self._debounce.timeout.connect(self._on_debounce_timeout)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_busy(self) -> bool:
        return self._worker is not None

    @property
    def latest_result(self) -> Optional[SolveResult]:
        return self._latest

    def submit(self, request: SolveRequest) -> int:
        """Queue ``request``; any earlier request still waiting or running becomes stale."""
        self._generation += 1
        self._pending = request
        self._debounce.start()
        return self._generation

    def cached_result(self, request: SolveRequest) -> Optional[SolveResult]:
        return self._cache.get(request)

    def shutdown(self) -> None:
        self._debounce.stop()
        self._pending = None
        if self._worker_thread is not None:
            self._worker_thread.quit()
            self._worker_thread.wait()

    # ----------------------------------------------------------------- internals
    def _on_debounce_timeout(self) -> None:
        if self._worker is not None:
            # Picked up in _on_worker_thread_finished.
            return
        self._start_pending()

    def _start_pending(self) -> None:
        request = self._pending
        if request is None:
            return
        self._pending = None
        generation = self._generation

        cached = self._cache.get(request)
        if cached is not None:
            self._cache.move_to_end(request)
            logger.debug(f"Serving generation {generation} from cache")
            self._deliver(generation, cached)
            return

        logger.debug(f"Starting floor solve for generation {generation}")
        self._worker_thread = QThread(self)
        self._worker = SolveWorker(request, generation, analyzer=self._analyzer_factory())
        self._worker.moveToThread(self._worker_thread)
        self._worker_thread.started.connect(self._worker.run)
        self._worker.progress.connect(self._on_worker_progress)
        self._worker.finished.connect(self._on_worker_finished)
        self._worker.error.connect(self._on_worker_error)
        self._worker.finished.connect(self._worker_thread.quit)
        self._worker.error.connect(self._worker_thread.quit)
        self._worker_thread.finished.connect(self._on_worker_thread_finished)
        self._worker_thread.start()

    def _on_worker_progress(self, value: float) -> None:
        self.progress.emit(value)

    def _on_worker_finished(self, generation: int, result: SolveResult) -> None:
        if self._worker is not None:
            self._remember(self._worker.request, result)
        self._deliver(generation, result)

    def _on_worker_error(self, generation: int, message: str) -> None:
        if generation != self._generation:
            logger.debug(f"Dropping error from stale generation {generation}")
            return
        self.solve_failed.emit(message)

    def _on_worker_thread_finished(self) -> None:
        if self._worker:
            self._worker.deleteLater()
        if self._worker_thread:
            self._worker_thread.deleteLater()
        self._worker_thread = None
        self._worker = None
        if self._pending is not None and not self._debounce.isActive():
            self._start_pending()

    def _deliver(self, generation: int, result: SolveResult) -> None:
        if generation != self._generation:
            logger.debug(f"Dropping stale result of generation {generation} (current {self._generation})")
            return
        self._latest = result
        self.result_ready.emit(result)

        follow_up = with_auto_return(result)
        if follow_up is not None:
            logger.info(f"Auto-return: feeding back Tr = {follow_up.return_temp_c:.2f} °C")
            self.return_temperature_changed.emit(follow_up.return_temp_c)
            self.submit(follow_up)

    def _remember(self, request: SolveRequest, result: SolveResult) -> None:
        if self._cache_size == 0:
            return
        self._cache[request] = result
        self._cache.move_to_end(request)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
