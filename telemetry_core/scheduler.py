from __future__ import annotations
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

log = logging.getLogger(__name__)


class PeriodicScheduler:
    """
    One repeating timer per telemetry domain.

    Every `interval_sec` each domain's thread calls `task(domain)` once and
    goes back to waiting; the loop only ends when stop() is called. A failing
    pass is logged and the next tick runs as usual.
    """

    def __init__(
        self,
        domains: Iterable[str],
        task: Callable[[str], None],
        *,
        interval_sec: float = 3600.0,
    ):
        self.domains: List[str] = list(domains)
        self.task = task
        self.interval = float(interval_sec)
        self._stop = threading.Event()
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self.ticks: Dict[str, int] = {dom: 0 for dom in self.domains}
        self.failures: Dict[str, int] = {dom: 0 for dom in self.domains}

    def start(self) -> None:
        if self.is_running():
            return
        self._stop.clear()
        for dom in self.domains:
            t = threading.Thread(target=self._loop, args=(dom,), name=f"sampler-{dom}", daemon=True)
            self._threads[dom] = t
            t.start()
        log.info("scheduler started: %d domains every %.0fs", len(self.domains), self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal every loop and wait for in-flight passes. Threads still alive after `timeout` stay tracked."""
        self._stop.set()
        for t in self._threads.values():
            t.join(timeout=timeout)
        self._threads = {dom: t for dom, t in self._threads.items() if t.is_alive()}
        if self._threads:
            log.warning("scheduler stop: %d passes still running", len(self._threads))

    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads.values())

    def status(self) -> Dict[str, object]:
        with self._lock:
            return {
                "running": self.is_running(),
                "interval_sec": self.interval,
                "ticks": dict(self.ticks),
                "failures": dict(self.failures),
            }

    def _loop(self, domain: str) -> None:
        # wait first: the current state was sampled when the owner was provisioned
        while not self._stop.wait(self.interval):
            try:
                self.task(domain)
            except Exception:
                log.exception("scheduled %s pass failed", domain)
                with self._lock:
                    self.failures[domain] += 1
            with self._lock:
                self.ticks[domain] += 1
