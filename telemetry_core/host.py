from __future__ import annotations
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Sequence

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    output: str
    returncode: int = -1


class HostExecutor:
    """
    Small dedicated pool for host calls that spawn OS processes.

    Keeps `sc`, `systemctl`, `fsutil`, `df` and friends off the request
    threads and bounds each call with a timeout. A missing binary, a timeout
    or an OS error comes back as CommandResult(ok=False, ...) with the reason
    in `output`.
    """

    def __init__(self, workers: int = 2, timeout: float = 10.0):
        self.timeout = float(timeout)
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(workers)), thread_name_prefix="host-io")

    def run(self, args: Sequence[str]) -> CommandResult:
        fut = self._pool.submit(
            subprocess.run,
            list(args),
            capture_output=True,
            text=True,
            errors="replace",
            timeout=self.timeout,
        )
        try:
            proc = fut.result(timeout=self.timeout + 1.0)
        except FileNotFoundError:
            return CommandResult(ok=False, output=f"unavailable: {args[0]} not found")
        except (subprocess.TimeoutExpired, FutureTimeout):
            log.warning("host command timed out after %.1fs: %s", self.timeout, " ".join(args))
            return CommandResult(ok=False, output=f"unavailable: {args[0]} timed out")
        except OSError as e:
            log.warning("host command failed: %s (%s)", " ".join(args), e)
            return CommandResult(ok=False, output=f"unavailable: {e}")
        return CommandResult(ok=True, output=proc.stdout or proc.stderr or "", returncode=proc.returncode)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
