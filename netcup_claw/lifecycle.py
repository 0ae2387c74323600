"""
lifecycle.py
Start / stop / status for one long-running background process
(a kubectl port-forward, an SSH tunnel) across independent CLI invocations.

Nothing is kept in memory between invocations: every call re-reads the
StateRecord and the OS pid is the only handle on the process.

    stopped ──start──▶ starting ──launched, alive after grace──▶ running
                          │                                        │
                          └── launch error / died in grace ──▶ failed ◀── status finds pid dead
    running / starting / failed ──stop──▶ stopped
"""
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional

from netcup_claw.errors import EarlyExitError, LaunchError, PortInUseError
from netcup_claw.process import ProcessControl, default_process_control
from netcup_claw.readiness import is_listening
from netcup_claw.state import LifecycleState, StateRecord, StateStore

log = logging.getLogger(__name__)

GRACE_PERIOD   = 0.2
LOG_TAIL_BYTES = 2048

_ACTIVE = (LifecycleState.RUNNING, LifecycleState.STARTING)


def read_log_tail(path, max_bytes: int = LOG_TAIL_BYTES) -> str:
    """Return at most the last max_bytes of a log file, stripped. Missing file -> ''."""
    if max_bytes <= 0 or not path:
        return ""
    try:
        with open(path, "rb") as f:
            f.seek(0, 2)
            size = f.tell()
            f.seek(max(0, size - max_bytes))
            data = f.read(max_bytes)
    except OSError:
        return ""
    if size > max_bytes:
        # the cut may land inside a multi-byte character
        data = data.lstrip(bytes(range(0x80, 0xC0)))
    return data.decode("utf-8", errors="ignore").strip()


class LifecycleManager:
    """
    Manages one detached process identified by `store.key`.

    `command` is the argv handed to the ProcessControl on start; the manager
    itself has no platform or target specific logic.
    """

    def __init__(
        self,
        name: str,
        store: StateStore,
        local_port: str,
        command: List[str],
        process: Optional[ProcessControl] = None,
        grace_period: float = GRACE_PERIOD,
        tail_bytes: int = LOG_TAIL_BYTES,
        port_probe: Callable[[str], bool] = is_listening,
    ):
        self.name         = name
        self.store        = store
        self.local_port   = str(local_port)
        self.command      = list(command)
        self.process      = process or default_process_control()
        self.grace_period = grace_period
        self.tail_bytes   = tail_bytes
        self.port_probe   = port_probe
        self.launched     = False  # set by the last start() that spawned a process

    @property
    def log_file(self) -> Path:
        return self.store.log_path

    def _write(self, state: LifecycleState, pid: int = 0, log_file: str = ""):
        self.store.write(StateRecord(
            state=state, pid=pid, local_port=self.local_port, log_file=log_file,
        ))

    def start(self) -> StateRecord:
        """
        Start the process unless it is already running.

        Idempotent: a live pid recorded as running/starting is returned as-is
        and nothing is launched. Raises PortInUseError if something else
        already listens on the local port, LaunchError if the process cannot
        be spawned, EarlyExitError if it dies within the grace period.
        """
        self.launched = False
        with self.store.lock():
            current = self.store.read()
            if current and current.state in _ACTIVE and self.process.is_alive(current.pid):
                log.debug("%s already running (pid %d)", self.name, current.pid)
                return current

            if self.port_probe(self.local_port):
                raise PortInUseError(self.local_port)

            log_file = str(self.log_file)
            self._write(LifecycleState.STARTING, log_file=log_file)

            try:
                pid = self.process.launch(self.command, log_file)
            except LaunchError as e:
                self._write(LifecycleState.FAILED, log_file=log_file)
                raise LaunchError(
                    f"failed to start {self.name} on local port {self.local_port}: {e}"
                ) from e

            self.launched = True
            self._write(LifecycleState.RUNNING, pid, log_file)

            # Catches bad args / missing binary / auth refused, not slow failures.
            time.sleep(self.grace_period)

            if not self.process.is_alive(pid):
                self._write(LifecycleState.FAILED, pid, log_file)
                raise EarlyExitError(self.name, pid, read_log_tail(log_file, self.tail_bytes))

            log.debug("%s running (pid %d)", self.name, pid)
            return StateRecord(LifecycleState.RUNNING, pid, self.local_port, log_file)

    def stop(self):
        """
        Terminate the tracked process and record `stopped`.

        A missing record or one already stopped is a no-op and writes
        nothing. A pid that is already gone counts as stopped.
        """
        if self.store.read() is None:
            return

        with self.store.lock():
            current = self.store.read()
            if current is None or current.state == LifecycleState.STOPPED:
                return

            if current.pid > 0:
                self.process.terminate(current.pid)

            self._write(LifecycleState.STOPPED, log_file=current.log_file)
            log.debug("%s stopped (was pid %d)", self.name, current.pid)

    def status(self) -> StateRecord:
        """
        Current status, reconciled against the OS.

        Not a pure read: a record saying `running` whose pid is dead is
        rewritten as `failed` (pid and log kept) before being returned.
        """
        current = self.store.read()
        if current is None:
            return StateRecord(LifecycleState.STOPPED, 0, self.local_port, "")

        if current.state == LifecycleState.STOPPED:
            return replace(current, pid=0, local_port=current.local_port or self.local_port)

        if current.state != LifecycleState.RUNNING or self.process.is_alive(current.pid):
            return current

        with self.store.lock():
            # another invocation may have restarted it since the read above
            latest = self.store.read()
            if latest is None:
                return StateRecord(LifecycleState.STOPPED, 0, self.local_port, "")
            if latest.state != LifecycleState.RUNNING or latest.pid != current.pid:
                return latest
            failed = replace(
                latest,
                state=LifecycleState.FAILED,
                local_port=latest.local_port or self.local_port,
            )
            self.store.write(failed)

        log.debug("%s pid %d is gone, marked failed", self.name, current.pid)
        return failed

    def log_tail(self, max_bytes: Optional[int] = None) -> str:
        budget = self.tail_bytes if max_bytes is None else max_bytes
        return read_log_tail(self.log_file, budget)
