"""
state.py
On-disk record of a managed background process.

Each managed target gets a small JSON file under the runtime directory
($XDG_RUNTIME_DIR, else /tmp):

    netcup-claw-pf-openclaw-18789.json   {"state": "running", "pid": 4242,
                                          "local_port": "18789",
                                          "log_file": ".../netcup-claw-pf-openclaw-18789.log"}

The file is rewritten in full on every transition and is never deleted, so
the log path stays discoverable after a stop.
"""
import json
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from netcup_claw.errors import StateFileError
from netcup_claw.process import IS_WINDOWS

if IS_WINDOWS:
    import msvcrt
else:
    import fcntl

log = logging.getLogger(__name__)

PREFIX = "netcup-claw"
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class LifecycleState(str, Enum):
    STOPPED  = "stopped"
    STARTING = "starting"
    RUNNING  = "running"
    FAILED   = "failed"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class StateRecord:
    state:      LifecycleState
    pid:        int = 0
    local_port: str = ""
    log_file:   str = ""

    def to_dict(self) -> dict:
        data = {"state": self.state.value}
        if self.pid:
            data["pid"] = self.pid
        data["local_port"] = self.local_port
        data["log_file"] = self.log_file
        return data

    @classmethod
    def from_dict(cls, data) -> "StateRecord":
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        try:
            state = LifecycleState(data.get("state"))
        except ValueError:
            raise ValueError(f"unknown state {data.get('state')!r}") from None

        pid = data.get("pid", 0)
        if isinstance(pid, bool) or not isinstance(pid, int) or pid < 0:
            raise ValueError(f"invalid pid {pid!r}")

        local_port = data.get("local_port", "")
        if isinstance(local_port, int) and not isinstance(local_port, bool):
            local_port = str(local_port)
        log_file = data.get("log_file", "")
        if not isinstance(local_port, str) or not isinstance(log_file, str):
            raise ValueError("local_port and log_file must be strings")

        return cls(state=state, pid=pid, local_port=local_port, log_file=log_file)


def sanitize(value: str) -> str:
    """Replace anything that is not safe in a file name with '_'."""
    return _UNSAFE.sub("_", str(value))


def state_key(kind: str, *parts) -> str:
    return "-".join([PREFIX, kind] + [sanitize(p) for p in parts])


def runtime_dir() -> Path:
    xdg = os.environ.get("XDG_RUNTIME_DIR", "")
    if xdg:
        return Path(xdg)
    return Path(tempfile.gettempdir()) if IS_WINDOWS else Path("/tmp")


class StateStore:
    """Reads and writes the StateRecord for one key."""

    def __init__(self, key: str, directory: Optional[Path] = None):
        self.key = key
        self.directory = Path(directory) if directory is not None else runtime_dir()

    def path_for(self, suffix: str) -> Path:
        return self.directory / f"{self.key}{suffix}"

    @property
    def path(self) -> Path:
        return self.path_for(".json")

    @property
    def log_path(self) -> Path:
        return self.path_for(".log")

    @property
    def lock_path(self) -> Path:
        return self.path_for(".lock")

    def read(self) -> Optional[StateRecord]:
        """Return the stored record, or None if there is none yet."""
        try:
            raw = self.path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StateFileError(self.path, f"unreadable: {e}") from e

        try:
            return StateRecord.from_dict(json.loads(raw))
        except ValueError as e:
            raise StateFileError(self.path, f"corrupt: {e}") from e

    def write(self, record: StateRecord):
        """Atomically replace the stored record (temp file + rename, mode 0600)."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{self.key}.", suffix=".tmp")
        except OSError as e:
            raise StateFileError(self.path, f"cannot write: {e}") from e

        try:
            with os.fdopen(fd, "w") as f:
                json.dump(record.to_dict(), f)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise StateFileError(self.path, f"cannot write: {e}") from e

        log.debug("%s -> %s (pid %d)", self.key, record.state, record.pid)

    @contextmanager
    def lock(self):
        """
        Hold an exclusive advisory lock on <key>.lock for the duration of a
        read-modify-write, so two concurrent starts cannot both spawn.
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise StateFileError(self.lock_path, f"cannot lock: {e}") from e

        try:
            if IS_WINDOWS:
                msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                if IS_WINDOWS:
                    os.lseek(fd, 0, os.SEEK_SET)
                    msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
                else:
                    fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
