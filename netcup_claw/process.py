"""
process.py
Spawning, probing and signalling detached background processes.

The lifecycle manager only talks to a ProcessControl; the OS specific parts
(new session vs. detached process group, signal 0 vs. tasklist) live here.
"""
import logging
import os
import platform
import signal
import subprocess
from typing import List

from netcup_claw.errors import LaunchError, TerminationError

log = logging.getLogger(__name__)

IS_WINDOWS = platform.system() == "Windows"


class ProcessControl:
    """Launch, liveness and termination for processes tracked by pid."""

    def launch(self, argv: List[str], log_file: str) -> int:
        """
        Start argv detached from this session with stdout/stderr appended to
        log_file. Returns the new pid without waiting for the process.
        """
        try:
            fd = os.open(log_file, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        except OSError as e:
            raise LaunchError(f"failed to open log file {log_file}: {e}") from e

        with os.fdopen(fd, "ab") as lf:
            try:
                proc = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=lf,
                    stderr=subprocess.STDOUT,
                    **self._detach_kwargs(),
                )
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                raise LaunchError(f"failed to launch {argv[0]}: {e}") from e

        log.debug("launched %s (pid %d), output -> %s", argv[0], proc.pid, log_file)
        return proc.pid

    def _detach_kwargs(self) -> dict:
        raise NotImplementedError

    def is_alive(self, pid: int) -> bool:
        raise NotImplementedError

    def terminate(self, pid: int):
        raise NotImplementedError


class PosixProcessControl(ProcessControl):

    def _detach_kwargs(self) -> dict:
        # setsid(): no controlling terminal, survives the CLI exiting
        return {"start_new_session": True, "close_fds": True}

    def is_alive(self, pid: int) -> bool:
        if pid is None or pid <= 0:
            return False

        # A child we launched earlier in this same process lingers as a
        # zombie until reaped, and signal 0 still succeeds on zombies.
        try:
            reaped, _ = os.waitpid(pid, os.WNOHANG)
            if reaped == pid:
                return False
        except ChildProcessError:
            pass
        except OSError:
            return False

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True  # exists, owned by another user
        except OSError:
            return False
        return True

    def terminate(self, pid: int):
        if pid <= 0:
            return
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            log.debug("pid %d already gone", pid)
            return
        except OSError as e:
            raise TerminationError(pid, str(e)) from e
        log.debug("sent SIGTERM to pid %d", pid)


class WindowsProcessControl(ProcessControl):

    def _detach_kwargs(self) -> dict:
        flags = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
        return {"creationflags": flags, "close_fds": True}

    def is_alive(self, pid: int) -> bool:
        if pid is None or pid <= 0:
            return False
        try:
            out = subprocess.check_output(
                ["tasklist", "/FI", f"PID eq {pid}", "/NH", "/FO", "CSV"],
                stderr=subprocess.DEVNULL, text=True, timeout=10,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return f'"{pid}"' in out

    def terminate(self, pid: int):
        if pid <= 0:
            return
        # no /F: ask the process to close instead of killing it outright
        result = subprocess.run(
            ["taskkill", "/PID", str(pid)],
            capture_output=True, text=True,
        )
        if result.returncode == 0:
            return
        if not self.is_alive(pid):
            log.debug("pid %d already gone", pid)
            return
        raise TerminationError(pid, (result.stderr or result.stdout).strip())


def default_process_control() -> ProcessControl:
    return WindowsProcessControl() if IS_WINDOWS else PosixProcessControl()
