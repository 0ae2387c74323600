"""
errors.py
Exceptions raised by the background process lifecycle manager.

Precondition errors (port in use, bad state file) are raised before anything
is spawned. Launch and early-exit errors are kept apart so the caller can
tell "kubectl is missing" from "kubectl started and then died".
"""


class LifecycleError(Exception):
    """Base class for every error the lifecycle manager raises."""


class PortInUseError(LifecycleError):
    def __init__(self, port: str):
        self.port = port
        super().__init__(
            f"local port {port} is already in use; "
            f"stop the existing listener or use a different local port"
        )


class StateFileError(LifecycleError):
    """The state file is corrupt, unreadable or cannot be written."""

    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"state file {path}: {reason}")


class LaunchError(LifecycleError):
    """The process could not be started at all."""


class EarlyExitError(LifecycleError):
    """The process was started but was gone after the grace period."""

    def __init__(self, name: str, pid: int, log_tail: str = ""):
        self.pid = pid
        self.log_tail = log_tail
        msg = f"{name} process exited immediately (pid {pid})"
        if log_tail:
            msg = f"{msg}: {log_tail}"
        super().__init__(msg)


class TerminationError(LifecycleError):
    def __init__(self, pid: int, reason: str):
        self.pid = pid
        super().__init__(f"failed to stop process (pid {pid}): {reason}")


class ReadinessTimeout(LifecycleError):
    def __init__(self, port: str, timeout: float):
        self.port = port
        self.timeout = timeout
        super().__init__(f"local port :{port} not ready after {timeout:g}s")
