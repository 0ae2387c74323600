"""
readiness.py
TCP probes against 127.0.0.1 used before and after starting a forward.

    is_listening(port)       one connect attempt
    wait_until_ready(port)   poll until the port accepts or the deadline passes
"""
import logging
import socket
import time

from netcup_claw.errors import ReadinessTimeout

log = logging.getLogger(__name__)

DIAL_TIMEOUT  = 0.5
POLL_INTERVAL = 0.2


def _parse_port(port) -> int:
    try:
        num = int(str(port).strip())
    except (TypeError, ValueError):
        return 0
    return num if 0 < num <= 65535 else 0


def is_listening(port, host: str = "127.0.0.1", timeout: float = DIAL_TIMEOUT) -> bool:
    """Return True if something accepts TCP connections on host:port."""
    num = _parse_port(port)
    if not num:
        return False
    try:
        with socket.create_connection((host, num), timeout=timeout):
            return True
    except OSError:
        return False


def wait_until_ready(port, timeout: float = 3.0, interval: float = POLL_INTERVAL,
                     host: str = "127.0.0.1"):
    """
    Block until host:port accepts connections.
    Raises ReadinessTimeout once `timeout` seconds have elapsed without success.
    The port is always probed at least once, even with a zero timeout.
    """
    deadline = time.monotonic() + timeout
    while True:
        if is_listening(port, host=host):
            log.debug("port %s ready", port)
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        time.sleep(min(interval, remaining))
    raise ReadinessTimeout(str(port), timeout)
