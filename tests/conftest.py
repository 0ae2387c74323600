"""Shared fixtures: isolated runtime dir, clean environment, stub process control."""

import socket

import pytest

from netcup_claw.lifecycle import LifecycleManager
from netcup_claw.process import ProcessControl
from netcup_claw.state import StateStore

ENV_VARS = (
    "OPENCLAW_NAMESPACE", "OPENCLAW_LABEL_SELECTOR", "OPENCLAW_FALLBACK_SERVICE",
    "OPENCLAW_LOCAL_PORT", "OPENCLAW_REMOTE_PORT",
    "TUNNEL_HOST", "MGMT_HOST", "MGMT_IP", "TUNNEL_USER", "MGMT_USER",
    "TUNNEL_LOCAL_PORT", "TUNNEL_REMOTE_HOST", "TUNNEL_REMOTE_PORT",
    "KUBERNETES_SERVICE_HOST", "KUBERNETES_SERVICE_PORT",
    "NETCUP_CLAW_GRACE_PERIOD",
)


@pytest.fixture(autouse=True)
def runtime_dir(tmp_path, monkeypatch):
    for name in ENV_VARS:
        # setenv first so teardown also removes values loaded from env files
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    run_dir = tmp_path / "run"
    run_dir.mkdir()
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(run_dir))
    monkeypatch.setenv("NETCUP_CLAW_GRACE_PERIOD", "0")
    return run_dir


class FakeProcessControl(ProcessControl):
    """Records launches/terminations; liveness is whatever is in `alive`."""

    def __init__(self, pid=4242, alive=True, launch_error=None, terminate_error=None,
                 on_launch=None):
        self.pid = pid
        self.alive = {pid} if alive else set()
        self.launch_error = launch_error
        self.terminate_error = terminate_error
        self.on_launch = on_launch
        self.launches = []
        self.terminated = []

    def launch(self, argv, log_file):
        self.launches.append((list(argv), log_file))
        if self.launch_error is not None:
            raise self.launch_error
        if self.on_launch is not None:
            self.on_launch(log_file)
        return self.pid

    def is_alive(self, pid):
        return pid is not None and pid > 0 and pid in self.alive

    def terminate(self, pid):
        self.terminated.append(pid)
        if self.terminate_error is not None:
            raise self.terminate_error
        self.alive.discard(pid)


@pytest.fixture
def fake_process():
    return FakeProcessControl()


@pytest.fixture
def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return str(s.getsockname()[1])


@pytest.fixture
def listener():
    """A real TCP listener on 127.0.0.1; yields its port as a string."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    s.listen(1)
    try:
        yield str(s.getsockname()[1])
    finally:
        s.close()


@pytest.fixture
def make_manager(runtime_dir):
    def _make(process, local_port="18789", port_probe=lambda port: False, key="netcup-claw-pf-test"):
        return LifecycleManager(
            name="port-forward",
            store=StateStore(key, runtime_dir),
            local_port=local_port,
            command=["kubectl", "-n", "openclaw", "port-forward", "svc/openclaw", f"{local_port}:18789"],
            process=process,
            grace_period=0,
            port_probe=port_probe,
        )
    return _make
