"""
tunnel.py
SSH tunnel to the k3s API server, for when kubectl cannot reach the cluster
directly:

    localhost:6443  ──ssh ops@host──▶  127.0.0.1:6443 on the server

ssh runs as a control master in the foreground (-N, no -f) inside a detached
session, so the pid we record is the master itself. The control socket is
only used for `ssh -O check` diagnostics.
"""
import subprocess
from pathlib import Path
from typing import Optional, Tuple

from rich.console import Console

from netcup_claw import config
from netcup_claw.config import TunnelConfig
from netcup_claw.lifecycle import LifecycleManager
from netcup_claw.process import ProcessControl
from netcup_claw.state import StateRecord, StateStore, state_key

console = Console()


def _store(cfg: TunnelConfig, state_dir: Optional[Path] = None) -> StateStore:
    return StateStore(state_key("tunnel", cfg.user, cfg.host, cfg.local_port), state_dir)


def control_socket(cfg: TunnelConfig, state_dir: Optional[Path] = None) -> Path:
    return _store(cfg, state_dir).path_for(".ctl")


def destination(cfg: TunnelConfig) -> str:
    return f"{cfg.user}@{cfg.host}"


def describe(cfg: TunnelConfig) -> str:
    return f"localhost:{cfg.local_port} -> {cfg.remote_host}:{cfg.remote_port} via {destination(cfg)}"


def ssh_command(cfg: TunnelConfig, ctl_socket: Path) -> list:
    return [
        "ssh",
        "-M", "-S", str(ctl_socket),
        "-N",
        "-L", f"{cfg.local_port}:{cfg.remote_host}:{cfg.remote_port}",
        destination(cfg),
        "-o", "ControlPersist=no",
        "-o", "ExitOnForwardFailure=yes",
        "-o", "ServerAliveInterval=30",
        "-o", "ServerAliveCountMax=3",
    ]


def manager(cfg: TunnelConfig, process: Optional[ProcessControl] = None,
            state_dir: Optional[Path] = None) -> LifecycleManager:
    if not cfg.configured:
        raise ValueError("no tunnel host configured (set TUNNEL_HOST or --tunnel-host)")
    store = _store(cfg, state_dir)
    return LifecycleManager(
        name="ssh tunnel",
        store=store,
        local_port=cfg.local_port,
        command=ssh_command(cfg, store.path_for(".ctl")),
        process=process,
        grace_period=config.grace_period(),
    )


def control_check(cfg: TunnelConfig, state_dir: Optional[Path] = None) -> Tuple[bool, str]:
    """Ask the control master whether it is up. Returns (ok, ssh output)."""
    try:
        result = subprocess.run(
            ["ssh", "-S", str(control_socket(cfg, state_dir)), "-O", "check", destination(cfg)],
            capture_output=True, text=True, timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        return False, str(e)
    output = (result.stderr + result.stdout).strip()
    return result.returncode == 0 or "Master running" in output, output


def start(cfg: TunnelConfig, **kwargs) -> StateRecord:
    st = manager(cfg, **kwargs).start()
    console.print(f"[green]  ✓  tunnel {st.state}[/green] {describe(cfg)}  [dim](PID {st.pid})[/dim]")
    return st


def stop(cfg: TunnelConfig, **kwargs):
    manager(cfg, **kwargs).stop()
    console.print(f"[green]  ✓  tunnel stopped[/green] [dim]({describe(cfg)})[/dim]")


def status(cfg: TunnelConfig, **kwargs) -> StateRecord:
    return manager(cfg, **kwargs).status()
