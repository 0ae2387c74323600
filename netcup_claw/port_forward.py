"""
port_forward.py
Runs `kubectl port-forward` in the background so operators can reach
OpenClaw at http://localhost:18789 without keeping a terminal open.

The forward outlives the CLI, so its pid, state and log path are tracked in
$XDG_RUNTIME_DIR/netcup-claw-pf-<namespace>-<port>.json and every command
re-reads that file.
"""
from pathlib import Path
from typing import Optional

from rich.console import Console

from netcup_claw import config
from netcup_claw.config import ForwardConfig
from netcup_claw.errors import ReadinessTimeout
from netcup_claw.lifecycle import LifecycleManager
from netcup_claw.process import ProcessControl
from netcup_claw.readiness import wait_until_ready
from netcup_claw.state import LifecycleState, StateRecord, StateStore, state_key

console = Console()

READY_TIMEOUT = 3.0


def kubectl_command(cfg: ForwardConfig, target: str) -> list:
    return [
        "kubectl", "-n", cfg.namespace,
        "port-forward", target,
        f"{cfg.local_port}:{cfg.remote_port}",
    ]


def manager(cfg: ForwardConfig, target: Optional[str] = None,
            process: Optional[ProcessControl] = None,
            state_dir: Optional[Path] = None) -> LifecycleManager:
    """Build the manager for this namespace/port. `target` only matters for start."""
    target = (target or "").strip() or cfg.fallback_svc
    store = StateStore(state_key("pf", cfg.namespace, cfg.local_port), state_dir)
    return LifecycleManager(
        name="port-forward",
        store=store,
        local_port=cfg.local_port,
        command=kubectl_command(cfg, target),
        process=process,
        grace_period=config.grace_period(),
    )


def start(cfg: ForwardConfig, target: str, **kwargs) -> StateRecord:
    """Start the forward (idempotent) and report where it is listening."""
    mgr = manager(cfg, target, **kwargs)
    st = mgr.start()

    # the target is only known for a process this call launched
    where = f"{target} in {cfg.namespace}" if mgr.launched else f"namespace {cfg.namespace}"
    console.print(
        f"[green]  ✓  port-forward {st.state}[/green] → "
        f"[bold underline cyan]http://localhost:{cfg.local_port}[/bold underline cyan]"
        f"  [dim]({where}, PID {st.pid})[/dim]"
    )
    if st.log_file:
        console.print(f"[dim]     log: {st.log_file}[/dim]")

    try:
        wait_until_ready(cfg.local_port, timeout=READY_TIMEOUT)
    except ReadinessTimeout as e:
        console.print(f"[yellow]  ⚠  port-forward started but not accepting connections yet: {e}[/yellow]")
    return st


def stop(cfg: ForwardConfig, **kwargs):
    manager(cfg, **kwargs).stop()
    console.print(
        f"[green]  ✓  port-forward stopped[/green] "
        f"[dim](namespace {cfg.namespace}, port {cfg.local_port})[/dim]"
    )


def status(cfg: ForwardConfig, **kwargs) -> StateRecord:
    return manager(cfg, **kwargs).status()


def is_running(st: StateRecord) -> bool:
    return st.state == LifecycleState.RUNNING
