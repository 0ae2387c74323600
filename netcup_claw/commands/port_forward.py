import sys

import click
from rich.console import Console
from rich.rule import Rule

from netcup_claw.errors import LifecycleError, ReadinessTimeout

console = Console()


@click.group("port-forward")
@click.option("--namespace", "-n", default=None, help="Kubernetes namespace (default: openclaw).")
@click.option("--local-port", default=None, help="Local port (default: 18789).")
@click.option("--remote-port", default=None, help="Remote port (default: 18789).")
@click.pass_context
def port_forward(ctx, namespace, local_port, remote_port):
    """
    Manage the background kubectl port-forward to OpenClaw.

    \b
    start   — start the forward (idempotent; starts the SSH tunnel if needed)
    stop    — stop the forward
    status  — show state, pid and log file
    """
    ctx.ensure_object(dict)
    ctx.obj["forward"] = {
        "namespace":   namespace,
        "local_port":  local_port,
        "remote_port": remote_port,
    }


@port_forward.command()
@click.pass_context
def start(ctx):
    """
    Start a background port-forward to the OpenClaw service.

    \b
    1. Probe the Kubernetes API
    2. If unreachable, make sure the SSH tunnel is running
    3. Resolve the service by label (falls back to svc/openclaw)
    4. Start kubectl port-forward in the background
    5. Wait briefly for the local port to accept connections
    """
    from netcup_claw import port_forward as pf, tunnel as tun
    from netcup_claw.config import forward_config, tunnel_config
    from netcup_claw.kube import probe_kube_api, resolve_service
    from netcup_claw.readiness import wait_until_ready

    cfg = forward_config(**ctx.obj["forward"])

    console.print()
    console.print(Rule("[bold]OpenClaw — Port-Forward Start[/bold]"))

    try:
        if not probe_kube_api():
            tcfg = tunnel_config(**ctx.obj.get("tunnel", {}))
            if not tcfg.configured:
                console.print("[red]  ✗  Kubernetes API is unreachable and no tunnel host is configured.[/red]")
                console.print("     Set [bold]TUNNEL_HOST[/bold] or pass [bold cyan]--tunnel-host[/bold cyan].")
                sys.exit(1)

            console.print(f"[yellow]  ⚠  Kubernetes API unreachable; starting SSH tunnel via "
                          f"{tun.destination(tcfg)}...[/yellow]")
            tun.start(tcfg)
            try:
                wait_until_ready(tcfg.local_port, timeout=5.0)
            except ReadinessTimeout:
                pass
            if not probe_kube_api():
                console.print("[red]  ✗  Kubernetes API still unreachable after starting the SSH tunnel.[/red]")
                console.print("     Check the tunnel settings and your kubeconfig.")
                sys.exit(1)

        target = resolve_service(cfg)
        pf.start(cfg, target)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)
    console.print()


@port_forward.command()
@click.pass_context
def stop(ctx):
    """Stop the background port-forward (safe to run when nothing is running)."""
    from netcup_claw import port_forward as pf
    from netcup_claw.config import forward_config

    cfg = forward_config(**ctx.obj["forward"])
    try:
        pf.stop(cfg)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)


@port_forward.command()
@click.pass_context
def status(ctx):
    """
    Show port-forward state. Exits non-zero unless it is running.

    A forward recorded as running whose process has died is marked failed.
    """
    from netcup_claw import port_forward as pf
    from netcup_claw.config import forward_config

    cfg = forward_config(**ctx.obj["forward"])
    try:
        st = pf.status(cfg)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)

    colour = "green" if pf.is_running(st) else "red"
    console.print(f"  state:      [{colour}]{st.state}[/{colour}]")
    console.print(f"  namespace:  {cfg.namespace}")
    console.print(f"  port:       {st.local_port or cfg.local_port}")
    if st.pid:
        console.print(f"  pid:        {st.pid}")
    if st.log_file:
        console.print(f"  log:        {st.log_file}")

    if not pf.is_running(st):
        sys.exit(1)
