import sys

import click
from rich.console import Console
from rich.table import Table
from rich.rule import Rule
from rich import box

from netcup_claw.errors import LifecycleError

console = Console()


def _ok(flag: bool) -> str:
    return "[green]✓  ok[/green]" if flag else "[red]✗  not ok[/red]"


@click.command()
@click.option("--namespace", "-n", default=None, help="Kubernetes namespace (default: openclaw).")
@click.option("--local-port", default=None, help="Port-forward local port (default: 18789).")
@click.pass_context
def status(ctx, namespace, local_port):
    """Show tunnel, Kubernetes API, port-forward, service and pod health."""
    from netcup_claw import port_forward as pf, tunnel as tun
    from netcup_claw.config import forward_config, tunnel_config
    from netcup_claw.kube import probe_kube_api, resolve_pod, resolve_service
    from netcup_claw.preflight import check_tools, print_results
    from netcup_claw.state import LifecycleState

    ctx.ensure_object(dict)
    cfg  = forward_config(namespace=namespace, local_port=local_port)
    tcfg = tunnel_config(**ctx.obj.get("tunnel", {}))

    console.print()
    console.print(Rule("[bold]OpenClaw — Status[/bold]"))
    console.print()

    table = Table(box=box.ROUNDED, show_lines=True)
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status",    justify="center")
    table.add_column("Detail",    style="dim")

    try:
        # ── SSH tunnel ────────────────────────────────────────────────────
        tunnel_running = False
        if tcfg.configured:
            tst = tun.status(tcfg)
            tunnel_running = tst.state == LifecycleState.RUNNING
            detail = tun.describe(tcfg) + (f" (PID {tst.pid})" if tst.pid else "")
            table.add_row("tunnel", _ok(tunnel_running), f"{tst.state}: {detail}")
        else:
            table.add_row("tunnel", "[dim]—[/dim]", "unconfigured (set TUNNEL_HOST to enable)")

        # ── Kubernetes API ────────────────────────────────────────────────
        api = probe_kube_api()
        table.add_row("kube-api", _ok(api), "")

        # ── Port-forward ──────────────────────────────────────────────────
        pst = pf.status(cfg)
        pf_running = pf.is_running(pst)
        detail = f"{pst.state}: localhost:{cfg.local_port}" + (f" (PID {pst.pid})" if pst.pid else "")
        table.add_row("port-forward", _ok(pf_running), detail)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)

    # ── Service / pod ─────────────────────────────────────────────────────
    svc = resolve_service(cfg)
    table.add_row("service", "[green]✓  ok[/green]", f"{svc} in {cfg.namespace}")
    pod = resolve_pod(cfg)
    table.add_row("pod", _ok(pod is not None), pod or f"no pod matching {cfg.label_selector}")

    healthy = (api or tunnel_running) and pf_running and pod is not None
    table.add_row("[bold]healthy[/bold]", _ok(healthy), "")

    console.print(table)
    console.print()
    print_results(check_tools())
    console.print()

    console.print("  [dim]netcup-claw logs port-forward  → output of the forward[/dim]")
    console.print("  [dim]netcup-claw port-forward start → (re)start the forward[/dim]")
    console.print()

    if not healthy:
        sys.exit(1)
