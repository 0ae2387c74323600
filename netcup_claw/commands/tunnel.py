import sys

import click
from rich.console import Console

from netcup_claw.errors import LifecycleError

console = Console()


def _config(ctx):
    from netcup_claw.config import tunnel_config

    cfg = tunnel_config(**ctx.obj.get("tunnel", {}))
    if not cfg.configured:
        console.print("[red]  ✗  No tunnel host configured (set TUNNEL_HOST/MGMT_HOST or --tunnel-host).[/red]")
        sys.exit(1)
    return cfg


@click.group(invoke_without_command=True)
@click.pass_context
def tunnel(ctx):
    """
    Manage the SSH tunnel to the k3s API server (default: start).

    Forwards localhost:6443 to 127.0.0.1:6443 on the server. Host, user and
    ports come from the --tunnel-* options or TUNNEL_* variables.
    """
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand is None:
        ctx.invoke(start)


@tunnel.command()
@click.pass_context
def start(ctx):
    """Start the SSH tunnel (no-op if it is already running)."""
    from netcup_claw import tunnel as tun

    cfg = _config(ctx)
    try:
        tun.start(cfg)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)


@tunnel.command()
@click.pass_context
def stop(ctx):
    """Stop the SSH tunnel."""
    from netcup_claw import tunnel as tun

    cfg = _config(ctx)
    try:
        tun.stop(cfg)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)


@tunnel.command()
@click.pass_context
def status(ctx):
    """Show tunnel state and the control master check. Exits non-zero unless running."""
    from netcup_claw import tunnel as tun
    from netcup_claw.readiness import is_listening
    from netcup_claw.state import LifecycleState

    cfg = _config(ctx)
    try:
        st = tun.status(cfg)
    except LifecycleError as e:
        console.print(f"[red]  ✗  {e}[/red]")
        sys.exit(1)

    running = st.state == LifecycleState.RUNNING
    colour = "green" if running else "red"
    console.print(f"  state:    [{colour}]{st.state}[/{colour}]  {tun.describe(cfg)}")
    if st.pid:
        console.print(f"  pid:      {st.pid}")
    if st.log_file:
        console.print(f"  log:      {st.log_file}")
    console.print(f"  socket:   {tun.control_socket(cfg)}")

    _, output = tun.control_check(cfg)
    console.print(f"  control:  {output or '<no output>'}")
    listening = is_listening(cfg.local_port)
    console.print(f"  listen:   {'yes' if listening else 'no'} (localhost:{cfg.local_port})")

    if not running:
        sys.exit(1)
