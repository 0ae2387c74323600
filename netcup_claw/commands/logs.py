import sys

import click
from rich.console import Console

console = Console()

SOURCES = ("port-forward", "tunnel")


@click.command()
@click.argument("source", default="port-forward",
                type=click.Choice(SOURCES, case_sensitive=False))
@click.option("--bytes", "-c", "max_bytes", default=2048, show_default=True,
              help="How much of the end of the log to show.")
@click.option("--namespace", "-n", default=None, help="Port-forward namespace (default: openclaw).")
@click.option("--local-port", default=None, help="Local port of the forward or tunnel.")
@click.pass_context
def logs(ctx, source, max_bytes, namespace, local_port):
    """
    Show the end of a background process's own output.

    \b
    SOURCE options:
        port-forward  — kubectl port-forward output
        tunnel        — ssh tunnel output
    """
    from netcup_claw import port_forward as pf, tunnel as tun
    from netcup_claw.config import forward_config, tunnel_config
    from netcup_claw.lifecycle import read_log_tail

    ctx.ensure_object(dict)
    if source.lower() == "tunnel":
        opts = dict(ctx.obj.get("tunnel", {}))
        if local_port:
            opts["local_port"] = local_port
        cfg = tunnel_config(**opts)
        if not cfg.configured:
            console.print("[red]  ✗  No tunnel host configured (set TUNNEL_HOST or --tunnel-host).[/red]")
            sys.exit(1)
        log_file = tun.manager(cfg).log_file
    else:
        cfg = forward_config(namespace=namespace, local_port=local_port)
        log_file = pf.manager(cfg).log_file

    text = read_log_tail(log_file, max_bytes)
    console.print(f"\n[cyan]  {source} log:[/cyan] [dim]{log_file}[/dim]\n")
    if text:
        console.print(text, markup=False, highlight=False)
    else:
        console.print("[dim]  (empty)[/dim]")
    console.print()
