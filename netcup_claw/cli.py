"""
cli.py — netcup-claw main entry point.

Can be invoked two ways:
  1. netcup-claw port-forward start
  2. python -m netcup_claw port-forward start
"""
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from netcup_claw.config import load_env_file


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="netcup-claw")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging to stderr.")
@click.option("--env-file", default=None, help="Env file to load (default: config/netcup-kube.env or .env).")
@click.option("--no-env", is_flag=True, default=False, help="Do not load any env file.")
@click.option("--tunnel-host", default=None, help="SSH tunnel host (default: $TUNNEL_HOST or $MGMT_HOST).")
@click.option("--tunnel-user", default=None, help="SSH tunnel user (default: $TUNNEL_USER or ops).")
@click.option("--tunnel-local-port", default=None, help="SSH tunnel local port (default: 6443).")
@click.option("--tunnel-remote-host", default=None, help="SSH tunnel remote host (default: 127.0.0.1).")
@click.option("--tunnel-remote-port", default=None, help="SSH tunnel remote port (default: 6443).")
@click.pass_context
def main(ctx, verbose, env_file, no_env, tunnel_host, tunnel_user,
         tunnel_local_port, tunnel_remote_host, tunnel_remote_port):
    """
    OpenClaw operational access: background port-forward and SSH tunnel.

    Both run detached and keep running after this command exits; start is
    idempotent, stop is safe to repeat.

    \b
    Quick start:
        netcup-claw port-forward start   # tunnel is started if the API is unreachable
        netcup-claw status               # tunnel, API, forward, service, pod
        netcup-claw logs port-forward    # tail of the forward's own output
        netcup-claw port-forward stop
    """
    _setup_logging(verbose)
    try:
        load_env_file(env_file, no_env=no_env)
    except FileNotFoundError as e:
        raise click.UsageError(str(e))

    ctx.ensure_object(dict)
    ctx.obj["tunnel"] = {
        "host":        tunnel_host,
        "user":        tunnel_user,
        "local_port":  tunnel_local_port,
        "remote_host": tunnel_remote_host,
        "remote_port": tunnel_remote_port,
    }


from netcup_claw.commands.port_forward import port_forward
from netcup_claw.commands.tunnel       import tunnel
from netcup_claw.commands.status       import status
from netcup_claw.commands.logs         import logs

main.add_command(port_forward)
main.add_command(tunnel)
main.add_command(status)
main.add_command(logs)
