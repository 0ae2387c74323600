"""
preflight.py
Checks the external tools the background processes are built on.

kubectl runs the port-forward, ssh runs the tunnel. A missing binary would
otherwise only show up as a launch error on `start`.
"""
import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import List

from rich.console import Console
from rich.table import Table
from rich import box

console = Console()


TOOLS = {
    "kubectl": {
        "min_version": (1, 28),
        "version_cmd": ["kubectl", "version", "--client", "--output=yaml"],
        "hint":        "https://kubernetes.io/docs/tasks/tools/",
    },
    "ssh": {
        "min_version": (7, 3),
        "version_cmd": ["ssh", "-V"],
        "hint":        "install the OpenSSH client",
    },
}


@dataclass
class CheckResult:
    tool:    str
    found:   bool
    version: str
    ok:      bool
    hint:    str = ""


def _parse_version(raw: str) -> tuple:
    m = re.search(r'(\d+)\.(\d+)', raw)
    return (int(m.group(1)), int(m.group(2))) if m else (0, 0)


def _check_tool(name: str, spec: dict) -> CheckResult:
    if not shutil.which(name):
        return CheckResult(tool=name, found=False, version="—", ok=False, hint=spec["hint"])

    try:
        # ssh -V prints to stderr
        out = subprocess.check_output(
            spec["version_cmd"], stderr=subprocess.STDOUT, text=True, timeout=10
        )
    except (OSError, subprocess.SubprocessError):
        return CheckResult(tool=name, found=True, version="unknown", ok=True)

    ver_tuple = _parse_version(out)
    ver_str   = ".".join(str(x) for x in ver_tuple)
    ok = ver_tuple >= spec["min_version"]
    hint = "" if ok else f"needs >= {'.'.join(str(x) for x in spec['min_version'])}"
    return CheckResult(tool=name, found=True, version=ver_str, ok=ok, hint=hint)


def check_tools() -> List[CheckResult]:
    return [_check_tool(name, spec) for name, spec in TOOLS.items()]


def print_results(results: List[CheckResult]):
    table = Table(title="Tools", box=box.ROUNDED, show_lines=True)
    table.add_column("Tool",    style="bold cyan", no_wrap=True)
    table.add_column("Version", justify="center")
    table.add_column("Status",  justify="center")

    for r in results:
        if r.ok:
            state = "[green]✓  OK[/green]"
        elif not r.found:
            state = f"[red]✗  missing[/red] [dim]{r.hint}[/dim]"
        else:
            state = f"[yellow]⚠  {r.hint}[/yellow]"
        table.add_row(r.tool, r.version, state)

    console.print(table)
