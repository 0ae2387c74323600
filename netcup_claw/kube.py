"""
kube.py
Small kubectl helpers: API reachability and OpenClaw service/pod lookup.
"""
import os
import subprocess
from typing import Optional

from netcup_claw.config import ForwardConfig
from netcup_claw.readiness import is_listening


def _run(cmd: list, check: bool = False, capture: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, check=check, capture_output=capture, text=True, timeout=30)


def probe_kube_api() -> bool:
    """True if the API server address (127.0.0.1:6443 unless overridden) accepts connections."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST") or "127.0.0.1"
    port = os.environ.get("KUBERNETES_SERVICE_PORT") or "6443"
    return is_listening(port, host=host, timeout=2.0)


def _first_name(cfg: ForwardConfig, kind: str) -> str:
    try:
        result = _run([
            "kubectl", "-n", cfg.namespace,
            "get", kind,
            "-l", cfg.label_selector,
            "-o", "jsonpath={.items[0].metadata.name}",
        ])
    except (OSError, subprocess.SubprocessError):
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def resolve_service(cfg: ForwardConfig) -> str:
    """svc/<name> of the first service matching the label selector, else the fallback."""
    name = _first_name(cfg, "svc")
    return f"svc/{name}" if name else cfg.fallback_svc


def resolve_pod(cfg: ForwardConfig) -> Optional[str]:
    return _first_name(cfg, "pod") or None
