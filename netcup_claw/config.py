"""
config.py
Resolves settings for the port-forward and the SSH tunnel.

Precedence for every value: CLI flag, then environment, then the env file
(config/netcup-kube.env or .env, never overriding what is already set),
then the built-in default.
"""
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

DEFAULT_ENV_FILES = [Path("config") / "netcup-kube.env", Path(".env")]

DEFAULT_NAMESPACE      = "openclaw"
DEFAULT_LABEL_SELECTOR = "app.kubernetes.io/instance=openclaw"
DEFAULT_FALLBACK_SVC   = "svc/openclaw"
DEFAULT_LOCAL_PORT     = "18789"
DEFAULT_REMOTE_PORT    = "18789"

DEFAULT_TUNNEL_USER        = "ops"
DEFAULT_TUNNEL_PORT        = "6443"
DEFAULT_TUNNEL_REMOTE_HOST = "127.0.0.1"


@dataclass(frozen=True)
class ForwardConfig:
    namespace:      str = DEFAULT_NAMESPACE
    label_selector: str = DEFAULT_LABEL_SELECTOR
    fallback_svc:   str = DEFAULT_FALLBACK_SVC
    local_port:     str = DEFAULT_LOCAL_PORT
    remote_port:    str = DEFAULT_REMOTE_PORT


@dataclass(frozen=True)
class TunnelConfig:
    host:        str = ""
    user:        str = DEFAULT_TUNNEL_USER
    local_port:  str = DEFAULT_TUNNEL_PORT
    remote_host: str = DEFAULT_TUNNEL_REMOTE_HOST
    remote_port: str = DEFAULT_TUNNEL_PORT

    @property
    def configured(self) -> bool:
        return bool(self.host)


def load_env_file(path: Optional[str] = None, no_env: bool = False) -> Optional[Path]:
    """
    Load KEY=VALUE pairs into os.environ without overriding existing values.
    Returns the file that was loaded, or None. An explicit path that does not
    exist raises FileNotFoundError; missing default files are ignored.
    """
    if no_env:
        return None

    if path:
        env_path = Path(path)
        if not env_path.is_file():
            raise FileNotFoundError(f"env file not found: {env_path}")
    else:
        env_path = next((p for p in DEFAULT_ENV_FILES if p.is_file()), None)
        if env_path is None:
            return None

    for key, value in dotenv_values(env_path).items():
        if value is not None and not os.environ.get(key):
            os.environ[key] = value
    return env_path


def _pick(flag, *env_names, default: str = "") -> str:
    if flag:
        return str(flag)
    for name in env_names:
        value = os.environ.get(name, "")
        if value:
            return value
    return default


def forward_config(namespace=None, local_port=None, remote_port=None) -> ForwardConfig:
    return ForwardConfig(
        namespace=_pick(namespace, "OPENCLAW_NAMESPACE", default=DEFAULT_NAMESPACE),
        label_selector=_pick(None, "OPENCLAW_LABEL_SELECTOR", default=DEFAULT_LABEL_SELECTOR),
        fallback_svc=_pick(None, "OPENCLAW_FALLBACK_SERVICE", default=DEFAULT_FALLBACK_SVC),
        local_port=_pick(local_port, "OPENCLAW_LOCAL_PORT", default=DEFAULT_LOCAL_PORT),
        remote_port=_pick(remote_port, "OPENCLAW_REMOTE_PORT", default=DEFAULT_REMOTE_PORT),
    )


def tunnel_config(host=None, user=None, local_port=None,
                  remote_host=None, remote_port=None) -> TunnelConfig:
    return TunnelConfig(
        host=_pick(host, "TUNNEL_HOST", "MGMT_HOST", "MGMT_IP"),
        user=_pick(user, "TUNNEL_USER", "MGMT_USER", default=DEFAULT_TUNNEL_USER),
        local_port=_pick(local_port, "TUNNEL_LOCAL_PORT", default=DEFAULT_TUNNEL_PORT),
        remote_host=_pick(remote_host, "TUNNEL_REMOTE_HOST", default=DEFAULT_TUNNEL_REMOTE_HOST),
        remote_port=_pick(remote_port, "TUNNEL_REMOTE_PORT", default=DEFAULT_TUNNEL_PORT),
    )


def grace_period(default: float = 0.2) -> float:
    """Seconds to wait after launch before checking the process is still alive."""
    raw = os.environ.get("NETCUP_CLAW_GRACE_PERIOD", "")
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if math.isfinite(value) and value >= 0 else default
