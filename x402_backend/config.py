# x402_backend/config.py
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from x402_backend.errors import ConfigError

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_DESCRIPTORS_PATH = REPO_ROOT / "artifacts" / "descriptors.json"

DEFAULT_PORT = 3000
DEFAULT_NODE_ENV = "development"
DEFAULT_CONNECT_TIMEOUT = 30.0
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# env var -> Config field, in the order they are reported when missing
REQUIRED = {
    "SUBSTRATE_RPC_URL": "rpc_url",
    "CHAIN_NAME": "chain_name",
    "SERVICE_REGISTRY_ADDRESS": "service_registry_address",
    "PAYMENT_ESCROW_ADDRESS": "payment_escrow_address",
    "SERVICE_ACCOUNT": "service_account",
}


class Config(BaseModel):
    model_config = ConfigDict(frozen=True)

    rpc_url: str = Field(min_length=1)
    chain_name: str = Field(min_length=1)
    service_registry_address: str = Field(min_length=1)
    payment_escrow_address: str = Field(min_length=1)
    service_account: str = Field(min_length=1)
    port: int = DEFAULT_PORT
    node_env: str = DEFAULT_NODE_ENV
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, gt=0)
    descriptors_path: Path = DEFAULT_DESCRIPTORS_PATH
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.node_env == "production"


def _number(env: Mapping[str, str], name: str, cast, default):
    raw = env.get(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {name}: {raw!r} (expected a number)")


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Build the immutable Config from environment variables.
    Every missing required variable is reported at once, not just the first.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED if not env.get(name)]
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}\n"
            "Please check your .env file",
            missing=missing,
        )

    values = {field: env[name] for name, field in REQUIRED.items()}
    values["port"] = _number(env, "PORT", int, DEFAULT_PORT)
    values["connect_timeout"] = _number(env, "CONNECT_TIMEOUT", float, DEFAULT_CONNECT_TIMEOUT)
    values["node_env"] = env.get("NODE_ENV") or DEFAULT_NODE_ENV
    values["log_level"] = (env.get("LOG_LEVEL") or "INFO").upper()
    if env.get("CONTRACT_DESCRIPTORS_PATH"):
        values["descriptors_path"] = Path(env["CONTRACT_DESCRIPTORS_PATH"])

    if values["connect_timeout"] <= 0:
        raise ConfigError("CONNECT_TIMEOUT must be greater than zero")
    if values["log_level"] not in LOG_LEVELS:
        raise ConfigError(f"Invalid LOG_LEVEL {values['log_level']!r}, expected one of {', '.join(LOG_LEVELS)}")

    return Config(**values)
