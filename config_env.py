"""Load keeper.yaml and apply env overrides into a KeeperConfig."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from eth_account import Account
from eth_utils import is_address, to_checksum_address, to_wei

from env_utils import (
    KEEPER_CONFIG_FILE,
    KEEPER_RUNTIME_DIR,
    env_first,
    env_float,
    env_int,
    env_present,
    env_str,
)


PathKey = Tuple[str, ...]

DEFAULT_RPC_URL = "https://mainnet.base.org"

# Secrets are env-only; never read from YAML.
PRIVATE_KEY_ENV_NAMES = ("KEEPER_PRIVATE_KEY", "RAILWAY_PRIVATE_KEY")

# Env overrides are limited to connectivity and runtime plumbing.
ALLOWED_ENV_OVERRIDES = {
    "RPC_URL",
    "REWARDS_CONTRACT",
    "KEEPER_MIN_ETH_BALANCE",
    "KEEPER_CALL_DELAY_SEC",
    "KEEPER_MAX_BATCHES",
    "KEEPER_MAX_RUNTIME_SEC",
    "KEEPER_RECEIPT_TIMEOUT_SEC",
    "KEEPER_RUNTIME_DIR",
}

DEFAULTS: Dict[str, Any] = {
    "config": {
        "rpc_url": DEFAULT_RPC_URL,
        "rewards_contract": "",
        "min_eth_balance": "0.001",
        "call_delay_sec": 2.0,
        "settle_delay_sec": 1.0,
        "settle_attempts": 1,
        "max_batches": 500,
        "max_runtime_sec": 3600.0,
        "receipt_timeout_sec": 180.0,
        "receipt_poll_sec": 2.0,
        "rpc_timeout_sec": 30.0,
        "runtime_dir": KEEPER_RUNTIME_DIR,
        "gas_limits": {
            "start_epoch": 3_000_000,
            "end_cycle": 1_500_000,
            "flush_distributions": 1_500_000,
        },
    }
}


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


@dataclass
class GasLimits:
    start_epoch: int = 3_000_000
    end_cycle: int = 1_500_000
    flush_distributions: int = 1_500_000


@dataclass(repr=False)
class KeeperConfig:
    rpc_url: str
    private_key: str
    rewards_contract: str
    min_eth_balance_wei: int
    call_delay_sec: float = 2.0
    settle_delay_sec: float = 1.0
    settle_attempts: int = 1
    max_batches: int = 500
    max_runtime_sec: float = 3600.0
    receipt_timeout_sec: float = 180.0
    receipt_poll_sec: float = 2.0
    rpc_timeout_sec: float = 30.0
    runtime_dir: str = KEEPER_RUNTIME_DIR
    gas_limits: GasLimits = field(default_factory=GasLimits)

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        return (
            f"KeeperConfig(rpc_url={self.rpc_url!r}, rewards_contract={self.rewards_contract!r}, "
            f"min_eth_balance_wei={self.min_eth_balance_wei}, private_key='***')"
        )


def _get_path(cfg: Dict[str, Any], path: PathKey, default: Any = None) -> Any:
    cur: Any = cfg
    for key in path:
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def _set_path(cfg: Dict[str, Any], path: PathKey, value: Any) -> None:
    cur: Any = cfg
    for key in path[:-1]:
        if key not in cur or not isinstance(cur[key], dict):
            cur[key] = {}
        cur = cur[key]
    cur[path[-1]] = value


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = deepcopy(base)
    for key, value in (extra or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_yaml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load keeper.yaml merged over DEFAULTS. A missing file yields DEFAULTS."""
    cfg_path = Path(path or KEEPER_CONFIG_FILE)
    if not cfg_path.exists():
        return deepcopy(DEFAULTS)
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {cfg_path} is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {cfg_path} must contain a mapping")
    return _merge(DEFAULTS, raw)


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    cfg = deepcopy(config) if config else {}

    def override(path: PathKey, env_name: str, kind: str = "str") -> None:
        if env_name not in ALLOWED_ENV_OVERRIDES or not env_present(env_name):
            return
        default = _get_path(cfg, path)
        if kind == "int":
            value = env_int(env_name, default if isinstance(default, int) else 0)
        elif kind == "float":
            value = env_float(env_name, float(default) if default is not None else 0.0)
        else:
            value = env_str(env_name, default if default is not None else "")
        _set_path(cfg, path, value)

    override(("config", "rpc_url"), "RPC_URL")
    override(("config", "rewards_contract"), "REWARDS_CONTRACT")
    override(("config", "min_eth_balance"), "KEEPER_MIN_ETH_BALANCE")
    override(("config", "call_delay_sec"), "KEEPER_CALL_DELAY_SEC", kind="float")
    override(("config", "max_batches"), "KEEPER_MAX_BATCHES", kind="int")
    override(("config", "max_runtime_sec"), "KEEPER_MAX_RUNTIME_SEC", kind="float")
    override(("config", "receipt_timeout_sec"), "KEEPER_RECEIPT_TIMEOUT_SEC", kind="float")
    override(("config", "runtime_dir"), "KEEPER_RUNTIME_DIR")
    return cfg


def _parse_eth_amount(raw: Any) -> int:
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ConfigError(f"min_eth_balance is not a number: {raw!r}") from exc
    if amount < 0:
        raise ConfigError("min_eth_balance must be >= 0")
    return int(to_wei(amount, "ether"))


def _number(section: Dict[str, Any], key: str, default: Any, kind: Any, prefix: str = "") -> Any:
    raw = section.get(key, default)
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{prefix}{key} must be a number, got {raw!r}") from exc


def build_keeper_config(cfg: Dict[str, Any]) -> KeeperConfig:
    """Validate a merged config dict and build KeeperConfig (raises ConfigError)."""
    section = cfg.get("config") or {}
    if not isinstance(section, dict):
        raise ConfigError("config section must be a mapping")
    private_key = env_first(*PRIVATE_KEY_ENV_NAMES) or ""
    contract = str(section.get("rewards_contract") or "").strip()

    missing = []
    if not private_key:
        missing.append(PRIVATE_KEY_ENV_NAMES[0])
    if not contract:
        missing.append("REWARDS_CONTRACT")
    if missing:
        raise ConfigError(f"Missing {' or '.join(missing)} in env/.env", missing=missing)

    if not is_address(contract):
        raise ConfigError(f"REWARDS_CONTRACT is not a valid address: {contract}")
    try:
        Account.from_key(private_key)
    except Exception as exc:
        raise ConfigError("Private key is malformed") from exc

    gas = section.get("gas_limits") or {}
    if not isinstance(gas, dict):
        raise ConfigError("gas_limits must be a mapping")
    return KeeperConfig(
        rpc_url=str(section.get("rpc_url") or DEFAULT_RPC_URL).strip(),
        private_key=private_key,
        rewards_contract=to_checksum_address(contract),
        min_eth_balance_wei=_parse_eth_amount(section.get("min_eth_balance", "0.001")),
        call_delay_sec=_number(section, "call_delay_sec", 2.0, float),
        settle_delay_sec=_number(section, "settle_delay_sec", 1.0, float),
        settle_attempts=max(1, _number(section, "settle_attempts", 1, int)),
        max_batches=max(0, _number(section, "max_batches", 500, int)),
        max_runtime_sec=max(0.0, _number(section, "max_runtime_sec", 3600.0, float)),
        receipt_timeout_sec=_number(section, "receipt_timeout_sec", 180.0, float),
        receipt_poll_sec=_number(section, "receipt_poll_sec", 2.0, float),
        rpc_timeout_sec=_number(section, "rpc_timeout_sec", 30.0, float),
        runtime_dir=str(section.get("runtime_dir") or KEEPER_RUNTIME_DIR),
        gas_limits=GasLimits(
            start_epoch=_number(gas, "start_epoch", 3_000_000, int, prefix="gas_limits."),
            end_cycle=_number(gas, "end_cycle", 1_500_000, int, prefix="gas_limits."),
            flush_distributions=_number(gas, "flush_distributions", 1_500_000, int, prefix="gas_limits."),
        ),
    )


def load_keeper_config(path: Optional[Path] = None) -> KeeperConfig:
    return build_keeper_config(apply_env_overrides(load_yaml_config(path)))
