"""
Configuration helpers for the retarget engine.

Network parameters are immutable presets. The config loader prefers deterministic
defaults, then merges a user provided JSON configuration file and environment
overrides prefixed with ``RETARGET_``.
"""

from __future__ import annotations

import enum
import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any


class ConfigError(Exception):
    """Raised when configuration validation fails."""


class Algorithm(str, enum.Enum):
    LEGACY = "legacy"
    KIMOTO_GRAVITY_WELL = "kgw"
    DARK_GRAVITY_WAVE = "dgw"
    DARK_GRAVITY_WAVE3 = "dgw3"
    STATIC = "static"


ID_MAINNET = "org.dash.production"
ID_TESTNET = "org.dash.test"
ID_REGTEST = "org.dash.regtest"

TARGET_TIMESPAN = 24 * 60 * 60
TARGET_SPACING = 150
INTERVAL = TARGET_TIMESPAN // TARGET_SPACING

POW_LIMIT_BITS = 0x1E0FFFFF
POW_LIMIT = 0x0FFFFF << (8 * (0x1E - 3))
REGTEST_MAX_TARGET = int("7f" + "ff" * 32, 16)


def _expand_path(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value))).resolve()


def default_data_dir() -> Path:
    base = Path(os.getenv("RETARGET_DATA", Path.home() / ".retarget"))
    return _expand_path(str(base))


@dataclass(frozen=True, slots=True)
class NetworkParams:
    name: str
    network_id: str
    max_target: int
    epochs: tuple[tuple[int, Algorithm], ...]
    target_timespan: int = TARGET_TIMESPAN
    target_spacing: int = TARGET_SPACING
    interval: int = INTERVAL
    allow_min_difficulty_blocks: bool = False
    tolerance_max_height: int | None = None
    tolerance_ratio: float = 0.2
    kgw_time_floor_height: int = 646120

    def validate(self) -> None:
        if self.target_spacing <= 0:
            raise ConfigError("target_spacing must be > 0")
        if self.target_timespan <= 0:
            raise ConfigError("target_timespan must be > 0")
        if self.interval <= 0:
            raise ConfigError("interval must be > 0")
        if self.max_target <= 0:
            raise ConfigError("max_target must be positive")
        if not self.epochs:
            raise ConfigError("epochs must not be empty")
        if self.epochs[0][0] != 0:
            raise ConfigError("first epoch must start at height 0")
        starts = [start for start, _ in self.epochs]
        if starts != sorted(set(starts)):
            raise ConfigError("epoch start heights must be strictly increasing")
        for _, algorithm in self.epochs:
            if not isinstance(algorithm, Algorithm):
                raise ConfigError(f"Unknown retarget algorithm {algorithm!r}")
        if not (0 < self.tolerance_ratio < 1):
            raise ConfigError("tolerance_ratio must be between 0 and 1")


MAINNET = NetworkParams(
    name="mainnet",
    network_id=ID_MAINNET,
    max_target=POW_LIMIT,
    epochs=(
        (0, Algorithm.LEGACY),
        (15200, Algorithm.KIMOTO_GRAVITY_WELL),
        (34140, Algorithm.DARK_GRAVITY_WAVE),
        (68589, Algorithm.DARK_GRAVITY_WAVE3),
    ),
    tolerance_max_height=68589,
)

TESTNET = NetworkParams(
    name="testnet",
    network_id=ID_TESTNET,
    max_target=POW_LIMIT,
    epochs=(
        (0, Algorithm.LEGACY),
        (3000, Algorithm.DARK_GRAVITY_WAVE3),
    ),
    allow_min_difficulty_blocks=True,
)

REGTEST = NetworkParams(
    name="regtest",
    network_id=ID_REGTEST,
    max_target=REGTEST_MAX_TARGET,
    epochs=((0, Algorithm.STATIC),),
)

NETWORKS: dict[str, NetworkParams] = {params.name: params for params in (MAINNET, TESTNET, REGTEST)}
NETWORK_IDS: dict[str, NetworkParams] = {params.network_id: params for params in NETWORKS.values()}


def params_for(name: str) -> NetworkParams:
    """Look up a preset by short name (``testnet``) or network id (``org.dash.test``)."""

    key = name.strip().lower()
    if key in NETWORK_IDS:
        return NETWORK_IDS[key]
    try:
        return NETWORKS[key]
    except KeyError:
        raise ConfigError(f"Unknown network {name!r}; expected one of {', '.join(sorted(NETWORKS))}") from None


def parse_epochs(value: Any) -> tuple[tuple[int, Algorithm], ...]:
    """Accept ``[[height, "dgw3"], ...]`` or ``"0:legacy,3000:dgw3"``."""

    if isinstance(value, str):
        items = []
        for chunk in value.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            height, _, name = chunk.partition(":")
            items.append((height, name))
    else:
        items = list(value)
    epochs: list[tuple[int, Algorithm]] = []
    for item in items:
        try:
            height, name = item
            epochs.append((int(height), Algorithm(str(name).strip().lower())))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid epoch entry {item!r}") from exc
    return tuple(epochs)


@dataclass(slots=True)
class EngineConfig:
    network: str = "mainnet"
    data_dir: Path = field(default_factory=default_data_dir)
    header_db: Path | None = None
    log_file: Path | None = None
    log_level: str = "info"
    allow_consensus_overrides: bool = False
    consensus: dict[str, Any] = field(default_factory=dict)

    def ensure_data_layout(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for name in ("headers", "logs"):
            (self.data_dir / name).mkdir(parents=True, exist_ok=True)
        if self.header_db is None:
            self.header_db = self.data_dir / "headers" / f"{params_for(self.network).name}.sqlite3"
        if self.log_file is None:
            self.log_file = self.data_dir / "logs" / "retarget.log"

    def network_params(self) -> NetworkParams:
        params = params_for(self.network)
        if not self.consensus:
            return params
        if not self.allow_consensus_overrides:
            raise ConfigError(
                "Consensus parameter overrides detected. "
                "Set allow_consensus_overrides=true ONLY for isolated test nets. "
                f"Overrides: {', '.join(sorted(self.consensus))}"
            )
        changes: dict[str, Any] = {}
        known = {f.name: f for f in fields(NetworkParams)}
        for key, value in self.consensus.items():
            if key not in known or key in {"name", "network_id"}:
                raise ConfigError(f"Unknown consensus field {key}")
            if key == "epochs":
                changes[key] = parse_epochs(value)
            elif key == "max_target":
                changes[key] = _coerce_target(value)
            elif key == "tolerance_max_height":
                changes[key] = _coerce_value(None, value)
            else:
                changes[key] = _coerce_value(getattr(params, key), value)
        params = replace(params, **changes)
        params.validate()
        return params

    def validate(self) -> None:
        params_for(self.network)
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ConfigError(f"Invalid log level {self.log_level}")
        if not isinstance(self.data_dir, Path):
            raise ConfigError("data_dir must be a Path")
        if not isinstance(self.consensus, dict):
            raise ConfigError("consensus must be a mapping")
        self.network_params()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("data_dir", "header_db", "log_file"):
            if data[key] is not None:
                data[key] = str(data[key])
        return data


def load_config(path: Path | None = None, *, overrides: dict[str, Any] | None = None) -> EngineConfig:
    """Load configuration from disk and environment overrides."""

    def _merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
        for key, value in extra.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = _merge(dict(base[key]), value)
            else:
                base[key] = value
        return base

    cfg_path = path or (_expand_path(os.getenv("RETARGET_CONFIG", str(default_data_dir() / "config.json"))))
    base: dict[str, Any] = {}
    if Path(cfg_path).exists():
        try:
            with open(cfg_path, "rb") as fh:
                base = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Malformed config file {cfg_path}: {exc}") from exc
        if not isinstance(base, dict):
            raise ConfigError(f"Config file {cfg_path} must contain a JSON object")

    env_overrides: dict[str, Any] = {}
    prefix = "RETARGET_"
    for key, value in os.environ.items():
        if not key.startswith(prefix) or key in {"RETARGET_CONFIG", "RETARGET_DATA"}:
            continue
        trimmed = key[len(prefix) :]
        parts = trimmed.lower().split("__")
        target = env_overrides
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value

    if overrides:
        env_overrides = _merge(env_overrides, overrides)

    merged = _merge(base, env_overrides)
    config = EngineConfig()
    _apply_dict(config, merged)
    config.ensure_data_layout()
    config.validate()
    return config


def _apply_dict(obj: EngineConfig, data: dict[str, Any]) -> None:
    for key, value in data.items():
        if not hasattr(obj, key):
            raise ConfigError(f"Unknown config field {key}")
        current = getattr(obj, key)
        if key == "consensus":
            if not isinstance(value, dict):
                raise ConfigError("consensus must be a mapping")
            obj.consensus = {**obj.consensus, **value}
        elif isinstance(current, Path) or key.endswith(("dir", "file", "db")):
            if value is None:
                if key == "data_dir":
                    raise ConfigError("data_dir must be a path")
                # Unset paths fall back to the data_dir layout.
                setattr(obj, key, None)
            else:
                setattr(obj, key, _expand_path(str(value)))
        else:
            setattr(obj, key, _coerce_value(current, value))


def _coerce_target(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        try:
            return int(normalized, 16) if normalized.startswith("0x") else int(normalized)
        except ValueError as exc:
            raise ConfigError(f"Invalid target value {value!r}") from exc
    raise ConfigError(f"Cannot coerce {value!r} to a target")


def _coerce_value(current: Any, value: Any) -> Any:
    target_type = type(current)
    if target_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in {"1", "true", "yes"}:
                return True
            if normalized in {"0", "false", "no"}:
                return False
            raise ConfigError(f"Invalid boolean value {value}")
        raise ConfigError(f"Cannot coerce {value!r} to bool")
    if current is None:
        # Optional heights such as tolerance_max_height.
        if value is None or (isinstance(value, str) and value.strip().lower() in {"", "none", "null"}):
            return None
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric value {value!r}") from exc
    if target_type in {int, float}:
        try:
            if target_type is int and isinstance(value, str) and value.strip().lower().startswith("0x"):
                return int(value.strip(), 16)
            return target_type(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric value {value!r}") from exc
    if target_type is str:
        return str(value)
    return value
