"""
Pool risk parameters and declarative DEX configuration.

Configuration is plain YAML:

    defaults:
      swap_fee_bps: 30
      max_allowed_slippage_bps: 500
      max_allowed_spread_bps: 500
    pools:
      - assets: [TOKEN_A, TOKEN_B]
        swap_fee_bps: 0

Per-pool keys override the defaults. Unknown keys are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Tuple

import yaml


BPS_DENOM = 10_000

_PARAM_KEYS = ("swap_fee_bps", "max_allowed_slippage_bps", "max_allowed_spread_bps")


@dataclass(frozen=True)
class PoolParams:
    swap_fee_bps: int = 0
    max_allowed_slippage_bps: int = 500
    max_allowed_spread_bps: int = 500

    def __post_init__(self) -> None:
        for name in _PARAM_KEYS:
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if not (0 <= v <= BPS_DENOM):
                raise ValueError(f"{name} must be in [0, {BPS_DENOM}]: {v}")


@dataclass(frozen=True)
class PoolSpec:
    asset_x: str
    asset_y: str
    params: PoolParams


@dataclass(frozen=True)
class DexConfig:
    defaults: PoolParams = PoolParams()
    pools: Tuple[PoolSpec, ...] = ()


def _params_from_mapping(obj: Mapping[str, Any], base: PoolParams, *, where: str) -> PoolParams:
    overrides = {}
    for key, value in obj.items():
        if key == "assets":
            continue
        if key not in _PARAM_KEYS:
            raise ValueError(f"unknown key {key!r} in {where}")
        overrides[key] = value
    return replace(base, **overrides)


def config_from_dict(obj: Any) -> DexConfig:
    """Build a validated DexConfig from decoded YAML/JSON."""
    if obj is None:
        return DexConfig()
    if not isinstance(obj, Mapping):
        raise TypeError("config must be a mapping")
    unknown = set(obj) - {"defaults", "pools"}
    if unknown:
        raise ValueError(f"unknown top-level config keys: {sorted(unknown)}")

    defaults_obj = obj.get("defaults") or {}
    if not isinstance(defaults_obj, Mapping):
        raise TypeError("defaults must be a mapping")
    defaults = _params_from_mapping(defaults_obj, PoolParams(), where="defaults")

    pools_obj = obj.get("pools") or []
    if not isinstance(pools_obj, list):
        raise TypeError("pools must be a list")

    pools = []
    seen = set()
    for i, entry in enumerate(pools_obj):
        if not isinstance(entry, Mapping):
            raise TypeError(f"pools[{i}] must be a mapping")
        assets = entry.get("assets")
        if (
            not isinstance(assets, list)
            or len(assets) != 2
            or not all(isinstance(a, str) and a for a in assets)
        ):
            raise ValueError(f"pools[{i}].assets must be a list of two asset ids")
        if assets[0] == assets[1]:
            raise ValueError(f"pools[{i}] pairs an asset with itself: {assets[0]}")
        pair = frozenset(assets)
        if pair in seen:
            raise ValueError(f"pools[{i}] duplicates pair {sorted(pair)}")
        seen.add(pair)
        params = _params_from_mapping(entry, defaults, where=f"pools[{i}]")
        pools.append(PoolSpec(asset_x=assets[0], asset_y=assets[1], params=params))

    return DexConfig(defaults=defaults, pools=tuple(pools))


def load_config(path: Path) -> DexConfig:
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return config_from_dict(obj)


def _defaults_path() -> Path:
    # src/core/config.py -> src/core/dex_defaults.yaml
    return Path(__file__).resolve().parent / "dex_defaults.yaml"


@lru_cache(maxsize=1)
def default_config() -> DexConfig:
    return load_config(_defaults_path())
