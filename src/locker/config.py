# src/locker/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from locker.errors import invalid_config

Json = Dict[str, Any]

WAD = 10**18
WAD_SQUARED = 10**36

UINT32_MAX = 2**32 - 1
UINT96_MAX = 2**96 - 1
UINT256_MAX = 2**256 - 1

DAY_SECONDS = 24 * 60 * 60

_ALLOWED_MODES = {"dev", "testnet", "prod"}


def _as_int(v: Any, default: int) -> int:
    if v is None:
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _as_balances(v: Any) -> Dict[str, int]:
    if not isinstance(v, dict):
        return {}
    return {str(k): int(amt) for k, amt in v.items()}


@dataclass(frozen=True)
class FeeCurve:
    """Immutable duration bounds and fee/bonus curve parameters (fixed point, 1e18 scale)."""

    min_lock_duration: int
    max_lock_duration: int
    min_early_withdrawal_fee: int
    base_early_withdrawal_fee: int
    max_dividends_bonus_multiplier: int


def validate_fee_curve(curve: FeeCurve) -> None:
    for name in ("min_lock_duration", "max_lock_duration"):
        v = int(getattr(curve, name))
        if v < 0 or v > UINT32_MAX:
            raise invalid_config("duration_out_of_range", field=name, value=v)

    if int(curve.min_lock_duration) >= int(curve.max_lock_duration):
        raise invalid_config(
            "min_duration_not_below_max",
            min_lock_duration=int(curve.min_lock_duration),
            max_lock_duration=int(curve.max_lock_duration),
        )

    for name in ("min_early_withdrawal_fee", "base_early_withdrawal_fee", "max_dividends_bonus_multiplier"):
        v = int(getattr(curve, name))
        if v < 0 or v > UINT256_MAX:
            raise invalid_config("curve_param_out_of_range", field=name, value=v)

    # Full fee on a max-duration lock withdrawn at once must stay within 100%.
    worst = int(curve.min_early_withdrawal_fee) * WAD + int(curve.base_early_withdrawal_fee) * (
        WAD + int(curve.max_dividends_bonus_multiplier)
    )
    if worst > WAD_SQUARED:
        raise invalid_config("fee_curve_exceeds_100_percent", worst_case=worst)


@dataclass(frozen=True)
class LockerConfig:
    min_lock_duration: int
    max_lock_duration: int
    min_early_withdrawal_fee: int
    base_early_withdrawal_fee: int
    max_dividends_bonus_multiplier: int

    # Single administrative account.
    owner: str

    # Initial values for the mutable policy; changed later only through admin calls.
    minimum_deposit: int
    fee_recipient: Optional[str]

    # Account id the ledger itself holds funds under.
    locker_address: str

    mode: str  # "dev" | "testnet" | "prod"
    db_path: str
    log_level: str

    genesis_balances: Dict[str, int] = field(default_factory=dict)

    @property
    def fee_curve(self) -> FeeCurve:
        return FeeCurve(
            min_lock_duration=int(self.min_lock_duration),
            max_lock_duration=int(self.max_lock_duration),
            min_early_withdrawal_fee=int(self.min_early_withdrawal_fee),
            base_early_withdrawal_fee=int(self.base_early_withdrawal_fee),
            max_dividends_bonus_multiplier=int(self.max_dividends_bonus_multiplier),
        )


def validate_locker_config(cfg: LockerConfig) -> None:
    """Fail-fast validation for operator config."""

    validate_fee_curve(cfg.fee_curve)

    if not isinstance(cfg.owner, str) or not cfg.owner.strip():
        raise invalid_config("owner_required")

    if not isinstance(cfg.locker_address, str) or not cfg.locker_address.strip():
        raise invalid_config("locker_address_required")

    if int(cfg.minimum_deposit) < 0 or int(cfg.minimum_deposit) > UINT96_MAX:
        raise invalid_config("minimum_deposit_out_of_range", value=int(cfg.minimum_deposit))

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise invalid_config("unknown_mode", mode=cfg.mode, allowed=sorted(_ALLOWED_MODES))

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise invalid_config("db_path_required")

    for account, amount in cfg.genesis_balances.items():
        if int(amount) < 0:
            raise invalid_config("negative_genesis_balance", account=account, amount=int(amount))


def default_locker_config() -> LockerConfig:
    return LockerConfig(
        min_lock_duration=30 * DAY_SECONDS,
        max_lock_duration=365 * DAY_SECONDS,
        min_early_withdrawal_fee=0,
        base_early_withdrawal_fee=WAD // 10,
        max_dividends_bonus_multiplier=WAD // 2,
        owner="owner",
        minimum_deposit=0,
        fee_recipient=None,
        locker_address="locker",
        mode="prod",
        db_path="./data/locker.db",
        log_level="INFO",
        genesis_balances={},
    )


def _read_raw(p: Path) -> Any:
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def read_locker_config_file(path: str) -> LockerConfig:
    p = Path(path)
    raw = _read_raw(p)
    if not isinstance(raw, dict):
        raise invalid_config("config_not_an_object", path=str(path))

    d = default_locker_config()

    cfg = LockerConfig(
        min_lock_duration=_as_int(raw.get("min_lock_duration"), d.min_lock_duration),
        max_lock_duration=_as_int(raw.get("max_lock_duration"), d.max_lock_duration),
        min_early_withdrawal_fee=_as_int(raw.get("min_early_withdrawal_fee"), d.min_early_withdrawal_fee),
        base_early_withdrawal_fee=_as_int(raw.get("base_early_withdrawal_fee"), d.base_early_withdrawal_fee),
        max_dividends_bonus_multiplier=_as_int(
            raw.get("max_dividends_bonus_multiplier"), d.max_dividends_bonus_multiplier
        ),
        owner=_as_str(raw.get("owner"), d.owner),
        minimum_deposit=_as_int(raw.get("minimum_deposit"), d.minimum_deposit),
        fee_recipient=_as_opt_str(raw.get("fee_recipient")),
        locker_address=_as_str(raw.get("locker_address"), d.locker_address),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        genesis_balances=_as_balances(raw.get("genesis_balances")),
    )

    validate_locker_config(cfg)
    return cfg


def load_locker_config(*, config_path: Optional[str] = None) -> LockerConfig:
    p = config_path or os.environ.get("LOCKER_CONFIG_PATH")
    if p:
        return read_locker_config_file(p)

    cfg = default_locker_config()
    validate_locker_config(cfg)
    return cfg


def apply_locker_config_to_env(cfg: LockerConfig) -> None:
    validate_locker_config(cfg)
    os.environ["LOCKER_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["LOCKER_DB_PATH"] = cfg.db_path
    os.environ["LOCKER_LOG_LEVEL"] = cfg.log_level
