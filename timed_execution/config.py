"""
Timed Execution - Configuration.

============================================================
PURPOSE
============================================================
Configuration for a timed execution run.

SOURCES (later overrides earlier):
1. Safe defaults
2. YAML/JSON config file
3. Environment variables (TIMED_*), .env loaded via python-dotenv
4. Command-line overrides (applied by the orchestrator)

UNITS:
- Token amounts in files/env are human units ("1000" = 1000 tokens)
  converted to base units with token_decimals
- Gas prices in files/env are gwei, stored as wei

============================================================
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from chain_rpc.logging_utils import mask_url
from chain_rpc.models import GasFees
from chain_rpc.signer import address_from_key, normalize_key
from core.constants import (
    COUNTDOWN_THRESHOLD_SECONDS,
    DEFAULT_AUTHORIZE_GAS_LIMIT,
    DEFAULT_EXECUTE_GAS_LIMIT,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_SETTLEMENT_POLL_SECONDS,
    DEFAULT_SETTLEMENT_TIMEOUT_SECONDS,
    DEFAULT_TOKEN_DECIMALS,
    DEFAULT_TOLERANCE_SECONDS,
    ERROR_BACKOFF_SECONDS,
    FAR_POLL_INTERVAL_SECONDS,
    HEARTBEAT_INTERVAL_SECONDS,
    NEAR_POLL_INTERVAL_SECONDS,
    SIGNER_LOCAL,
    SIGNER_MODES,
    WEI_PER_GWEI,
)
from core.exceptions import ConfigurationError

from .types import ActorRegistry, TargetWindow


logger = logging.getLogger(__name__)

ENV_PREFIX = "TIMED_"


# ============================================================
# UNIT CONVERSION
# ============================================================

def to_base_units(value: Union[str, int, float, Decimal], decimals: int) -> int:
    """
    Convert a human amount to integer base units.

    Raises:
        ConfigurationError: Not a finite number, or finer than the token allows
    """
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"Invalid amount {value!r}", config_key="amount", cause=e)
    if not amount.is_finite():
        raise ConfigurationError(f"Amount {value!r} is not a finite number", config_key="amount")

    scaled = amount * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ConfigurationError(
            f"Amount {value} has more than {decimals} decimal places",
            config_key="amount",
        )
    return int(scaled)


def from_base_units(value: int, decimals: int) -> Decimal:
    """Convert integer base units back to a human amount."""
    return Decimal(value) / (Decimal(10) ** decimals)


def gwei_to_wei(value: Union[str, int, float, Decimal, None]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(Decimal(str(value)) * WEI_PER_GWEI)
    except (ArithmeticError, ValueError) as e:
        raise ConfigurationError(f"Invalid gas price {value!r}", config_key="gas", cause=e)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")


# ============================================================
# SECTIONS
# ============================================================

@dataclass
class RetryConfig:
    """Retry policy applied to every per-actor operation and read."""

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    """Total attempts including the first."""

    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    """Fixed delay between attempts."""

    def validate(self) -> List[str]:
        errors = []
        if self.max_attempts < 1:
            errors.append("retry.max_attempts must be >= 1")
        if self.delay_seconds < 0:
            errors.append("retry.delay_seconds must be >= 0")
        return errors


@dataclass
class PollingConfig:
    """Clock Monitor pacing."""

    far_interval_seconds: float = FAR_POLL_INTERVAL_SECONDS
    """Poll interval while the target is far away."""

    near_interval_seconds: float = NEAR_POLL_INTERVAL_SECONDS
    """Poll interval once within countdown_threshold_seconds."""

    countdown_threshold_seconds: int = COUNTDOWN_THRESHOLD_SECONDS
    """Remaining seconds at which the short interval kicks in."""

    heartbeat_interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS
    """Minimum spacing of heartbeat events while far away."""

    error_backoff_seconds: float = ERROR_BACKOFF_SECONDS
    """Wait after a failed timestamp query."""

    def validate(self) -> List[str]:
        errors = []
        if self.far_interval_seconds <= 0:
            errors.append("polling.far_interval_seconds must be > 0")
        if self.near_interval_seconds <= 0:
            errors.append("polling.near_interval_seconds must be > 0")
        if self.near_interval_seconds > self.far_interval_seconds:
            errors.append("polling.near_interval_seconds must not exceed far_interval_seconds")
        if self.countdown_threshold_seconds < 0:
            errors.append("polling.countdown_threshold_seconds must be >= 0")
        if self.heartbeat_interval_seconds <= 0:
            errors.append("polling.heartbeat_interval_seconds must be > 0")
        if self.error_backoff_seconds < 0:
            errors.append("polling.error_backoff_seconds must be >= 0")
        return errors


@dataclass
class GasConfig:
    """
    Fee settings for writes.

    Legacy gas_price_wei OR the EIP-1559 pair, never both. With
    neither set the upstream node estimates fees.
    """

    gas_price_wei: Optional[int] = None
    max_fee_per_gas_wei: Optional[int] = None
    max_priority_fee_per_gas_wei: Optional[int] = None
    authorize_gas_limit: int = DEFAULT_AUTHORIZE_GAS_LIMIT
    execute_gas_limit: int = DEFAULT_EXECUTE_GAS_LIMIT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GasConfig":
        return cls(
            gas_price_wei=gwei_to_wei(data.get("gas_price_gwei")),
            max_fee_per_gas_wei=gwei_to_wei(data.get("max_fee_per_gas_gwei")),
            max_priority_fee_per_gas_wei=gwei_to_wei(data.get("max_priority_fee_per_gas_gwei")),
            authorize_gas_limit=int(data.get("authorize_gas_limit", DEFAULT_AUTHORIZE_GAS_LIMIT)),
            execute_gas_limit=int(data.get("execute_gas_limit", DEFAULT_EXECUTE_GAS_LIMIT)),
        )

    @property
    def mode(self) -> str:
        if self.max_fee_per_gas_wei is not None or self.max_priority_fee_per_gas_wei is not None:
            return "eip1559"
        if self.gas_price_wei is not None:
            return "legacy"
        return "auto"

    def validate(self) -> List[str]:
        errors = []
        eip1559 = (self.max_fee_per_gas_wei, self.max_priority_fee_per_gas_wei)
        if self.gas_price_wei is not None and any(v is not None for v in eip1559):
            errors.append("gas: set either gas_price or max_fee/max_priority_fee, not both")
        if any(v is not None for v in eip1559) and not all(v is not None for v in eip1559):
            errors.append("gas: EIP-1559 requires both max_fee_per_gas and max_priority_fee_per_gas")
        if all(v is not None for v in eip1559) and eip1559[1] > eip1559[0]:
            errors.append("gas: max_priority_fee_per_gas must not exceed max_fee_per_gas")
        for name in ("gas_price_wei", "max_fee_per_gas_wei", "max_priority_fee_per_gas_wei"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                errors.append(f"gas.{name} must be > 0")
        if self.authorize_gas_limit <= 0:
            errors.append("gas.authorize_gas_limit must be > 0")
        if self.execute_gas_limit <= 0:
            errors.append("gas.execute_gas_limit must be > 0")
        return errors

    def to_fees(self) -> GasFees:
        return GasFees(
            gas_price_wei=self.gas_price_wei,
            max_fee_per_gas_wei=self.max_fee_per_gas_wei,
            max_priority_fee_per_gas_wei=self.max_priority_fee_per_gas_wei,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "gas_price_wei": self.gas_price_wei,
            "max_fee_per_gas_wei": self.max_fee_per_gas_wei,
            "max_priority_fee_per_gas_wei": self.max_priority_fee_per_gas_wei,
            "authorize_gas_limit": self.authorize_gas_limit,
            "execute_gas_limit": self.execute_gas_limit,
        }


@dataclass
class UpstreamConfig:
    """Primary and optional secondary endpoint."""

    primary_url: str = ""
    secondary_url: Optional[str] = None
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    settlement_timeout_seconds: float = DEFAULT_SETTLEMENT_TIMEOUT_SECONDS
    settlement_poll_seconds: float = DEFAULT_SETTLEMENT_POLL_SECONDS

    def validate(self) -> List[str]:
        errors = []
        if not self.primary_url:
            errors.append("upstream.primary_url is required")
        elif not self.primary_url.startswith(("http://", "https://")):
            errors.append("upstream.primary_url must be an http(s) URL")
        if self.secondary_url and not self.secondary_url.startswith(("http://", "https://")):
            errors.append("upstream.secondary_url must be an http(s) URL")
        if self.request_timeout_seconds <= 0:
            errors.append("upstream.request_timeout_seconds must be > 0")
        if self.settlement_timeout_seconds <= 0:
            errors.append("upstream.settlement_timeout_seconds must be > 0")
        if self.settlement_poll_seconds <= 0:
            errors.append("upstream.settlement_poll_seconds must be > 0")
        return errors

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        primary = mask_url(self.primary_url) if redact and self.primary_url else self.primary_url
        secondary = self.secondary_url
        if redact and secondary:
            secondary = mask_url(secondary)
        return {
            "primary_url": primary,
            "secondary_url": secondary,
            "request_timeout_seconds": self.request_timeout_seconds,
            "settlement_timeout_seconds": self.settlement_timeout_seconds,
            "settlement_poll_seconds": self.settlement_poll_seconds,
        }


# ============================================================
# EXECUTION CONFIG
# ============================================================

@dataclass
class ExecutionConfig:
    """
    Complete configuration for one run.

    Amounts are stored in base units.
    """

    target_timestamp: int = 0
    """Unix seconds of the target moment on the external clock."""

    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS
    """Half-width of the inclusive target window."""

    actors: List[str] = field(default_factory=list)
    """Ordered account identifiers, one per actor."""

    signer_mode: str = SIGNER_LOCAL
    """'local' signs with private_keys; 'node' leaves signing to the endpoint."""

    private_keys: List[str] = field(default_factory=list, repr=False)
    """One hex key per actor, in actor order. Never serialized or logged."""

    token_address: str = ""
    vault_address: str = ""

    amount: int = 0
    """Per-actor amount in base units."""

    token_decimals: int = DEFAULT_TOKEN_DECIMALS

    min_amount: Optional[int] = None
    max_amount: Optional[int] = None

    proceed_past_deadline: bool = False
    """Dispatch even if the monitor lands past the window."""

    skip_preparation: bool = False
    """Skip the balance/authorization phase."""

    require_ready_actor: bool = True
    """Zero ready actors after preparation is a setup failure."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    gas: GasConfig = field(default_factory=GasConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)

    # ------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------

    def window(self) -> TargetWindow:
        """Target window; raises ConfigurationError when malformed."""
        return TargetWindow(self.target_timestamp, self.tolerance_seconds)

    @property
    def human_amount(self) -> Decimal:
        return from_base_units(self.amount, self.token_decimals)

    @property
    def signs_locally(self) -> bool:
        return self.signer_mode == SIGNER_LOCAL

    def build_registry(self) -> ActorRegistry:
        """Actors in configured order, carrying their key when one was loaded."""
        keys = self.private_keys if self.signs_locally else []
        return ActorRegistry.from_identifiers(self.actors, keys)

    # ------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------

    def validate(self, require_upstream: bool = True) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of error messages; empty when valid
        """
        errors: List[str] = []

        if self.target_timestamp <= 0:
            errors.append("target_timestamp must be a positive unix timestamp")
        if self.tolerance_seconds < 0:
            errors.append("tolerance_seconds must be >= 0")

        if not self.actors:
            errors.append("at least one actor is required")
        lowered = [a.lower() for a in self.actors]
        duplicates = sorted({a for a in lowered if lowered.count(a) > 1})
        if duplicates:
            errors.append(f"duplicate actors: {', '.join(duplicates)}")
        for actor in self.actors:
            if not _is_address(actor):
                errors.append(f"actor {actor!r} is not a 0x-prefixed 20-byte address")

        if self.signer_mode not in SIGNER_MODES:
            errors.append(f"signer_mode must be one of: {', '.join(SIGNER_MODES)}")
        elif require_upstream and self.signs_locally and not self.private_keys:
            errors.append("signer_mode 'local' requires private_keys (TIMED_PRIVATE_KEYS)")

        for name in ("token_address", "vault_address"):
            value = getattr(self, name)
            if not _is_address(value):
                errors.append(f"{name} must be a 0x-prefixed 20-byte address")

        if self.token_decimals < 0 or self.token_decimals > 36:
            errors.append("token_decimals must be between 0 and 36")
        if self.amount <= 0:
            errors.append("amount must be > 0")
        if self.min_amount is not None and self.amount < self.min_amount:
            errors.append(
                f"amount {self.human_amount} below minimum "
                f"{from_base_units(self.min_amount, self.token_decimals)}"
            )
        if self.max_amount is not None and self.amount > self.max_amount:
            errors.append(
                f"amount {self.human_amount} above maximum "
                f"{from_base_units(self.max_amount, self.token_decimals)}"
            )

        errors.extend(self.retry.validate())
        errors.extend(self.polling.validate())
        errors.extend(self.gas.validate())
        if require_upstream:
            errors.extend(self.upstream.validate())
        return errors

    def ensure_valid(self, require_upstream: bool = True) -> "ExecutionConfig":
        """Raise ConfigurationError listing every problem, else return self."""
        errors = self.validate(require_upstream=require_upstream)
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                errors=errors,
            )
        return self

    def with_overrides(self, **changes: Any) -> "ExecutionConfig":
        """Copy with top-level fields replaced; None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **changes)

    # ------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExecutionConfig":
        """
        Build from a plain mapping (file layout).

        Recognized keys: target_timestamp, tolerance_seconds, actors,
        signer_mode, private_keys, token_address, vault_address, amount
        (human units), amount_base_units, token_decimals, min_amount,
        max_amount, proceed_past_deadline, skip_preparation,
        require_ready_actor, and the sections retry, polling, gas, upstream.

        With private_keys the actor addresses are derived from the keys;
        an explicit actors list must then match them in order.

        Raises:
            ConfigurationError: A value cannot be parsed
        """
        known = {f.name for f in dataclasses.fields(cls)} | {"amount_base_units"}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")

        private_keys = _as_list(data.get("private_keys"))
        actors = _as_list(data.get("actors"))
        if private_keys:
            derived = [address_from_key(key) for key in private_keys]
            if actors and [a.lower() for a in actors] != [d.lower() for d in derived]:
                raise ConfigurationError(
                    "actors do not match the addresses derived from private_keys",
                    config_key="actors",
                )
            actors = derived

        try:
            decimals = int(data.get("token_decimals", DEFAULT_TOKEN_DECIMALS))
            if data.get("amount_base_units") is not None:
                amount = int(data["amount_base_units"])
            elif data.get("amount") is not None:
                amount = to_base_units(data["amount"], decimals)
            else:
                amount = 0

            return cls(
                target_timestamp=int(data.get("target_timestamp", 0)),
                tolerance_seconds=int(data.get("tolerance_seconds", DEFAULT_TOLERANCE_SECONDS)),
                actors=actors,
                signer_mode=str(data.get("signer_mode") or SIGNER_LOCAL).strip().lower(),
                private_keys=[normalize_key(key) for key in private_keys],
                token_address=str(data.get("token_address", "")),
                vault_address=str(data.get("vault_address", "")),
                amount=amount,
                token_decimals=decimals,
                min_amount=_optional_amount(data.get("min_amount"), decimals),
                max_amount=_optional_amount(data.get("max_amount"), decimals),
                proceed_past_deadline=_as_bool(data.get("proceed_past_deadline", False)),
                skip_preparation=_as_bool(data.get("skip_preparation", False)),
                require_ready_actor=_as_bool(data.get("require_ready_actor", True)),
                retry=_section(RetryConfig, data.get("retry")),
                polling=_section(PollingConfig, data.get("polling")),
                gas=GasConfig.from_dict(data.get("gas") or {}),
                upstream=_section(UpstreamConfig, data.get("upstream")),
            )
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ConfigurationError(f"Malformed configuration: {e}", cause=e)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ExecutionConfig":
        """Load from a YAML (or JSON) file."""
        return cls.from_dict(_read_file(Path(path)))

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ExecutionConfig":
        """
        Load from environment variables.

        Environment variables:
        - TIMED_TARGET_TIMESTAMP, TIMED_TOLERANCE_SECONDS
        - TIMED_ACTORS (comma separated)
        - TIMED_PRIVATE_KEYS (comma separated), TIMED_SIGNER_MODE
        - TIMED_TOKEN_ADDRESS, TIMED_VAULT_ADDRESS
        - TIMED_AMOUNT, TIMED_TOKEN_DECIMALS, TIMED_MIN_AMOUNT, TIMED_MAX_AMOUNT
        - TIMED_PRIMARY_URL, TIMED_SECONDARY_URL
        - TIMED_RETRY_ATTEMPTS, TIMED_RETRY_DELAY_SECONDS
        - TIMED_GAS_PRICE_GWEI, TIMED_MAX_FEE_GWEI, TIMED_MAX_PRIORITY_FEE_GWEI
        - TIMED_PROCEED_PAST_DEADLINE, TIMED_SKIP_PREPARATION
        """
        return cls.from_dict(env_overrides(env_file=env_file, environ=environ))

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ExecutionConfig":
        """File values (if any) overlaid by environment values."""
        data: Dict[str, Any] = _read_file(Path(path)) if path else {}
        merged = _deep_merge(data, env_overrides(env_file=env_file, environ=environ))
        return cls.from_dict(merged)

    # ------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert to dictionary; endpoint URLs masked unless redact=False."""
        return {
            "target_timestamp": self.target_timestamp,
            "tolerance_seconds": self.tolerance_seconds,
            "actors": list(self.actors),
            "signer_mode": self.signer_mode,
            "private_keys": f"<{len(self.private_keys)} redacted>",
            "token_address": self.token_address,
            "vault_address": self.vault_address,
            "amount": str(self.human_amount),
            "amount_base_units": self.amount,
            "token_decimals": self.token_decimals,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "proceed_past_deadline": self.proceed_past_deadline,
            "skip_preparation": self.skip_preparation,
            "require_ready_actor": self.require_ready_actor,
            "retry": dataclasses.asdict(self.retry),
            "polling": dataclasses.asdict(self.polling),
            "gas": self.gas.to_dict(),
            "upstream": self.upstream.to_dict(redact=redact),
        }


# ============================================================
# HELPERS
# ============================================================

def env_overrides(
    env_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Collect TIMED_* variables into the file layout.

    A .env file is loaded first (without overriding variables already set)
    unless an explicit environ mapping is given.
    """
    if environ is None:
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()
        environ = os.environ

    def get(name: str) -> Optional[str]:
        value = environ.get(ENV_PREFIX + name)
        return value if value not in (None, "") else None

    data: Dict[str, Any] = {}
    simple = {
        "TARGET_TIMESTAMP": "target_timestamp",
        "TOLERANCE_SECONDS": "tolerance_seconds",
        "ACTORS": "actors",
        "PRIVATE_KEYS": "private_keys",
        "SIGNER_MODE": "signer_mode",
        "TOKEN_ADDRESS": "token_address",
        "VAULT_ADDRESS": "vault_address",
        "AMOUNT": "amount",
        "TOKEN_DECIMALS": "token_decimals",
        "MIN_AMOUNT": "min_amount",
        "MAX_AMOUNT": "max_amount",
        "PROCEED_PAST_DEADLINE": "proceed_past_deadline",
        "SKIP_PREPARATION": "skip_preparation",
    }
    for env_name, key in simple.items():
        value = get(env_name)
        if value is not None:
            data[key] = value

    sections = {
        "upstream": {"PRIMARY_URL": "primary_url", "SECONDARY_URL": "secondary_url"},
        "retry": {"RETRY_ATTEMPTS": "max_attempts", "RETRY_DELAY_SECONDS": "delay_seconds"},
        "gas": {
            "GAS_PRICE_GWEI": "gas_price_gwei",
            "MAX_FEE_GWEI": "max_fee_per_gas_gwei",
            "MAX_PRIORITY_FEE_GWEI": "max_priority_fee_per_gas_gwei",
        },
    }
    for section, names in sections.items():
        for env_name, key in names.items():
            value = get(env_name)
            if value is not None:
                data.setdefault(section, {})[key] = value

    return data


def _read_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}", cause=e)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse config file {path}: {e}", cause=e)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(cls, data: Optional[Mapping[str, Any]]):
    """Build a section dataclass, coercing values to the default's type."""
    if not data:
        return cls()
    defaults = cls()
    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.name not in data or data[f.name] is None:
            continue
        value = data[f.name]
        default = getattr(defaults, f.name)
        if isinstance(default, bool):
            value = _as_bool(value)
        elif isinstance(default, int):
            value = int(value)
        elif isinstance(default, float):
            value = float(value)
        kwargs[f.name] = value
    return cls(**kwargs)


def _as_list(value: Any) -> List[str]:
    """Accept a list or a comma separated string."""
    if not value:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value]


def _optional_amount(value: Any, decimals: int) -> Optional[int]:
    if value is None or value == "":
        return None
    return to_base_units(value, decimals)


def _is_address(value: str) -> bool:
    if not isinstance(value, str) or len(value) != 42 or not value.startswith("0x"):
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True
