"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines all system-wide constants.

- Provides single source of truth for magic values
- Documents the meaning of each constant
- Prevents hardcoding throughout codebase

============================================================
DESIGN PRINCIPLES
============================================================
- All constants are immutable
- Related constants are grouped
- No business logic here

============================================================
"""

from typing import Final, Tuple

from eth_utils import function_signature_to_4byte_selector


# ============================================================
# SYSTEM CONSTANTS
# ============================================================

SYSTEM_NAME: Final[str] = "timed-dispatch"
SYSTEM_VERSION: Final[str] = "1.0.0"


# ============================================================
# TARGET WINDOW DEFAULTS
# ============================================================

DEFAULT_TOLERANCE_SECONDS: Final[int] = 3


# ============================================================
# RETRY DEFAULTS
# ============================================================

DEFAULT_RETRY_ATTEMPTS: Final[int] = 3
DEFAULT_RETRY_DELAY_SECONDS: Final[float] = 2.0


# ============================================================
# POLLING POLICY
# ============================================================

# Interval while the target is more than COUNTDOWN_THRESHOLD away
FAR_POLL_INTERVAL_SECONDS: Final[float] = 0.5

# Interval once the target is within COUNTDOWN_THRESHOLD
NEAR_POLL_INTERVAL_SECONDS: Final[float] = 0.1

COUNTDOWN_THRESHOLD_SECONDS: Final[int] = 10
HEARTBEAT_INTERVAL_SECONDS: Final[float] = 10.0
ERROR_BACKOFF_SECONDS: Final[float] = 1.0


# ============================================================
# UPSTREAM DEFAULTS
# ============================================================

DEFAULT_REQUEST_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_SETTLEMENT_TIMEOUT_SECONDS: Final[float] = 180.0
DEFAULT_SETTLEMENT_POLL_SECONDS: Final[float] = 1.0

PRIMARY_CONNECTION_NAME: Final[str] = "primary"
SECONDARY_CONNECTION_NAME: Final[str] = "secondary"

# local: keys loaded into the process, writes sent raw
# node: the endpoint holds the keys (eth_sendTransaction)
SIGNER_LOCAL: Final[str] = "local"
SIGNER_NODE: Final[str] = "node"
SIGNER_MODES: Final[Tuple[str, ...]] = (SIGNER_LOCAL, SIGNER_NODE)


# ============================================================
# TOKEN / VAULT DEFAULTS
# ============================================================

DEFAULT_TOKEN_DECIMALS: Final[int] = 6
DEFAULT_AUTHORIZE_GAS_LIMIT: Final[int] = 100_000
DEFAULT_EXECUTE_GAS_LIMIT: Final[int] = 300_000

WEI_PER_GWEI: Final[int] = 10 ** 9

# Vault operationalMode() values, by index
VAULT_MODE_NAMES: Final[Tuple[str, ...]] = ("Idle", "Deposit", "Live", "Withdraw")
VAULT_MODE_DEPOSIT: Final[int] = 1


# ============================================================
# FUNCTION SELECTORS (first 4 bytes of keccak256 of the signature)
# ============================================================

SELECTOR_BALANCE_OF: Final[str] = "0x70a08231"        # balanceOf(address)
SELECTOR_ALLOWANCE: Final[str] = "0xdd62ed3e"         # allowance(address,address)
SELECTOR_APPROVE: Final[str] = "0x095ea7b3"           # approve(address,uint256)
SELECTOR_DECIMALS: Final[str] = "0x313ce567"          # decimals()
SELECTOR_TOTAL_ASSETS: Final[str] = "0x01e1d114"      # totalAssets()
SELECTOR_MAX_DEPOSIT: Final[str] = "0x402d267d"       # maxDeposit(address)
SELECTOR_DEPOSIT: Final[str] = "0x6e553f65"           # deposit(uint256,address)


def _selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


SELECTOR_OPERATIONAL_MODE: Final[str] = _selector("operationalMode()")
SELECTOR_DEPOSIT_START: Final[str] = _selector("depositStart()")
SELECTOR_DEPOSIT_END: Final[str] = _selector("depositEnd()")
SELECTOR_MAX_TOTAL_ASSETS: Final[str] = _selector("maxTotalAssets()")


# ============================================================
# EXIT CODES
# ============================================================

EXIT_ALL_SUCCEEDED: Final[int] = 0
EXIT_SETUP_FAILURE: Final[int] = 1
EXIT_PARTIAL_SUCCESS: Final[int] = 2
EXIT_NONE_SUCCEEDED: Final[int] = 3
EXIT_ABORTED: Final[int] = 4
EXIT_INTERRUPTED: Final[int] = 130
