"""
Local Signer - Per-actor keys and transaction signing.

Holds one private key per actor and signs transactions in-process so
writes can go out as eth_sendRawTransaction to any hosted endpoint.

Security:
- Keys are never logged, repr'd or serialized; only derived addresses are
- Lookup is by address, case-insensitive
"""

import logging
from typing import Any, Dict, Iterable, List

from eth_account import Account
from eth_account.signers.local import LocalAccount

from chain_rpc.logging_utils import short_address
from core.exceptions import ConfigurationError, RejectedOperationError


logger = logging.getLogger(__name__)


def normalize_key(private_key: str) -> str:
    """Strip whitespace and add the 0x prefix when missing."""
    key = str(private_key).strip()
    return key if key.startswith("0x") else f"0x{key}"


def load_account(private_key: str) -> LocalAccount:
    """
    Load a signing account from a hex private key.

    Raises:
        ConfigurationError: Not a valid secp256k1 private key. The key
            itself is never part of the message.
    """
    try:
        return Account.from_key(normalize_key(private_key))
    except Exception as e:
        raise ConfigurationError(
            f"Invalid private key ({type(e).__name__})",
            config_key="private_keys",
        ) from None


def address_from_key(private_key: str) -> str:
    """Checksummed account address for a private key."""
    return load_account(private_key).address


class LocalSigner:
    """
    Signs transactions for a fixed set of actor keys.

    Usage:
        signer = LocalSigner(["0x...", "0x..."])
        raw = signer.sign(actor_address, {"to": ..., "nonce": 3, ...})
    """

    def __init__(self, private_keys: Iterable[str]) -> None:
        self._accounts: Dict[str, LocalAccount] = {}
        for key in private_keys:
            account = load_account(key)
            self._accounts[account.address.lower()] = account

    @property
    def addresses(self) -> List[str]:
        return [account.address for account in self._accounts.values()]

    def __len__(self) -> int:
        return len(self._accounts)

    def __repr__(self) -> str:
        return f"LocalSigner({len(self._accounts)} keys)"

    def has_key_for(self, address: str) -> bool:
        return address.lower() in self._accounts

    def sign(self, address: str, transaction: Dict[str, Any]) -> str:
        """
        Sign a transaction dict for the given actor.

        Returns:
            Raw signed transaction as 0x-prefixed hex

        Raises:
            RejectedOperationError: No key for the address, or the
                transaction fields were refused by the signer
        """
        account = self._accounts.get(address.lower())
        if account is None:
            raise RejectedOperationError(
                f"No signing key for {short_address(address)}",
                method="sign_transaction",
            )
        try:
            signed = account.sign_transaction(transaction)
        except (TypeError, ValueError) as e:
            raise RejectedOperationError(
                f"Cannot sign transaction for {short_address(address)}: {e}",
                method="sign_transaction",
                cause=e,
            )
        logger.debug(f"Signed transaction nonce {transaction.get('nonce')} for {short_address(address)}")
        return "0x" + bytes(signed.raw_transaction).hex()
