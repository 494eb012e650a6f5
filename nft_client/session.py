"""
Wallet session state machine.

The session moves through ``disconnected -> connecting -> chain_mismatch ->
bound`` (plus ``error``). Each transition replaces the whole
:class:`SessionState`; subscribers are notified synchronously with the new
snapshot before the triggering call returns. A contract handle only ever
exists alongside an account on the expected chain, and ``SessionState``
refuses to be built otherwise.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .abi import CONTRACT_ABI
from .config import ClientConfig
from .constants import SEPOLIA_CHAIN_ID, UNRECOGNIZED_CHAIN
from .contract import ContractHandle
from .errors import (
    ContractValidationError,
    NftClientError,
    WalletError,
    WalletRequestError,
    WalletUnavailableError,
)
from .logging_utils import get_logger
from .validation import truncate_address
from .validator import validate_contract
from .wallet import NetworkParams, WalletProvider, sepolia_network

logger = get_logger("session")


class SessionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CHAIN_MISMATCH = "chain_mismatch"
    BOUND = "bound"
    ERROR = "error"


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus = SessionStatus.DISCONNECTED
    account: Optional[str] = None
    chain_id: Optional[int] = None
    contract: Optional[ContractHandle] = None
    error: Optional[str] = None
    expected_chain_id: int = SEPOLIA_CHAIN_ID

    def __post_init__(self) -> None:
        identified = self.account is not None and self.chain_id == self.expected_chain_id
        if (self.contract is not None) != identified:
            raise ValueError(
                "A contract handle must exist exactly when an account is connected "
                "on the expected chain."
            )
        if (self.status is SessionStatus.BOUND) != (self.contract is not None):
            raise ValueError(f"Status {self.status.value} does not match contract binding.")

    @property
    def is_connected(self) -> bool:
        return self.account is not None

    @property
    def is_correct_chain(self) -> bool:
        return self.chain_id == self.expected_chain_id

    @property
    def display_account(self) -> str:
        return truncate_address(self.account)


SessionListener = Callable[[SessionState], Any]


class SessionManager:
    """Owns the wallet connection and the bound contract handle."""

    def __init__(
        self,
        wallet: Optional[WalletProvider],
        contract_address: str,
        abi: Sequence[Dict[str, Any]] = CONTRACT_ABI,
        expected_chain_id: int = SEPOLIA_CHAIN_ID,
        network: Optional[NetworkParams] = None,
    ):
        self._wallet = wallet
        self._contract_address = contract_address
        self._abi = abi
        self._expected_chain_id = expected_chain_id
        self._network = network
        self._listeners: List[SessionListener] = []
        self._generation = 0
        self._state = SessionState(expected_chain_id=expected_chain_id)

    @classmethod
    def from_config(cls, config: ClientConfig, wallet: Optional[WalletProvider]) -> "SessionManager":
        network = None
        if config.chain_id == SEPOLIA_CHAIN_ID:
            network = sepolia_network(config.rpc_url, config.explorer_url)
        return cls(
            wallet,
            config.contract_address,
            abi=config.abi,
            expected_chain_id=config.chain_id,
            network=network,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    def get_state(self) -> SessionState:
        return self._state

    # ---- Subscribers ----
    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            for idx, registered in enumerate(self._listeners):
                if registered is listener:
                    del self._listeners[idx]
                    break
            removed = True

        return unsubscribe

    def _notify(self) -> None:
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Session listener raised; remaining listeners still notified.")

    def _publish(self, state: SessionState) -> SessionState:
        self._state = state
        self._notify()
        return state

    def _blank(self, status: SessionStatus, error: Optional[str] = None) -> SessionState:
        return SessionState(status=status, error=error, expected_chain_id=self._expected_chain_id)

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _commit(self, generation: int, state: SessionState) -> SessionState:
        if generation != self._generation:
            logger.info("Discarding superseded session transition to %s", state.status.value)
            return self._state
        return self._publish(state)

    def _fail(self, generation: int, exc: Exception) -> None:
        if generation == self._generation:
            logger.error("Session error: %s", exc)
            self._publish(self._blank(SessionStatus.ERROR, error=str(exc)))

    # ---- Transitions ----
    async def connect(self) -> SessionState:
        """Connect the wallet, negotiate the chain and bind the contract.

        Returns the resulting state. A failed chain switch is not an error:
        the session lands in ``chain_mismatch``. Anything else that goes wrong
        resets the session and is raised to the caller.
        """
        generation = self._next_generation()
        self._publish(self._blank(SessionStatus.CONNECTING))
        try:
            wallet = self._require_wallet()
            await self._request_permissions(wallet)
            accounts = await wallet.request_accounts()
            if not accounts:
                raise WalletError("Wallet returned no accounts.")
            account = accounts[0]
            chain_id = await wallet.chain_id()
            logger.info("Wallet %s connected on chain %s", truncate_address(account), chain_id)
            return await self._settle(generation, account, chain_id)
        except NftClientError as exc:
            self._fail(generation, exc)
            raise
        except Exception as exc:
            error = WalletError(f"Failed to connect wallet: {exc}")
            self._fail(generation, error)
            raise error from exc

    async def switch_network(self) -> SessionState:
        """Retry the chain switch from ``chain_mismatch``."""
        state = self._state
        if state.status is SessionStatus.BOUND:
            return state
        if state.account is None:
            raise WalletError("Connect a wallet before switching networks.")
        generation = self._next_generation()
        try:
            return await self._settle(generation, state.account, state.chain_id)
        except NftClientError as exc:
            self._fail(generation, exc)
            raise
        except Exception as exc:
            error = WalletError(f"Network switch failed: {exc}")
            self._fail(generation, error)
            raise error from exc

    def disconnect(self) -> SessionState:
        self._next_generation()
        logger.info("Session disconnected")
        return self._publish(self._blank(SessionStatus.DISCONNECTED))

    def handle_accounts_changed(self, accounts: Sequence[str]) -> SessionState:
        """React to the wallet reporting a different account selection."""
        if not accounts:
            return self.disconnect()
        state = self._state
        if state.status not in (SessionStatus.BOUND, SessionStatus.CHAIN_MISMATCH):
            return state
        account = accounts[0]
        self._next_generation()
        contract = state.contract.with_account(account) if state.contract is not None else None
        logger.info("Wallet account changed to %s", truncate_address(account))
        return self._publish(replace(state, account=account, contract=contract))

    async def handle_chain_changed(self, chain_id: int) -> SessionState:
        """React to the wallet moving to another network."""
        state = self._state
        if state.status not in (SessionStatus.BOUND, SessionStatus.CHAIN_MISMATCH):
            return state
        account = state.account
        if account is None:
            return state
        generation = self._next_generation()
        if chain_id != self._expected_chain_id:
            return self._commit(generation, self._mismatch(account, chain_id))
        try:
            handle = await self._bind(account)
        except NftClientError as exc:
            self._fail(generation, exc)
            raise
        return self._commit(generation, self._bound(account, chain_id, handle))

    # ---- Helpers ----
    def _require_wallet(self) -> WalletProvider:
        if self._wallet is None:
            raise WalletUnavailableError("No wallet provider is available.")
        return self._wallet

    async def _request_permissions(self, wallet: WalletProvider) -> None:
        try:
            await wallet.request_permissions()
        except Exception as exc:
            # Account re-selection is optional; fall back to the default account.
            logger.info("Permissions request failed, continuing with account request: %s", exc)

    async def _settle(self, generation: int, account: str, chain_id: Optional[int]) -> SessionState:
        if chain_id != self._expected_chain_id:
            chain_id = await self._negotiate_chain(chain_id)
        if chain_id != self._expected_chain_id:
            return self._commit(generation, self._mismatch(account, chain_id))
        handle = await self._bind(account)
        logger.info("Contract %s bound for %s", handle.address, truncate_address(account))
        return self._commit(generation, self._bound(account, chain_id, handle))

    async def _negotiate_chain(self, current: Optional[int]) -> Optional[int]:
        """Ask the wallet to switch (registering the network if needed).

        Returns the wallet's chain id afterwards, or ``current`` when the switch
        could not be completed.
        """
        wallet = self._require_wallet()
        target = self._expected_chain_id
        logger.info("Requesting switch from chain %s to %s", current, target)
        try:
            try:
                await wallet.switch_chain(target)
            except WalletRequestError as exc:
                if exc.code != UNRECOGNIZED_CHAIN or self._network is None:
                    raise
                logger.info("Chain %s unknown to wallet; registering %s", target, self._network.chain_name)
                await wallet.add_chain(self._network)
                await wallet.switch_chain(target)
            return await wallet.chain_id()
        except Exception as exc:
            logger.warning("Network switch to %s failed: %s", target, exc)
            return current

    async def _bind(self, account: str) -> ContractHandle:
        wallet = self._require_wallet()
        reader = wallet.reader()
        result = await validate_contract(reader, self._contract_address, self._abi)
        if not result.valid:
            raise ContractValidationError(result)
        return ContractHandle(
            address=self._contract_address,
            abi=self._abi,
            reader=reader,
            signer=wallet,
            account=account,
        )

    def _mismatch(self, account: str, chain_id: Optional[int]) -> SessionState:
        return SessionState(
            status=SessionStatus.CHAIN_MISMATCH,
            account=account,
            chain_id=chain_id,
            expected_chain_id=self._expected_chain_id,
        )

    def _bound(self, account: str, chain_id: int, handle: ContractHandle) -> SessionState:
        return SessionState(
            status=SessionStatus.BOUND,
            account=account,
            chain_id=chain_id,
            contract=handle,
            expected_chain_id=self._expected_chain_id,
        )
