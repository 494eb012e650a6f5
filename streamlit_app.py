"""Streamlit page for the ERC-721 client: wallet session, holdings, minting."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

import streamlit as st

from nft_client import (
    HoldingsTracker,
    LocalAccountWallet,
    MetadataResolver,
    MutationDispatcher,
    OwnershipReconstructor,
    SessionManager,
    SessionStatus,
)
from nft_client.chain import RPC_ERRORS
from nft_client.config import ClientConfig, load_config
from nft_client.errors import (
    ConfigError,
    MutationError,
    NftClientError,
    TransactionFailedError,
    WalletRequestError,
)

LOOP_KEY = "nft_event_loop"
SESSION_KEY = "nft_session"
HOLDINGS_KEY = "nft_holdings"
LAST_TX_KEY = "nft_last_tx"

T = TypeVar("T")


def _run(coro: Awaitable[T]) -> T:
    loop = st.session_state.get(LOOP_KEY)
    if loop is None:
        loop = asyncio.new_event_loop()
        st.session_state[LOOP_KEY] = loop
    return loop.run_until_complete(coro)


def _session(config: ClientConfig) -> SessionManager:
    session = st.session_state.get(SESSION_KEY)
    if session is None:
        wallet = None
        if config.private_key:
            try:
                wallet = LocalAccountWallet(config.private_key, {config.chain_id: config.rpc_url}, config.chain_id)
            except WalletRequestError as exc:
                st.error(f"Wallet unavailable: {exc}")
        session = SessionManager.from_config(config, wallet)
        st.session_state[SESSION_KEY] = session
    return session


def _holdings(config: ClientConfig, session: SessionManager) -> HoldingsTracker:
    tracker = st.session_state.get(HOLDINGS_KEY)
    if tracker is None:
        tracker = HoldingsTracker(
            OwnershipReconstructor(config.start_block),
            MetadataResolver(gateway=config.ipfs_gateway),
        )
        tracker.follow(session)
        st.session_state[HOLDINGS_KEY] = tracker
    return tracker


def _render_session(session: SessionManager) -> None:
    state = session.get_state()
    cols = st.columns([3, 1])
    with cols[0]:
        if state.status is SessionStatus.BOUND:
            st.success(f"Connected: {state.display_account} (chain {state.chain_id})")
        elif state.status is SessionStatus.CHAIN_MISMATCH:
            st.warning(
                f"Wallet {state.display_account} is on chain {state.chain_id}; "
                f"switch to chain {state.expected_chain_id} to continue."
            )
        elif state.status is SessionStatus.ERROR:
            st.error(state.error or "Wallet connection failed.")
        else:
            st.info("Wallet not connected.")
    with cols[1]:
        if state.is_connected:
            if state.status is SessionStatus.CHAIN_MISMATCH and st.button("Switch network"):
                _try(session.switch_network())
            if st.button("Disconnect"):
                session.disconnect()
        elif st.button("Connect wallet", type="primary"):
            _try(session.connect())


def _try(coro: Awaitable[Any]) -> Optional[Any]:
    try:
        return _run(coro)
    except NftClientError as exc:
        st.error(str(exc))
        return None
    except RPC_ERRORS as exc:
        st.error(f"RPC request failed: {exc}")
        return None


def _render_holdings(session: SessionManager, tracker: HoldingsTracker, resolver: MetadataResolver) -> None:
    state = session.get_state()
    st.subheader("Your NFTs")
    if state.contract is None:
        st.caption("Connect on the expected network to see your tokens.")
        return
    snapshot = tracker.snapshot
    label = "Retry" if snapshot.can_retry else "Refresh"
    if st.button(label) or snapshot.owner is None:
        _try(tracker.refresh(state.contract))
        snapshot = tracker.snapshot
    if snapshot.error:
        st.error(f"Could not load holdings: {snapshot.error}")
    if not snapshot.tokens:
        st.caption("No tokens found for this account.")
        return
    cols = st.columns(3)
    for idx, token in enumerate(snapshot.tokens):
        with cols[idx % 3]:
            image = _run(resolver.resolve_image(token.metadata))
            if image.placeholder:
                st.markdown("🖼️ *image unavailable*")
            else:
                st.image(image.content)
            st.markdown(f"**{token.display_name()}**")
            if token.metadata and token.metadata.description:
                st.caption(token.metadata.description)
            st.code(token.token_uri, language=None)


def _render_mint(config: ClientConfig, session: SessionManager, dispatcher: MutationDispatcher) -> None:
    state = session.get_state()
    handle = state.contract
    if handle is None or not _try(handle.can_mint(state.account)):
        return
    st.subheader("Mint")
    with st.form("mint_form"):
        to = st.text_input("Recipient", value=state.account or "")
        uri = st.text_input("Token URI", placeholder="ipfs://...")
        submitted = st.form_submit_button("Mint")
    if submitted:
        _submit_and_wait(config, dispatcher.mint(handle, to, uri))


def _render_owner(config: ClientConfig, session: SessionManager, dispatcher: MutationDispatcher) -> None:
    state = session.get_state()
    handle = state.contract
    if handle is None or not _try(handle.is_owner(state.account)):
        return
    st.subheader("Minter management")
    with st.form("minter_form"):
        minter = st.text_input("Minter address")
        revoke = st.checkbox("Revoke instead of authorize")
        submitted = st.form_submit_button("Update minter")
    if submitted:
        call = dispatcher.revoke_minter(handle, minter) if revoke else dispatcher.authorize_minter(handle, minter)
        _submit_and_wait(config, call)


def _submit_and_wait(config: ClientConfig, submission: Awaitable[Any]) -> None:
    try:
        tx = _run(submission)
    except MutationError as exc:
        st.error(str(exc))
        return
    st.info(f"Submitted: [{tx.hash}]({config.tx_explorer_url(tx.hash)})")
    with st.spinner("Waiting for confirmation..."):
        try:
            receipt = _run(tx.wait())
        except TransactionFailedError as exc:
            st.error(f"{exc} {exc.reason or ''}".strip())
            return
    st.session_state[LAST_TX_KEY] = receipt
    st.success(f"Confirmed in block {receipt.get('blockNumber')}")


def main() -> None:
    st.set_page_config(page_title="NFT Client", page_icon="🖼️", layout="wide")
    st.title("ERC-721 Collection")
    try:
        config = load_config()
    except ConfigError as exc:
        st.error(str(exc))
        return

    session = _session(config)
    tracker = _holdings(config, session)
    dispatcher = MutationDispatcher(config.confirmation_timeout)
    resolver = tracker.resolver or MetadataResolver(gateway=config.ipfs_gateway)

    _render_session(session)
    st.divider()
    _render_holdings(session, tracker, resolver)
    _render_mint(config, session, dispatcher)
    _render_owner(config, session, dispatcher)


if __name__ == "__main__":
    main()
