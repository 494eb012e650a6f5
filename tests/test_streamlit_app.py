"""
Tests for the Streamlit page's error handling.

The page helpers are exercised with a recording stand-in for the ``st``
module, so no Streamlit server is started.

Tests follow the Given/When/Then pattern for clarity.
"""

import asyncio
from typing import Any, Dict, List

import pytest

import streamlit_app
from conftest import CONTRACT, FakeChain
from nft_client.config import ClientConfig
from nft_client.dispatcher import MutationDispatcher
from nft_client.session import SessionManager, SessionStatus


class RecordingStreamlit:
    """Captures the calls the helpers make before any widget is drawn."""

    def __init__(self):
        self.session_state: Dict[str, Any] = {}
        self.errors: List[str] = []
        self.subheaders: List[str] = []

    def error(self, message: str) -> None:
        self.errors.append(message)

    def subheader(self, text: str) -> None:
        self.subheaders.append(text)


@pytest.fixture
def st(monkeypatch) -> RecordingStreamlit:
    recorder = RecordingStreamlit()
    monkeypatch.setattr(streamlit_app, "st", recorder)
    yield recorder
    loop = recorder.session_state.get(streamlit_app.LOOP_KEY)
    if loop is not None:
        loop.close()


def _failing_reads(chain: FakeChain, fn_names: set) -> None:
    original = chain.call

    async def call(address, abi, fn_name, *args, block_identifier=None):
        if fn_name in fn_names:
            raise ConnectionError("rpc down")
        return await original(address, abi, fn_name, *args, block_identifier=block_identifier)

    chain.call = call


class TestSessionSetup:
    """Tests for building the cached session."""

    def test_malformed_private_key_is_reported(self, st: RecordingStreamlit):
        """
        Given a configured private key that cannot be parsed
        When the page builds its session
        Then the error is shown and a wallet-less session is cached
        """
        config = ClientConfig(contract_address=CONTRACT, rpc_url="http://127.0.0.1:8545", private_key="0x1234")

        session = streamlit_app._session(config)

        assert len(st.errors) == 1
        assert st.errors[0].startswith("Wallet unavailable")
        assert st.session_state[streamlit_app.SESSION_KEY] is session
        assert session._wallet is None


class TestRoleChecks:
    """Role pre-checks surface RPC failures instead of crashing the page."""

    @pytest.fixture
    def bound(self, session: SessionManager) -> SessionManager:
        state = asyncio.run(session.connect())
        assert state.status is SessionStatus.BOUND
        return session

    def test_mint_panel_hidden_when_minter_check_fails(self, st, chain: FakeChain, bound: SessionManager):
        """
        Given a bound session whose minter check fails at the transport
        When rendering the mint panel
        Then an error is shown and the panel is not drawn
        """
        _failing_reads(chain, {"isAuthorizedMinter"})
        config = ClientConfig(contract_address=CONTRACT, rpc_url="http://127.0.0.1:8545")

        streamlit_app._render_mint(config, bound, MutationDispatcher())

        assert st.errors == ["RPC request failed: rpc down"]
        assert st.subheaders == []

    def test_owner_panel_hidden_when_owner_check_fails(self, st, chain: FakeChain, bound: SessionManager):
        """
        Given a bound session whose owner read fails at the transport
        When rendering the minter-management panel
        Then an error is shown and the panel is not drawn
        """
        _failing_reads(chain, {"owner"})
        config = ClientConfig(contract_address=CONTRACT, rpc_url="http://127.0.0.1:8545")

        streamlit_app._render_owner(config, bound, MutationDispatcher())

        assert st.errors == ["RPC request failed: rpc down"]
        assert st.subheaders == []
