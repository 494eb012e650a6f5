"""
Tests for the mutation dispatcher.

Tests follow the Given/When/Then pattern for clarity.
"""

import pytest
from eth_abi import encode

from conftest import ALICE, BOB, CONTRACT, MINTER, OWNER, FakeChain, FakeWallet
from nft_client.abi import CONTRACT_ABI
from nft_client.constants import USER_REJECTED_REQUEST
from nft_client.contract import ContractHandle
from nft_client.dispatcher import (
    MintCall,
    MutationDispatcher,
    SetMinterCall,
    TxStatus,
    decode_revert_data,
    format_receipt,
)
from nft_client.errors import (
    InvalidInputError,
    SignerUnavailableError,
    SubmissionError,
    TransactionFailedError,
    WalletRequestError,
)


def signing_handle(chain: FakeChain, wallet: FakeWallet, account: str) -> ContractHandle:
    return ContractHandle(CONTRACT, CONTRACT_ABI, chain, signer=wallet, account=account)


@pytest.fixture
def dispatcher() -> MutationDispatcher:
    return MutationDispatcher(confirmation_timeout=5)


class TestCallValidation:
    """Inputs are rejected before any network activity."""

    @pytest.mark.parametrize(
        "call, field",
        [
            (MintCall("0x123", "ipfs://a"), "to"),
            (MintCall("", "ipfs://a"), "to"),
            (MintCall(ALICE, "   "), "token_uri"),
            (MintCall(ALICE, "ftp://host/a.json"), "token_uri"),
            (SetMinterCall("not-an-address"), "minter"),
        ],
    )
    async def test_invalid_input_names_the_field(self, dispatcher, chain, wallet, call, field):
        """
        Given a call with one malformed input
        When submitting it
        Then InvalidInputError names that field and nothing reaches the chain
        """
        handle = signing_handle(chain, wallet, MINTER)

        with pytest.raises(InvalidInputError) as excinfo:
            await dispatcher.submit(handle, call)

        assert excinfo.value.field == field
        assert not [c for c in chain.calls if c[0] == "build_transaction"]
        assert "eth_sendTransaction" not in wallet.requests

    async def test_validation_precedes_signer_check(self, dispatcher, chain):
        """
        Given a read-only handle and a malformed recipient
        When minting
        Then the input error wins
        """
        handle = ContractHandle(CONTRACT, CONTRACT_ABI, chain)

        with pytest.raises(InvalidInputError):
            await dispatcher.mint(handle, "bad", "ipfs://a")

    def test_uri_is_trimmed(self):
        """
        Given a URI with surrounding whitespace
        When validating the call
        Then the trimmed URI is used
        """
        assert MintCall(ALICE, "  ipfs://a  ").validated().token_uri == "ipfs://a"


class TestSubmit:
    """Tests for submission and the confirmation lifecycle."""

    async def test_read_only_handle_is_refused(self, dispatcher, chain):
        """
        Given a handle without a signer
        When minting
        Then SignerUnavailableError is raised
        """
        handle = ContractHandle(CONTRACT, CONTRACT_ABI, chain)

        with pytest.raises(SignerUnavailableError):
            await dispatcher.mint(handle, ALICE, "ipfs://a")

    async def test_signer_without_account_is_refused(self, dispatcher, chain, wallet):
        """
        Given a handle that has a signer but no selected account
        When minting
        Then SignerUnavailableError is raised before a transaction is built
        """
        handle = ContractHandle(CONTRACT, CONTRACT_ABI, chain, signer=wallet)

        with pytest.raises(SignerUnavailableError):
            await dispatcher.mint(handle, ALICE, "ipfs://a")

        assert not [c for c in chain.calls if c[0] == "build_transaction"]
        assert wallet.requests == []

    async def test_mint_goes_pending_then_confirmed(self, dispatcher, chain, wallet):
        """
        Given an authorized minter
        When minting
        Then the transaction is pending on return and confirmed after wait
        """
        # Given
        handle = signing_handle(chain, wallet, MINTER)

        # When
        submitted = await dispatcher.mint(handle, ALICE, "ipfs://new")

        # Then
        assert submitted.hash.startswith("0x")
        assert submitted.status is TxStatus.PENDING
        receipt = await submitted.wait()
        assert submitted.status is TxStatus.CONFIRMED
        assert receipt["status"] == 1
        assert receipt["transactionHash"] == submitted.hash

    async def test_user_rejection_is_submission_error(self, dispatcher, chain, wallet):
        """
        Given a wallet that rejects the signature request
        When minting
        Then SubmissionError is raised
        """
        wallet.send_error = WalletRequestError("User denied", code=USER_REJECTED_REQUEST)
        handle = signing_handle(chain, wallet, MINTER)

        with pytest.raises(SubmissionError, match="rejected"):
            await dispatcher.mint(handle, ALICE, "ipfs://a")

    async def test_unauthorized_mint_fails_with_reason(self, dispatcher, chain, wallet):
        """
        Given an account that is not an authorized minter
        When its mint is mined
        Then the transaction fails with the decoded revert reason
        """
        # Given
        handle = signing_handle(chain, wallet, BOB)

        # When
        submitted = await dispatcher.mint(handle, BOB, "ipfs://a")

        # Then
        with pytest.raises(TransactionFailedError) as excinfo:
            await submitted.wait()
        assert excinfo.value.reason == "Not authorized to mint"
        assert excinfo.value.tx_hash == submitted.hash
        assert submitted.status is TxStatus.FAILED

    async def test_non_owner_set_minter_decodes_custom_error(self, dispatcher, chain, wallet):
        """
        Given a caller who is not the contract owner
        When authorizing a minter
        Then the failure reason names OwnableUnauthorizedAccount
        """
        handle = signing_handle(chain, wallet, ALICE)

        submitted = await dispatcher.authorize_minter(handle, BOB)

        with pytest.raises(TransactionFailedError) as excinfo:
            await submitted.wait()
        assert excinfo.value.reason.startswith("OwnableUnauthorizedAccount(address=")

    async def test_owner_can_authorize_and_revoke(self, dispatcher, chain, wallet):
        """
        Given the contract owner
        When authorizing and then revoking a minter
        Then the allow-list follows
        """
        handle = signing_handle(chain, wallet, OWNER)

        await (await dispatcher.authorize_minter(handle, BOB)).wait()
        assert await handle.can_mint(BOB)

        await (await dispatcher.revoke_minter(handle, BOB)).wait()
        assert not await handle.can_mint(BOB)

    async def test_unconfirmed_transaction_is_dropped(self, dispatcher, chain, wallet):
        """
        Given a transaction that never confirms
        When waiting for it
        Then it fails with dropped=True
        """
        chain.drop_next = True
        handle = signing_handle(chain, wallet, MINTER)

        submitted = await dispatcher.mint(handle, ALICE, "ipfs://a")

        with pytest.raises(TransactionFailedError) as excinfo:
            await submitted.wait()
        assert excinfo.value.dropped


class TestRevertDecoding:
    """Tests for revert data helpers."""

    def test_decodes_nonexistent_token(self):
        """
        Given ERC721NonexistentToken revert data
        When decoding
        Then the token id is rendered
        """
        data = "0x7e273289" + encode(["uint256"], [9]).hex()

        assert decode_revert_data(data) == "ERC721NonexistentToken(uint256=9)"

    def test_unknown_selector_is_none(self):
        """
        Given revert data with an unknown selector
        When decoding
        Then None is returned
        """
        assert decode_revert_data("0xdeadbeef") is None

    def test_pending_receipt(self):
        """
        Given no receipt yet
        When formatting
        Then the status is pending
        """
        assert format_receipt(None) == {"status": "pending"}
