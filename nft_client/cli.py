"""Command-line entry point: ``python run_nft_client.py <command> ...``."""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from .chain import RPC_ERRORS, Web3Gateway
from .config import PRIVATE_KEY_ENV, ClientConfig, load_config
from .contract import ContractHandle
from .dispatcher import MutationDispatcher, SubmittedTransaction
from .errors import (
    ChainMismatchError,
    ContractValidationError,
    NftClientError,
    WalletError,
    WalletUnavailableError,
)
from .metadata import MetadataResolver
from .ownership import OwnershipReconstructor
from .session import SessionManager, SessionStatus
from .validation import validate_address
from .validator import validate_contract
from .wallet import LocalAccountWallet


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nft-client", description="ERC-721 holdings and minting client")
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: ./.env)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("validate", help="Check the configured contract is a deployed ERC-721")

    holdings = sub.add_parser("holdings", help="List tokens held by ADDRESS")
    holdings.add_argument("address")
    holdings.add_argument("--verify-ownership", action="store_true", help="Confirm each token with ownerOf")
    holdings.add_argument("--metadata", action="store_true", help="Resolve token metadata documents")

    roles = sub.add_parser("roles", help="Show whether ADDRESS is the owner or an authorized minter")
    roles.add_argument("address")

    mint = sub.add_parser("mint", help="Mint a token to TO with metadata URI")
    mint.add_argument("to")
    mint.add_argument("uri")

    set_minter = sub.add_parser("set-minter", help="Authorize (or revoke) a minter")
    set_minter.add_argument("address")
    set_minter.add_argument("--revoke", action="store_true")
    return parser


async def _read_handle(config: ClientConfig) -> ContractHandle:
    reader = Web3Gateway.from_rpc(config.rpc_url)
    chain_id = await reader.chain_id()
    if chain_id != config.chain_id:
        raise ChainMismatchError(chain_id, config.chain_id)
    result = await validate_contract(reader, config.contract_address, config.abi)
    if not result.valid:
        raise ContractValidationError(result)
    return ContractHandle(config.contract_address, config.abi, reader)


async def _signing_handle(config: ClientConfig) -> ContractHandle:
    if not config.private_key:
        raise WalletUnavailableError(f"`{PRIVATE_KEY_ENV}` must be set for write commands.")
    wallet = LocalAccountWallet(config.private_key, {config.chain_id: config.rpc_url}, config.chain_id)
    session = SessionManager.from_config(config, wallet)
    state = await session.connect()
    if state.status is not SessionStatus.BOUND or state.contract is None:
        raise ChainMismatchError(state.chain_id, config.chain_id)
    print(f"→ Connected as {state.account}")
    return state.contract


async def _await_confirmation(config: ClientConfig, submitted: SubmittedTransaction) -> None:
    print(f"→ Submitted {submitted.hash}")
    print(f"  {config.tx_explorer_url(submitted.hash)}")
    receipt = await submitted.wait()
    print(f"✓ Confirmed in block {receipt.get('blockNumber')} (gas used {receipt.get('gasUsed')})")


async def _validate(config: ClientConfig, args: argparse.Namespace) -> None:
    handle = await _read_handle(config)
    print(f"✓ {await handle.name()} at {handle.address} on chain {config.chain_id}")


async def _holdings(config: ClientConfig, args: argparse.Namespace) -> None:
    owner = validate_address(args.address, "address")
    handle = await _read_handle(config)
    reconstructor = OwnershipReconstructor(config.start_block, verify_ownership=args.verify_ownership)
    tokens = await reconstructor.reconstruct(handle, owner)
    if args.metadata:
        tokens = await MetadataResolver(gateway=config.ipfs_gateway).attach(tokens)
    if not tokens:
        print(f"No tokens held by {owner}")
        return
    print(f"{len(tokens)} token(s) held by {owner}:")
    for token in tokens:
        line = f"  #{token.token_id}  {token.token_uri}"
        if args.metadata:
            line += f"  [{token.display_name()}]"
        print(line)


async def _roles(config: ClientConfig, args: argparse.Namespace) -> None:
    account = validate_address(args.address, "address")
    handle = await _read_handle(config)
    print(f"owner:  {await handle.is_owner(account)}")
    print(f"minter: {await handle.can_mint(account)}")


async def _mint(config: ClientConfig, args: argparse.Namespace) -> None:
    handle = await _signing_handle(config)
    dispatcher = MutationDispatcher(config.confirmation_timeout)
    await _await_confirmation(config, await dispatcher.mint(handle, args.to, args.uri))


async def _set_minter(config: ClientConfig, args: argparse.Namespace) -> None:
    handle = await _signing_handle(config)
    dispatcher = MutationDispatcher(config.confirmation_timeout)
    if args.revoke:
        submitted = await dispatcher.revoke_minter(handle, args.address)
    else:
        submitted = await dispatcher.authorize_minter(handle, args.address)
    await _await_confirmation(config, submitted)


_COMMANDS = {
    "validate": _validate,
    "holdings": _holdings,
    "roles": _roles,
    "mint": _mint,
    "set-minter": _set_minter,
}


async def _run_command(config: ClientConfig, args: argparse.Namespace) -> None:
    try:
        await _COMMANDS[args.command](config, args)
    except RPC_ERRORS as exc:
        raise WalletError(f"RPC request to {config.rpc_url} failed: {exc}") from exc


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(env_file=args.env_file)
        asyncio.run(_run_command(config, args))
    except NftClientError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1
    return 0
