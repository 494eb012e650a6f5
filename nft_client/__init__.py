from __future__ import annotations

from .config import ClientConfig, load_config
from .contract import ContractHandle
from .dispatcher import MintCall, MutationDispatcher, SetMinterCall, SubmittedTransaction, TxStatus
from .holdings import HoldingsSnapshot, HoldingsTracker
from .metadata import ImageResult, MetadataResolver, to_gateway_url
from .models import Metadata, Token, TransferEvent
from .ownership import OwnershipReconstructor, build_ownership_index, owned_token_ids
from .session import SessionManager, SessionState, SessionStatus
from .validator import ValidationResult, validate_contract
from .wallet import LocalAccountWallet, NetworkParams, WalletProvider
