from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable, Optional, Tuple

from .contract import ContractHandle
from .errors import ReconstructionError
from .logging_utils import get_logger
from .metadata import MetadataResolver
from .models import Token
from .ownership import OwnershipReconstructor
from .validation import same_address, truncate_address, validate_address

if TYPE_CHECKING:
    from .session import SessionManager, SessionState

logger = get_logger("holdings")


@dataclass(frozen=True)
class HoldingsSnapshot:
    """What the application currently displays for one owner."""

    owner: Optional[str] = None
    tokens: Tuple[Token, ...] = ()
    error: Optional[str] = None
    loading: bool = False

    @property
    def can_retry(self) -> bool:
        return self.error is not None and self.owner is not None


class HoldingsTracker:
    """Keeps the displayed holdings in step with the session.

    Every refresh is tagged with a generation; a result that arrives after a
    newer refresh, a disconnect or an account change is dropped.
    """

    def __init__(
        self,
        reconstructor: OwnershipReconstructor,
        resolver: Optional[MetadataResolver] = None,
        keep_previous_on_error: bool = True,
    ):
        self.reconstructor = reconstructor
        self.resolver = resolver
        self.keep_previous_on_error = keep_previous_on_error
        self._generation = 0
        self._snapshot = HoldingsSnapshot()

    @property
    def snapshot(self) -> HoldingsSnapshot:
        return self._snapshot

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def clear(self) -> HoldingsSnapshot:
        self._next_generation()
        self._snapshot = HoldingsSnapshot()
        return self._snapshot

    async def refresh(self, handle: ContractHandle, owner: Optional[str] = None) -> HoldingsSnapshot:
        owner = validate_address(owner or handle.account, "owner")
        generation = self._next_generation()
        previous = self._snapshot
        if not same_address(previous.owner, owner):
            previous = HoldingsSnapshot(owner=owner)
        self._snapshot = replace(previous, owner=owner, error=None, loading=True)

        try:
            tokens = await self.reconstructor.reconstruct(handle, owner)
            if self.resolver is not None:
                tokens = await self.resolver.attach(tokens)
        except ReconstructionError as exc:
            if generation != self._generation:
                return self._snapshot
            kept = previous.tokens if self.keep_previous_on_error else ()
            self._snapshot = HoldingsSnapshot(owner=owner, tokens=kept, error=str(exc))
            return self._snapshot
        except Exception as exc:
            if generation == self._generation:
                kept = previous.tokens if self.keep_previous_on_error else ()
                self._snapshot = HoldingsSnapshot(owner=owner, tokens=kept, error=str(exc))
            raise

        if generation != self._generation:
            logger.info("Discarding stale holdings for %s", truncate_address(owner))
            return self._snapshot
        self._snapshot = HoldingsSnapshot(owner=owner, tokens=tuple(tokens))
        return self._snapshot

    def on_session_change(self, state: "SessionState") -> None:
        if state.contract is None:
            if self._snapshot.owner is not None or self._snapshot.loading:
                logger.info("Session lost its contract handle; clearing holdings")
            self.clear()
        elif self._snapshot.owner is not None and not same_address(self._snapshot.owner, state.account):
            self.clear()

    def follow(self, session: "SessionManager") -> Callable[[], None]:
        return session.subscribe(self.on_session_change)
