"""
Mutable world state shared by pools and the router.

A Ledger owns the token balance table, every pool's PoolState and ShareLedger,
and the ledger clock. All mutations of a public operation run inside
`atomic()`: a snapshot is taken on entry and restored in place if anything
raises, so a failed call leaves no trace. Transactions nest; an inner failure
that the outer scope lets propagate is undone by both.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from structlog import get_logger

from .balances import Account, Amount, AssetId, BalanceTable
from .pools import PoolState
from .shares import ShareLedger

logger = get_logger()

AuthHook = Callable[[Account], None]


@dataclass(frozen=True)
class _Snapshot:
    balances: Dict[Tuple[Account, AssetId], Amount]
    pools: Dict[str, PoolState]
    shares: Dict[str, ShareLedger]


class Ledger:
    def __init__(self, timestamp: int = 0, require_auth: Optional[AuthHook] = None) -> None:
        self.balances = BalanceTable()
        self.pools: Dict[str, PoolState] = {}
        self.shares: Dict[str, ShareLedger] = {}
        self.timestamp = timestamp
        # Accounts that authorized an operation, in call order.
        self.auths: List[Account] = []
        self._require_auth = require_auth
        self._depth = 0
        self.log = logger.new()

    def require_auth(self, account: Account) -> None:
        """Run the external authorization check for `account`."""
        if self._require_auth is not None:
            self._require_auth(account)
        self.auths.append(account)

    def add_pool(self, state: PoolState) -> None:
        if state.pool_id in self.pools:
            raise ValueError(f"Pool {state.pool_id} already exists")
        self.pools[state.pool_id] = state
        self.shares[state.pool_id] = ShareLedger(state.share_token)

    def pool_state(self, pool_id: str) -> PoolState:
        return self.pools[pool_id]

    def share_ledger(self, pool_id: str) -> ShareLedger:
        return self.shares[pool_id]

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            balances=self.balances.get_all_balances(),
            pools=copy.deepcopy(self.pools),
            shares=copy.deepcopy(self.shares),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self.balances.restore(snapshot.balances)
        # Restore object contents in place so handles held by callers stay valid.
        for pool_id, saved in snapshot.pools.items():
            self.pools[pool_id].__dict__.update(copy.deepcopy(saved.__dict__))
        for pool_id, saved in snapshot.shares.items():
            self.shares[pool_id].__dict__.update(copy.deepcopy(saved.__dict__))
        for pool_id in set(self.pools) - set(snapshot.pools):
            del self.pools[pool_id]
            del self.shares[pool_id]

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        """Commit every mutation made in the block, or none of them."""
        snapshot = self._snapshot()
        auths_len = len(self.auths)
        self._depth += 1
        try:
            yield self
        except BaseException as exc:
            self._restore(snapshot)
            del self.auths[auths_len:]
            self.log.debug('transaction rolled back', depth=self._depth, error=type(exc).__name__)
            raise
        finally:
            self._depth -= 1
