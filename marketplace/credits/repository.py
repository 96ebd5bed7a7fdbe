from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from marketplace.common.enums import EntityType
from marketplace.credits.models import (
    BoostPurchase,
    CreditBalance,
    CreditTransaction,
    InsufficientCreditsError,
    LedgerAuditRecord,
)


class CreditRepository:
    """In-memory credit store.

    ``debit_credits`` is the conditional update (``balance >= amount``) and is
    the only path that can lower a balance without an explicit
    ``set_credit_balance``. Balances never go below zero.
    """

    def __init__(self) -> None:
        self._balances: Dict[str, CreditBalance] = {}
        self._transactions: List[CreditTransaction] = []
        self._boosts: Dict[str, BoostPurchase] = {}
        self._lock = threading.RLock()

    def new_id(self) -> str:
        return str(uuid4())

    def get_credit_balance(self, user_id: str) -> CreditBalance:
        with self._lock:
            return self._balances.get(user_id) or CreditBalance(user_id=user_id, balance=0)

    def set_credit_balance(self, user_id: str, balance: int, *, updated_at: Optional[datetime] = None) -> CreditBalance:
        if balance < 0:
            raise ValueError("balance must be nonnegative")
        record = CreditBalance(user_id=user_id, balance=balance, updated_at=updated_at)
        with self._lock:
            self._balances[user_id] = record
        return record

    def debit_credits(self, user_id: str, amount: int, *, updated_at: Optional[datetime] = None) -> CreditBalance:
        with self._lock:
            current = self.get_credit_balance(user_id)
            if current.balance < amount:
                raise InsufficientCreditsError(
                    details={"balance": current.balance, "required": amount},
                )
            return self.set_credit_balance(user_id, current.balance - amount, updated_at=updated_at)

    def credit_credits(self, user_id: str, amount: int, *, updated_at: Optional[datetime] = None) -> CreditBalance:
        with self._lock:
            current = self.get_credit_balance(user_id)
            return self.set_credit_balance(user_id, current.balance + amount, updated_at=updated_at)

    def append_credit_transaction(self, transaction: CreditTransaction) -> None:
        with self._lock:
            self._transactions.append(transaction)

    def list_transactions(self, user_id: Optional[str] = None) -> List[CreditTransaction]:
        with self._lock:
            records = [tx for tx in self._transactions if user_id is None or tx.user_id == user_id]
        records.reverse()
        return sorted(records, key=lambda tx: tx.created_at, reverse=True)

    def list_active_boosts(self, entity_type: EntityType, entity_id: str) -> List[BoostPurchase]:
        """Rows still flagged active for one entity, newest first, lapsed or not."""
        with self._lock:
            boosts = [
                boost
                for boost in self._boosts.values()
                if boost.entity_type == entity_type and boost.entity_id == entity_id and boost.is_active
            ]
        return sorted(boosts, key=lambda boost: boost.start_at, reverse=True)

    def get_active_boost(
        self,
        entity_type: EntityType,
        entity_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[BoostPurchase]:
        boosts = self.list_active_boosts(entity_type, entity_id)
        if now is not None:
            boosts = [boost for boost in boosts if boost.is_current(now)]
        return boosts[0] if boosts else None

    def get_boost(self, boost_id: str) -> Optional[BoostPurchase]:
        with self._lock:
            return self._boosts.get(boost_id)

    def create_boost_purchase(self, purchase: BoostPurchase) -> None:
        with self._lock:
            if purchase.boost_id in self._boosts:
                raise ValueError(f"boost {purchase.boost_id} already exists")
            self._boosts[purchase.boost_id] = purchase

    def delete_boost_purchase(self, boost_id: str) -> None:
        with self._lock:
            self._boosts.pop(boost_id, None)

    def deactivate_boost_purchase(self, boost_id: str) -> BoostPurchase:
        with self._lock:
            boost = self._boosts[boost_id]
            updated = replace(boost, is_active=False)
            self._boosts[boost_id] = updated
        return updated

    def reactivate_boost_purchase(self, boost_id: str) -> BoostPurchase:
        with self._lock:
            updated = replace(self._boosts[boost_id], is_active=True)
            self._boosts[boost_id] = updated
        return updated

    def list_boosts(self, user_id: Optional[str] = None) -> List[BoostPurchase]:
        with self._lock:
            boosts = [boost for boost in self._boosts.values() if user_id is None or boost.user_id == user_id]
        return sorted(boosts, key=lambda boost: boost.start_at, reverse=True)

    def list_expired_boosts(self, now: datetime) -> List[BoostPurchase]:
        with self._lock:
            expired = [boost for boost in self._boosts.values() if boost.is_active and boost.end_at < now]
        return sorted(expired, key=lambda boost: (boost.end_at, boost.boost_id))


class LedgerAuditRepository:
    def __init__(self) -> None:
        self._records: List[LedgerAuditRecord] = []

    def add(self, record: LedgerAuditRecord) -> None:
        self._records.append(record)

    def list(self) -> List[LedgerAuditRecord]:
        return list(self._records)

    def new_id(self) -> str:
        return str(uuid4())
