from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

from marketplace.common.clock import Clock
from marketplace.common.enums import AuditOutcome, EntityType, TransactionType
from marketplace.credits.audit import LedgerAuditLogger
from marketplace.credits.expiry import ExpiryQueue
from marketplace.credits.models import (
    AlreadyBoostedError,
    BoostPlan,
    BoostPurchase,
    BoostRejection,
    CreditBalance,
    CreditPackage,
    CreditTransaction,
    InsufficientCreditsError,
    InvalidAmountError,
)
from marketplace.credits.repository import CreditRepository, LedgerAuditRepository
from marketplace.listings.repository import ListingRepository


def is_currently_boosted(purchase: Optional[BoostPurchase], now: datetime) -> bool:
    return purchase is not None and purchase.is_current(now)


class _LockRegistry:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield


class BoostLedger:
    """Credit balance, ledger and boost activation for listings.

    Every mutation runs under a per-user lock, and boost changes also take a
    per-entity lock (user first, then entity). Multi-step writes register a
    compensation after each step; if a later step raises, the compensations
    run in reverse and the original exception propagates. The ledger row is
    appended last so a recorded transaction always describes a completed
    operation.
    """

    def __init__(
        self,
        credits: CreditRepository,
        listings: ListingRepository,
        *,
        audit_logger: Optional[LedgerAuditLogger] = None,
        clock: Optional[Clock] = None,
        expiry_queue: Optional[ExpiryQueue] = None,
    ) -> None:
        self._credits = credits
        self._listings = listings
        self._audit = audit_logger or LedgerAuditLogger(LedgerAuditRepository())
        self._clock = clock or Clock()
        self._expiry_queue = expiry_queue
        self._user_locks = _LockRegistry()
        self._entity_locks = _LockRegistry()

    @property
    def audit_logger(self) -> LedgerAuditLogger:
        return self._audit

    def get_balance(self, user_id: str) -> CreditBalance:
        return self._credits.get_credit_balance(user_id)

    def list_transactions(self, user_id: str) -> List[CreditTransaction]:
        return self._credits.list_transactions(user_id)

    def list_boosts(self, user_id: str) -> List[BoostPurchase]:
        return self._credits.list_boosts(user_id)

    def get_current_boost(self, entity_type: EntityType, entity_id: str) -> Optional[BoostPurchase]:
        return self._credits.get_active_boost(entity_type, entity_id, self._clock.now())

    def purchase_boost(
        self,
        user_id: str,
        entity_type: EntityType,
        entity_id: str,
        plan: BoostPlan,
    ) -> BoostPurchase:
        params = {
            "entity_type": entity_type.value,
            "entity_id": entity_id,
            "duration_days": plan.duration_days,
            "credits_cost": plan.credits_cost,
        }
        with self._user_locks.hold(user_id), self._entity_locks.hold((entity_type, entity_id)):
            now = self._clock.now()
            try:
                purchase = self._purchase_locked(user_id, entity_type, entity_id, plan, now)
            except BoostRejection as exc:
                self._log("purchase_boost", AuditOutcome.rejected, user_id, params, now, error_code=exc.code)
                raise
            except Exception as exc:
                self._log("purchase_boost", AuditOutcome.failed, user_id, params, now, error_code=type(exc).__name__)
                raise
        self._log("purchase_boost", AuditOutcome.succeeded, user_id, dict(params, boost_id=purchase.boost_id), now)
        return purchase

    def _purchase_locked(
        self,
        user_id: str,
        entity_type: EntityType,
        entity_id: str,
        plan: BoostPlan,
        now: datetime,
    ) -> BoostPurchase:
        rows = self._credits.list_active_boosts(entity_type, entity_id)
        active = next((row for row in rows if row.is_current(now)), None)
        if active is not None:
            raise AlreadyBoostedError(details={"boost_id": active.boost_id, "end_at": active.end_at.isoformat()})
        balance = self._credits.get_credit_balance(user_id)
        if balance.balance < plan.credits_cost:
            raise InsufficientCreditsError(details={"balance": balance.balance, "required": plan.credits_cost})

        entity = self._listings.get(entity_type, entity_id)
        title = entity.title if entity is not None else entity_id
        purchase = BoostPurchase(
            boost_id=self._credits.new_id(),
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            credits_spent=plan.credits_cost,
            duration_days=plan.duration_days,
            start_at=now,
            end_at=now + timedelta(days=plan.duration_days),
            is_active=True,
        )
        compensations: List[Callable[[], Any]] = []
        try:
            debited = self._credits.debit_credits(user_id, plan.credits_cost, updated_at=now)
            compensations.append(lambda: self._credits.credit_credits(user_id, plan.credits_cost, updated_at=now))

            # lapsed rows nobody swept yet; at most one active row per entity
            for row in rows:
                self._credits.deactivate_boost_purchase(row.boost_id)
                compensations.append(lambda boost_id=row.boost_id: self._credits.reactivate_boost_purchase(boost_id))

            self._credits.create_boost_purchase(purchase)
            compensations.append(lambda: self._credits.delete_boost_purchase(purchase.boost_id))

            self._listings.update_entity_boost_fields(
                entity_type,
                entity_id,
                is_boosted=True,
                boost_expires_at=purchase.end_at,
                boost_score=plan.boost_score,
            )
            if entity is not None:
                compensations.append(
                    lambda: self._listings.update_entity_boost_fields(
                        entity_type,
                        entity_id,
                        is_boosted=entity.is_boosted,
                        boost_expires_at=entity.boost_expires_at,
                        boost_score=entity.boost_score,
                    )
                )

            if self._expiry_queue is not None:
                job_id = self._expiry_queue.enqueue(purchase)
                compensations.append(lambda: self._expiry_queue.cancel(job_id))

            self._credits.append_credit_transaction(
                CreditTransaction(
                    transaction_id=self._credits.new_id(),
                    user_id=user_id,
                    transaction_type=TransactionType.boost,
                    amount=-plan.credits_cost,
                    balance_after=debited.balance,
                    description=f'Boost {entity_type.value} "{title}" for {plan.duration_days} days',
                    created_at=now,
                )
            )
        except Exception:
            for undo in reversed(compensations):
                undo()
            raise
        return purchase

    def purchase_credits(self, user_id: str, package: CreditPackage) -> CreditTransaction:
        """Credit a package after the payment provider has confirmed the charge."""
        description = f"Purchased {package.credits} credits for ${package.price_cents / 100:,.2f}"
        return self._add_credits(
            "purchase_credits",
            user_id,
            package.credits,
            TransactionType.purchase,
            description,
            {"package_id": package.package_id},
        )

    def grant_credits(self, user_id: str, amount: int, description: str) -> CreditTransaction:
        if amount <= 0:
            raise InvalidAmountError(details={"amount": amount})
        return self._add_credits("grant_credits", user_id, amount, TransactionType.grant, description, {})

    def _add_credits(
        self,
        action: str,
        user_id: str,
        amount: int,
        transaction_type: TransactionType,
        description: str,
        params: Dict[str, Any],
    ) -> CreditTransaction:
        params = dict(params, amount=amount)
        with self._user_locks.hold(user_id):
            now = self._clock.now()
            credited = self._credits.credit_credits(user_id, amount, updated_at=now)
            transaction = CreditTransaction(
                transaction_id=self._credits.new_id(),
                user_id=user_id,
                transaction_type=transaction_type,
                amount=amount,
                balance_after=credited.balance,
                description=description,
                created_at=now,
            )
            try:
                self._credits.append_credit_transaction(transaction)
            except Exception as exc:
                self._credits.debit_credits(user_id, amount, updated_at=now)
                self._log(action, AuditOutcome.failed, user_id, params, now, error_code=type(exc).__name__)
                raise
        self._log(action, AuditOutcome.succeeded, user_id, params, now)
        return transaction

    def end_boost(self, entity_type: EntityType, entity_id: str) -> Optional[BoostPurchase]:
        """End the entity's boost now, whether or not it has run its course."""
        with self._entity_locks.hold((entity_type, entity_id)):
            active = self._credits.get_active_boost(
                entity_type, entity_id, self._clock.now()
            ) or self._credits.get_active_boost(entity_type, entity_id)
            if active is None:
                return None
            return self._end_locked(active, "end_boost")

    def expire_boost(self, boost_id: str, now: Optional[datetime] = None) -> Optional[BoostPurchase]:
        now = now or self._clock.now()
        boost = self._credits.get_boost(boost_id)
        if boost is None:
            return None
        with self._entity_locks.hold((boost.entity_type, boost.entity_id)):
            boost = self._credits.get_boost(boost_id)
            if boost is None or not boost.is_active or boost.end_at >= now:
                return None
            return self._end_locked(boost, "expire_boost")

    def expire_boosts(self, now: Optional[datetime] = None) -> List[BoostPurchase]:
        now = now or self._clock.now()
        ended: List[BoostPurchase] = []
        for boost in self._credits.list_expired_boosts(now):
            result = self.expire_boost(boost.boost_id, now)
            if result is not None:
                ended.append(result)
        return ended

    def _end_locked(self, boost: BoostPurchase, action: str) -> BoostPurchase:
        ended = self._credits.deactivate_boost_purchase(boost.boost_id)
        entity = self._listings.get(boost.entity_type, boost.entity_id)
        # a later purchase owns the entity fields once they point at another end time
        if entity is not None and entity.boost_expires_at == boost.end_at:
            self._listings.update_entity_boost_fields(
                boost.entity_type,
                boost.entity_id,
                is_boosted=False,
                boost_expires_at=None,
                boost_score=0,
            )
        self._log(
            action,
            AuditOutcome.succeeded,
            boost.user_id,
            {"boost_id": boost.boost_id, "entity_type": boost.entity_type.value, "entity_id": boost.entity_id},
            self._clock.now(),
        )
        return ended

    def _log(
        self,
        action: str,
        outcome: AuditOutcome,
        user_id: Optional[str],
        params: Dict[str, Any],
        created_at: datetime,
        *,
        error_code: Optional[str] = None,
    ) -> None:
        self._audit.log(
            action=action,
            outcome=outcome,
            user_id=user_id,
            params=params,
            error_code=error_code,
            created_at=created_at,
        )
