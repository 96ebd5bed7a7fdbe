from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from marketplace.common.clock import ensure_timezone
from marketplace.common.enums import EntityType
from marketplace.credits.models import BoostPurchase


@dataclass(frozen=True)
class ExpiryItem:
    job_id: str
    boost_id: str
    entity_type: EntityType
    entity_id: str
    due_at: datetime


class ExpiryQueue(Protocol):
    def enqueue(self, purchase: BoostPurchase) -> str: ...

    def cancel(self, job_id: str) -> None: ...

    def list(self) -> List[ExpiryItem]: ...


class PollingExpiryQueue(ExpiryQueue, Protocol):
    def pop_due(self, now: datetime) -> List[ExpiryItem]: ...


class BoostExpirer(Protocol):
    def expire_boost(self, boost_id: str, now: Optional[datetime] = None) -> Optional[BoostPurchase]: ...


class InMemoryExpiryQueue:
    def __init__(self) -> None:
        self._items: List[ExpiryItem] = []

    def enqueue(self, purchase: BoostPurchase) -> str:
        job_id = f"expire:{purchase.boost_id}"
        self._items.append(
            ExpiryItem(
                job_id=job_id,
                boost_id=purchase.boost_id,
                entity_type=purchase.entity_type,
                entity_id=purchase.entity_id,
                due_at=purchase.end_at,
            )
        )
        self._items.sort(key=lambda item: (item.due_at, item.boost_id))
        return job_id

    def cancel(self, job_id: str) -> None:
        self._items = [item for item in self._items if item.job_id != job_id]

    def list(self) -> List[ExpiryItem]:
        return list(self._items)

    def pop_due(self, now: datetime) -> List[ExpiryItem]:
        # a boost is still live at exactly end_at
        due = [item for item in self._items if item.due_at < now]
        self._items = [item for item in self._items if item.due_at >= now]
        return due


class RQExpiryQueue:
    """Schedules expiry jobs with ``enqueue_at``; an ``rq worker`` runs them.

    Scheduled jobs live in the queue's ``ScheduledJobRegistry`` until they are
    due, so ``list`` reads that registry rather than the queue itself.
    """

    def __init__(
        self,
        *,
        queue_name: str,
        connection=None,
        job_handler: Optional[Callable[..., object]] = None,
        queue=None,
    ) -> None:
        if queue is None:
            from rq import Queue

            queue = Queue(name=queue_name, connection=connection)
        self._queue = queue
        self._job_handler = job_handler

    def enqueue(self, purchase: BoostPurchase) -> str:
        if self._job_handler is None:
            raise ValueError("job_handler is required for RQ enqueue")
        job = self._queue.enqueue_at(
            purchase.end_at,
            self._job_handler,
            purchase.boost_id,
            purchase.entity_type.value,
            purchase.entity_id,
            job_id=f"expire-{purchase.boost_id}",
        )
        return job.id

    def cancel(self, job_id: str) -> None:
        job = self._queue.fetch_job(job_id)
        if job is not None:
            job.delete()

    def list(self) -> List[ExpiryItem]:
        registry = self._queue.scheduled_job_registry
        items: List[ExpiryItem] = []
        for job_id in registry.get_job_ids():
            job = self._queue.fetch_job(job_id)
            if job is None or len(job.args) < 3:
                continue
            items.append(
                ExpiryItem(
                    job_id=job.id,
                    boost_id=str(job.args[0]),
                    entity_type=EntityType(job.args[1]),
                    entity_id=str(job.args[2]),
                    due_at=ensure_timezone(registry.get_scheduled_time(job)),
                )
            )
        return sorted(items, key=lambda item: (item.due_at, item.boost_id))


class BoostExpiryWorker:
    """In-process sweeper for queues that can be polled."""

    def __init__(self, expirer: BoostExpirer, queue: PollingExpiryQueue) -> None:
        self._expirer = expirer
        self._queue = queue

    def run_due(self, now: datetime) -> List[BoostPurchase]:
        ended: List[BoostPurchase] = []
        for item in self._queue.pop_due(now):
            purchase = self._expirer.expire_boost(item.boost_id, now)
            if purchase is not None:
                ended.append(purchase)
        return ended


_bound_expirer: Optional[BoostExpirer] = None


def bind_expirer(expirer: Optional[BoostExpirer]) -> None:
    global _bound_expirer
    _bound_expirer = expirer


def expire_boost_job(boost_id: str, entity_type: str, entity_id: str) -> Optional[str]:
    """rq entry point; the worker process binds its ledger with ``bind_expirer`` first."""
    if _bound_expirer is None:
        raise RuntimeError(f"no expirer bound for {entity_type}/{entity_id}")
    ended = _bound_expirer.expire_boost(boost_id)
    return ended.boost_id if ended else None
