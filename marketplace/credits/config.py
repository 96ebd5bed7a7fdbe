from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from marketplace.common.clock import Clock
from marketplace.credits.audit import LedgerAuditLogger
from marketplace.credits.expiry import (
    BoostExpiryWorker,
    ExpiryQueue,
    InMemoryExpiryQueue,
    RQExpiryQueue,
    bind_expirer,
    expire_boost_job,
)
from marketplace.credits.ledger import BoostLedger
from marketplace.credits.repository import CreditRepository, LedgerAuditRepository
from marketplace.listings.repository import ListingRepository


@dataclass(frozen=True)
class CreditsConfig:
    expiry_backend: str = "memory"
    rq_queue_name: str = "boost-expiry"
    redis_url: str = "redis://127.0.0.1:6379/0"


def load_credits_config() -> CreditsConfig:
    return CreditsConfig(
        expiry_backend=os.getenv("BOOST_EXPIRY_BACKEND", CreditsConfig.expiry_backend).lower(),
        rq_queue_name=os.getenv("RQ_QUEUE_NAME", CreditsConfig.rq_queue_name),
        redis_url=os.getenv("REDIS_URL", CreditsConfig.redis_url),
    )


def _build_expiry_queue(cfg: CreditsConfig) -> ExpiryQueue:
    if cfg.expiry_backend == "memory":
        return InMemoryExpiryQueue()
    if cfg.expiry_backend == "rq":
        from redis import Redis

        return RQExpiryQueue(
            queue_name=cfg.rq_queue_name,
            connection=Redis.from_url(cfg.redis_url),
            job_handler=expire_boost_job,
        )
    raise ValueError(f"Unknown BOOST_EXPIRY_BACKEND {cfg.expiry_backend!r}")


def build_boost_ledger(
    *,
    config: Optional[CreditsConfig] = None,
    credits: Optional[CreditRepository] = None,
    listings: Optional[ListingRepository] = None,
    clock: Optional[Clock] = None,
) -> tuple[BoostLedger, Optional[BoostExpiryWorker], CreditRepository]:
    """Assemble the ledger and its expiry path.

    The in-process worker is returned only for the memory backend; with rq the
    scheduled jobs are consumed by an ``rq worker`` calling ``expire_boost_job``.
    """
    cfg = config or load_credits_config()
    credit_repo = credits or CreditRepository()
    queue = _build_expiry_queue(cfg)
    ledger = BoostLedger(
        credit_repo,
        listings or ListingRepository(),
        audit_logger=LedgerAuditLogger(LedgerAuditRepository()),
        clock=clock,
        expiry_queue=queue,
    )
    bind_expirer(ledger)
    worker = BoostExpiryWorker(ledger, queue) if isinstance(queue, InMemoryExpiryQueue) else None
    return ledger, worker, credit_repo
