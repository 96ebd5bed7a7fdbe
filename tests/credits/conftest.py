from datetime import datetime, timezone

import pytest

from marketplace.common.clock import FrozenClock
from marketplace.common.enums import EntityType
from marketplace.credits.audit import LedgerAuditLogger
from marketplace.credits.expiry import InMemoryExpiryQueue
from marketplace.credits.ledger import BoostLedger
from marketplace.credits.repository import CreditRepository, LedgerAuditRepository
from marketplace.listings.models import ListableEntity
from marketplace.listings.repository import ListingRepository


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 28, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def credit_repo():
    return CreditRepository()


@pytest.fixture
def listing_repo(clock):
    repo = ListingRepository()
    for entity_id in ("p1", "p2", "p3"):
        repo.add(
            ListableEntity(
                entity_id=entity_id,
                entity_type=EntityType.product,
                title=f"Product {entity_id}",
                created_at=clock.now(),
                price=50,
            )
        )
    repo.add(
        ListableEntity(
            entity_id="j1",
            entity_type=EntityType.job,
            title="Line cook",
            created_at=clock.now(),
            salary_min=35000,
        )
    )
    return repo


@pytest.fixture
def audit_repo():
    return LedgerAuditRepository()


@pytest.fixture
def expiry_queue():
    return InMemoryExpiryQueue()


@pytest.fixture
def ledger(credit_repo, listing_repo, audit_repo, clock, expiry_queue):
    return BoostLedger(
        credit_repo,
        listing_repo,
        audit_logger=LedgerAuditLogger(audit_repo),
        clock=clock,
        expiry_queue=expiry_queue,
    )
