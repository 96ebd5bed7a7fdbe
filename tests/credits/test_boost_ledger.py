from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from marketplace.common.enums import AuditOutcome, EntityType, SortMode, TransactionType
from marketplace.credits.audit import LedgerAuditLogger
from marketplace.credits.expiry import BoostExpiryWorker
from marketplace.credits.ledger import BoostLedger, is_currently_boosted
from marketplace.credits.models import (
    BOOST_PLANS,
    AlreadyBoostedError,
    InsufficientCreditsError,
    BoostPurchase,
    InvalidAmountError,
    UnknownPackageError,
    UnknownPlanError,
    package_for,
    plan_for,
)
from marketplace.credits.repository import CreditRepository
from marketplace.listings.filters import apply_filters
from marketplace.listings.models import FilterCriteria
from marketplace.listings.repository import ListingRepository


def _boost_transactions(credit_repo, user_id):
    return [tx for tx in credit_repo.list_transactions(user_id) if tx.transaction_type == TransactionType.boost]


def test_plan_catalog_encodes_volume_discount():
    assert [(plan.duration_days, plan.credits_cost) for plan in BOOST_PLANS] == [(7, 100), (14, 180), (30, 300)]
    assert [plan.boost_score for plan in BOOST_PLANS] == [70, 140, 300]
    assert plan_for(14).credits_cost == 180
    with pytest.raises(UnknownPlanError):
        plan_for(10)


def test_insufficient_credits_leaves_state_untouched(ledger, credit_repo, listing_repo, audit_repo):
    credit_repo.set_credit_balance("user-1", 150)
    with pytest.raises(InsufficientCreditsError) as excinfo:
        ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(14))
    assert excinfo.value.code == "INSUFFICIENT_CREDITS"
    assert str(excinfo.value) == "Insufficient credits"
    assert ledger.get_balance("user-1").balance == 150
    assert credit_repo.list_transactions("user-1") == []
    assert credit_repo.list_boosts("user-1") == []
    assert listing_repo.get(EntityType.product, "p1").is_boosted is False
    record = audit_repo.list()[-1]
    assert record.outcome == AuditOutcome.rejected
    assert record.error_code == "INSUFFICIENT_CREDITS"


def test_successful_purchase_debits_records_and_activates(ledger, credit_repo, listing_repo, clock, audit_repo):
    credit_repo.set_credit_balance("user-1", 200)
    boost = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    assert ledger.get_balance("user-1").balance == 100
    transactions = credit_repo.list_transactions("user-1")
    assert len(transactions) == 1
    assert transactions[0].amount == -100
    assert transactions[0].balance_after == 100
    assert transactions[0].transaction_type == TransactionType.boost
    assert transactions[0].description == 'Boost product "Product p1" for 7 days'

    assert credit_repo.list_boosts("user-1") == [boost]
    assert boost.start_at == clock.now()
    assert boost.end_at == boost.start_at + timedelta(days=7)
    assert boost.is_active and boost.credits_spent == 100

    entity = listing_repo.get(EntityType.product, "p1")
    assert entity.is_boosted is True
    assert entity.boost_score == 70
    assert entity.boost_expires_at == boost.end_at
    assert audit_repo.list()[-1].outcome == AuditOutcome.succeeded


def test_second_purchase_on_boosted_entity_is_rejected(ledger, credit_repo):
    credit_repo.set_credit_balance("user-1", 100)
    credit_repo.set_credit_balance("rich", 10_000)
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    for user_id in ("user-1", "rich"):
        with pytest.raises(AlreadyBoostedError) as excinfo:
            ledger.purchase_boost(user_id, EntityType.product, "p1", plan_for(30))
        assert excinfo.value.code == "ALREADY_BOOSTED"
    assert ledger.get_balance("rich").balance == 10_000
    assert ledger.get_balance("user-1").balance == 0


def test_already_boosted_is_checked_before_balance(ledger, credit_repo):
    credit_repo.set_credit_balance("user-1", 100)
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    with pytest.raises(AlreadyBoostedError):
        ledger.purchase_boost("broke", EntityType.product, "p1", plan_for(7))


def test_same_entity_id_under_another_type_is_independent(ledger, credit_repo, listing_repo):
    credit_repo.set_credit_balance("user-1", 400)
    ledger.purchase_boost("user-1", EntityType.job, "j1", plan_for(14))
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    assert listing_repo.get(EntityType.job, "j1").boost_score == 140
    assert ledger.get_balance("user-1").balance == 120
    assert [tx.balance_after for tx in _boost_transactions(credit_repo, "user-1")] == [120, 220]


def test_concurrent_purchases_by_one_user_never_overdraw(ledger, credit_repo):
    credit_repo.set_credit_balance("user-1", 150)
    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(entity_id):
        barrier.wait()
        try:
            outcomes.append(ledger.purchase_boost("user-1", EntityType.product, entity_id, plan_for(7)))
        except InsufficientCreditsError as exc:
            outcomes.append(exc)

    threads = [threading.Thread(target=attempt, args=(entity_id,)) for entity_id in ("p1", "p2")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for item in outcomes if isinstance(item, InsufficientCreditsError)) == 1
    assert len(outcomes) == 2
    assert ledger.get_balance("user-1").balance == 50
    assert [tx.balance_after for tx in _boost_transactions(credit_repo, "user-1")] == [50]


def test_conditional_debit_guards_writers_outside_the_ledger():
    repo = CreditRepository()
    repo.set_credit_balance("user-1", 150)
    barrier = threading.Barrier(8)
    results = []

    def debit():
        barrier.wait()
        try:
            results.append(repo.debit_credits("user-1", 100).balance)
        except InsufficientCreditsError:
            results.append(None)

    threads = [threading.Thread(target=debit) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert results.count(50) == 1
    assert repo.get_credit_balance("user-1").balance == 50


def test_balance_can_never_be_set_negative():
    repo = CreditRepository()
    with pytest.raises(ValueError):
        repo.set_credit_balance("user-1", -1)
    assert repo.get_credit_balance("user-1").balance == 0


class FailingListingRepository(ListingRepository):
    def update_entity_boost_fields(self, entity_type, entity_id, **fields):
        if fields.get("is_boosted"):
            raise RuntimeError("listing store unavailable")
        return super().update_entity_boost_fields(entity_type, entity_id, **fields)


class FailingLedgerRepository(CreditRepository):
    def append_credit_transaction(self, transaction):
        raise RuntimeError("ledger table unavailable")


def test_entity_update_failure_rolls_back_debit_and_boost(credit_repo, listing_repo, clock, audit_repo):
    failing = FailingListingRepository()
    for entity in listing_repo.list_entities(EntityType.product):
        failing.add(entity)
    ledger = BoostLedger(credit_repo, failing, audit_logger=LedgerAuditLogger(audit_repo), clock=clock)
    credit_repo.set_credit_balance("user-1", 200)
    with pytest.raises(RuntimeError, match="listing store unavailable"):
        ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    assert ledger.get_balance("user-1").balance == 200
    assert credit_repo.list_boosts() == []
    assert credit_repo.list_transactions() == []
    assert credit_repo.get_active_boost(EntityType.product, "p1") is None
    assert audit_repo.list()[-1].outcome == AuditOutcome.failed
    assert audit_repo.list()[-1].error_code == "RuntimeError"


def test_ledger_append_failure_restores_entity_fields(listing_repo, clock, expiry_queue):
    credit_repo = FailingLedgerRepository()
    ledger = BoostLedger(credit_repo, listing_repo, clock=clock, expiry_queue=expiry_queue)
    credit_repo.set_credit_balance("user-1", 200)
    before = listing_repo.get(EntityType.product, "p2")

    with pytest.raises(RuntimeError, match="ledger table unavailable"):
        ledger.purchase_boost("user-1", EntityType.product, "p2", plan_for(30))

    assert ledger.get_balance("user-1").balance == 200
    assert credit_repo.list_boosts() == []
    assert listing_repo.get(EntityType.product, "p2") == before
    assert expiry_queue.list() == []


def test_missing_entity_is_a_storage_failure_without_side_effects(ledger, credit_repo):
    credit_repo.set_credit_balance("user-1", 200)
    with pytest.raises(KeyError):
        ledger.purchase_boost("user-1", EntityType.event, "ghost", plan_for(7))
    assert ledger.get_balance("user-1").balance == 200
    assert credit_repo.list_boosts() == []
    assert credit_repo.list_transactions() == []


def test_retry_after_failure_succeeds(credit_repo, listing_repo, clock):
    flaky_repo = FailingLedgerRepository()
    flaky_repo.set_credit_balance("user-1", 200)
    flaky = BoostLedger(flaky_repo, listing_repo, clock=clock)
    with pytest.raises(RuntimeError):
        flaky.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    assert listing_repo.get(EntityType.product, "p1").is_boosted is False

    credit_repo.set_credit_balance("user-1", 200)
    ledger = BoostLedger(credit_repo, listing_repo, clock=clock)
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    assert ledger.get_balance("user-1").balance == 100


def test_boost_expiry_is_derived_from_end_time(ledger, credit_repo, clock):
    credit_repo.set_credit_balance("user-1", 300)
    boost = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    clock.advance(days=7)
    assert is_currently_boosted(boost, clock.now())
    assert ledger.get_current_boost(EntityType.product, "p1") == boost
    with pytest.raises(AlreadyBoostedError):
        ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    clock.advance(seconds=1)
    assert not is_currently_boosted(boost, clock.now())
    assert ledger.get_current_boost(EntityType.product, "p1") is None
    renewed = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(14))
    assert renewed.boost_id != boost.boost_id
    assert ledger.get_balance("user-1").balance == 20


def test_expire_boosts_sweep_clears_entity_flags(ledger, credit_repo, listing_repo, clock):
    credit_repo.set_credit_balance("user-1", 1000)
    short = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    ledger.purchase_boost("user-1", EntityType.product, "p2", plan_for(30))

    clock.advance(days=8)
    ended = ledger.expire_boosts()
    assert [boost.boost_id for boost in ended] == [short.boost_id]
    assert ended[0].is_active is False
    entity = listing_repo.get(EntityType.product, "p1")
    assert (entity.is_boosted, entity.boost_score, entity.boost_expires_at) == (False, 0, None)
    assert listing_repo.get(EntityType.product, "p2").is_boosted is True
    assert ledger.expire_boosts() == []


def test_expiry_worker_runs_due_jobs(ledger, credit_repo, listing_repo, clock, expiry_queue):
    credit_repo.set_credit_balance("user-1", 200)
    boost = ledger.purchase_boost("user-1", EntityType.product, "p3", plan_for(7))
    assert [item.boost_id for item in expiry_queue.list()] == [boost.boost_id]
    worker = BoostExpiryWorker(ledger, expiry_queue)

    assert worker.run_due(boost.end_at) == []
    assert len(expiry_queue.list()) == 1

    ended = worker.run_due(boost.end_at + timedelta(seconds=1))
    assert [item.boost_id for item in ended] == [boost.boost_id]
    assert expiry_queue.list() == []
    assert listing_repo.get(EntityType.product, "p3").is_boosted is False


def test_expiry_worker_skips_boosts_already_ended(ledger, credit_repo, clock, expiry_queue):
    credit_repo.set_credit_balance("user-1", 200)
    boost = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    assert ledger.end_boost(EntityType.product, "p1").boost_id == boost.boost_id
    worker = BoostExpiryWorker(ledger, expiry_queue)
    assert worker.run_due(boost.end_at + timedelta(days=1)) == []


def test_end_boost_allows_a_new_purchase(ledger, credit_repo, listing_repo):
    credit_repo.set_credit_balance("user-1", 200)
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    ended = ledger.end_boost(EntityType.product, "p1")
    assert ended is not None and ended.is_active is False
    assert listing_repo.get(EntityType.product, "p1").is_boosted is False
    assert ledger.end_boost(EntityType.product, "p1") is None
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    assert ledger.get_balance("user-1").balance == 0


def test_boosted_entities_surface_first_in_listing_sort(ledger, credit_repo, listing_repo, clock):
    credit_repo.set_credit_balance("user-1", 500)
    ledger.purchase_boost("user-1", EntityType.product, "p3", plan_for(7))
    ledger.purchase_boost("user-1", EntityType.product, "p2", plan_for(30))
    ranked = apply_filters(
        listing_repo.list_entities(EntityType.product),
        FilterCriteria(sort_mode=SortMode.boosted),
        now=clock.now(),
    )
    assert [item.entity.entity_id for item in ranked] == ["p2", "p3", "p1"]


def test_credit_packages_and_grants_append_ledger_rows(ledger, credit_repo):
    purchase = ledger.purchase_credits("user-1", package_for("credits-50"))
    assert purchase.amount == 50
    assert purchase.balance_after == 50
    assert purchase.transaction_type == TransactionType.purchase
    assert purchase.description == "Purchased 50 credits for $45.00"

    grant = ledger.grant_credits("user-1", 25, "Welcome bonus")
    assert grant.balance_after == 75
    assert ledger.get_balance("user-1").balance == 75
    assert [tx.transaction_id for tx in ledger.list_transactions("user-1")] == [
        grant.transaction_id,
        purchase.transaction_id,
    ]

    with pytest.raises(InvalidAmountError):
        ledger.grant_credits("user-1", 0, "nothing")
    with pytest.raises(UnknownPackageError):
        package_for("credits-7")


def test_failed_credit_append_reverts_the_top_up(listing_repo, clock):
    credit_repo = FailingLedgerRepository()
    ledger = BoostLedger(credit_repo, listing_repo, clock=clock)
    with pytest.raises(RuntimeError):
        ledger.purchase_credits("user-1", package_for("credits-100"))
    assert ledger.get_balance("user-1").balance == 0
    assert ledger.audit_logger.repository.list()[-1].outcome == AuditOutcome.failed


def test_ledger_balance_after_matches_balance_through_mixed_activity(ledger, credit_repo):
    ledger.purchase_credits("user-1", package_for("credits-500"))
    ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(30))
    ledger.purchase_boost("user-1", EntityType.product, "p2", plan_for(14))
    with pytest.raises(InsufficientCreditsError):
        ledger.purchase_boost("user-1", EntityType.product, "p3", plan_for(30))
    ledger.grant_credits("user-1", 80, "Support credit")

    transactions = list(reversed(ledger.list_transactions("user-1")))
    running = 0
    for tx in transactions:
        running += tx.amount
        assert tx.balance_after == running
    assert running == ledger.get_balance("user-1").balance == 100


def test_build_boost_ledger_wires_memory_expiry(listing_repo, clock):
    from marketplace.credits.config import CreditsConfig, build_boost_ledger

    ledger, worker, credit_repo = build_boost_ledger(
        config=CreditsConfig(expiry_backend="memory"),
        listings=listing_repo,
        clock=clock,
    )
    assert worker is not None
    credit_repo.set_credit_balance("user-1", 100)
    boost = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    assert [item.boost_id for item in worker.run_due(boost.end_at + timedelta(seconds=1))] == [boost.boost_id]

    with pytest.raises(ValueError):
        build_boost_ledger(config=CreditsConfig(expiry_backend="cron"), listings=listing_repo)


def test_rq_backend_has_no_in_process_worker(listing_repo):
    from marketplace.credits.config import CreditsConfig, build_boost_ledger

    ledger, worker, _ = build_boost_ledger(config=CreditsConfig(expiry_backend="rq"), listings=listing_repo)
    assert worker is None
    assert isinstance(ledger, BoostLedger)


def _lapsed_boost(boost_id, *, start_at, end_at, entity_id="p1"):
    return BoostPurchase(
        boost_id=boost_id,
        user_id="user-0",
        entity_type=EntityType.product,
        entity_id=entity_id,
        credits_spent=100,
        duration_days=7,
        start_at=start_at,
        end_at=end_at,
        is_active=True,
    )


def test_renewal_after_unswept_lapse_keeps_the_new_boost(ledger, credit_repo, listing_repo, clock, expiry_queue):
    credit_repo.set_credit_balance("user-1", 200)
    first = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    clock.advance(days=7, seconds=1)
    renewed = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    assert credit_repo.list_active_boosts(EntityType.product, "p1") == [renewed]
    assert credit_repo.get_boost(first.boost_id).is_active is False

    assert ledger.expire_boosts() == []
    assert BoostExpiryWorker(ledger, expiry_queue).run_due(clock.now()) == []
    entity = listing_repo.get(EntityType.product, "p1")
    assert entity.is_boosted is True
    assert entity.boost_score == 70
    assert entity.boost_expires_at == renewed.end_at
    assert ledger.get_current_boost(EntityType.product, "p1") == renewed


def test_ending_a_stale_row_leaves_the_running_boost_on_the_entity(ledger, credit_repo, listing_repo, clock):
    credit_repo.set_credit_balance("user-1", 100)
    current = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))
    credit_repo.create_boost_purchase(
        _lapsed_boost("stale", start_at=clock.now() - timedelta(days=10), end_at=clock.now() - timedelta(days=3))
    )

    assert [boost.boost_id for boost in ledger.expire_boosts()] == ["stale"]
    entity = listing_repo.get(EntityType.product, "p1")
    assert entity.is_boosted is True
    assert entity.boost_expires_at == current.end_at


def test_end_boost_prefers_the_current_row_over_a_newer_lapsed_one(ledger, credit_repo, listing_repo, clock):
    credit_repo.set_credit_balance("user-1", 300)
    started = clock.now()
    current = ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(30))
    clock.advance(days=5)
    credit_repo.create_boost_purchase(
        _lapsed_boost("stale", start_at=started + timedelta(days=4), end_at=clock.now() - timedelta(seconds=1))
    )

    ended = ledger.end_boost(EntityType.product, "p1")
    assert ended.boost_id == current.boost_id
    assert ledger.get_current_boost(EntityType.product, "p1") is None
    assert listing_repo.get(EntityType.product, "p1").is_boosted is False

    assert ledger.end_boost(EntityType.product, "p1").boost_id == "stale"
    assert ledger.end_boost(EntityType.product, "p1") is None


def test_failed_renewal_reactivates_the_lapsed_row(listing_repo, clock):
    credit_repo = FailingLedgerRepository()
    credit_repo.set_credit_balance("user-1", 100)
    lapsed = _lapsed_boost("lapsed", start_at=clock.now() - timedelta(days=8), end_at=clock.now() - timedelta(days=1))
    credit_repo.create_boost_purchase(lapsed)
    ledger = BoostLedger(credit_repo, listing_repo, clock=clock)

    with pytest.raises(RuntimeError):
        ledger.purchase_boost("user-1", EntityType.product, "p1", plan_for(7))

    assert credit_repo.list_active_boosts(EntityType.product, "p1") == [lapsed]
    assert ledger.get_balance("user-1").balance == 100
