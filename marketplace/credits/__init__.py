from marketplace.credits.audit import LedgerAuditLogger
from marketplace.credits.expiry import BoostExpiryWorker, InMemoryExpiryQueue, RQExpiryQueue
from marketplace.credits.ledger import BoostLedger, is_currently_boosted
from marketplace.credits.models import (
    BOOST_PLANS,
    CREDIT_PACKAGES,
    AlreadyBoostedError,
    BoostPlan,
    BoostPurchase,
    CreditTransaction,
    InsufficientCreditsError,
    plan_for,
)
from marketplace.credits.repository import CreditRepository, LedgerAuditRepository

__all__ = [
    "AlreadyBoostedError",
    "BOOST_PLANS",
    "BoostExpiryWorker",
    "BoostLedger",
    "BoostPlan",
    "BoostPurchase",
    "CREDIT_PACKAGES",
    "CreditRepository",
    "CreditTransaction",
    "InMemoryExpiryQueue",
    "InsufficientCreditsError",
    "LedgerAuditLogger",
    "LedgerAuditRepository",
    "RQExpiryQueue",
    "is_currently_boosted",
    "plan_for",
]
