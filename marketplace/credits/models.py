from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from marketplace.common.enums import AuditOutcome, EntityType, TransactionType


class LedgerError(RuntimeError):
    def __init__(self, message: str, *, code: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class BoostRejection(LedgerError):
    """A business rule refused the purchase. Nothing was written."""


class InsufficientCreditsError(BoostRejection):
    def __init__(self, message: str = "Insufficient credits", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="INSUFFICIENT_CREDITS", details=details)


class AlreadyBoostedError(BoostRejection):
    def __init__(self, message: str = "Already boosted", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="ALREADY_BOOSTED", details=details)


class UnknownPlanError(LedgerError):
    def __init__(self, message: str = "Unknown boost plan", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="UNKNOWN_PLAN", details=details)


class UnknownPackageError(LedgerError):
    def __init__(self, message: str = "Unknown credit package", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="UNKNOWN_PACKAGE", details=details)


class InvalidAmountError(LedgerError):
    def __init__(self, message: str = "Amount must be positive", *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="INVALID_AMOUNT", details=details)


@dataclass(frozen=True)
class CreditBalance:
    user_id: str
    balance: int
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CreditTransaction:
    transaction_id: str
    user_id: str
    transaction_type: TransactionType
    amount: int
    balance_after: int
    description: str
    created_at: datetime


@dataclass(frozen=True)
class BoostPlan:
    duration_days: int
    credits_cost: int
    name: str
    description: str = ""

    @property
    def boost_score(self) -> int:
        return self.duration_days * 10


BOOST_PLANS: List[BoostPlan] = [
    BoostPlan(7, 100, "7-Day Boost", "Perfect for short-term visibility"),
    BoostPlan(14, 180, "14-Day Boost", "Best value for steady growth"),
    BoostPlan(30, 300, "30-Day Boost", "Maximum exposure and ROI"),
]


@dataclass(frozen=True)
class CreditPackage:
    package_id: str
    credits: int
    price_cents: int


CREDIT_PACKAGES: List[CreditPackage] = [
    CreditPackage("credits-10", 10, 1000),
    CreditPackage("credits-50", 50, 4500),
    CreditPackage("credits-100", 100, 8000),
    CreditPackage("credits-500", 500, 35000),
]


def plan_for(duration_days: int) -> BoostPlan:
    for plan in BOOST_PLANS:
        if plan.duration_days == duration_days:
            return plan
    raise UnknownPlanError(details={"duration_days": duration_days})


def package_for(package_id: str) -> CreditPackage:
    for package in CREDIT_PACKAGES:
        if package.package_id == package_id:
            return package
    raise UnknownPackageError(details={"package_id": package_id})


@dataclass(frozen=True)
class BoostPurchase:
    boost_id: str
    user_id: str
    entity_type: EntityType
    entity_id: str
    credits_spent: int
    duration_days: int
    start_at: datetime
    end_at: datetime
    is_active: bool = True

    def is_current(self, now: datetime) -> bool:
        return self.is_active and now <= self.end_at


@dataclass(frozen=True)
class LedgerAuditRecord:
    audit_id: str
    action: str
    outcome: AuditOutcome
    user_id: Optional[str]
    params: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    created_at: Optional[datetime] = None
