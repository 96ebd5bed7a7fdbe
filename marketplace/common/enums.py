from enum import Enum


class EntityType(str, Enum):
    product = "product"
    job = "job"
    event = "event"
    artiste = "artiste"

    @property
    def table_name(self) -> str:
        if self is EntityType.artiste:
            return "artiste_profiles"
        return f"{self.value}s"


class SortMode(str, Enum):
    newest = "newest"
    price_low = "price_low"
    price_high = "price_high"
    boosted = "boosted"
    distance = "distance"


class TransactionType(str, Enum):
    boost = "boost"
    purchase = "purchase"
    grant = "grant"
    refund = "refund"


class AuditOutcome(str, Enum):
    succeeded = "succeeded"
    rejected = "rejected"
    failed = "failed"
