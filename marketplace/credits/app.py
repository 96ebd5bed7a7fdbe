from typing import Any, Dict

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from marketplace.common.api import SCHEMA_VERSION, error_response, ok_response, schema_version_error
from marketplace.credits.api_models import (
    BoostEndRequestModel,
    BoostExpireRequestModel,
    BoostPurchaseRequestModel,
    CreditGrantRequestModel,
    CreditPurchaseRequestModel,
)
from marketplace.credits.config import build_boost_ledger
from marketplace.credits.models import (
    BOOST_PLANS,
    CREDIT_PACKAGES,
    BoostPurchase,
    CreditTransaction,
    LedgerError,
    package_for,
    plan_for,
)
from marketplace.listings.config import shared_listing_repository

app = FastAPI(title="Marketplace Credits", docs_url=None, redoc_url=None)

_listing_repo = shared_listing_repository()
_ledger = build_boost_ledger(listings=_listing_repo)[0]


def _serialize_boost(boost: BoostPurchase) -> Dict[str, Any]:
    return {
        "boost_id": boost.boost_id,
        "user_id": boost.user_id,
        "entity_type": boost.entity_type.value,
        "entity_id": boost.entity_id,
        "credits_spent": boost.credits_spent,
        "duration_days": boost.duration_days,
        "start_at": boost.start_at.isoformat(),
        "end_at": boost.end_at.isoformat(),
        "is_active": boost.is_active,
    }


def _serialize_transaction(tx: CreditTransaction) -> Dict[str, Any]:
    return {
        "transaction_id": tx.transaction_id,
        "transaction_type": tx.transaction_type.value,
        "amount": tx.amount,
        "balance_after": tx.balance_after,
        "description": tx.description,
        "created_at": tx.created_at.isoformat(),
    }


def _ledger_error(exc: LedgerError) -> JSONResponse:
    return JSONResponse(status_code=400, content=error_response(exc.code, str(exc), exc.details))


@app.get("/boosts/plans")
def list_plans():
    return ok_response(
        {
            "plans": [
                {
                    "duration_days": plan.duration_days,
                    "credits_cost": plan.credits_cost,
                    "name": plan.name,
                    "description": plan.description,
                }
                for plan in BOOST_PLANS
            ]
        }
    )


@app.get("/credits/packages")
def list_packages():
    return ok_response(
        {
            "packages": [
                {"package_id": pkg.package_id, "credits": pkg.credits, "price_cents": pkg.price_cents}
                for pkg in CREDIT_PACKAGES
            ]
        }
    )


@app.get("/credits/{user_id}")
def fetch_credits(user_id: str):
    balance = _ledger.get_balance(user_id)
    return ok_response(
        {
            "user_id": user_id,
            "balance": balance.balance,
            "transactions": [_serialize_transaction(tx) for tx in _ledger.list_transactions(user_id)],
            "boosts": [_serialize_boost(boost) for boost in _ledger.list_boosts(user_id)],
        }
    )


@app.post("/credits/purchase")
def purchase_credits(request: CreditPurchaseRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    try:
        tx = _ledger.purchase_credits(request.user_id, package_for(request.package_id))
    except LedgerError as exc:
        return _ledger_error(exc)
    return ok_response({"transaction": _serialize_transaction(tx)})


@app.post("/credits/grant")
def grant_credits(request: CreditGrantRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    try:
        tx = _ledger.grant_credits(request.user_id, request.amount, request.description)
    except LedgerError as exc:
        return _ledger_error(exc)
    return ok_response({"transaction": _serialize_transaction(tx)})


@app.post("/boosts/purchase")
def purchase_boost(request: BoostPurchaseRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    try:
        boost = _ledger.purchase_boost(
            request.user_id,
            request.entity_type,
            request.entity_id,
            plan_for(request.duration_days),
        )
    except LedgerError as exc:
        return _ledger_error(exc)
    except KeyError:
        return JSONResponse(
            status_code=404,
            content=error_response("NOT_FOUND", f"{request.entity_type.value} not found"),
        )
    return ok_response(
        {
            "boost": _serialize_boost(boost),
            "balance": _ledger.get_balance(request.user_id).balance,
        }
    )


@app.post("/boosts/end")
def end_boost(request: BoostEndRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    ended = _ledger.end_boost(request.entity_type, request.entity_id)
    if ended is None:
        return JSONResponse(status_code=404, content=error_response("NOT_FOUND", "No active boost"))
    return ok_response({"boost": _serialize_boost(ended)})


@app.post("/boosts/expire")
def expire_boosts(request: BoostExpireRequestModel):
    if request.schema_version != SCHEMA_VERSION:
        return JSONResponse(status_code=400, content=schema_version_error())
    ended = _ledger.expire_boosts()
    return ok_response({"expired": [_serialize_boost(boost) for boost in ended]})
