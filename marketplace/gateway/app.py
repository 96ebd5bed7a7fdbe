from fastapi import FastAPI

import marketplace.credits.app as credits_app
import marketplace.geo.app as geo_app
import marketplace.listings.app as listings_app

app = FastAPI(title="Marketplace", docs_url=None, redoc_url=None)

# one process shares the listing store, so search sees the boosts the ledger writes
for service in (geo_app.app, listings_app.app, credits_app.app):
    app.include_router(service.router)
