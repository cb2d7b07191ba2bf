import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loyalty_ledger.db import engine, Base
from loyalty_ledger.errors import LedgerError

from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.loyalty_program import LoyaltyProgram
from loyalty_ledger.models.account import Account
from loyalty_ledger.models.movement import Movement

from loyalty_ledger.routes.programs import router as programs_router
from loyalty_ledger.routes.accounts import router as accounts_router
from loyalty_ledger.routes.movements import router as movements_router
from loyalty_ledger.routes.customers import router as customers_router
from loyalty_ledger.routes.admin import router as admin_router

app = FastAPI(title="Loyalty Ledger")

# ─── CORS ─────────────────────────────────────────────────────────
cors_origins = [o.strip() for o in (os.getenv("LEDGER_CORS_ORIGINS") or "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins or [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


app.include_router(programs_router)
app.include_router(accounts_router)
app.include_router(movements_router)
app.include_router(customers_router)
app.include_router(admin_router)


@app.get("/")
def read_root():
    return {"message": "Loyalty Ledger is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001)
