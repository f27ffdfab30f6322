import logging
import stripe
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from premium_payments import config
from premium_payments.database import Base, engine
from premium_payments.dependencies import get_engine, get_provider
from premium_payments.errors import AccountUnresolvable, StoreFailure
from premium_payments.routes import router
from premium_payments.stripe_service import checkout_session_from_stripe

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Premium Payments Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(StoreFailure)
async def store_failure_handler(request: Request, exc: StoreFailure):
    logger.error("Database unavailable: %s", exc, extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/")
def health():
    return {"status": "OK", "message": "Premium payments service is running"}


@app.post("/api/payment/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    provider=Depends(get_provider),
    reconciler=Depends(get_engine),
):
    payload = await request.body()

    try:
        event = provider.construct_event(payload, stripe_signature)
    except ValueError:
        logger.warning("Webhook payload could not be parsed")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.error.SignatureVerificationError:
        logger.warning("Webhook signature verification failed")
        raise HTTPException(status_code=400, detail="Invalid signature")

    if event["type"] != "checkout.session.completed":
        logger.debug("Ignoring webhook event", extra={"event_type": event["type"]})
        return {"received": True}

    session = checkout_session_from_stripe(event["data"]["object"])
    try:
        await run_in_threadpool(reconciler.reconcile, session)
    except AccountUnresolvable as exc:
        # retrying cannot help until the account exists, so still acknowledge
        logger.error(str(exc), extra={"session_id": session.id})
    except StoreFailure:
        logger.exception("Webhook reconciliation failed", extra={"session_id": session.id})
        raise HTTPException(status_code=500, detail="Server error in webhook")

    return {"received": True}
