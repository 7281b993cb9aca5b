import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from .config import get_settings
from .lifecycle import on_startup, on_shutdown
from .routers import debug, health, history, metrics, trend, venues

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

SENTRY_DSN = os.getenv("SENTRY_DSN_BACKEND")
if SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        traces_sample_rate=0.1,
        integrations=[FastApiIntegration()],
        environment=os.getenv("ENV", "development"),
        release=os.getenv("APP_VERSION", "0.1.0"),
    )

settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", default_response_class=ORJSONResponse)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (health, metrics, history, trend, venues, debug):
    app.include_router(module.router)


@app.on_event("startup")
async def _startup():
    await on_startup()


@app.on_event("shutdown")
async def _shutdown():
    await on_shutdown()


@app.get("/")
def root():
    return {"name": settings.app_name, "status": "ok"}
