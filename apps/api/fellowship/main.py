from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from fellowship.api.v1.router import router as v1_router
from fellowship.core.config import settings
from fellowship.core.logging import configure_logging
from fellowship.db import engine
from fellowship.middleware.rate_limit import RateLimitMiddleware
from fellowship.middleware.request_id import RequestIdMiddleware
from fellowship.models import Base

configure_logging()

app = FastAPI(title="Fellowship API")

# Starlette runs the LAST added middleware FIRST (outermost).
# RequestId wraps everything so rate-limited and preflight responses carry it;
# RateLimit sits closest to the app.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.on_event("startup")
def create_sqlite_schema():
    # Postgres schemas are managed outside the app; SQLite is dev-only.
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/")
def root():
    return {"name": "Fellowship API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(v1_router, prefix="/v1")
