# main.py
import json
import uuid
from time import time

import firebase_admin
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from firebase_admin import credentials

from config import settings
from app.scripts.logging_config import setup_logging, get_logger, set_request_id

# 1) Logging (first)
setup_logging(json_fmt=False)
logger = get_logger(__name__)

# 2) Firebase init
cred_obj = None
try:
    if settings.FIREBASE_CREDENTIALS_JSON_STRING:
        cred_obj = credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON_STRING))
        logger.info("Firebase credentials loaded from FIREBASE_CREDENTIALS_JSON_STRING.")
    elif settings.GOOGLE_APPLICATION_CREDENTIALS:
        cred_obj = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)
        logger.info("Firebase credentials loaded from GOOGLE_APPLICATION_CREDENTIALS file.")

    if cred_obj:
        firebase_admin.initialize_app(cred_obj)
        logger.info("Firebase initialized successfully.")
    else:
        logger.warning("Firebase credentials not found. Report storage will be unavailable.")
except (ValueError, OSError) as e:
    logger.exception("Firebase initialization failed: %s", e)

# 3) FastAPI app
app = FastAPI(title="Lost & Found Matching API")


# 4) Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    set_request_id(rid)

    start = time()
    path = request.url.path
    method = request.method
    query = request.url.query
    client_ip = getattr(request.client, 'host', '-') if request.client else '-'

    if query:
        logger.info("REQ start %s %s?%s ip=%s", method, path, query, client_ip)
    else:
        logger.info("REQ start %s %s ip=%s", method, path, client_ip)

    status = 'NA'
    try:
        response = await call_next(request)
        status = response.status_code
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        duration = (time() - start) * 1000
        logger.info("REQ end %s %s status=%s %.1fms", method, path, status, duration)


# 5) CORS
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "https://localhost:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 6) Routers
from app.api import ai, reports  # noqa: E402
from app.services.ai_client import get_ai_client  # noqa: E402

app.include_router(ai.router)
app.include_router(reports.router)


@app.on_event("startup")
def start_ai_client():
    client = get_ai_client()
    client.start()
    logger.info("AI client ready models=%s", client.pool.get_available_models())


@app.on_event("shutdown")
def stop_ai_client():
    get_ai_client().close()


# 7) Endpoints
@app.get("/")
def root():
    return {"message": "Lost & Found matching backend", "routes": [
        "/reports/submit",
        "/reports",
        "/reports/search",
        "/reports/scan",
        "/reports/{report_id}/matches",
        "/reports/compare",
        "/ai/models",
        "/ai/cache/prune",
    ]}
