from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from database import init_db
from errors import MarketplaceError
import admin_routes
import auth_routes
import catalog_routes
import chat_routes
import client_routes
import interest_routes
import notification_routes
import provider_routes
import review_routes
import sms_routes
import ws_routes
import logging
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
APP_ENV = os.getenv("APP_ENV", "development")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Campus Marketplace API",
    description="Requests, bids, interests, chat and notifications for the campus marketplace",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error for %s: %s", request.url.path, exc.errors())
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {"error": "Internal server error"}
    if APP_ENV != "production":
        body["details"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


app.include_router(auth_routes.router)
app.include_router(catalog_routes.router)
app.include_router(client_routes.router)
app.include_router(provider_routes.router)
app.include_router(interest_routes.router)
app.include_router(review_routes.router)
app.include_router(notification_routes.router)
app.include_router(chat_routes.router)
app.include_router(admin_routes.router)
app.include_router(sms_routes.router)
app.include_router(ws_routes.router)


@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("Marketplace service started (%s)", APP_ENV)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "marketplace-service"}
