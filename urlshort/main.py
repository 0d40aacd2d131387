import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from urlshort import __version__, auth, crud, links, schemas
from urlshort.config import Settings, get_settings
from urlshort.database import Database, get_db
from urlshort.errors import AppError

logger = logging.getLogger("urlshort")

FRONTEND_DIR = Path(__file__).parent / "frontend"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

router = APIRouter()
redirect_router = APIRouter()


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )


# ---------- exception handlers ----------

async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "missing" and tuple(err.get("loc", ())) == ("body",) for err in errors):
        message, code = "Request body is required", "MISSING_REQUEST_BODY"
    else:
        first = errors[0] if errors else {}
        where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "Invalid request"))
        code = "INVALID_INPUT"
    return JSONResponse(status_code=400, content={"success": False, "message": message, "error": code})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        message, code = f"Route {request.url.path} not found", "NOT_FOUND"
    else:
        message, code = str(exc.detail), "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message, "error": code},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal Server Error", "error": "INTERNAL_SERVER_ERROR"},
    )


# ---------- pages & health ----------

@router.get("/", include_in_schema=False)
def serve_index():
    return FileResponse(FRONTEND_DIR / "index.html")


# Health check (useful for uptime monitors & load balancers)
@router.get("/health")
def health(settings: Settings = Depends(get_settings)):
    return {
        "success": True,
        "message": "Server is running",
        "env": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ---------- auth API ----------

@router.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
def register(
    body: schemas.RegisterIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user, token = auth.register_user(db, settings, body.name, body.email, body.password)
    return schemas.envelope(
        "User registered successfully",
        {"user": schemas.UserOut.from_model(user), "token": token},
    )


@router.post("/api/auth/login")
def login(
    body: schemas.LoginIn,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user, token, login_time = auth.login_user(db, settings, body.email, body.password)
    response.set_cookie(
        key=auth.TOKEN_COOKIE, value=token,
        httponly=True, samesite="lax", secure=settings.cookie_secure, path="/",
        max_age=settings.token_expire_days * 24 * 3600,
    )
    return schemas.envelope(
        "User logged in successfully",
        {"user": schemas.UserOut.from_model(user), "token": token, "loginTime": login_time},
    )


@router.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(auth.TOKEN_COOKIE, path="/")
    return schemas.envelope("Logged out")


@router.get("/api/auth/me")
def me(
    current: schemas.CurrentUser = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    user = crud.get_user(db, current.id)
    return schemas.envelope("Authenticated", {"user": schemas.UserOut.from_model(user)})


# ---------- short URL API ----------

@router.post("/api/shortUrl/create", status_code=status.HTTP_201_CREATED)
def create_short_url(
    body: schemas.UrlCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: schemas.CurrentUser = Depends(auth.get_current_user),
):
    code = links.create_short_link(db, body.url, current.id, length=settings.short_code_length)
    return schemas.envelope(
        "Short URL created successfully",
        {
            "shortUrl": links.short_url_for(settings.app_url, code),
            "originalUrl": body.url.strip(),
            "userId": str(current.id),
            "createdBy": current.email,
        },
    )


@router.post("/api/shortUrl/custom", status_code=status.HTTP_201_CREATED)
def create_custom_short_url(
    body: schemas.CustomUrlCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: schemas.CurrentUser = Depends(auth.get_current_user),
):
    slug = links.create_custom_short_link(db, body.url, body.custom_url, current.id)
    return schemas.envelope(
        "Custom short URL created successfully",
        {
            "shortUrl": links.short_url_for(settings.app_url, slug),
            "originalUrl": body.url.strip(),
            "customUrl": slug,
            "userId": str(current.id),
            "createdBy": current.email,
        },
    )


@router.get("/api/shortUrl/user")
def user_urls(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: schemas.CurrentUser = Depends(auth.get_current_user),
):
    urls = links.list_user_links(db, current.id, settings.app_url)
    return schemas.envelope("URLs retrieved successfully", {"urls": urls, "count": len(urls)})


# ---------- redirect (catch-all, registered last) ----------

@redirect_router.get("/{code}", include_in_schema=False)
def redirect_short_url(code: str, db: Session = Depends(get_db)):
    link = links.resolve_and_count(db, code)
    logger.info("Redirect %s -> %s (clicks: %s)", link.short_url, link.full_url, link.clicks)
    # 302 so browsers come back on every visit and each click is counted
    return RedirectResponse(url=link.full_url, status_code=302, headers=NO_CACHE_HEADERS)


# ---------- app factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    db = Database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.create_all()
        logger.info("Server starting (env=%s, base=%s)", settings.environment, settings.app_url)
        yield
        db.dispose()

    app = FastAPI(
        title="URL Shortener",
        description="Shorten URLs, pick custom slugs and track clicks per link.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db

    # --- CORS (allow frontend dev servers, etc.) ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, elapsed)
        return response

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    # ---- Serve frontend (same origin) ----
    app.mount("/static", StaticFiles(directory=FRONTEND_DIR), name="static")
    app.include_router(redirect_router)
    return app


def run():
    uvicorn.run(
        "urlshort.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
    )


if __name__ == "__main__":
    run()
