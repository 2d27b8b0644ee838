from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from scout_rbac.core import config
from scout_rbac.core.database.engine import init_db
from scout_rbac.core.exceptions import AccessControlError
from scout_rbac.features.permissions.routes import router as permission_router
from scout_rbac.features.forms.routes import router as form_router
from scout_rbac.features.users.dependencies import get_authorization_header
from scout_rbac.utils import get_logger


log = get_logger(__name__)
app = FastAPI(
    title="Scout RBAC",
    description="Organization-scoped roles, permissions and form access for scouting units",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.scout_rbac.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.ALLOW_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = {
        str(error["loc"][-1]): error["msg"]
        for error in exc.errors()
        if error.get("loc") and "msg" in error
    }
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(AccessControlError)
async def access_control_exception_handler(_request: Request, exc: AccessControlError):
    log.info("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(request: Request, _exc: RateLimitExceeded) -> Response:
    log.warning("Rate limit hit on %s", request.url.path)
    return JSONResponse({"detail": "Too many requests", "error": "RateLimitExceeded"}, status_code=429)


@app.on_event("startup")
async def startup():
    if not config.JWT_SECRET_KEY:
        raise RuntimeError("JWT_SECRET_KEY must be set before the API can accept bearer tokens")
    await init_db()
    log.info("Tables ready, permission cache %s", "on" if config.PERMISSION_CACHE_ENABLED else "off")


@app.get("/")
async def root():
    return {
        "service": "scout-rbac",
        "version": app.version,
        "docs": app.docs_url,
        "organization_routes": "/organizations/{organization_id}/...",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


app.include_router(permission_router, prefix="/organizations/{organization_id}", tags=["permissions"])
app.include_router(form_router, prefix="/organizations/{organization_id}", tags=["forms"])
