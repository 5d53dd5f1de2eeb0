import time
import uuid

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError

from control_plane.auth.classifier import warn_unclassified_routes
from control_plane.auth.engine import AuthorizationEngine
from control_plane.auth.jwt import TokenService
from control_plane.auth.permissions import AccessPolicy
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.configs.logging_config import get_logger, set_correlation_id, setup_logging
from control_plane.configs.settings import Settings, get_settings
from control_plane.errors import AppError, ErrorCode
from control_plane.repositories.access_repository import MongoAccessDirectory
from control_plane.repositories.domain_repository import DomainRepository
from control_plane.repositories.identity_repository import IdentityRepository
from control_plane.repositories.mongo import get_mongo_client, get_mongo_db
from control_plane.repositories.partner_repository import PartnerRepository
from control_plane.repositories.plan_repository import PlanRepository
from control_plane.repositories.redis_client import HostnameCache, redis_client
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.repositories.usage_repository import UsageRepository
from control_plane.routers.admin_router import router as admin_router
from control_plane.routers.auth_router import router as auth_router
from control_plane.routers.domain_router import router as domain_router
from control_plane.routers.health_router import router as health_router
from control_plane.routers.partner_router import router as partner_router
from control_plane.routers.plan_router import router as plan_router
from control_plane.routers.system_router import router as system_router
from control_plane.routers.tenant_router import router as tenant_router
from control_plane.routers.usage_router import router as usage_router
from control_plane.services.admin_service import AdminService
from control_plane.services.auth_service import AuthService
from control_plane.services.domain_service import DomainService
from control_plane.services.partner_service import PartnerService
from control_plane.services.plan_service import PlanService
from control_plane.services.scope import TenantScope
from control_plane.services.system_service import SystemService
from control_plane.services.tenant_service import TenantService
from control_plane.services.usage_service import UsageService
from control_plane.utils.response import failure
from control_plane.webclient.domain_verifier import DomainVerifier

log = get_logger(__name__)


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.SERVICE_NAME, version=settings.RELEASE_VERSION)
    app.state.settings = settings

    @app.middleware("http")
    async def authorization_middleware(request: Request, call_next):
        engine: AuthorizationEngine = request.app.state.authz_engine
        result = await engine.authorize(
            request.method, request.url.path, request.headers.get("authorization")
        )
        if not result.allow:
            return JSONResponse(
                status_code=result.http_status, content=failure(result.code, result.message)
            )
        request.state.principal = result.principal
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        correlation_id = (
            request.headers.get("x-correlation-id")
            or request.headers.get("x-request-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)

        log.info("request.start method=%s path=%s", method, path)
        response = None
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log.info(
                "request.end method=%s path=%s status=%s elapsed_ms=%s",
                method,
                path,
                getattr(response, "status_code", "unknown"),
                elapsed_ms,
            )
        response.headers["x-correlation-id"] = correlation_id
        return response

    # outermost, so preflight requests never reach authorization
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(partner_router)
    app.include_router(tenant_router)
    app.include_router(domain_router)
    app.include_router(plan_router)
    app.include_router(usage_router)
    app.include_router(system_router)
    app.include_router(admin_router)

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        log.info(
            "request.error type=app_error status=%s code=%s message=%s",
            exc.http_status,
            exc.code,
            exc.message,
        )
        return JSONResponse(status_code=exc.http_status, content=failure(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ]
        log.info("request.error type=validation problems=%s", problems)
        return JSONResponse(
            status_code=400,
            content=failure(ErrorCode.VALIDATION_ERROR, "; ".join(problems) or "invalid request"),
        )

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(_: Request, exc: DuplicateKeyError) -> JSONResponse:
        log.info("request.error type=duplicate_key error=%s", str(exc))
        return JSONResponse(
            status_code=409,
            content=failure(ErrorCode.RESOURCE_ALREADY_EXISTS, "resource already exists"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", str(exc))
        return JSONResponse(
            status_code=500,
            content=failure(ErrorCode.INTERNAL_SERVER_ERROR, "internal server error"),
        )

    @app.on_event("startup")
    async def startup() -> None:
        setup_logging(settings.LOG_LEVEL)
        problems = settings.validate_for_startup()
        if problems:
            for problem in problems:
                log.error("startup.config_invalid problem=%s", problem)
            raise RuntimeError("invalid configuration: " + "; ".join(problems))

        mongo_client = get_mongo_client(settings)
        mongo_db = get_mongo_db(mongo_client, settings)
        await redis_client.connect(settings.redis_url)

        app.state.mongo_client = mongo_client
        app.state.mongo_db = mongo_db
        app.state.redis = redis_client.client

        identity_repo = IdentityRepository(mongo_db)
        partner_repo = PartnerRepository(mongo_db)
        tenant_repo = TenantRepository(mongo_db)
        domain_repo = DomainRepository(mongo_db)
        plan_repo = PlanRepository(mongo_db)
        usage_repo = UsageRepository(mongo_db)

        log.info("startup.ensure_indexes begin")
        for repo in (identity_repo, partner_repo, tenant_repo, domain_repo, plan_repo, usage_repo):
            await repo.ensure_indexes()
        log.info("startup.ensure_indexes done")

        tokens = TokenService(settings)
        resolver = TenantAccessResolver(
            MongoAccessDirectory(identity_repo, tenant_repo),
            timeout_seconds=settings.access_check_timeout_seconds,
        )
        app.state.authz_engine = AuthorizationEngine(AccessPolicy.default(), tokens, resolver)

        http_client = httpx.AsyncClient(timeout=settings.domain_verification_timeout_seconds)
        app.state.http_client = http_client
        verifier = DomainVerifier(
            scheme=settings.domain_verification_scheme,
            path=settings.domain_verification_path,
            timeout=settings.domain_verification_timeout_seconds,
            client=http_client,
        )
        hostname_cache = HostnameCache(redis_client.client, settings.hostname_cache_ttl_seconds)
        scope = TenantScope(tenant_repo)

        app.state.auth_service = AuthService(identity_repo, tenant_repo, tokens, settings)
        app.state.partner_service = PartnerService(partner_repo, tenant_repo, scope)
        app.state.tenant_service = TenantService(
            tenant_repo=tenant_repo,
            partner_repo=partner_repo,
            identity_repo=identity_repo,
            domain_repo=domain_repo,
            plan_repo=plan_repo,
            resolver=resolver,
            scope=scope,
            hostname_cache=hostname_cache,
            settings=settings,
        )
        app.state.domain_service = DomainService(
            domain_repo=domain_repo,
            tenant_repo=tenant_repo,
            resolver=resolver,
            scope=scope,
            verifier=verifier,
            hostname_cache=hostname_cache,
            settings=settings,
        )
        app.state.plan_service = PlanService(plan_repo, tenant_repo, resolver)
        app.state.usage_service = UsageService(
            usage_repo, tenant_repo, plan_repo, resolver, partner_repo
        )
        app.state.system_service = SystemService(
            settings, partner_repo, tenant_repo, domain_repo, identity_repo, usage_repo
        )
        app.state.admin_service = AdminService(partner_repo, tenant_repo, domain_repo, usage_repo)

        warn_unclassified_routes(route.path for route in app.routes)
        log.info("startup.done environment=%s", settings.ENVIRONMENT)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("shutdown.begin")
        await redis_client.close()
        http_client = getattr(app.state, "http_client", None)
        if http_client is not None:
            await http_client.aclose()
        mongo_client = getattr(app.state, "mongo_client", None)
        if mongo_client is not None:
            mongo_client.close()
        log.info("shutdown.done")

    return app


app = create_app()
