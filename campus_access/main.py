import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from campus_access.core import config
from campus_access.core.clock import Clock, utcnow
from campus_access.core.errors import CampusAccessError
from campus_access.core.logger import setup_logging
from campus_access.database import Database
from campus_access.routes import (
    appointment_routes,
    auth_routes,
    college_manager_routes,
    department_routes,
    security_manager_routes,
    security_routes,
    super_admin_routes,
)

logger = logging.getLogger(__name__)


def create_app(database: Database | None = None, clock: Clock = utcnow) -> FastAPI:
    """Build the API. Without ``database`` one is opened from DATABASE_URL at startup."""
    setup_logging(config.LOG_LEVEL, config.LOG_FILE or None)
    config.validate_runtime_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.database is None
        if owned:
            app.state.database = Database(config.DATABASE_URL, echo=config.DB_ECHO)
        try:
            app.state.database.create_tables()
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
        yield
        if owned:
            app.state.database.dispose()

    app = FastAPI(title='Campus Access API', lifespan=lifespan)
    app.state.database = database
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    @app.exception_handler(CampusAccessError)
    async def handle_campus_access_error(request: Request, exc: CampusAccessError) -> JSONResponse:
        content = {'detail': exc.detail}
        reason = getattr(exc, 'reason', None)
        if reason is not None:
            content['reason'] = reason.value
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={'detail': jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception('Database error while handling %s %s', request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={'detail': 'Database unavailable. Verify DATABASE_URL and database credentials.'},
        )

    @app.get('/')
    def root():
        return {'status': 'Campus Access API Running'}

    app.include_router(auth_routes.router, prefix='/auth')
    app.include_router(appointment_routes.router, prefix='/appointments')
    app.include_router(security_routes.router, prefix='/security')
    app.include_router(department_routes.router, prefix='/departments')
    app.include_router(college_manager_routes.router, prefix='/college-manager')
    app.include_router(security_manager_routes.router, prefix='/security-manager')
    app.include_router(super_admin_routes.router, prefix='/super-admin')
    return app


app = create_app()
