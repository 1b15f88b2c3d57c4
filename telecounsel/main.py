import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from telecounsel.core import config
from telecounsel.core.errors import (
    Conflict,
    Forbidden,
    InternalError,
    InvalidInput,
    InvalidRange,
    NotFound,
    SchedulingError,
    Unavailable,
)
from telecounsel.database import Base, engine, ensure_availability_schema, ensure_consultation_schema
from telecounsel.models import availability, consultation, payment, psychologist, review, stream_channel, user  # noqa: F401
from telecounsel.routes import availability_routes, consultation_routes

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    InvalidInput: 422,
    InvalidRange: 400,
    NotFound: 404,
    Forbidden: 403,
    Conflict: 409,
    Unavailable: 503,
    InternalError: 500,
}

app = FastAPI(title='telecounsel')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(SchedulingError)
async def handle_scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={'error': {'message': exc.message, 'code': exc.code}},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_consultation_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/health')
def health():
    return {'ok': True}


app.include_router(availability_routes.router)
app.include_router(consultation_routes.router)
