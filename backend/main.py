import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config, errors
from backend.database import Base, engine, ensure_ledger_schema
from backend.models import appointment, availability, ledger, user  # noqa: F401
from backend.routes import (
    appointment_routes,
    auth_routes,
    availability_routes,
    payment_routes,
    professional_routes,
    wallet_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='Consultation Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(errors.CoreError)
async def handle_core_error(request: Request, exc: errors.CoreError) -> JSONResponse:
    if isinstance(exc, errors.AuthorizationError):
        logger.warning('Forbidden %s %s: %s', request.method, request.url.path, exc.detail)
    elif isinstance(exc, errors.IntegrityError):
        logger.error('Integrity failure on %s %s: %s', request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_ledger_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'Consultation Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(professional_routes.router, prefix='/professionals')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(payment_routes.router, prefix='/payments')
app.include_router(wallet_routes.router, prefix='/wallet')
