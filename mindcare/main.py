import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from mindcare.core import config
from mindcare.database import Base, engine, ensure_appointment_schema
from mindcare.models import appointment, counsellor, institution, screening, user  # noqa: F401
from mindcare.routes import (
    appointment_routes,
    counsellor_routes,
    institution_routes,
    screening_routes,
    user_routes,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

config.validate_runtime_config()

app = FastAPI(title='MindCare API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'MindCare API Running'}


app.include_router(user_routes.router, prefix='/users')
app.include_router(institution_routes.router, prefix='/institutions')
app.include_router(counsellor_routes.router, prefix='/counsellors')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(screening_routes.router, prefix='/screenings')
