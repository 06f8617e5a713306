import logging
import time
from typing import List

from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Importaciones locales
from . import schemas
from .config import load_settings
from .db import ConnectionPool
from .exceptions import (
    DuplicateEmail,
    InvalidUserData,
    NotFound,
    PoolExhausted,
    StorageError,
)
from .initializer import init_schema
from .service import UserService

# Configura logger
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Inicializa FastAPI
app = FastAPI(
    title="User Service",
    description="Registro y consulta de usuarios sobre un pool de conexiones con transacciones explícitas.",
    version="1.0.0"
)

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "user_requests_total",
    "Total requests processed by User Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "user_request_latency_seconds",
    "Request latency in seconds for User Service",
    ["endpoint"]
)


@app.on_event("startup")
def startup_event():
    """Arma el servicio a mano: configuración -> pool -> esquema -> servicio."""
    settings = load_settings()
    pool = ConnectionPool(settings)
    try:
        init_schema(pool)
    except Exception:
        pool.dispose()
        raise
    app.state.pool = pool
    app.state.user_service = UserService(pool, page_size=settings.page_size)
    logger.info("✅ User Service listo.")


@app.on_event("shutdown")
def shutdown_event():
    pool = getattr(app.state, "pool", None)
    if pool is not None:
        pool.dispose()


def get_user_service(request: Request) -> UserService:
    service = getattr(request.app.state, "user_service", None)
    if service is None:
        logger.error("El servicio de usuarios no está inicializado.")
        raise HTTPException(status_code=503, detail="Servicio de base de datos no disponible.")
    return service


# --- Traducción de errores tipados a HTTP ---
@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(DuplicateEmail)
async def duplicate_email_handler(request: Request, exc: DuplicateEmail):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Email ya registrado."})


@app.exception_handler(InvalidUserData)
async def invalid_data_handler(request: Request, exc: InvalidUserData):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(PoolExhausted)
async def pool_exhausted_handler(request: Request, exc: PoolExhausted):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Base de datos ocupada, reintente más tarde."},
        headers={"Retry-After": "1"},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Error interno de base de datos."})


# --- Middleware para Métricas ---
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        response = Response("Internal Server Error", status_code=500)
    finally:
        latency = time.time() - start_time
        endpoint = request.url.path
        final_status_code = getattr(response, 'status_code', status_code)

        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Endpoints de Salud y Métricas ---
@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["Monitoring"])
def health_check():
    return {"status": "ok", "service": "user_service"}


# --- Endpoints de API ---

@app.post("/register", response_model=schemas.UserPublic, status_code=status.HTTP_201_CREATED, tags=["Users"])
def register(user: schemas.UserCreate, service: UserService = Depends(get_user_service)):
    """Registra un usuario. 409 si el email ya existe."""
    return service.register(user.email, user.password, user.name)


@app.get("/users/count", response_model=schemas.UserCount, tags=["Users"])
def count_users(service: UserService = Depends(get_user_service)):
    return {"total": service.get_users_count()}


@app.get("/users", response_model=List[schemas.UserPublic], tags=["Users"])
def list_users(page: int = 1, service: UserService = Depends(get_user_service)):
    """Lista paginada ordenada por id. Una página fuera de rango devuelve una lista vacía."""
    return service.get_users(page)


@app.get("/users/by-name/{name}", response_model=schemas.UserPublic, tags=["Users"])
def get_user_by_name(name: str, service: UserService = Depends(get_user_service)):
    logger.info(f"Buscando usuario por nombre: {name}")
    return service.get_user_by_name(name)


@app.get("/users/{user_id}", response_model=schemas.UserPublic, tags=["Users"])
def get_user_by_id(user_id: int, service: UserService = Depends(get_user_service)):
    """Retorna la información del usuario por su ID."""
    logger.info(f"Solicitud de datos para usuario con ID {user_id}")
    return service.get_user_by_id(user_id)
