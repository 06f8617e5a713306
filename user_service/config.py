"""Carga de configuración de la base de datos desde el entorno (y un archivo .env opcional)."""

import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Variables críticas: equivalen a jdbc.url, jdbc.username y jdbc.password
REQUIRED_VARS = ["JDBC_URL", "JDBC_USERNAME", "JDBC_PASSWORD"]


class Settings(BaseModel):
    """Parámetros del pool y del servicio. Inmutable una vez cargado."""

    model_config = ConfigDict(frozen=True)

    url: str
    username: str
    password: str
    pool_size: int = 10
    max_overflow: int = 0
    connection_timeout: float = 5.0  # segundos de espera para obtener una conexión
    idle_timeout: float = 60.0  # segundos antes de desalojar una conexión ociosa
    page_size: int = 100
    echo: bool = False


def _read_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Valor inválido para {name}: {raw!r}") from e


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """
    Carga las variables de entorno (desde .env si existe) y verifica que las
    variables de conexión estén definidas. Lanza ConfigurationError si falta alguna.

    Una cadena vacía cuenta como definida (p. ej. una contraseña vacía).
    """
    load_dotenv(dotenv_path=dotenv_path)

    missing = [var for var in REQUIRED_VARS if os.getenv(var) is None]
    if missing:
        msg = f"Error Crítico: Faltan variables de entorno esenciales: {', '.join(missing)}"
        logger.critical(msg)
        raise ConfigurationError(msg)

    if not os.getenv("JDBC_URL"):
        raise ConfigurationError("JDBC_URL no puede estar vacía.")

    settings = Settings(
        url=os.environ["JDBC_URL"],
        username=os.environ["JDBC_USERNAME"],
        password=os.environ["JDBC_PASSWORD"],
        pool_size=_read_number("DB_POOL_SIZE", 10, int),
        max_overflow=_read_number("DB_MAX_OVERFLOW", 0, int),
        connection_timeout=_read_number("DB_CONNECTION_TIMEOUT", 5.0, float),
        idle_timeout=_read_number("DB_IDLE_TIMEOUT", 60.0, float),
        page_size=_read_number("USERS_PAGE_SIZE", 100, int),
        echo=os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes"),
    )
    if settings.pool_size < 1 or settings.page_size < 1:
        raise ConfigurationError("DB_POOL_SIZE y USERS_PAGE_SIZE deben ser mayores que cero.")
    if settings.max_overflow < 0 or settings.connection_timeout < 0 or settings.idle_timeout < 0:
        raise ConfigurationError("DB_MAX_OVERFLOW, DB_CONNECTION_TIMEOUT y DB_IDLE_TIMEOUT no pueden ser negativos.")

    logger.info("Variables de entorno cargadas y verificadas correctamente.")
    return settings
