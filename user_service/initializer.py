"""Inicialización idempotente del esquema: crea la tabla 'users' si no existe y verifica su forma."""

import logging

from sqlalchemy import exc, inspect

from .db import Base, ConnectionPool
from .exceptions import ConfigurationError, PoolExhausted, StorageError
from . import models

logger = logging.getLogger(__name__)


def init_schema(pool: ConnectionPool) -> None:
    """
    Ejecuta CREATE TABLE IF NOT EXISTS para 'users'.

    Volver a ejecutarlo sobre una tabla con la misma forma no hace nada. Si la tabla
    existente no tiene las columnas esperadas, o no garantiza la unicidad del email,
    se lanza ConfigurationError: es un error de configuración, no una falla para reintentar.
    """
    table = models.User.__table__
    try:
        Base.metadata.create_all(bind=pool.engine, tables=[table], checkfirst=True)
        inspector = inspect(pool.engine)
        existing = {column["name"] for column in inspector.get_columns(table.name)}
        unique_sets = [tuple(uc["column_names"]) for uc in inspector.get_unique_constraints(table.name)]
        unique_sets += [tuple(ix["column_names"]) for ix in inspector.get_indexes(table.name) if ix.get("unique")]
    except exc.TimeoutError as e:
        raise PoolExhausted("No se pudo obtener una conexión para inicializar el esquema.") from e
    except exc.SQLAlchemyError as e:
        logger.error(f"Error al inicializar la base de datos: {e}", exc_info=True)
        raise StorageError(f"Error al inicializar el esquema: {e}") from e

    missing = {column.name for column in table.columns} - existing
    if missing:
        msg = f"La tabla '{table.name}' existe con una forma incompatible; faltan columnas: {', '.join(sorted(missing))}"
        logger.critical(msg)
        raise ConfigurationError(msg)

    if ("email",) not in unique_sets:
        msg = f"La tabla '{table.name}' existe sin restricción UNIQUE sobre email."
        logger.critical(msg)
        raise ConfigurationError(msg)

    logger.info("Tablas de base de datos verificadas/creadas.")
