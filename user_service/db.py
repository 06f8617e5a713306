"""Configuración del pool de conexiones a la base de datos usando SQLAlchemy para el Servicio de Usuarios."""

import logging
import time
from contextlib import contextmanager
from typing import ContextManager, Iterator

from sqlalchemy import create_engine, event, exc
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from .config import Settings
from .exceptions import ConfigurationError, PoolExhausted, StorageError, UserServiceError

logger = logging.getLogger(__name__)

# Crea una clase base (Base) para los modelos declarativos
Base = declarative_base()

# Marca de tiempo guardada en cada conexión al devolverla al pool
CHECKED_IN_AT = "checked_in_at"


def build_engine(settings: Settings) -> Engine:
    """Crea el engine con un QueuePool acotado según la configuración."""
    try:
        url = make_url(settings.url)
    except exc.ArgumentError as e:
        raise ConfigurationError(f"JDBC_URL inválida: {settings.url!r}") from e

    connect_args = {}
    # SQLite no maneja credenciales; sus conexiones se comparten entre hilos a través del pool
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    else:
        url = url.set(username=settings.username or url.username, password=settings.password or url.password)

    try:
        return create_engine(
            url,
            poolclass=QueuePool,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.connection_timeout,
            pool_pre_ping=True,
            echo=settings.echo,
            connect_args=connect_args,
        )
    except (exc.ArgumentError, exc.NoSuchModuleError, ImportError) as e:
        raise ConfigurationError(f"No se pudo crear el engine para {url.render_as_string()}: {e}") from e


class ConnectionPool:
    """
    Dueño de todas las conexiones del servicio.

    Los llamadores nunca cierran una conexión directamente: usan `session()` o
    `transaction()`, que la devuelven al pool en cualquier salida, incluidas las de error.

    El desalojo de conexiones ociosas ocurre al volver a prestarlas: una conexión que
    superó `idle_timeout` se cierra y se reemplaza en ese checkout. No hay un hilo de
    fondo; una conexión que nadie vuelve a pedir queda abierta hasta `dispose()`.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.idle_timeout = settings.idle_timeout
        self.engine = build_engine(settings)
        # Crea una fábrica de sesiones (SessionLocal)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )
        event.listen(self.engine, "checkin", self._on_checkin)
        event.listen(self.engine, "checkout", self._on_checkout)
        logger.info(
            f"Pool creado para {self.engine.url.render_as_string()} "
            f"(size={settings.pool_size}, timeout={settings.connection_timeout}s, idle={settings.idle_timeout}s)"
        )

    def _on_checkin(self, dbapi_connection, connection_record):
        if dbapi_connection is not None:
            connection_record.info[CHECKED_IN_AT] = time.monotonic()

    def _on_checkout(self, dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.pop(CHECKED_IN_AT, None)
        if checked_in_at is None:
            return
        idle_for = time.monotonic() - checked_in_at
        if idle_for > self.idle_timeout:
            logger.info(f"Desalojando conexión ociosa ({idle_for:.1f}s sin uso).")
            # El pool invalida la conexión y abre una nueva en su lugar
            raise exc.DisconnectionError("Conexión ociosa por encima de idle_timeout")

    @contextmanager
    def _scope(self, commit: bool) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
            if commit:
                db.commit()
        except UserServiceError:
            db.rollback()
            raise
        except exc.TimeoutError as e:
            db.rollback()
            logger.warning(f"Pool agotado: {e}")
            raise PoolExhausted(
                f"No hay conexiones disponibles tras {self.settings.connection_timeout}s de espera."
            ) from e
        except exc.SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error de base de datos: {e}", exc_info=True)
            raise StorageError(f"Error interno de base de datos: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def session(self) -> ContextManager[Session]:
        """Sesión de lectura sin transacción explícita; se libera al salir."""
        return self._scope(commit=False)

    def transaction(self) -> ContextManager[Session]:
        """Sesión transaccional: commit al salir normalmente, rollback ante cualquier error."""
        return self._scope(commit=True)

    def dispose(self) -> None:
        """Cierra todas las conexiones del pool."""
        self.engine.dispose()
        logger.info("Pool de conexiones cerrado.")
