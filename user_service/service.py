"""Operaciones de negocio sobre la tabla 'users': registro, búsquedas, conteo y paginación."""

import logging
from typing import List

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import ConnectionPool
from .exceptions import DuplicateEmail, InvalidUserData, NotFound
from .models import User
from .schemas import UserCreate, UserResponse

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

# Rango de un entero con signo de 64 bits (BIGINT); fuera de él no puede existir ninguna fila
MIN_DB_INTEGER = -(2 ** 63)
MAX_DB_INTEGER = 2 ** 63 - 1


def _is_email_violation(error: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: users.email"; MySQL/PostgreSQL nombran la restricción uq_users_email
    message = str(error.orig).lower()
    return "email" in message and ("unique" in message or "duplicate" in message)


def insert_user(db: Session, data: UserCreate) -> UserResponse:
    """
    Inserta un usuario dentro de la transacción recibida y devuelve la fila con su id.
    No hace commit: eso le corresponde a quien abrió la transacción.
    """
    new_user = User(email=data.email, password=data.password, name=data.name)
    db.add(new_user)
    try:
        db.flush()
    except IntegrityError as e:
        if _is_email_violation(e):
            raise DuplicateEmail(data.email) from e
        raise
    return UserResponse.model_validate(new_user)


class UserService:
    """Servicio de usuarios. Cada llamada toma su propia conexión del pool."""

    def __init__(self, pool: ConnectionPool, page_size: int = DEFAULT_PAGE_SIZE):
        self.pool = pool
        self.page_size = page_size

    def register(self, email: str, password: str, name: str) -> UserResponse:
        """
        Registra un usuario en una transacción propia.

        Lanza DuplicateEmail si el email ya existe, InvalidUserData si los datos no
        son válidos y StorageError ante cualquier otra falla. En todos los casos de
        error la transacción se revierte y no queda ninguna fila.
        """
        try:
            data = UserCreate(email=email, password=password, name=name)
        except ValidationError as e:
            logger.warning(f"Datos de registro inválidos para {email!r}: {e.errors()}")
            raise InvalidUserData(str(e)) from e

        logger.info(f"Registro iniciado para email: {data.email}")
        try:
            with self.pool.transaction() as db:
                user = insert_user(db, data)
        except DuplicateEmail:
            logger.warning(f"Registro rechazado, email ya registrado: {data.email}")
            raise
        logger.info(f"Usuario registrado con ID {user.id}")
        return user

    def get_user_by_id(self, user_id: int) -> UserResponse:
        if not MIN_DB_INTEGER <= user_id <= MAX_DB_INTEGER:
            logger.warning(f"Usuario con ID {user_id} no encontrado (fuera de rango).")
            raise NotFound(f"Usuario con ID {user_id} no encontrado.")
        with self.pool.session() as db:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                logger.warning(f"Usuario con ID {user_id} no encontrado.")
                raise NotFound(f"Usuario con ID {user_id} no encontrado.")
            return UserResponse.model_validate(user)

    def get_user_by_name(self, name: str) -> UserResponse:
        """El nombre no es único: si hay varias filas devuelve la de menor id."""
        with self.pool.session() as db:
            user = db.query(User).filter(User.name == name).order_by(User.id).first()
            if user is None:
                logger.warning(f"Usuario con nombre {name!r} no encontrado.")
                raise NotFound(f"Usuario con nombre {name!r} no encontrado.")
            return UserResponse.model_validate(user)

    def get_users_count(self) -> int:
        with self.pool.session() as db:
            return db.query(func.count(User.id)).scalar()

    def get_users(self, page: int) -> List[UserResponse]:
        """Página `page` (desde 1) ordenada por id. Una página fuera de rango devuelve []."""
        offset = (page - 1) * self.page_size
        if page < 1 or offset > MAX_DB_INTEGER:
            return []
        with self.pool.session() as db:
            rows = (
                db.query(User)
                .order_by(User.id)
                .offset(offset)
                .limit(self.page_size)
                .all()
            )
            return [UserResponse.model_validate(row) for row in rows]
