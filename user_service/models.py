"""Define el modelo de la tabla 'users' usando SQLAlchemy ORM."""

from sqlalchemy import Column, Integer, String, UniqueConstraint

from .db import Base


class User(Base):
    """
    Modelo SQLAlchemy que representa la tabla 'users'.
    La contraseña se guarda tal como llega; no hay hash en este servicio.
    """
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    # Clave primaria autoincremental, asignada por la base de datos
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(100), nullable=False)
    password = Column(String(100), nullable=False)
    name = Column(String(100), nullable=False, index=True)
