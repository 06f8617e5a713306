"""Modelos Pydantic (schemas) para validación de datos de entrada/salida en el Servicio de Usuarios."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.networks import validate_email

MAX_LENGTH = 100

# --- Schemas de Usuario ---

class UserCreate(BaseModel):
    """Datos de registro. Todos los campos son obligatorios y de hasta 100 caracteres."""
    email: str = Field(..., min_length=1, max_length=MAX_LENGTH)
    password: str = Field(..., min_length=1, max_length=MAX_LENGTH)
    name: str = Field(..., min_length=1, max_length=MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def email_syntax(cls, value: str) -> str:
        # Solo se valida la sintaxis; se guarda el email tal como llegó, sin normalizar
        validate_email(value)
        return value


class UserResponse(BaseModel):
    """Instantánea inmutable de una fila de 'users'."""
    id: int
    email: str
    password: str
    name: str

    model_config = ConfigDict(from_attributes=True, frozen=True)


class UserCount(BaseModel):
    total: int


class UserPublic(BaseModel):
    """Datos públicos del usuario expuestos por HTTP (sin contraseña)."""
    id: int
    email: str
    name: str

    model_config = ConfigDict(from_attributes=True)
