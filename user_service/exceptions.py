"""Jerarquía de errores tipados del Servicio de Usuarios."""


class UserServiceError(Exception):
    """Error base de todas las fallas del servicio."""


class ConfigurationError(UserServiceError):
    """Configuración de conexión ausente o inválida, o tabla incompatible. Fatal al iniciar."""


class PoolExhausted(UserServiceError):
    """No se obtuvo una conexión del pool dentro del tiempo de espera. Se puede reintentar."""


class DuplicateEmail(UserServiceError):
    """El email ya está registrado (violación de la restricción de unicidad)."""

    def __init__(self, email: str):
        super().__init__(f"Email ya registrado: {email}")
        self.email = email


class NotFound(UserServiceError):
    """La búsqueda no encontró ninguna fila."""


class InvalidUserData(UserServiceError):
    """Los datos de entrada no pasan la validación del schema."""


class StorageError(UserServiceError):
    """Cualquier otra falla de la base de datos."""
