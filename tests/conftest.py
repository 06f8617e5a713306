"""
Configuraciones y fixtures compartidos para las pruebas automatizadas con pytest.
Cada prueba trabaja sobre una base SQLite nueva dentro de tmp_path.
"""

import pytest
from fastapi.testclient import TestClient

from user_service.config import Settings
from user_service.db import ConnectionPool
from user_service.initializer import init_schema
from user_service.service import UserService


def make_settings(tmp_path, **overrides) -> Settings:
    """Settings de prueba apuntando a un archivo SQLite propio de la prueba."""
    values = {
        "url": f"sqlite:///{tmp_path / 'users.db'}",
        "username": "sa",
        "password": "",
        "pool_size": 5,
        "connection_timeout": 2.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def pool(settings):
    """Pool sin esquema inicializado; se cierra al terminar la prueba."""
    pool = ConnectionPool(settings)
    yield pool
    pool.dispose()


@pytest.fixture
def service(pool) -> UserService:
    """Servicio con la tabla 'users' creada y páginas de 2 filas."""
    init_schema(pool)
    return UserService(pool, page_size=2)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Cliente HTTP sobre la app completa; el startup lee la configuración del entorno."""
    monkeypatch.setenv("JDBC_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("JDBC_USERNAME", "sa")
    monkeypatch.setenv("JDBC_PASSWORD", "")
    monkeypatch.setenv("USERS_PAGE_SIZE", "2")

    from user_service.main import app

    with TestClient(app) as test_client:
        yield test_client
