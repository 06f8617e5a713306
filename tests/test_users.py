"""Pruebas del servicio de usuarios: registro transaccional, búsquedas, conteo y paginación."""

import threading

import pytest
from pydantic import ValidationError
from sqlalchemy import text

from conftest import make_settings
from user_service.db import ConnectionPool
from user_service.exceptions import DuplicateEmail, InvalidUserData, NotFound, PoolExhausted, StorageError
from user_service.initializer import init_schema
from user_service.models import User
from user_service.service import UserService


def test_register_assigns_id_and_lookup_matches(service):
    user = service.register("bob@example.com", "password1", "Bob")

    assert user.id is not None
    assert (user.email, user.password, user.name) == ("bob@example.com", "password1", "Bob")
    assert service.get_user_by_id(user.id) == user


def test_returned_user_is_immutable(service):
    user = service.register("alice@example.com", "password2", "Alice")

    with pytest.raises(ValidationError):
        user.name = "Otra"


def test_register_duplicate_email_leaves_single_row(service, pool):
    service.register("dup@example.com", "p1", "Primero")

    with pytest.raises(DuplicateEmail) as excinfo:
        service.register("dup@example.com", "p2", "Segundo")

    assert excinfo.value.email == "dup@example.com"
    with pool.session() as db:
        rows = db.query(User).filter(User.email == "dup@example.com").all()
    assert [row.name for row in rows] == ["Primero"]


@pytest.mark.parametrize(
    "email, password, name",
    [
        ("no-es-un-email", "p", "N"),
        ("ok@example.com", "", "N"),
        ("ok@example.com", "p", ""),
        ("ok@example.com", "p" * 101, "N"),
        ("ok@example.com", "p", "n" * 101),
        ("a" * 95 + "@x.com", "p", "N"),
    ],
)
def test_register_rejects_invalid_data(service, email, password, name):
    with pytest.raises(InvalidUserData):
        service.register(email, password, name)

    assert service.get_users_count() == 0


def test_get_user_by_id_not_found(service):
    with pytest.raises(NotFound):
        service.get_user_by_id(9999)


def test_get_user_by_name_not_found(service):
    with pytest.raises(NotFound):
        service.get_user_by_name("Nadie")


def test_get_user_by_name_returns_smallest_id(service):
    first = service.register("tom1@example.com", "p", "Tom")
    service.register("tom2@example.com", "p", "Tom")

    assert service.get_user_by_name("Tom") == first


def test_count_after_inserts(service):
    assert service.get_users_count() == 0
    for i in range(5):
        service.register(f"user{i}@example.com", "p", f"User {i}")

    assert service.get_users_count() == 5


def test_pages_are_ordered_and_fixed_size(service):
    registered = [service.register(f"page{i}@example.com", "p", f"P{i}") for i in range(5)]

    pages = [service.get_users(page) for page in (1, 2, 3)]

    assert [len(page) for page in pages] == [2, 2, 1]
    flattened = [user for page in pages for user in page]
    assert flattened == registered
    assert [user.id for user in flattened] == sorted(user.id for user in flattened)


def test_page_out_of_range_is_empty(service):
    service.register("solo@example.com", "p", "Solo")

    assert service.get_users(2) == []
    assert service.get_users(100) == []
    assert service.get_users(0) == []


def test_scenario_two_users(service):
    a = service.register("a@x.com", "p1", "A")
    service.register("b@x.com", "p2", "B")

    assert service.get_users_count() == 2
    assert service.get_user_by_name("A") == a
    with pytest.raises(DuplicateEmail):
        service.register("a@x.com", "p3", "A2")
    assert service.get_users_count() == 2


def test_concurrent_register_same_email(service):
    """Dos registros simultáneos con el mismo email: la restricción de unicidad deja pasar solo uno."""
    barrier = threading.Barrier(2)
    results = [None, None]

    def register_thread(index: int):
        barrier.wait()
        try:
            results[index] = service.register("race@example.com", "p", f"Hilo {index}")
        except DuplicateEmail as e:
            results[index] = e

    threads = [threading.Thread(target=register_thread, args=(i,)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    duplicates = [r for r in results if isinstance(r, DuplicateEmail)]
    users = [r for r in results if r is not None and not isinstance(r, DuplicateEmail)]
    assert len(users) == 1
    assert len(duplicates) == 1
    assert service.get_users_count() == 1


def test_concurrent_register_distinct_emails(service):
    num_threads = 8
    errors = []

    def register_thread(index: int):
        try:
            service.register(f"hilo{index}@example.com", "p", f"Hilo {index}")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=register_thread, args=(i,)) for i in range(num_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert service.get_users_count() == num_threads


def test_register_keeps_email_as_given(service):
    """El email se valida pero no se normaliza: se guarda y devuelve tal como llegó."""
    user = service.register("Bob@EXAMPLE.COM", "p", "Bob")

    assert user.email == "Bob@EXAMPLE.COM"
    assert service.get_user_by_id(user.id).email == "Bob@EXAMPLE.COM"


def test_get_user_by_id_beyond_integer_range_not_found(service):
    with pytest.raises(NotFound):
        service.get_user_by_id(2 ** 63)
    with pytest.raises(NotFound):
        service.get_user_by_id(-(2 ** 63) - 1)


def test_page_beyond_integer_range_is_empty(service):
    service.register("solo@example.com", "p", "Solo")

    assert service.get_users(10 ** 20) == []


def test_register_other_failure_rolls_back_as_storage_error(service, pool):
    """Una falla distinta de la unicidad del email revierte la transacción y sale como StorageError."""
    service.register("previo@example.com", "p", "Previo")
    with pool.engine.begin() as conn:
        conn.execute(text(
            "CREATE TRIGGER rechazar_boom BEFORE INSERT ON users WHEN NEW.name = 'boom' "
            "BEGIN SELECT RAISE(ABORT, 'insercion rechazada'); END"
        ))

    with pytest.raises(StorageError):
        service.register("boom@example.com", "p", "boom")

    with pool.session() as db:
        assert db.query(User).filter(User.email == "boom@example.com").count() == 0
    assert service.get_users_count() == 1


def test_register_without_table_is_storage_error(service, pool):
    with pool.engine.begin() as conn:
        conn.execute(text("DROP TABLE users"))

    with pytest.raises(StorageError):
        service.register("a@x.com", "p1", "A")


def test_register_with_pool_held_raises_pool_exhausted(tmp_path):
    pool = ConnectionPool(make_settings(tmp_path, pool_size=1, connection_timeout=0.2))
    try:
        init_schema(pool)
        service = UserService(pool)
        with pool.session() as held:
            held.execute(text("SELECT 1"))
            with pytest.raises(PoolExhausted):
                service.register("a@x.com", "p1", "A")
        assert service.get_users_count() == 0
    finally:
        pool.dispose()
