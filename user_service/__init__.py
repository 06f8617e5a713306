"""Servicio de usuarios: pool de conexiones, inicialización de esquema y CRUD transaccional sobre la tabla 'users'."""
