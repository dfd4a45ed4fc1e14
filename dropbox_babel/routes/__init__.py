"""Typed endpoint wrappers, one class per API namespace."""

from dropbox_babel.routes.users import UsersRoutes

__all__ = ["UsersRoutes"]
