"""Babel data types, one module per API namespace."""

from dropbox_babel.types.base import BabelStruct, BabelUnion

__all__ = ["BabelStruct", "BabelUnion"]
