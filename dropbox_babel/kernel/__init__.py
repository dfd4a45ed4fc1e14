"""Kernel utilities shared by the auth and client layers.

Rules:
- Kernel code must not import from auth, client or routes.
- Kernel utilities should stay small and stable.
"""
