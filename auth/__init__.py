"""auth/ -- Authentication and authorization package for UserGate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/
(fastapi for dependencies.py, starlette and itsdangerous for sessions.py).
It does NOT import from api/ or users/.
api/ and users/ import from auth/, not the other way around.
"""
