"""auth/ -- Credential flows, token lifecycle, and persistence for AuthKit.

Layer rule: auth/ imports only stdlib + third-party libraries (and
core.config for type hints). It does NOT import from api/.
api/ and main.py import from auth/, not the other way around.
"""
