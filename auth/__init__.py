"""auth/ -- Credential authentication and token lifecycle package.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/; configuration values reach it
through constructors. api/ and main.py import from auth/, not the other
way around.
"""
