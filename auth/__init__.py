"""auth/ -- Authentication and credential validation for PushGate.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core.config for the signing key. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
