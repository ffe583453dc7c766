"""auth/ -- Authentication and authorization package for the marketplace.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. Configuration values arrive through
constructor arguments. api/ imports from auth/, not the other way around.
"""
