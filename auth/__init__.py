"""auth/ -- Members, credentials, tokens and refresh sessions for authgate.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
It does NOT import from api/. api/ imports from auth/, not the other way
around; auth/dependencies.py is the single module here that knows FastAPI.
"""
