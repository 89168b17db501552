"""auth/ -- Session and credential-lifecycle core for SessionKeeper.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/ (the
kernel) for configuration and storage/ for the key-value store contract.
It does NOT import from api/. api/ and main.py import from auth/, not the
other way around.
"""
