"""
auth/tokens.py -- Secret hashing, credential checks, and session identifiers.

Security design decisions:
  Secrets: bcrypt, used directly (no passlib wrapper). Credential.secret holds
       the bcrypt hash; plaintext secrets only exist for the duration of a
       login call. The _DUMMY_HASH constant enables timing equalization in
       authenticate() so response time does not reveal whether an identifier
       exists [C1].

  Session ids: "sess_<ms>_<random>". The time component keeps ids roughly
       sortable for debugging; secrets.token_hex(8) supplies 64 random bits.
       Collisions are negligible but not cryptographically ruled out -- the id
       is a correlation handle, not a bearer credential (the signed token is).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING, Callable

import bcrypt

if TYPE_CHECKING:
    from auth.models import Credential
    from auth.store import CredentialLookup

logger = logging.getLogger("sessionkeeper.auth")

# ---------------------------------------------------------------------------
# Secret hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext secret.

    bcrypt only looks at the first 72 bytes. The HTTP layer caps secret length
    at 255 characters, which keeps inputs reasonable without pretending the
    tail is checked.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext secret matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        # Malformed hash in the store -- treat as a mismatch, never as a match.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("sessionkeeper_timing_dummy")


# ---------------------------------------------------------------------------
# Credential check (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate(store: CredentialLookup, identifier: str, secret: str) -> Credential | None:
    """Return the Credential if identifier/secret match, else None.

    Always runs bcrypt whether or not the identifier exists:
    - Unknown identifier: bcrypt runs against _DUMMY_HASH
    - Wrong secret: bcrypt runs against the real hash
    Both outcomes return None, so callers cannot tell them apart either.
    """
    credential = store.find(identifier)
    if credential is None:
        verify_password(secret, _DUMMY_HASH)
        return None
    if not verify_password(secret, credential.secret):
        return None
    return credential


# ---------------------------------------------------------------------------
# Session identifiers
# ---------------------------------------------------------------------------


def generate_session_id(clock: Callable[[], float] = time.time) -> str:
    return f"sess_{int(clock() * 1000)}_{secrets.token_hex(8)}"
