"""
auth/errors.py -- Error taxonomy for the session core.

Two families:
  Exceptions (SessionCorrupt, SessionExpired) are raised by the codec and
  recovered inside SessionManager, together with storage.store.StorageUnavailable
  from the key-value store. They never cross the AuthCore / AuthGuard boundary.

  LoginFailure is a plain enum carried in LoginResult.reason. These are the only
  failures a user ever gets to see, and invalid_credentials deliberately covers
  both "unknown identifier" and "wrong secret".
"""

from __future__ import annotations

from enum import Enum


class SessionError(Exception):
    """Base class for every session-core exception."""


class CodecError(SessionError):
    """A token could not be turned back into a payload."""


class SessionCorrupt(CodecError):
    """Malformed token, missing integrity marker, bad signature, or bad timestamp."""


class SessionExpired(CodecError):
    """Token is well-formed but older than the codec's maximum age."""


class LoginFailure(str, Enum):
    invalid_identifier_format = "invalid_identifier_format"
    invalid_credentials = "invalid_credentials"
    account_locked = "account_locked"
