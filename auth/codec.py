"""
auth/codec.py -- Reversible session-payload codecs.

A codec turns a session payload (a JSON-compatible dict) into an opaque string
and back. Every token carries its issuance time; decode() refuses tokens older
than max_age_seconds. Both directions are pure apart from reading the clock.

Two implementations:

  SignedCodec -- python-jose HS256 JWT signed with SECRET_KEY. This is the one
      to run in production. Claims: {"iat": <seconds>, "data": <payload>}.

  ObfuscatedCodec -- compatibility codec for tokens written by older clients:
          json -> "<issued ms>:<json>" -> base64 -> + integrity marker
               -> base64 -> reversed
      The integrity marker is a fixed tag plus a SHA-256 digest of the inner
      layer, so a flipped byte never decodes to a different payload. There is
      no key: anyone who reads this file can mint a token. It is refused in
      production mode by core.config.Settings.

Failure policy: decode() raises SessionCorrupt for anything it cannot parse or
verify, SessionExpired for a well-formed token that is too old. Callers must
treat both as "no session".

Layer rule: no imports from api/ or storage/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

from jose import JWTError, jwt

from auth.errors import SessionCorrupt, SessionExpired

if TYPE_CHECKING:
    from core.config import Settings

DEFAULT_MAX_AGE_SECONDS = 30 * 24 * 60 * 60

_ALGORITHM = "HS256"


class Codec(ABC):
    """Contract shared by every session codec."""

    def __init__(self, max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    @abstractmethod
    def encode(self, payload: dict) -> str:
        """Return an opaque token for payload, stamped with the current time."""

    @abstractmethod
    def decode(self, token: str) -> dict:
        """Return the payload inside token.

        Raises:
            SessionCorrupt: token is malformed or fails its integrity check.
            SessionExpired: token is intact but older than max_age_seconds.
        """

    def _check_age(self, issued_at: float) -> None:
        if self._clock() - issued_at > self.max_age_seconds:
            raise SessionExpired(f"token issued {issued_at:.0f} exceeds max age {self.max_age_seconds}s")


# ---------------------------------------------------------------------------
# Signed (production)
# ---------------------------------------------------------------------------


class SignedCodec(Codec):
    def __init__(
        self,
        secret_key: str,
        max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(max_age_seconds, clock)
        self._secret_key = secret_key

    def encode(self, payload: dict) -> str:
        claims = {"iat": int(self._clock()), "data": payload}
        return jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, token: str) -> dict:
        if not isinstance(token, str) or not token:
            raise SessionCorrupt("empty token")
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise SessionCorrupt(f"signature or structure check failed: {exc}") from exc

        issued_at = claims.get("iat")
        data = claims.get("data")
        if not isinstance(issued_at, int) or isinstance(issued_at, bool):
            raise SessionCorrupt("missing or malformed iat claim")
        if not isinstance(data, dict):
            raise SessionCorrupt("missing data claim")
        self._check_age(issued_at)
        return data


# ---------------------------------------------------------------------------
# Obfuscated (compatibility only -- not a security control)
# ---------------------------------------------------------------------------

_MARKER_SEP = "."  # not in the base64 alphabet, so rpartition is unambiguous
_MARKER_TAG = "SKv1"


def _digest(layer: str) -> str:
    return hashlib.sha256(layer.encode("ascii")).hexdigest()[:32]


class ObfuscatedCodec(Codec):
    def encode(self, payload: dict) -> str:
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        issued_ms = int(self._clock() * 1000)
        inner = base64.b64encode(f"{issued_ms}:{body}".encode("utf-8")).decode("ascii")
        marked = f"{inner}{_MARKER_SEP}{_MARKER_TAG}{_digest(inner)}"
        outer = base64.b64encode(marked.encode("ascii")).decode("ascii")
        return outer[::-1]

    def decode(self, token: str) -> dict:
        if not isinstance(token, str) or not token:
            raise SessionCorrupt("empty token")
        try:
            marked = base64.b64decode(token[::-1], validate=True).decode("ascii")
        except (binascii.Error, ValueError) as exc:
            raise SessionCorrupt("outer layer is not base64") from exc

        inner, sep, marker = marked.rpartition(_MARKER_SEP)
        if not sep or not marker.startswith(_MARKER_TAG):
            raise SessionCorrupt("integrity marker missing")
        if not hmac.compare_digest(marker[len(_MARKER_TAG) :], _digest(inner)):
            raise SessionCorrupt("integrity marker mismatch")

        try:
            plain = base64.b64decode(inner, validate=True).decode("utf-8")
        except (binascii.Error, ValueError) as exc:
            raise SessionCorrupt("inner layer is not base64") from exc

        stamp, sep, body = plain.partition(":")
        if not sep or not (stamp.isascii() and stamp.isdigit()):
            raise SessionCorrupt("malformed issuance timestamp")
        self._check_age(int(stamp) / 1000)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise SessionCorrupt("payload is not JSON") from exc
        if not isinstance(payload, dict):
            raise SessionCorrupt("payload is not an object")
        return payload


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_codec(settings: Settings, clock: Callable[[], float] = time.time) -> Codec:
    """Return the codec selected by SESSION_CODEC.

    Settings validation has already refused "obfuscated" outside debug mode,
    so reaching that branch means a developer asked for it explicitly.
    """
    if settings.session_codec == "obfuscated":
        return ObfuscatedCodec(max_age_seconds=settings.token_max_age_seconds, clock=clock)
    return SignedCodec(settings.secret_key, max_age_seconds=settings.token_max_age_seconds, clock=clock)
