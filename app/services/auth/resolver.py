"""Translates inbound Authorization headers into upstream credentials.

Two client encodings are accepted:

- ``Basic <base64(username:password)>``: forwarded as transport-level HTTP
  Basic auth.
- ``Bearer <username:token>``: forwarded as the upstream ``auth_token`` query
  parameter, kept intact.

Clients may not pass ``auth_token`` in the query themselves; any such
parameter is dropped before the credential is examined.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Iterable

import httpx
from pydantic import SecretStr

from app.core.errors import (
    MalformedBasicCredential,
    MalformedBearerCredential,
    MissingCredential,
)
from app.models.credentials import BasicCredential, BearerCredential, Credential, UpstreamAuth

logger = logging.getLogger(__name__)

LEGACY_TOKEN_PARAM = "auth_token"

_BASIC_RE = re.compile(r"^Basic\s+(.+)$", re.IGNORECASE)
_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def strip_legacy_token(query: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """Return *query* without any ``auth_token`` entries."""
    return [(key, value) for key, value in query if key != LEGACY_TOKEN_PARAM]


def _decode_basic(encoded: str) -> BasicCredential:
    encoded = encoded.strip()
    # Restore trailing padding that some clients omit
    encoded += "=" * (-len(encoded) % 4)
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise MalformedBasicCredential() from exc

    username, separator, password = decoded.partition(":")
    if not separator or not username or not password:
        raise MalformedBasicCredential()
    return BasicCredential(username=username, secret=SecretStr(password))


def _decode_bearer(token: str) -> BearerCredential:
    token = token.strip()
    identity, separator, secret = token.partition(":")
    if not separator or not identity or not secret:
        raise MalformedBearerCredential()
    return BearerCredential(composite_token=SecretStr(token))


class CredentialResolver:
    """Parses an ``Authorization`` header into an :class:`UpstreamAuth`."""

    def parse(self, authorization: str | None) -> Credential:
        header = (authorization or "").strip()

        basic = _BASIC_RE.match(header)
        if basic:
            return _decode_basic(basic.group(1))

        bearer = _BEARER_RE.match(header)
        if bearer:
            return _decode_bearer(bearer.group(1))

        raise MissingCredential()

    def resolve(
        self,
        authorization: str | None,
        query: Iterable[tuple[str, str]] = (),
    ) -> UpstreamAuth:
        """Resolve the credential and build the sanitized outbound query.

        Raises:
            MissingCredential: no Basic or Bearer scheme in the header.
            MalformedBasicCredential: empty username or password.
            MalformedBearerCredential: token is not ``identity:secret``.
        """
        params = strip_legacy_token(query)
        credential = self.parse(authorization)

        if isinstance(credential, BasicCredential):
            auth = httpx.BasicAuth(credential.username, credential.secret.get_secret_value())
            logger.debug("Resolved basic credential for user=%s", credential.identity)
            return UpstreamAuth(credential=credential, params=params, auth=auth)

        params.append((LEGACY_TOKEN_PARAM, credential.composite_token.get_secret_value()))
        logger.debug("Resolved bearer credential for user=%s", credential.identity)
        return UpstreamAuth(credential=credential, params=params)
