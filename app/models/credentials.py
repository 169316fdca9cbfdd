from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr


class BasicCredential(BaseModel):
    """Username and password decoded from an ``Authorization: Basic`` header."""

    model_config = ConfigDict(frozen=True)

    scheme: Literal["basic"] = "basic"
    username: str
    secret: SecretStr

    @property
    def identity(self) -> str:
        return self.username


class BearerCredential(BaseModel):
    """A ``username:token`` pair kept intact for upstream forwarding."""

    model_config = ConfigDict(frozen=True)

    scheme: Literal["bearer"] = "bearer"
    composite_token: SecretStr

    @property
    def identity(self) -> str:
        return self.composite_token.get_secret_value().split(":", 1)[0]


Credential = Union[BasicCredential, BearerCredential]


@dataclass(frozen=True)
class UpstreamAuth:
    """A credential translated into the shape the upstream API accepts.

    ``params`` is the outbound query with any inbound legacy token removed.
    Basic credentials travel as ``auth``; bearer credentials travel as a
    single query parameter inside ``params``.  Never both.
    """

    credential: Credential
    params: list[tuple[str, str]] = field(default_factory=list)
    auth: httpx.BasicAuth | None = None

    @property
    def identity(self) -> str:
        return self.credential.identity
