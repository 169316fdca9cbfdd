from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class PreviewStatus(str, Enum):
    FRESH = "fresh"
    NO_DATA = "no_data"
    ERROR = "error"


class PreviewRecord(BaseModel):
    """Social-card metadata extracted from a single HTML page.

    Serialised with camelCase keys (``imageUrl``, ``siteName`` ...).  Absent
    fields are emitted as ``null``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str | None = None
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    site_name: str | None = None
    site_handle: str | None = None
    site_handle_url: str | None = None
    site_domain: str | None = None
    card_type: str | None = None
    theme_color: str | None = None
    favicon_url: str | None = None
    fetched_at: datetime
    status: Literal["fresh"] = "fresh"


class EnrichmentResult(BaseModel):
    """Upstream suggestions merged with the outcome of the preview fetch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    suggestions: Any
    preview: PreviewRecord | None = None
    preview_status: PreviewStatus
    preview_error: str | None = None

    @model_validator(mode="after")
    def _error_message_matches_status(self) -> EnrichmentResult:
        if (self.preview_status is PreviewStatus.ERROR) != bool(self.preview_error):
            raise ValueError("preview_error must be set exactly when preview_status is error")
        return self

    def to_response(self) -> dict[str, Any]:
        """JSON payload; ``previewError`` only appears alongside an error status."""
        payload = self.model_dump(mode="json", by_alias=True)
        if self.preview_error is None:
            payload.pop("previewError", None)
        return payload
