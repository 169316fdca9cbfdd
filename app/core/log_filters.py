from __future__ import annotations

import logging
import re

_LEGACY_TOKEN_RE = re.compile(r"(?i)(auth_token=)[^&\s]*")


def redact_legacy_token(text: str) -> str:
    """Replace every ``auth_token`` query value in *text*."""
    return _LEGACY_TOKEN_RE.sub(r"\1[REDACTED]", text)


class RedactLegacyTokenFilter(logging.Filter):
    """Keeps credential-in-URL values out of access logs.

    uvicorn's access logger passes the request path (with query string) as a
    positional argument, so the arguments are rewritten rather than the
    format string.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_legacy_token(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        if isinstance(record.msg, str):
            record.msg = redact_legacy_token(record.msg)
        return True
