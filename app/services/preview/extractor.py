"""Social-card metadata extraction.

Each field of a :class:`PreviewRecord` is described by an ordered tuple of
lookup rules.  Rules are tried in order and the first non-empty value wins,
so the priority tables below are the whole of the fallback logic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from app.models.preview.schemas import PreviewRecord

logger = logging.getLogger(__name__)

SOCIAL_PROFILE_URL = "https://twitter.com/{handle}"

_META_ATTRIBUTES = ("content", "value", "href")


class RuleKind(str, Enum):
    META = "meta"
    LINK = "link"
    TEXT = "text"


@dataclass(frozen=True)
class LookupRule:
    """A CSS selector plus how to read a value from the matched element."""

    kind: RuleKind
    selector: str
    social_handle: bool = False

    def lookup(self, soup: BeautifulSoup) -> str | None:
        element = soup.select_one(self.selector)
        if not isinstance(element, Tag):
            return None

        if self.kind is RuleKind.META:
            for attribute in _META_ATTRIBUTES:
                value = _clean(element.get(attribute))
                if value:
                    return value
            return None

        if self.kind is RuleKind.LINK:
            return _clean(element.get("href"))

        return _clean(element.get_text())


def _clean(value: object) -> str | None:
    if isinstance(value, list):
        value = " ".join(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def meta_name(name: str, **kwargs) -> LookupRule:
    return LookupRule(RuleKind.META, f'meta[name="{name}"]', **kwargs)


def meta_property(prop: str) -> LookupRule:
    return LookupRule(RuleKind.META, f'meta[property="{prop}"]')


def link(selector: str) -> LookupRule:
    return LookupRule(RuleKind.LINK, f"link{selector}")


# ---------------------------------------------------------------------------
# Priority tables
# ---------------------------------------------------------------------------

TITLE_RULES = (
    meta_name("twitter:title"),
    meta_property("og:title"),
    meta_name("title"),
    LookupRule(RuleKind.TEXT, "title"),
)

DESCRIPTION_RULES = (
    meta_name("twitter:description"),
    meta_property("og:description"),
    meta_name("description"),
)

IMAGE_RULES = (
    meta_name("twitter:image"),
    meta_name("twitter:image:src"),
    meta_property("og:image"),
)

SITE_NAME_RULES = (
    meta_property("og:site_name"),
    meta_name("application-name"),
)

SITE_HANDLE_RULES = (
    meta_name("twitter:site", social_handle=True),
    meta_name("twitter:creator", social_handle=True),
)

CARD_TYPE_RULES = (meta_name("twitter:card"),)

CANONICAL_RULES = (
    link('[rel="canonical"]'),
    meta_property("og:url"),
    meta_name("twitter:url"),
)

THEME_COLOR_RULES = (
    meta_name("theme-color"),
    meta_name("msapplication-TileColor"),
    meta_name("msapplication-navbutton-color"),
)

FAVICON_RULES = (
    link('[rel="apple-touch-icon"]'),
    link('[rel="apple-touch-icon-precomposed"]'),
    link('[rel="icon"][type="image/png"]'),
    link('[rel="icon"][type="image/svg+xml"]'),
    link('[rel="mask-icon"]'),
    link('[rel="icon"]'),
    link('[rel="shortcut icon"]'),
)


def first_match(
    soup: BeautifulSoup, rules: tuple[LookupRule, ...]
) -> tuple[str, LookupRule] | None:
    """Return the first non-empty value and the rule that produced it."""
    for rule in rules:
        value = rule.lookup(soup)
        if value:
            return value, rule
    return None


def first_value(soup: BeautifulSoup, rules: tuple[LookupRule, ...]) -> str | None:
    match = first_match(soup, rules)
    return match[0] if match else None


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def resolve_absolute_url(base_url: str | None, value: str | None) -> str | None:
    """Resolve *value* against *base_url*; ``None`` unless the result is http(s)."""
    if not value:
        return None
    try:
        resolved = urljoin(base_url or "", value)
        parts = urlsplit(resolved)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return resolved


def derive_site_domain(url: str | None) -> str | None:
    """Hostname of *url* without a leading ``www.``."""
    if not url:
        return None
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname or None


def profile_url(handle: str) -> str | None:
    normalized = handle.strip()
    if normalized.startswith("@"):
        normalized = normalized[1:].strip()
    if not normalized:
        return None
    return SOCIAL_PROFILE_URL.format(handle=normalized)


class MetadataExtractor:
    """Builds a :class:`PreviewRecord` from raw HTML."""

    def extract(
        self,
        html: str | bytes,
        final_url: str | None,
        original_url: str,
    ) -> PreviewRecord | None:
        """Extract social-card metadata from *html*.

        Returns ``None`` when the page has no title, description or image:
        a card type or theme colour alone is not a usable preview.
        """
        soup = BeautifulSoup(html, "html.parser")

        title = first_value(soup, TITLE_RULES)
        description = first_value(soup, DESCRIPTION_RULES)
        raw_image = first_value(soup, IMAGE_RULES)
        site_name = first_value(soup, SITE_NAME_RULES)
        card_type = first_value(soup, CARD_TYPE_RULES)
        theme_color = first_value(soup, THEME_COLOR_RULES)
        raw_favicon = first_value(soup, FAVICON_RULES)

        site_handle = None
        site_handle_url = None
        handle_match = first_match(soup, SITE_HANDLE_RULES)
        if handle_match:
            site_handle, rule = handle_match
            if rule.social_handle:
                site_handle_url = profile_url(site_handle)

        canonical = resolve_absolute_url(final_url, first_value(soup, CANONICAL_RULES))
        canonical_url = canonical or final_url or original_url

        image_url = resolve_absolute_url(canonical_url, raw_image)
        favicon_url = resolve_absolute_url(canonical_url, raw_favicon)

        if not title and not description and not image_url:
            logger.debug("No preview metadata found at %s", canonical_url)
            return None

        return PreviewRecord(
            url=canonical_url,
            title=title,
            description=description,
            image_url=image_url,
            site_name=site_name,
            site_handle=site_handle,
            site_handle_url=site_handle_url,
            site_domain=derive_site_domain(canonical_url),
            card_type=card_type,
            theme_color=theme_color,
            favicon_url=favicon_url,
            fetched_at=datetime.now(timezone.utc),
        )
