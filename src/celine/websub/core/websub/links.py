# celine/websub/core/websub/links.py
"""
Link extraction for WebSub discovery.

Two sources are supported:

- HTTP ``Link`` response headers, e.g.
  ``<https://hub.example.com/>; rel="hub", </feed>; rel="self"``
- ``<link rel=... href=...>`` elements in the head of an HTML document.

All returned URLs are absolute, resolved against the given base URL.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Iterable
from urllib.parse import urljoin

logger = logging.getLogger(__name__)

# One link-value: <uri-reference> followed by ;-separated params.
LINK_VALUE_PATTERN = re.compile(
    r"""<(?P<url>[^>]*)>(?P<params>(?:\s*;\s*[^;,=\s]+\s*(?:=\s*(?:"(?:[^"\\]|\\.)*"|[^;,]*))?)*)"""
)
LINK_PARAM_PATTERN = re.compile(
    r""";\s*(?P<name>[^;,=\s]+)\s*(?:=\s*(?P<value>"(?:[^"\\]|\\.)*"|[^;,]*))?"""
)


@dataclass(frozen=True)
class Link:
    url: str
    rels: frozenset[str]

    def has_rel(self, rel: str) -> bool:
        return rel.lower() in self.rels


def _split_rels(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(token.lower() for token in value.split())


def _resolve(base_url: str, reference: str) -> str | None:
    try:
        return urljoin(base_url, reference.strip())
    except ValueError:
        logger.warning("Skipping malformed link URL %r", reference)
        return None


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


def parse_link_header(value: str, base_url: str) -> list[Link]:
    """Parse a single ``Link`` header value into links.

    Link values without a ``rel`` parameter are skipped.
    """
    links: list[Link] = []
    for match in LINK_VALUE_PATTERN.finditer(value):
        rel: str | None = None
        for param in LINK_PARAM_PATTERN.finditer(match.group("params")):
            if param.group("name").lower() == "rel" and rel is None:
                rel = _unquote(param.group("value") or "")
        rels = _split_rels(rel)
        if not rels:
            continue
        url = _resolve(base_url, match.group("url"))
        if url is None:
            continue
        links.append(Link(url=url, rels=rels))
    return links


def parse_link_headers(values: Iterable[str], base_url: str) -> list[Link]:
    """Parse every ``Link`` header of a response, preserving order."""
    links: list[Link] = []
    for value in values:
        links.extend(parse_link_header(value, base_url))
    return links


class _HeadLinkParser(HTMLParser):
    """Collects ``<link>`` and ``<base>`` elements until the head ends."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.links: list[tuple[str, str]] = []
        self.base_href: str | None = None
        self._done = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self._done:
            return
        if tag == "body":
            self._done = True
            return
        values = dict(attrs)
        if tag == "base" and self.base_href is None and values.get("href"):
            self.base_href = values["href"]
        elif tag == "link":
            href = values.get("href")
            rel = values.get("rel")
            if href is None or rel is None:
                return
            self.links.append((href, rel))

    def handle_endtag(self, tag: str) -> None:
        if tag == "head":
            self._done = True


def parse_html_links(document: str, base_url: str) -> list[Link]:
    """Extract ``<link>`` elements from the head of an HTML document.

    The first ``<base href>`` in the head overrides ``base_url``.
    """
    parser = _HeadLinkParser()
    parser.feed(document)
    parser.close()

    base = base_url
    if parser.base_href:
        base = _resolve(base_url, parser.base_href) or base_url

    links: list[Link] = []
    for href, rel in parser.links:
        rels = _split_rels(rel)
        if not rels:
            continue
        url = _resolve(base, href)
        if url is None:
            continue
        links.append(Link(url=url, rels=rels))

    logger.debug("Found %d head link(s) in HTML document", len(links))
    return links
