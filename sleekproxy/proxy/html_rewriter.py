"""
HTML link rewriting.

The rewriter is a visitor over a small attribute-bearing tree abstraction
(HtmlDocument / HtmlElement), so the rules below do not depend on the parser.
SoupDocument adapts BeautifulSoup to that abstraction.

Rules applied to every element of the document:
- a[href]: href is proxied and rel is forced to "noreferrer noopener"
- [src]: src is proxied (images, scripts, frames, media)
- link[href]: href is proxied (stylesheets, icons, preloads)
- meta[http-equiv=Content-Security-Policy]: removed

Removing CSP meta tags weakens the page's security policy on purpose:
rewritten resources are served from the proxy origin, which the origin's
policy would otherwise block. Every removal is logged and counted.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from .models import RewriteContext
from .url_rewriter import resolve_and_proxy

logger = logging.getLogger("uvicorn.error")

ANCHOR_REL = "noreferrer noopener"
CSP_HTTP_EQUIV = "content-security-policy"


class HtmlElement(Protocol):
    @property
    def tag(self) -> str: ...

    def get(self, name: str) -> Optional[str]: ...

    def has(self, name: str) -> bool: ...

    def set(self, name: str, value: str) -> None: ...

    def remove(self) -> None: ...


class HtmlDocument(Protocol):
    def elements(self) -> Iterable[HtmlElement]: ...

    def serialize(self) -> str: ...


DocumentFactory = Callable[[str], HtmlDocument]


class SoupElement:
    def __init__(self, tag: Tag):
        self._tag = tag

    @property
    def tag(self) -> str:
        return (self._tag.name or "").lower()

    def get(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    def has(self, name: str) -> bool:
        return self._tag.has_attr(name)

    def set(self, name: str, value: str) -> None:
        self._tag[name] = value

    def remove(self) -> None:
        self._tag.decompose()


class SoupDocument:
    """BeautifulSoup backed HtmlDocument."""

    def __init__(self, soup: BeautifulSoup):
        self._soup = soup

    @classmethod
    def parse(cls, html: str) -> "SoupDocument":
        return cls(BeautifulSoup(html, "html.parser"))

    def elements(self) -> List[SoupElement]:
        # Snapshot so elements can be removed while visiting
        return [SoupElement(tag) for tag in self._soup.find_all(True)]

    def serialize(self) -> str:
        return str(self._soup)


@dataclass
class RewriteStats:
    links_rewritten: int = 0
    csp_meta_removed: int = 0


def _is_csp_meta(element: HtmlElement) -> bool:
    http_equiv = element.get("http-equiv") or ""
    return element.tag == "meta" and http_equiv.strip().lower() == CSP_HTTP_EQUIV


def _rewrite_attribute(element: HtmlElement, name: str, context: RewriteContext) -> bool:
    value = element.get(name)
    if value is None:
        return False
    rewritten = resolve_and_proxy(context.base_url, value, context.proxy_path)
    if rewritten == value:
        return False
    element.set(name, rewritten)
    return True


def rewrite_document(document: HtmlDocument, context: RewriteContext) -> RewriteStats:
    """Mutate `document` in place and report what changed."""
    stats = RewriteStats()
    for element in document.elements():
        tag = element.tag

        if _is_csp_meta(element):
            element.remove()
            stats.csp_meta_removed += 1
            continue

        if tag == "a":
            if element.get("href"):
                stats.links_rewritten += _rewrite_attribute(element, "href", context)
                element.set("rel", ANCHOR_REL)
        elif tag == "link" and element.has("href"):
            stats.links_rewritten += _rewrite_attribute(element, "href", context)

        if element.has("src"):
            stats.links_rewritten += _rewrite_attribute(element, "src", context)

    if stats.csp_meta_removed:
        logger.info(
            f"Removed {stats.csp_meta_removed} Content-Security-Policy meta tag(s) "
            f"from {context.base_url} so proxied resources can load"
        )
    return stats


def rewrite_html(
    html: str,
    context: RewriteContext,
    document_factory: Optional[DocumentFactory] = None,
) -> Tuple[str, RewriteStats]:
    """Parse, rewrite and serialize an HTML page."""
    factory = document_factory or SoupDocument.parse
    document = factory(html)
    stats = rewrite_document(document, context)
    return document.serialize(), stats
