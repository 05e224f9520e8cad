from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup

from sleekproxy.proxy.html_rewriter import (
    ANCHOR_REL,
    SoupDocument,
    rewrite_document,
    rewrite_html,
)
from sleekproxy.proxy.models import RewriteContext

CONTEXT = RewriteContext(base_url="https://site.example/docs/page.html")

PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta http-equiv="Content-Security-Policy" content="default-src 'self'">
  <meta http-equiv="content-security-policy" content="script-src 'none'">
  <meta name="viewport" content="width=device-width">
  <link rel="stylesheet" href="/static/site.css">
  <link rel="icon" href="favicon.ico">
  <script src="https://cdn.example.net/lib.js"></script>
</head>
<body>
  <a href="/about">About</a>
  <a href="intro.html" rel="opener">Intro</a>
  <a href="mailto:team@site.example">Mail</a>
  <a href="#top">Top</a>
  <a name="anchor-only">No href</a>
  <img src="img/logo.png" alt="logo">
  <img src="data:image/gif;base64,R0lGODlhAQABAAAAACw=" alt="pixel">
  <iframe src="//embed.example.org/widget"></iframe>
  <a href="http://[::1">Broken</a>
</body>
</html>
"""


def target_of(value: str) -> str:
    return parse_qs(urlsplit(value).query)["url"][0]


def rewritten_soup(html: str = PAGE):
    output, stats = rewrite_html(html, CONTEXT)
    return BeautifulSoup(output, "html.parser"), stats


def test_anchors_are_proxied_and_marked_noreferrer():
    soup, _ = rewritten_soup()
    about = soup.find("a", string="About")
    intro = soup.find("a", string="Intro")

    assert target_of(about["href"]) == "https://site.example/about"
    assert target_of(intro["href"]) == "https://site.example/docs/intro.html"
    assert " ".join(about["rel"]) == ANCHOR_REL
    assert " ".join(intro["rel"]) == ANCHOR_REL


def test_skip_scheme_anchors_keep_their_href():
    soup, _ = rewritten_soup()
    assert soup.find("a", string="Mail")["href"] == "mailto:team@site.example"
    assert soup.find("a", string="Top")["href"] == "#top"


def test_anchor_without_href_is_untouched():
    soup, _ = rewritten_soup()
    anchor = soup.find("a", attrs={"name": "anchor-only"})
    assert not anchor.has_attr("href")
    assert not anchor.has_attr("rel")


def test_src_attributes_are_proxied():
    soup, _ = rewritten_soup()
    assert target_of(soup.find("script")["src"]) == "https://cdn.example.net/lib.js"
    assert target_of(soup.find("img", alt="logo")["src"]) == (
        "https://site.example/docs/img/logo.png"
    )
    assert target_of(soup.find("iframe")["src"]) == "https://embed.example.org/widget"
    assert soup.find("img", alt="pixel")["src"].startswith("data:image/gif")


def test_link_hrefs_are_proxied():
    soup, _ = rewritten_soup()
    stylesheet, icon = soup.find_all("link")
    assert target_of(stylesheet["href"]) == "https://site.example/static/site.css"
    assert target_of(icon["href"]) == "https://site.example/docs/favicon.ico"


def test_csp_meta_tags_are_removed():
    soup, stats = rewritten_soup()
    remaining = [m.get("http-equiv") for m in soup.find_all("meta")]
    assert all((value or "").lower() != "content-security-policy" for value in remaining)
    assert soup.find("meta", attrs={"name": "viewport"}) is not None
    assert stats.csp_meta_removed == 2


def test_malformed_link_is_left_alone_and_rest_of_page_rewritten():
    soup, stats = rewritten_soup()
    assert soup.find("a", string="Broken")["href"] == "http://[::1"
    # about, intro, stylesheet, icon, script, logo, iframe
    assert stats.links_rewritten == 7


def test_doctype_survives_serialization():
    output, _ = rewrite_html(PAGE, CONTEXT)
    assert output.startswith("<!DOCTYPE html>")


def test_custom_proxy_path_is_used():
    context = RewriteContext(
        base_url="https://site.example/", proxy_path="/.netlify/functions/proxy"
    )
    output, _ = rewrite_html('<img src="/a.png">', context)
    assert '/.netlify/functions/proxy?url=https%3A%2F%2Fsite.example%2Fa.png' in output


def test_soup_document_round_trip():
    document = SoupDocument.parse("<p>plain</p>")
    assert [e.tag for e in document.elements()] == ["p"]
    assert document.serialize() == "<p>plain</p>"


class FakeElement:
    def __init__(self, tag: str, attrs: Dict[str, str]):
        self.tag = tag
        self.attrs = dict(attrs)
        self.removed = False

    def get(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    def has(self, name: str) -> bool:
        return name in self.attrs

    def set(self, name: str, value: str) -> None:
        self.attrs[name] = value

    def remove(self) -> None:
        self.removed = True


class FakeDocument:
    def __init__(self, elements: List[FakeElement]):
        self._elements = elements

    def elements(self):
        return list(self._elements)

    def serialize(self) -> str:
        return ""


def test_rewriter_works_on_any_attribute_tree():
    anchor = FakeElement("a", {"href": "/x"})
    video = FakeElement("video", {"src": "clip.mp4"})
    csp = FakeElement("meta", {"http-equiv": " Content-Security-Policy "})
    div = FakeElement("div", {"href": "/not-a-link"})

    stats = rewrite_document(FakeDocument([anchor, video, csp, div]), CONTEXT)

    assert target_of(anchor.attrs["href"]) == "https://site.example/x"
    assert anchor.attrs["rel"] == ANCHOR_REL
    assert target_of(video.attrs["src"]) == "https://site.example/docs/clip.mp4"
    assert csp.removed
    assert div.attrs["href"] == "/not-a-link"
    assert stats.links_rewritten == 2
    assert stats.csp_meta_removed == 1
