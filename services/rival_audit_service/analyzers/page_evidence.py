import json
import re
from dataclasses import asdict, dataclass, field, fields
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from services.rival_audit_service.crawler.urls import normalize_url, same_site
from services.rival_audit_service.schemas.audit import PageType, SkippedPage

_PHONE_RE = re.compile(r"(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]\d{4}")
_STREET_RE = re.compile(
    r"\b\d{1,6}\s+(?:[A-Za-z0-9.]+\s){1,4}(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|court|ct)\b\.?",
    re.I,
)
_HOURS_RE = re.compile(
    r"\b(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*\b[^.\n]{0,40}?\d{1,2}(?::\d{2})?\s?(?:am|pm)\b",
    re.I,
)
_CTA_RE = re.compile(
    r"\b(?:call (?:us|now|today)|contact us|get (?:a|your) (?:free )?(?:quote|estimate)|book (?:now|online|an appointment)|schedule (?:now|service|an appointment)|request (?:a )?(?:quote|service))\b",
    re.I,
)
_LOCATION_WORDS = (
    "city", "cities", "town", "towns", "county", "counties", "state", "area", "areas",
    "region", "regions", "neighborhood", "neighborhoods", "district", "districts",
    "suburb", "suburbs", "metro", "metropolitan", "local", "nearby",
)
_LOCATION_RE = re.compile(r"\b(?:" + "|".join(_LOCATION_WORDS) + r")\b", re.I)
_MAP_HINTS = ("google.com/maps", "maps.google", "openstreetmap.org", "bing.com/maps", "mapbox")


@dataclass
class PageEvidence:
    url: str
    final_url: str
    status_code: int
    page_type: PageType = PageType.GENERIC
    is_https: bool = False
    title: str | None = None
    meta_description: str | None = None
    h1: list[str] = field(default_factory=list)
    h2: list[str] = field(default_factory=list)
    heading_levels: list[int] = field(default_factory=list)
    word_count: int = 0
    paragraph_word_counts: list[int] = field(default_factory=list)
    image_count: int = 0
    images_missing_alt: int = 0
    has_viewport: bool = False
    canonical: str | None = None
    jsonld_blocks: int = 0
    jsonld_valid: int = 0
    jsonld_types: list[str] = field(default_factory=list)
    has_nav: bool = False
    internal_links: list[str] = field(default_factory=list)
    external_link_count: int = 0
    phones: list[str] = field(default_factory=list)
    has_address: bool = False
    has_hours: bool = False
    form_count: int = 0
    has_map: bool = False
    cta_count: int = 0
    list_item_count: int = 0
    location_mentions: int = 0
    body_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["page_type"] = self.page_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageEvidence":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["page_type"] = PageType(values.get("page_type", PageType.GENERIC))
        return cls(**values)


@dataclass
class SiteEvidence:
    seed_url: str
    robots_available: bool = False
    robots_blocks_root: bool = False
    sitemap_available: bool = False
    sitemap_url: str | None = None
    skipped_pages: list[SkippedPage] = field(default_factory=list)


def _text(tag) -> str:
    return tag.get_text(" ", strip=True) if tag is not None else ""


def _words(text: str) -> int:
    return len(text.split())


def _jsonld(soup: BeautifulSoup) -> tuple[int, int, list[str]]:
    scripts = soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)})
    valid = 0
    types: list[str] = []
    for s in scripts:
        txt = (s.string or s.get_text() or "").strip()
        if not txt:
            continue
        try:
            data = json.loads(txt)
        except ValueError:
            continue
        objs = data if isinstance(data, list) else [data]
        if objs and all(isinstance(o, dict) and "@context" in o and "@type" in o for o in objs):
            valid += 1
            for o in objs:
                t = o["@type"]
                types.extend(t if isinstance(t, list) else [str(t)])
    return len(scripts), valid, types


def extract_evidence(url: str, final_url: str, status_code: int, html: str, root_url: str | None = None) -> PageEvidence:
    soup = BeautifulSoup(html or "", "lxml")
    base = final_url or url
    root = root_url or base
    self_url = normalize_url(base, base) or base

    title = None
    if soup.title is not None:
        title = _text(soup.title) or None
    desc = None
    m = soup.find("meta", attrs={"name": re.compile(r"^description$", re.I)})
    if m and m.get("content"):
        desc = m["content"].strip() or None

    headings = soup.find_all(re.compile(r"^h[1-6]$"))
    heading_levels = [int(h.name[1]) for h in headings]
    h1 = [_text(h) for h in headings if h.name == "h1"]
    h2 = [_text(h) for h in headings if h.name == "h2"]

    images = soup.find_all("img")
    missing_alt = sum(1 for img in images if not (img.get("alt") or "").strip())

    viewport = soup.find("meta", attrs={"name": re.compile(r"^viewport$", re.I)})
    canonical = None
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if "canonical" in [r.lower() for r in rel]:
            canonical = link["href"].strip() or None
            break

    jsonld_blocks, jsonld_valid, jsonld_types = _jsonld(soup)

    internal: list[str] = []
    external = 0
    phones: list[str] = []
    has_map = False
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if href.lower().startswith("tel:"):
            phones.append(href[4:])
            continue
        if any(h in href for h in _MAP_HINTS):
            has_map = True
        nu = normalize_url(base, href)
        if nu is None:
            continue
        if same_site(root, nu):
            if nu != self_url and nu not in internal:
                internal.append(nu)
        else:
            external += 1
    for frame in soup.find_all("iframe", src=True):
        if any(h in frame["src"] for h in _MAP_HINTS):
            has_map = True

    for s in soup(["script", "style", "noscript", "template"]):
        s.decompose()
    body = soup.body or soup
    body_text = body.get_text(" ", strip=True)
    paragraphs = [_words(_text(p)) for p in body.find_all("p")]
    paragraphs = [n for n in paragraphs if n > 0]

    phones.extend(_PHONE_RE.findall(body_text))
    has_address = bool(
        body.find("address")
        or "PostalAddress" in jsonld_types
        or _STREET_RE.search(body_text)
    )
    cta_count = len(_CTA_RE.findall(body_text))
    cta_count += len(body.find_all(["button"], string=_CTA_RE))

    return PageEvidence(
        url=url,
        final_url=base,
        status_code=status_code,
        is_https=urlparse(base).scheme == "https",
        title=title,
        meta_description=desc,
        h1=h1,
        h2=h2,
        heading_levels=heading_levels,
        word_count=_words(body_text),
        paragraph_word_counts=paragraphs,
        image_count=len(images),
        images_missing_alt=missing_alt,
        has_viewport=viewport is not None,
        canonical=canonical,
        jsonld_blocks=jsonld_blocks,
        jsonld_valid=jsonld_valid,
        jsonld_types=jsonld_types,
        has_nav=body.find("nav") is not None,
        internal_links=internal,
        external_link_count=external,
        phones=list(dict.fromkeys(p.strip() for p in phones if p.strip())),
        has_address=has_address,
        has_hours=bool(_HOURS_RE.search(body_text)) or "business hours" in body_text.lower(),
        form_count=len(body.find_all("form")),
        has_map=has_map,
        cta_count=cta_count,
        list_item_count=sum(1 for li in body.find_all("li") if li.find_parent("nav") is None),
        location_mentions=len(_LOCATION_RE.findall(body_text)),
        body_text=body_text,
    )
