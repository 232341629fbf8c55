import re
from urllib.parse import urlparse

from services.rival_audit_service.analyzers.page_evidence import PageEvidence
from services.rival_audit_service.crawler.urls import normalize_url
from services.rival_audit_service.schemas.audit import PageType

CONTACT_TERMS = ("contact", "get in touch", "reach us")
CONTACT_INDICATORS = (
    "contact form", "get in touch", "reach out", "contact information",
    "business hours", "office hours", "call us", "email us",
)

SERVICE_AREA_URL_RE = re.compile(r"/(service-areas?|coverage-areas?|we-serve|areas?-served|service-locations?)(/|$)")
SERVICE_AREA_TITLE_TERMS = ("service area", "areas served", "coverage area", "service locations", "we serve", "serving areas")
SERVICE_AREA_INDICATORS = (
    "service area", "areas served", "we serve", "coverage area", "service coverage",
    "service territory", "service region", "service zone",
)
DISTANCE_RE = re.compile(r"\b(miles?|radius|within|kilometers?|km)\b")

LOCATION_URL_RE = re.compile(r"/(locations?|areas?|cities|city|towns?)(/|$)")
LOCATION_TITLE_TERMS = ("location", "cities", "towns", "neighborhoods", "regions")
LOCATION_INDICATORS = ("we serve", "serving", "locations", "cities we serve", "coverage area", "service region")

SERVICE_URL_RE = re.compile(r"/(services?|what-we-do|our-services?|offerings?|solutions?)(/|$)")
SERVICE_TITLE_TERMS = (
    "service", "repair", "installation", "maintenance", "hvac", "plumbing", "electrical",
    "roofing", "cleaning", "landscaping", "construction", "renovation", "remodeling",
)
SERVICE_INDICATORS = (
    "we provide", "we offer", "our service", "professional", "certified", "licensed",
    "experienced", "installation", "repair", "maintenance", "replacement", "inspection",
    "consultation", "estimate", "quote",
)
INDUSTRY_TERMS = (
    "air conditioning", "heating", "furnace", "heat pump", "ductwork", "plumbing",
    "drain cleaning", "water heater", "leak detection", "electrical", "wiring",
    "circuit breaker", "panel upgrade", "roofing", "siding", "flooring", "drywall",
    "insulation", "carpet cleaning", "pressure washing", "lawn care", "tree service",
    "irrigation", "hardscaping",
)
LOCATION_MENTION_RE = re.compile(
    r"\b(city|cities|towns?|county|counties|state|areas?|regions?|neighborhoods?|districts?|suburbs?|metro|metropolitan|local|nearby)\b"
)


def _count(text: str, terms) -> int:
    return sum(1 for t in terms if t in text)


def _is_contact(path: str, title: str, body: str, has_form: bool) -> bool:
    if any(t in path for t in ("contact", "get-in-touch", "reach-us")):
        return True
    if any(t in title for t in CONTACT_TERMS):
        return True
    if has_form and any(t in body for t in CONTACT_TERMS):
        return True
    return _count(body, CONTACT_INDICATORS) >= 2


def _is_service_area(path: str, title: str, body: str) -> bool:
    if SERVICE_AREA_URL_RE.search(path):
        return True
    if any(t in title for t in SERVICE_AREA_TITLE_TERMS):
        return True
    mentions = len(LOCATION_MENTION_RE.findall(body))
    return _count(body, SERVICE_AREA_INDICATORS) >= 1 and mentions >= 2 and bool(DISTANCE_RE.search(body))


def _is_location(path: str, title: str, body: str) -> bool:
    if LOCATION_URL_RE.search(path):
        return True
    if any(t in title for t in LOCATION_TITLE_TERMS):
        return True
    indicators = _count(body, LOCATION_INDICATORS)
    return indicators >= 2 or (indicators >= 1 and len(LOCATION_MENTION_RE.findall(body)) >= 3)


def _is_service(path: str, title: str, body: str) -> bool:
    if SERVICE_URL_RE.search(path):
        return True
    if any(t in title for t in SERVICE_TITLE_TERMS):
        return True
    indicators = _count(body, SERVICE_INDICATORS)
    industry = _count(body, INDUSTRY_TERMS)
    return indicators >= 3 or (indicators >= 1 and industry >= 2) or industry >= 4


def classify_page(url: str, title: str | None, body_text: str, seed_url: str, has_form: bool = False) -> PageType:
    """Map a page to its type from URL, title and body heuristics. The seed is always the homepage."""
    normalized = normalize_url(url, url) or url
    if normalized == (normalize_url(seed_url, seed_url) or seed_url):
        return PageType.HOMEPAGE
    path = urlparse(normalized).path.lower()
    if path in ("", "/"):
        return PageType.HOMEPAGE
    t = (title or "").lower()
    body = (body_text or "").lower()

    if _is_contact(path, t, body, has_form):
        return PageType.CONTACT
    if _is_service_area(path, t, body):
        return PageType.SERVICE_AREA
    if _is_location(path, t, body):
        return PageType.LOCATION
    if _is_service(path, t, body):
        return PageType.SERVICE
    return PageType.GENERIC


def classify_evidence(evidence: PageEvidence, seed_url: str) -> PageType:
    return classify_page(
        evidence.final_url or evidence.url,
        evidence.title,
        evidence.body_text,
        seed_url,
        has_form=evidence.form_count > 0,
    )
