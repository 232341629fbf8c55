from dataclasses import dataclass, field
from enum import Enum

from services.rival_audit_service.schemas.audit import (
    CriterionCategory,
    Importance,
    PageType,
    Section,
)


class Scope(str, Enum):
    PAGE = "page"
    SITE = "site"


S = CriterionCategory.STABILITY
U = CriterionCategory.USER_IMPACT
B = CriterionCategory.BUSINESS_IMPACT
T = CriterionCategory.TECHNICAL_DEBT

HIGH_VALUE_PAGE_TYPES = frozenset({PageType.HOMEPAGE, PageType.CONTACT, PageType.SERVICE})


@dataclass(frozen=True)
class ChecklistQuestion:
    id: str
    name: str
    description: str
    section: Section
    importance: Importance
    scope: Scope = Scope.PAGE
    # None means every crawled page
    page_types: frozenset[PageType] | None = None
    risk_profile: frozenset[CriterionCategory] = field(default_factory=frozenset)

    def applies_to(self, page_type: PageType) -> bool:
        return self.page_types is None or page_type in self.page_types


def _q(id, name, description, section, importance, risk, scope=Scope.PAGE, page_types=None) -> ChecklistQuestion:
    return ChecklistQuestion(
        id=id,
        name=name,
        description=description,
        section=section,
        importance=importance,
        scope=scope,
        page_types=frozenset(page_types) if page_types is not None else None,
        risk_profile=frozenset(risk),
    )


_HOME = [PageType.HOMEPAGE]

CHECKLIST: tuple[ChecklistQuestion, ...] = (
    # on-page
    _q("title_tag", "Is the title tag present and between 10 and 70 characters?",
       "Every page needs a unique, descriptive <title> of a length search engines display in full.",
       Section.ON_PAGE, Importance.HIGH, {U, B, T}),
    _q("meta_description", "Is the meta description present and between 50 and 160 characters?",
       "The meta description is the snippet shown in results and drives click-through.",
       Section.ON_PAGE, Importance.MEDIUM, {U}),
    _q("h1_heading", "Does the page have exactly one H1 heading?",
       "A single H1 tells users and crawlers what the page is about.",
       Section.ON_PAGE, Importance.HIGH, {U, T}),
    _q("heading_structure", "Do headings follow a logical hierarchy without skipped levels?",
       "Headings should descend one level at a time and include at least one H2.",
       Section.ON_PAGE, Importance.LOW, {T}),
    _q("image_alt_text", "Do all images have alt text?",
       "Alt text makes images accessible and indexable.",
       Section.ON_PAGE, Importance.MEDIUM, {U}),
    _q("content_length", "Does the page have at least 600 words of content?",
       "Thin pages rarely rank for competitive terms.",
       Section.ON_PAGE, Importance.MEDIUM, {B}),
    _q("paragraph_length", "Is the average paragraph 100 words or fewer?",
       "Short paragraphs are easier to scan, especially on mobile.",
       Section.ON_PAGE, Importance.LOW, {U}),
    _q("mobile_viewport", "Does the page declare a responsive viewport?",
       "Without a viewport meta tag the page renders as desktop on phones.",
       Section.ON_PAGE, Importance.HIGH, {S, U, B}),
    _q("https", "Is the page served over HTTPS?",
       "Browsers flag plain HTTP pages as not secure.",
       Section.ON_PAGE, Importance.HIGH, {S, U, B}),
    _q("canonical_url", "Does the page declare a canonical URL?",
       "A canonical link prevents duplicate-content dilution.",
       Section.ON_PAGE, Importance.MEDIUM, {T}),
    _q("structured_data", "Does the page include valid JSON-LD structured data?",
       "Structured data enables rich results and clarifies business details.",
       Section.ON_PAGE, Importance.MEDIUM, {B, T}),
    # structure & navigation
    _q("robots_txt", "Is robots.txt available without blocking the whole site?",
       "robots.txt should exist and must not disallow the root path.",
       Section.STRUCTURE_NAVIGATION, Importance.HIGH, {S, T}, scope=Scope.SITE),
    _q("sitemap_xml", "Is an XML sitemap available?",
       "A sitemap helps search engines discover every page.",
       Section.STRUCTURE_NAVIGATION, Importance.MEDIUM, {T}, scope=Scope.SITE),
    _q("broken_links", "Are internal links free of 4xx errors?",
       "Broken internal links waste crawl budget and frustrate visitors.",
       Section.STRUCTURE_NAVIGATION, Importance.HIGH, {S, U}, scope=Scope.SITE),
    _q("navigation_menu", "Does the homepage have a navigation menu?",
       "A <nav> element exposes the site's main structure.",
       Section.STRUCTURE_NAVIGATION, Importance.HIGH, {U, B}, page_types=_HOME),
    _q("internal_linking", "Does the homepage link to at least 2 other internal pages?",
       "The homepage should pass authority to key pages.",
       Section.STRUCTURE_NAVIGATION, Importance.MEDIUM, {T}, page_types=_HOME),
    _q("clean_urls", "Is the URL clean (lowercase, no query string, no underscores)?",
       "Readable URLs are easier to share and to crawl.",
       Section.STRUCTURE_NAVIGATION, Importance.LOW, {T}),
    # contact page
    _q("contact_phone", "Does the contact page list a phone number?",
       "A visible phone number is the most direct conversion path.",
       Section.CONTACT_PAGE, Importance.HIGH, {U, B}, page_types=[PageType.CONTACT]),
    _q("contact_address", "Does the contact page show a physical address?",
       "An address supports local trust signals.",
       Section.CONTACT_PAGE, Importance.MEDIUM, {B}, page_types=[PageType.CONTACT]),
    _q("contact_form", "Does the contact page have a contact form?",
       "Forms capture leads outside business hours.",
       Section.CONTACT_PAGE, Importance.HIGH, {U, B}, page_types=[PageType.CONTACT]),
    _q("business_hours", "Does the contact page list business hours?",
       "Visitors need to know when they can reach the business.",
       Section.CONTACT_PAGE, Importance.LOW, {U}, page_types=[PageType.CONTACT]),
    # service pages
    _q("service_cta", "Does the service page have a clear call to action?",
       "Service pages should tell visitors how to book or request a quote.",
       Section.SERVICE_PAGES, Importance.HIGH, {U, B}, page_types=[PageType.SERVICE]),
    _q("service_title_keyword", "Does the service page title match its main heading?",
       "The title and H1 should target the same service keyword.",
       Section.SERVICE_PAGES, Importance.MEDIUM, {B}, page_types=[PageType.SERVICE]),
    _q("service_internal_links", "Does the service page link to at least 2 other internal pages?",
       "Service pages should link to related services and to contact.",
       Section.SERVICE_PAGES, Importance.LOW, {T}, page_types=[PageType.SERVICE]),
    # location pages
    _q("location_nap", "Does the location page show name, address and phone?",
       "Consistent NAP details are the backbone of local SEO.",
       Section.LOCATION_PAGES, Importance.HIGH, {B, T}, page_types=[PageType.LOCATION]),
    _q("location_map", "Does the location page embed a map?",
       "An embedded map helps visitors find the location.",
       Section.LOCATION_PAGES, Importance.LOW, {U}, page_types=[PageType.LOCATION]),
    _q("location_local_keywords", "Does the location page use local keywords?",
       "Location pages should mention the city, county or neighborhood they target.",
       Section.LOCATION_PAGES, Importance.MEDIUM, {B}, page_types=[PageType.LOCATION]),
    # service-area pages
    _q("service_area_list", "Does the service-area page list the areas served?",
       "A list of served towns makes coverage explicit.",
       Section.SERVICE_AREA_PAGES, Importance.MEDIUM, {U, B}, page_types=[PageType.SERVICE_AREA]),
    _q("service_area_content", "Does the service-area page have at least 300 words?",
       "Service-area pages with only a list of towns are treated as thin content.",
       Section.SERVICE_AREA_PAGES, Importance.MEDIUM, {B}, page_types=[PageType.SERVICE_AREA]),
    _q("service_area_map", "Does the service-area page show a coverage map?",
       "A map communicates coverage faster than text.",
       Section.SERVICE_AREA_PAGES, Importance.LOW, {U}, page_types=[PageType.SERVICE_AREA]),
)

QUESTIONS_BY_ID: dict[str, ChecklistQuestion] = {q.id: q for q in CHECKLIST}


def questions_for(section: Section) -> list[ChecklistQuestion]:
    return [q for q in CHECKLIST if q.section == section]


def get_question(question_id: str) -> ChecklistQuestion:
    try:
        return QUESTIONS_BY_ID[question_id]
    except KeyError:
        raise ValueError(f"Unknown checklist question: {question_id}") from None
