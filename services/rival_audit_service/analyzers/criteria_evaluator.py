import re
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

from config.logging_config import get_logger
from services.rival_audit_service.analyzers.page_evidence import PageEvidence, SiteEvidence

logger = get_logger(__name__)

TITLE_MIN, TITLE_MAX = 10, 70
DESCRIPTION_MIN, DESCRIPTION_MAX = 50, 160
MIN_WORDS = 600
MAX_AVG_PARAGRAPH_WORDS = 100
MIN_HOMEPAGE_INTERNAL_LINKS = 2
MIN_SERVICE_INTERNAL_LINKS = 2
MAX_URL_PATH_LENGTH = 100
MIN_LOCATION_MENTIONS = 3
MIN_SERVICE_AREA_ITEMS = 3
MIN_SERVICE_AREA_WORDS = 300

_STOPWORDS = {"with", "your", "from", "that", "this", "best", "home", "page", "and", "the", "for"}


@dataclass(frozen=True)
class Evaluation:
    satisfied: bool
    measurement: Any = None
    note: str = ""
    applicable: bool = True


Evaluator = Callable[[Any], Evaluation]
_REGISTRY: dict[str, Evaluator] = {}


def evaluator(question_id: str):
    def _register(fn: Evaluator) -> Evaluator:
        _REGISTRY[question_id] = fn
        return fn
    return _register


def has_evaluator(question_id: str) -> bool:
    return question_id in _REGISTRY


def evaluate(question_id: str, evidence: PageEvidence | SiteEvidence | None) -> Evaluation:
    """Run the evaluator bound to ``question_id``.

    Never raises: missing or malformed evidence yields an unsatisfied result
    whose note says what went wrong.
    """
    fn = _REGISTRY.get(question_id)
    if fn is None:
        return Evaluation(satisfied=False, note=f"No evaluator registered for {question_id}")
    if evidence is None:
        return Evaluation(satisfied=False, note="Evidence missing: page could not be analyzed")
    try:
        result = fn(evidence)
    except Exception as e:
        logger.warning(
            "Evaluator failed, treating item as not satisfied",
            extra={"question_id": question_id, "error": str(e), "error_type": type(e).__name__},
        )
        return Evaluation(satisfied=False, note=f"Evidence malformed ({type(e).__name__}: {e})")
    if not isinstance(result, Evaluation):
        return Evaluation(satisfied=False, note=f"Evaluator returned unexpected {type(result).__name__}")
    return result


def _range_check(value: str | None, lo: int, hi: int, label: str) -> Evaluation:
    if not value or not value.strip():
        return Evaluation(satisfied=False, measurement=0, note=f"{label} missing")
    n = len(value.strip())
    if n < lo:
        return Evaluation(satisfied=False, measurement=n, note=f"{label} too short ({n} < {lo})")
    if n > hi:
        return Evaluation(satisfied=False, measurement=n, note=f"{label} too long ({n} > {hi})")
    return Evaluation(satisfied=True, measurement=n)


# on-page

@evaluator("title_tag")
def _title_tag(ev: PageEvidence) -> Evaluation:
    return _range_check(ev.title, TITLE_MIN, TITLE_MAX, "Title")


@evaluator("meta_description")
def _meta_description(ev: PageEvidence) -> Evaluation:
    return _range_check(ev.meta_description, DESCRIPTION_MIN, DESCRIPTION_MAX, "Meta description")


@evaluator("h1_heading")
def _h1_heading(ev: PageEvidence) -> Evaluation:
    filled = [h for h in ev.h1 if h.strip()]
    if not filled:
        return Evaluation(satisfied=False, measurement=0, note="H1 missing")
    if len(ev.h1) > 1:
        return Evaluation(satisfied=False, measurement=len(ev.h1), note=f"{len(ev.h1)} H1 headings found")
    return Evaluation(satisfied=True, measurement=1)


@evaluator("heading_structure")
def _heading_structure(ev: PageEvidence) -> Evaluation:
    levels = ev.heading_levels
    if not levels:
        return Evaluation(satisfied=False, measurement=levels, note="No headings found")
    if 2 not in levels:
        return Evaluation(satisfied=False, measurement=levels, note="No H2 headings")
    prev = 0
    for lvl in levels:
        if lvl > prev + 1:
            return Evaluation(satisfied=False, measurement=levels, note=f"Heading level skipped (h{prev} to h{lvl})")
        prev = lvl
    return Evaluation(satisfied=True, measurement=levels)


@evaluator("image_alt_text")
def _image_alt_text(ev: PageEvidence) -> Evaluation:
    if ev.image_count == 0:
        return Evaluation(satisfied=True, measurement=0, note="No images on page", applicable=False)
    if ev.images_missing_alt:
        return Evaluation(
            satisfied=False,
            measurement=ev.images_missing_alt,
            note=f"{ev.images_missing_alt} of {ev.image_count} images missing alt text",
        )
    return Evaluation(satisfied=True, measurement=0)


@evaluator("content_length")
def _content_length(ev: PageEvidence) -> Evaluation:
    if ev.word_count >= MIN_WORDS:
        return Evaluation(satisfied=True, measurement=ev.word_count)
    return Evaluation(satisfied=False, measurement=ev.word_count, note=f"{ev.word_count} words (< {MIN_WORDS})")


@evaluator("paragraph_length")
def _paragraph_length(ev: PageEvidence) -> Evaluation:
    counts = ev.paragraph_word_counts
    if not counts:
        return Evaluation(satisfied=True, measurement=None, note="No paragraphs on page", applicable=False)
    avg = round(sum(counts) / len(counts), 1)
    if avg <= MAX_AVG_PARAGRAPH_WORDS:
        return Evaluation(satisfied=True, measurement=avg)
    return Evaluation(satisfied=False, measurement=avg, note=f"Average paragraph is {avg} words (> {MAX_AVG_PARAGRAPH_WORDS})")


@evaluator("mobile_viewport")
def _mobile_viewport(ev: PageEvidence) -> Evaluation:
    if ev.has_viewport:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note="Viewport meta tag missing")


@evaluator("https")
def _https(ev: PageEvidence) -> Evaluation:
    if ev.is_https:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note=f"Served over {urlparse(ev.final_url).scheme or 'unknown scheme'}")


@evaluator("canonical_url")
def _canonical_url(ev: PageEvidence) -> Evaluation:
    if ev.canonical:
        return Evaluation(satisfied=True, measurement=ev.canonical)
    return Evaluation(satisfied=False, measurement=None, note="Canonical link missing")


@evaluator("structured_data")
def _structured_data(ev: PageEvidence) -> Evaluation:
    if ev.jsonld_blocks == 0:
        return Evaluation(satisfied=False, measurement=0, note="No JSON-LD found")
    if ev.jsonld_valid < ev.jsonld_blocks:
        invalid = ev.jsonld_blocks - ev.jsonld_valid
        return Evaluation(satisfied=False, measurement=ev.jsonld_valid, note=f"{invalid} invalid JSON-LD block(s)")
    return Evaluation(satisfied=True, measurement=ev.jsonld_types)


# structure & navigation

@evaluator("robots_txt")
def _robots_txt(ev: SiteEvidence) -> Evaluation:
    if not ev.robots_available:
        return Evaluation(satisfied=False, measurement=False, note="robots.txt not found")
    if ev.robots_blocks_root:
        return Evaluation(satisfied=False, measurement=True, note="robots.txt disallows /")
    return Evaluation(satisfied=True, measurement=True)


@evaluator("sitemap_xml")
def _sitemap_xml(ev: SiteEvidence) -> Evaluation:
    if ev.sitemap_available:
        return Evaluation(satisfied=True, measurement=ev.sitemap_url)
    return Evaluation(satisfied=False, measurement=None, note="No XML sitemap found")


@evaluator("broken_links")
def _broken_links(ev: SiteEvidence) -> Evaluation:
    broken = [s.url for s in ev.skipped_pages if s.status_code is not None and 400 <= s.status_code < 500]
    if broken:
        return Evaluation(satisfied=False, measurement=broken, note=f"{len(broken)} internal link(s) return 4xx")
    return Evaluation(satisfied=True, measurement=[])


@evaluator("navigation_menu")
def _navigation_menu(ev: PageEvidence) -> Evaluation:
    if ev.has_nav:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note="No <nav> element")


@evaluator("internal_linking")
def _internal_linking(ev: PageEvidence) -> Evaluation:
    n = len(ev.internal_links)
    if n >= MIN_HOMEPAGE_INTERNAL_LINKS:
        return Evaluation(satisfied=True, measurement=n)
    return Evaluation(satisfied=False, measurement=n, note=f"{n} internal link(s) (< {MIN_HOMEPAGE_INTERNAL_LINKS})")


@evaluator("clean_urls")
def _clean_urls(ev: PageEvidence) -> Evaluation:
    p = urlparse(ev.url)
    problems = []
    if p.query:
        problems.append("query string")
    if p.path != p.path.lower():
        problems.append("uppercase characters")
    if "_" in p.path:
        problems.append("underscores")
    if len(p.path) > MAX_URL_PATH_LENGTH:
        problems.append("path too long")
    if problems:
        return Evaluation(satisfied=False, measurement=ev.url, note="URL has " + ", ".join(problems))
    return Evaluation(satisfied=True, measurement=ev.url)


# contact page

@evaluator("contact_phone")
def _contact_phone(ev: PageEvidence) -> Evaluation:
    if ev.phones:
        return Evaluation(satisfied=True, measurement=ev.phones)
    return Evaluation(satisfied=False, measurement=[], note="No phone number found")


@evaluator("contact_address")
def _contact_address(ev: PageEvidence) -> Evaluation:
    if ev.has_address:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note="No street address found")


@evaluator("contact_form")
def _contact_form(ev: PageEvidence) -> Evaluation:
    if ev.form_count:
        return Evaluation(satisfied=True, measurement=ev.form_count)
    return Evaluation(satisfied=False, measurement=0, note="No form found")


@evaluator("business_hours")
def _business_hours(ev: PageEvidence) -> Evaluation:
    if ev.has_hours:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note="No business hours found")


# service pages

@evaluator("service_cta")
def _service_cta(ev: PageEvidence) -> Evaluation:
    if ev.cta_count or ev.phones:
        return Evaluation(satisfied=True, measurement=ev.cta_count)
    return Evaluation(satisfied=False, measurement=0, note="No call to action found")


def _keywords(text: str) -> set[str]:
    return {w for w in re.findall(r"[a-z]{4,}", text.lower()) if w not in _STOPWORDS}


@evaluator("service_title_keyword")
def _service_title_keyword(ev: PageEvidence) -> Evaluation:
    if not ev.title or not ev.h1:
        return Evaluation(satisfied=False, measurement=[], note="Title or H1 missing")
    shared = sorted(_keywords(ev.title) & _keywords(" ".join(ev.h1)))
    if shared:
        return Evaluation(satisfied=True, measurement=shared)
    return Evaluation(satisfied=False, measurement=[], note="Title and H1 share no keyword")


@evaluator("service_internal_links")
def _service_internal_links(ev: PageEvidence) -> Evaluation:
    n = len(ev.internal_links)
    if n >= MIN_SERVICE_INTERNAL_LINKS:
        return Evaluation(satisfied=True, measurement=n)
    return Evaluation(satisfied=False, measurement=n, note=f"{n} internal link(s) (< {MIN_SERVICE_INTERNAL_LINKS})")


# location pages

@evaluator("location_nap")
def _location_nap(ev: PageEvidence) -> Evaluation:
    missing = []
    if not ev.phones:
        missing.append("phone")
    if not ev.has_address:
        missing.append("address")
    if missing:
        return Evaluation(satisfied=False, measurement=missing, note="Missing " + " and ".join(missing))
    return Evaluation(satisfied=True, measurement=[])


@evaluator("location_map")
def _location_map(ev: PageEvidence) -> Evaluation:
    if ev.has_map:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note="No embedded map")


@evaluator("location_local_keywords")
def _location_local_keywords(ev: PageEvidence) -> Evaluation:
    n = ev.location_mentions
    if n >= MIN_LOCATION_MENTIONS:
        return Evaluation(satisfied=True, measurement=n)
    return Evaluation(satisfied=False, measurement=n, note=f"{n} local keyword mention(s) (< {MIN_LOCATION_MENTIONS})")


# service-area pages

@evaluator("service_area_list")
def _service_area_list(ev: PageEvidence) -> Evaluation:
    if ev.list_item_count >= MIN_SERVICE_AREA_ITEMS:
        return Evaluation(satisfied=True, measurement=ev.list_item_count)
    return Evaluation(satisfied=False, measurement=ev.list_item_count, note="No list of served areas")


@evaluator("service_area_content")
def _service_area_content(ev: PageEvidence) -> Evaluation:
    if ev.word_count >= MIN_SERVICE_AREA_WORDS:
        return Evaluation(satisfied=True, measurement=ev.word_count)
    return Evaluation(satisfied=False, measurement=ev.word_count, note=f"{ev.word_count} words (< {MIN_SERVICE_AREA_WORDS})")


@evaluator("service_area_map")
def _service_area_map(ev: PageEvidence) -> Evaluation:
    if ev.has_map:
        return Evaluation(satisfied=True, measurement=True)
    return Evaluation(satisfied=False, measurement=False, note="No coverage map")
