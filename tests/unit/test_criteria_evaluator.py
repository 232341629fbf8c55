import pytest

from services.rival_audit_service.analyzers.criteria_evaluator import (
    MIN_WORDS,
    Evaluation,
    evaluate,
    has_evaluator,
)
from services.rival_audit_service.analyzers.page_evidence import PageEvidence, SiteEvidence
from services.rival_audit_service.checklist import CHECKLIST
from services.rival_audit_service.schemas.audit import SkippedPage


def _page(**kw):
    data = dict(url="https://example.com/a", final_url="https://example.com/a", status_code=200, is_https=True)
    data.update(kw)
    return PageEvidence(**data)


def test_every_checklist_question_has_an_evaluator():
    missing = [q.id for q in CHECKLIST if not has_evaluator(q.id)]
    assert missing == []


@pytest.mark.parametrize(
    "title,ok",
    [(None, False), ("", False), ("x" * 9, False), ("x" * 10, True), ("x" * 70, True), ("x" * 71, False)],
)
def test_title_length_bounds(title, ok):
    assert evaluate("title_tag", _page(title=title)).satisfied is ok


@pytest.mark.parametrize("words,ok", [(599, False), (600, True), (1200, True)])
def test_content_length_threshold_is_inclusive(words, ok):
    result = evaluate("content_length", _page(word_count=words))
    assert result.satisfied is ok
    assert result.measurement == words
    if not ok:
        assert str(MIN_WORDS) in result.note


@pytest.mark.parametrize("counts,ok", [([100, 100], True), ([100, 101], False), ([40, 60, 80], True)])
def test_average_paragraph_length(counts, ok):
    assert evaluate("paragraph_length", _page(paragraph_word_counts=counts)).satisfied is ok


def test_pages_without_images_or_paragraphs_are_not_applicable():
    assert evaluate("image_alt_text", _page(image_count=0)).applicable is False
    assert evaluate("paragraph_length", _page(paragraph_word_counts=[])).applicable is False


def test_missing_alt_text_is_counted():
    result = evaluate("image_alt_text", _page(image_count=3, images_missing_alt=2))
    assert not result.satisfied
    assert result.measurement == 2
    assert "2 of 3" in result.note


def test_heading_structure_requires_h2_and_no_skips():
    assert evaluate("heading_structure", _page(heading_levels=[1, 2, 3, 2])).satisfied
    assert not evaluate("heading_structure", _page(heading_levels=[1])).satisfied
    assert not evaluate("heading_structure", _page(heading_levels=[1, 2, 4])).satisfied


def test_robots_blocking_root_fails():
    blocked = SiteEvidence(seed_url="https://example.com/", robots_available=True, robots_blocks_root=True)
    assert not evaluate("robots_txt", blocked).satisfied
    assert evaluate("robots_txt", SiteEvidence(seed_url="https://example.com/", robots_available=True)).satisfied


def test_broken_links_only_counts_4xx():
    site = SiteEvidence(
        seed_url="https://example.com/",
        skipped_pages=[
            SkippedPage(url="https://example.com/gone", reason="HTTP 404", status_code=404),
            SkippedPage(url="https://example.com/slow", reason="timeout"),
            SkippedPage(url="https://example.com/err", reason="HTTP 503", status_code=503),
        ],
    )
    result = evaluate("broken_links", site)
    assert not result.satisfied
    assert result.measurement == ["https://example.com/gone"]


def test_service_title_keyword_needs_shared_word():
    assert evaluate("service_title_keyword", _page(title="Drain Cleaning | Acme", h1=["Drain cleaning experts"])).satisfied
    assert not evaluate("service_title_keyword", _page(title="Acme", h1=["Welcome"])).satisfied


def test_missing_evidence_is_not_satisfied():
    result = evaluate("title_tag", None)
    assert isinstance(result, Evaluation)
    assert result.satisfied is False
    assert "missing" in result.note.lower()


def test_malformed_evidence_never_raises():
    class Broken:
        title = 42

    result = evaluate("title_tag", Broken())
    assert result.satisfied is False
    assert "malformed" in result.note.lower()


def test_site_evaluator_given_page_evidence_is_not_satisfied():
    result = evaluate("broken_links", _page())
    assert result.satisfied is False


def test_unknown_question_is_not_satisfied():
    result = evaluate("no_such_question", _page())
    assert result.satisfied is False
    assert "no_such_question" in result.note
