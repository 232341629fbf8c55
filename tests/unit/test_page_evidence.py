from services.rival_audit_service.analyzers.page_evidence import PageEvidence, extract_evidence
from services.rival_audit_service.schemas.audit import PageType

from site_fixtures import CONTACT_EXTRA, page_html


HTML = """
<html><head>
<title> Plumbing Repair | Acme </title>
<meta name="Description" content="Fast plumbing repair across the metro area, open seven days a week.">
<meta name="viewport" content="width=device-width">
<link rel="canonical" href="https://example.com/services/plumbing">
<script type="application/ld+json">{"@context": "https://schema.org", "@type": ["LocalBusiness", "Plumber"]}</script>
<script type="application/ld+json">{not json</script>
</head><body>
<nav><ul><li><a href="/">Home</a></li><li><a href="/contact/">Contact</a></li></ul></nav>
<h1>Plumbing repair</h1><h3>Skipped</h3>
<img src="/a.png" alt="Van"><img src="/b.png"><img src="/c.png" alt="  ">
<p>We fix leaks.</p><p></p><p>Call us now at (555) 987-6543 for a quote.</p>
<ul><li>Springfield</li><li>Shelbyville</li></ul>
<a href="https://example.com/services/plumbing#top">self</a>
<a href="https://partner.org/">Partner</a>
<a href="mailto:hi@example.com">Mail</a>
<iframe src="https://www.google.com/maps/embed?pb=1"></iframe>
</body></html>
"""


def test_extract_evidence_reads_on_page_signals():
    ev = extract_evidence(
        "https://example.com/services/plumbing",
        "https://example.com/services/plumbing",
        200,
        HTML,
        root_url="https://example.com/",
    )
    assert ev.title == "Plumbing Repair | Acme"
    assert ev.meta_description.startswith("Fast plumbing repair")
    assert ev.h1 == ["Plumbing repair"]
    assert ev.heading_levels == [1, 3]
    assert ev.image_count == 3
    assert ev.images_missing_alt == 2
    assert ev.has_viewport
    assert ev.canonical == "https://example.com/services/plumbing"
    assert ev.jsonld_blocks == 2
    assert ev.jsonld_valid == 1
    assert ev.jsonld_types == ["LocalBusiness", "Plumber"]
    assert ev.is_https
    assert ev.paragraph_word_counts == [3, 9]


def test_extract_evidence_links_and_contact_signals():
    ev = extract_evidence(
        "https://example.com/services/plumbing",
        "https://example.com/services/plumbing",
        200,
        HTML,
        root_url="https://example.com/",
    )
    # self link and mailto are dropped, trailing slash normalized
    assert ev.internal_links == ["https://example.com/", "https://example.com/contact"]
    assert ev.external_link_count == 1
    assert ev.has_nav
    assert "(555) 987-6543" in ev.phones
    assert ev.has_map
    assert ev.cta_count >= 1
    assert ev.list_item_count == 2


def test_contact_block_detection():
    html = page_html("/contact", extra_body=CONTACT_EXTRA)
    ev = extract_evidence("https://example.com/contact", "https://example.com/contact", 200, html)
    assert ev.phones
    assert ev.has_address
    assert ev.has_hours
    assert ev.form_count == 1


def test_evidence_dict_round_trip_keeps_page_type():
    ev = extract_evidence("https://example.com/", "https://example.com/", 200, page_html("/"))
    ev.page_type = PageType.HOMEPAGE
    restored = PageEvidence.from_dict({**ev.to_dict(), "unknown_field": 1})
    assert restored == ev
