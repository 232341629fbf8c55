from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

import tldextract

# bundled suffix snapshot only, no network fetch of the public suffix list
_extract = tldextract.TLDExtract(suffix_list_urls=())

_SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "sms:")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(base: str, href: str | None) -> str | None:
    if not href:
        return None
    href = href.strip()
    if not href or href.lower().startswith(_SKIPPED_SCHEMES):
        return None
    u = urljoin(base, href)
    u, _ = urldefrag(u)
    p = urlparse(u)
    scheme = p.scheme.lower()
    if scheme not in ("http", "https") or not p.hostname:
        return None
    host = p.hostname.lower()
    if p.port and p.port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{p.port}"
    path = p.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return urlunparse((scheme, host, path, "", p.query, ""))


def same_site(root: str, candidate: str) -> bool:
    r = _extract(root)
    c = _extract(candidate)
    if not r.suffix and not c.suffix:
        # bare hosts such as localhost
        return urlparse(root).hostname == urlparse(candidate).hostname
    return (r.domain, r.suffix) == (c.domain, c.suffix)


def site_root(url: str) -> str:
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}"
