from typing import Iterable, List, Optional
from urllib.parse import urlparse, urlunparse

SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


def _upgrade_scheme(url: str) -> str:
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def _resolve_dots(parts: List[str]) -> List[str]:
    resolved: List[str] = []
    for part in parts:
        if part == "..":
            if resolved:
                resolved.pop()
        elif part not in (".", ""):
            resolved.append(part)
    return resolved


def _overlap(base_parts: List[str], href_parts: List[str]) -> int:
    """Length of the longest tail of `base_parts` that `href_parts` starts with."""
    for size in range(min(len(base_parts), len(href_parts)), 0, -1):
        if base_parts[-size:] == href_parts[:size]:
            return size
    return 0


def construct_full_url(base_url: str, href: Optional[str]) -> Optional[str]:
    """
    Turns an href scraped from `base_url` into an absolute https URL.

    Relative paths are appended to the base path with any repeated segments
    collapsed, so base ".../news/" + "news/x" gives ".../news/x".
    """
    if href is None:
        return None
    href = href.strip()
    if href == "":
        return _upgrade_scheme(base_url)
    if href.lower().startswith(SKIPPED_SCHEMES) or href.startswith("#"):
        return None

    if href.startswith("//"):
        return "https:" + href
    if href.startswith(("http://", "https://")):
        return _upgrade_scheme(href)

    base = urlparse(base_url)
    href_path, _, query = href.partition("?")
    href_path = href_path.split("#", 1)[0]
    href_parts = [p for p in href_path.split("/") if p]

    if href.startswith("/"):
        path_parts = _resolve_dots(href_parts)
    else:
        base_parts = [p for p in base.path.split("/") if p]
        if base_parts and not base.path.endswith("/") and "." in base_parts[-1]:
            base_parts.pop()  # ".../index.html" is a file, not a directory
        overlap = _overlap(base_parts, href_parts)
        path_parts = _resolve_dots(base_parts + href_parts[overlap:])

    path = "/" + "/".join(path_parts)
    if href_path.endswith("/") and path_parts:
        path += "/"
    return urlunparse(("https", base.netloc, path, "", query, ""))


def host_of(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def is_bare_root(url: str) -> bool:
    return urlparse(url).path in ("", "/")


def is_blacklisted(url: str, blacklist: Iterable[str]) -> bool:
    """
    Entries may be origins ("https://nahc.com") or bare hosts ("nahc.com");
    subdomains of a listed host are blacklisted as well.
    """
    host = host_of(url)
    if not host:
        return False
    for entry in blacklist:
        entry_host = host_of(entry if "//" in entry else f"https://{entry}")
        if entry_host and (host == entry_host or host.endswith("." + entry_host)):
            return True
    return False
