"""
Static HTML structure extraction (no JS execution).

All functions take an already parsed BeautifulSoup document.
"""
from dataclasses import dataclass, field
from typing import Dict, List
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from sitecrawl.platform.exceptions import ContentError

# Doctype sniffing is intentionally not done; every parsed page reports HTML5.
HTML_VERSION = "HTML5"

LOGIN_KEYWORDS = ("login", "sign in", "log in")

_LINK_SCHEMES = {"http", "https"}


@dataclass
class LinkInventory:
    """Distinct resolved link targets in first-seen order, split by host."""
    internal: List[str] = field(default_factory=list)
    external: List[str] = field(default_factory=list)

    @property
    def all(self) -> List[str]:
        return self.internal + self.external


def parse_html(markup: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(markup, "html.parser")
    except ParserRejectedMarkup as e:
        raise ContentError(f"failed to parse HTML: {e}") from e


def extract_title(soup: BeautifulSoup) -> str:
    title = soup.find("title")
    if title is None:
        return ""
    return title.get_text().strip()


def count_headings(soup: BeautifulSoup) -> Dict[str, int]:
    return {f"h{level}": len(soup.find_all(f"h{level}")) for level in range(1, 7)}


def _form_text(form) -> str:
    return " ".join(form.get_text(" ").split()).lower()


def detect_login_form(soup: BeautifulSoup) -> bool:
    """
    Both conditions are required: a password input anywhere in the document,
    and a <form> whose text mentions login / sign in / log in.
    """
    has_password_field = soup.find(
        "input", attrs={"type": lambda value: value is not None and value.strip().lower() == "password"}
    ) is not None
    if not has_password_field:
        return False

    return any(
        keyword in _form_text(form)
        for form in soup.find_all("form")
        for keyword in LOGIN_KEYWORDS
    )


def collect_links(soup: BeautifulSoup, base_url: str) -> LinkInventory:
    """
    Resolve every <a href> against base_url and classify each distinct target.

    Targets that do not resolve to http(s) (javascript:, mailto:, tel:, ...)
    are ignored. Fragments are dropped before de-duplication since they never
    reach the server. A link is internal when its host matches the base host.
    """
    base_host = urlsplit(base_url).netloc.lower()
    inventory = LinkInventory()
    seen = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href:
            continue

        try:
            resolved, _ = urldefrag(urljoin(base_url, href))
            parts = urlsplit(resolved)
        except ValueError:
            continue

        if parts.scheme.lower() not in _LINK_SCHEMES or not parts.netloc:
            continue
        if resolved in seen:
            continue
        seen.add(resolved)

        if parts.netloc.lower() == base_host:
            inventory.internal.append(resolved)
        else:
            inventory.external.append(resolved)

    return inventory
