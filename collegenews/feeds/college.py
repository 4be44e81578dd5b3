from typing import List, Dict, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .base import BaseFeed
from .fetcher import PageFetcher

DEFAULT_SELECTOR = "ul.scrollNews li a"


def extract_items(markup: str, base_url: str, selector: str = DEFAULT_SELECTOR) -> List[Dict]:
    """
    Extrai pares {title, link} da lista de notícias, na ordem da página.

    Entradas sem texto ou sem href são ignoradas; links relativos são
    resolvidos contra `base_url`. Se a estrutura não existir o resultado é
    uma lista vazia (nunca erro).
    """
    if not markup:
        return []
    soup = BeautifulSoup(markup, "html.parser")

    items: List[Dict] = []
    seen = set()
    for anchor in soup.select(selector):
        title = " ".join(anchor.get_text(" ", strip=True).split())
        href = (anchor.get("href") or "").strip()
        if not title or not href:
            continue
        link = urljoin(base_url, href)
        if urlparse(link).scheme not in ("http", "https"):
            # javascript:, mailto: etc.
            continue
        # um link por snapshot: mantém a primeira ocorrência
        if link in seen:
            continue
        seen.add(link)
        items.append({"title": title, "link": link})
    return items


class CollegeNewsFeed(BaseFeed):
    def __init__(self, url: str, fetcher: Optional[PageFetcher] = None, selector: str = DEFAULT_SELECTOR):
        self.url: str = url
        self.fetcher = fetcher or PageFetcher()
        self.selector: str = selector

    def fetch(self) -> List[Dict]:
        markup = self.fetcher.fetch(self.url)
        return extract_items(markup, self.url, self.selector)
