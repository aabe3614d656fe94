"""Result-card extraction from rendered search pages."""

from __future__ import annotations

import re
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from ..errors import ExtractionError
from .records import Record

DEFAULT_CARD_SELECTOR = "div[data-testid='serp-ia-card']"
RATING_SELECTOR = "div span[data-font-weight='semibold']"

_LEADING_INT = re.compile(r"^\s*(\d+)")
_REVIEW_COUNT = re.compile(r"\((\d+)[^)]*review", re.IGNORECASE)


class ResultCardExtractor:
    """Turn the result cards of one search page into records.

    Cards are read in document order. A card whose first image has no alt
    text carries no usable name and is skipped.
    """

    def __init__(self, card_selector: str = DEFAULT_CARD_SELECTOR) -> None:
        self.card_selector = card_selector

    def extract(self, html: str, base_url: str) -> list[Record]:
        if not html or not html.strip():
            raise ExtractionError("Rendered page is empty", url=base_url)
        try:
            tree = HTMLParser(html)
            cards = tree.css(self.card_selector)
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(f"Unable to parse page: {exc}", url=base_url) from exc
        records: list[Record] = []
        for card in cards:
            record = self._parse_card(card, base_url)
            if record is not None:
                records.append(record)
        return records

    def _parse_card(self, card: Node, base_url: str) -> Record | None:
        text = card.text(deep=True, separator="", strip=False) or ""
        image = card.css_first("img")
        name = ((image.attributes.get("alt") if image else None) or "").strip()
        if not name:
            return None

        # Organic results start with their position ("3. Name"); ads do not
        stripped = text.lstrip()
        sponsored = not (stripped[:1].isdigit())
        rank: int | None = None
        if not sponsored:
            match = _LEADING_INT.match(stripped.replace(name, "", 1).split(".")[0])
            rank = int(match.group(1)) if match else None

        stars = 0.0
        rating = card.css_first(RATING_SELECTOR)
        if rating is not None:
            rating_text = rating.text(strip=True)
            if rating_text[:1].isdigit():
                try:
                    stars = float(rating_text)
                except ValueError:
                    stars = 0.0

        review_match = _REVIEW_COUNT.search(text)
        review_count = int(review_match.group(1)) if review_match else 0

        url = ""
        link = card.css_first("a")
        href = link.attributes.get("href") if link is not None else None
        if href:
            url = urljoin(base_url, href.strip())

        return Record(
            name=name,
            sponsored=sponsored,
            stars=stars,
            rank=rank,
            review_count=review_count,
            url=url,
        )


__all__ = ["DEFAULT_CARD_SELECTOR", "ResultCardExtractor"]
