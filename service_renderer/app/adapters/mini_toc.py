"""
Mini table-of-contents extraction from rendered article HTML.
"""

from typing import Any, Dict, List

from bs4 import BeautifulSoup

MiniTocItem = Dict[str, Any]


def get_mini_toc_items(html: str, max_heading_level: int = 2) -> List[MiniTocItem]:
    """Return anchors for the ``h2``..``h<max_heading_level>`` headings in ``html``.

    Headings without an ``id`` cannot be linked to and are skipped.
    """
    if not html:
        return []

    levels = [f"h{level}" for level in range(2, max(2, max_heading_level) + 1)]
    soup = BeautifulSoup(html, "html.parser")

    items: List[MiniTocItem] = []
    for heading in soup.find_all(levels):
        anchor_id = heading.get("id")
        if not anchor_id:
            continue
        items.append({
            "contents": heading.get_text(" ", strip=True),
            "href": f"#{anchor_id}",
            "level": int(heading.name[1]),
        })
    return items
