"""
TCG Tracker — Marketplace URL helpers

Builds TCGPlayer search links for cards whose API record carries no direct
listing URL.
"""

from __future__ import annotations

from urllib.parse import urlencode

from tcgtracker.config import settings


def build_tcgplayer_search_url(card_name: str, set_name: str, card_number: str) -> str:
    """
    TCGPlayer product search for "<name> <number> <set>", grid view.

    Example:
        >>> build_tcgplayer_search_url("Pikachu", "Base", "58")
        'https://www.tcgplayer.com/search/pokemon/product?productLineName=pokemon&q=Pikachu+58+Base&view=grid'
    """
    query = urlencode(
        {
            "productLineName": "pokemon",
            "q": f"{card_name} {card_number} {set_name}",
            "view": "grid",
        }
    )
    return f"{settings.TCGPLAYER_SEARCH_URL}?{query}"
