"""
Canonical roster used to create and reset sessions.
"""
from __future__ import annotations

__all__ = [
    "DEFAULT_ROSTER",
    "DEFAULT_IMAGES",
    "DEFAULT_PRIORITY",
    "PLACEHOLDER_IMAGE",
    "get_display_image",
]

DEFAULT_ROSTER: tuple[str, ...] = (
    "Gojo Satoru",
    "Ryomen Sukuna",
    "Toji Fushiguro",
    "Suguru Geto",
    "Yuta Okkotsu",
    "Maki Zenin",
    "Mahoraga",
    "Megumi Fushiguro",
    "Yuji Itadori",
    "Nanami Kento",
    "Choso",
    "Nobara Kugisaki",
    "Mahito",
    "Jogo",
    "Yuki Tsukumo",
    "Hakari",
)
"""
Roster of a freshly created session, in wheel order.
"""

DEFAULT_IMAGES: dict[str, str] = {
    "Gojo Satoru": "/images/gojo.jpeg",
    "Ryomen Sukuna": "/images/sukuna.jpeg",
    "Toji Fushiguro": "/images/toji.jpg",
    "Suguru Geto": "/images/geto.jpeg",
    "Yuta Okkotsu": "/images/yuta.jpg",
    "Maki Zenin": "/images/maki.jpeg",
    "Mahoraga": "/images/mahoraga.jpeg",
    "Megumi Fushiguro": "/images/megumi.jpeg",
    "Yuji Itadori": "/images/yuji.jpeg",
    "Nanami Kento": "/images/nanami.jpeg",
    "Choso": "/images/choso.jpeg",
    "Nobara Kugisaki": "/images/nobara.jpeg",
    "Mahito": "/images/mahito.jpeg",
    "Jogo": "/images/jogo.jpg",
    "Yuki Tsukumo": "/images/yuki.jpeg",
    "Hakari": "/images/hakari.jpeg",
}
"""
Mapping of identifiers to display images.
"""

PLACEHOLDER_IMAGE = "/images/placeholder.svg"
"""
Image shown for identifiers with no entry in the image mapping.
"""

DEFAULT_PRIORITY: tuple[str, ...] = (
    "Yuji Itadori",
    "Megumi Fushiguro",
    "Nobara Kugisaki",
    "Gojo Satoru",
    "Ryomen Sukuna",
    "Maki Zenin",
    "Yuta Okkotsu",
    "Toji Fushiguro",
    "Nanami Kento",
    "Choso",
    "Suguru Geto",
    "Mahito",
    "Jogo",
    "Hakari",
    "Yuki Tsukumo",
    "Mahoraga",
)
"""
Order in which identifiers are drawn. Identifiers not listed here are drawn
afterward in roster order.

This order is a choice of this package: the web app this roster comes from
lands the wheel at random and defines no draw order.
"""


def get_display_image(
    identifier: str, images: dict[str, str] | None = None
) -> str:
    """
    Get display image for identifier, falling back to the placeholder.
    """
    images = DEFAULT_IMAGES if images is None else images
    return images.get(identifier, PLACEHOLDER_IMAGE)
