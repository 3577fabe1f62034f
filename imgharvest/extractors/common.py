"""Rules shared by the static and render extraction paths.

URL resolution, scheme filtering, file-name and extension inference, the
lazy-loading attribute list, and the icon / social-preview classification
table all live here so both paths classify images identically. The render
path passes ``LAZY_ATTRIBUTES`` and ``ICON_RULES`` into the page script.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from urllib.parse import unquote, urljoin, urlparse

from imgharvest.browser.identity import DEFAULT_IDENTITIES
from imgharvest.models.schemas import ImageRecord, ImageSource

# Sent by plain-HTTP fetches (page, HEAD guard, probes)
DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": DEFAULT_IDENTITIES[0].user_agent,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Checked in order when an <img> has no src and lazy resolution is enabled
LAZY_ATTRIBUTES: tuple[str, ...] = (
    "data-src",
    "data-original",
    "data-url",
    "data-lazy",
    "data-srcset",
    "data-lazy-src",
)

IMAGE_EXTENSIONS = frozenset({
    "apng",
    "avif",
    "bmp",
    "gif",
    "ico",
    "jfif",
    "jpeg",
    "jpg",
    "png",
    "svg",
    "tif",
    "tiff",
    "webp",
})

CSS_URL_PATTERN = re.compile(r"""url\(\s*(['"]?)(.*?)\1\s*\)""", re.IGNORECASE)

_DISCARDED_SCHEMES = ("data:", "javascript:")

_SIZES_PATTERN = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)")


@dataclass(frozen=True)
class IconRule:
    """Selector family for icon and social-preview references."""

    selector: str
    attribute: str
    alt: str


# First matching rule wins for a given URL
ICON_RULES: tuple[IconRule, ...] = (
    IconRule('link[rel~="apple-touch-icon"], link[rel~="apple-touch-icon-precomposed"]', "href", "Apple touch icon"),
    IconRule('link[rel~="mask-icon"]', "href", "Safari mask icon"),
    IconRule(
        'meta[property="og:image"], meta[property="og:image:url"], meta[property="og:image:secure_url"]',
        "content",
        "Open Graph image",
    ),
    IconRule('meta[name="twitter:image"], meta[name="twitter:image:src"]', "content", "Twitter card image"),
    IconRule('meta[name="msapplication-TileImage"]', "content", "Windows tile image"),
    IconRule('link[rel~="icon"]', "href", "Favicon"),
)


def icon_rules_payload() -> list[dict]:
    """``ICON_RULES`` as plain dicts for the in-page extraction script."""
    return [asdict(rule) for rule in ICON_RULES]


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def is_discarded(url: str) -> bool:
    """Return ``True`` for ``data:`` and ``javascript:`` URLs."""
    return url.strip().lower().startswith(_DISCARDED_SCHEMES)


def resolve_url(base: str, reference: str) -> str | None:
    """Resolve *reference* against *base*.

    Protocol-relative references (``//host/path``) take the base's scheme.
    Already-absolute references come back unchanged. Returns ``None`` when
    the reference is empty or cannot be parsed.
    """
    reference = reference.strip()
    if not reference:
        return None
    try:
        if reference.startswith("//"):
            scheme = urlparse(base).scheme or "https"
            return f"{scheme}:{reference}"
        return urljoin(base, reference)
    except ValueError:
        return None


def first_candidate(value: str) -> str:
    """Return the first URL of a srcset-style candidate list.

    ``"a.jpg 1x, b.jpg 2x"`` and ``"a.jpg 480w"`` both give ``"a.jpg"``.
    """
    head = value.split(",")[0].strip()
    return head.split()[0] if head else ""


def file_name(url: str) -> str:
    """Return the URL-decoded last path segment, or ``"image"``."""
    try:
        segment = urlparse(url).path.rsplit("/", 1)[-1]
        return unquote(segment) or "image"
    except ValueError:
        return "image"


def extension_type(url: str) -> str | None:
    """Infer an image type from the URL's file extension (≤ 5 characters)."""
    try:
        segment = urlparse(url).path.rsplit("/", 1)[-1]
    except ValueError:
        return None
    if "." not in segment:
        return None
    ext = segment.rsplit(".", 1)[-1].lower()
    if 0 < len(ext) <= 5:
        return ext
    return None


def looks_like_image(url: str, mime_type: str | None = None) -> bool:
    """Whether an ``<object data>`` reference points at an image."""
    if mime_type and mime_type.strip().lower().startswith("image/"):
        return True
    return extension_type(url) in IMAGE_EXTENSIONS


def parse_dimension(value: str | None) -> int | str | None:
    """Return a numeric dimension as ``int``, any other non-blank value as-is."""
    if value is None:
        return None
    value = str(value).strip()
    return int(value) if value.isdigit() else value or None


def parse_sizes(value: str | None) -> tuple[int, int] | None:
    """Parse a ``sizes="WxH"`` attribute; the first size wins, ``any`` is ignored."""
    if not value:
        return None
    match = _SIZES_PATTERN.match(value)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def css_urls(style: str) -> list[str]:
    """Return every ``url(...)`` reference in a CSS declaration string."""
    return [m.group(2) for m in CSS_URL_PATTERN.finditer(style) if m.group(2)]


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class ImageCollector:
    """Accumulates image records, one per resolved URL.

    The first reference to a URL decides its source and alt text; later
    references to the same URL are dropped.
    """

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self._remote: dict[str, ImageRecord] = {}
        self._inline: list[ImageRecord] = []

    def __len__(self) -> int:
        return len(self._remote) + len(self._inline)

    def __contains__(self, url: object) -> bool:
        return url in self._remote

    def add(
        self,
        reference: str | None,
        source: ImageSource,
        *,
        alt: str | None = None,
        size: tuple[int, int] | None = None,
    ) -> bool:
        """Resolve *reference* against the base URL and record it.

        Returns ``True`` if a new record was added.
        """
        if not reference or is_discarded(reference):
            return False
        url = resolve_url(self.base_url, reference)
        if not url or is_discarded(url) or url in self._remote:
            return False

        record = ImageRecord(url=url, filename=file_name(url), alt=alt or None, source=source)
        if size is not None:
            record.width, record.height = size
        self._remote[url] = record
        return True

    def add_inline(self, record: ImageRecord) -> None:
        self._inline.append(record)

    @property
    def remote(self) -> list[ImageRecord]:
        return list(self._remote.values())

    @property
    def images(self) -> list[ImageRecord]:
        return [*self._remote.values(), *self._inline]
