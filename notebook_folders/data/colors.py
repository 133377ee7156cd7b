"""
Palette snapping for notebook and folder colors.

The host page renders notebook cards with slightly different background colors
depending on theme, hover state and rendering path. We reduce every observed
color to one entry of a small fixed palette so stored colors stay stable.
"""
import re
from typing import List, Optional, Tuple

# Order matters: when two entries are equally close to a sample, the earlier
# one wins
PALETTE: List[str] = [
    "#F8CCC8",
    "#C2E7FF",
    "#C4EED0",
    "#FFF3CD",
    "#E8D5F9",
    "#A8F0F0",
    "#FFE5CC",
    "#D0F0C0",
    "#E6E6FA",
    "#FFE4E1",
    "#E0F7FA",
    "#FFDAB9",
    "#F0FFF0",
    "#F3E5F5",
    "#FFF5EE",
    "#F5F5F5",
    "#EDEFFA",
]

LIGHT_NEUTRAL = "#F5F5F5"
COOL_NEUTRAL = "#EDEFFA"

# Samples below this saturation (percent) are treated as grays
_NEUTRAL_SATURATION = 2
# Neutral samples above this lightness (percent) map to LIGHT_NEUTRAL
_NEUTRAL_LIGHTNESS = 95
# Palette entries below this saturation never take part in hue matching
_PALETTE_MIN_SATURATION = 5
# Rounding applied to HSL components so equal distances compare equal
_HSL_PRECISION = 6

_RGB_PATTERN = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*[\d.]+%?\s*)?\)$",
    re.IGNORECASE,
)
_HEX_PATTERN = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6})$", re.IGNORECASE)

Rgb = Tuple[int, int, int]
Hsl = Tuple[float, float, float]


def hex_to_rgb(hex_color: str) -> Rgb:
    digits = hex_color.lstrip("#")
    if len(digits) == 3:
        digits = "".join(digit * 2 for digit in digits)
    value = int(digits, 16)
    return (value >> 16) & 255, (value >> 8) & 255, value & 255


def rgb_to_hex(rgb: Rgb) -> str:
    r, g, b = rgb
    return f"#{r:02X}{g:02X}{b:02X}"


def rgb_to_hsl(r: int, g: int, b: int) -> Hsl:
    """Return (hue in degrees, saturation %, lightness %)."""
    r, g, b = r / 255, g / 255, b / 255
    high, low = max(r, g, b), min(r, g, b)
    lightness = (high + low) / 2

    if high == low:
        return 0.0, 0.0, round(lightness * 100, _HSL_PRECISION)

    delta = high - low
    saturation = (
        delta / (2 - high - low) if lightness > 0.5 else delta / (high + low)
    )

    if high == r:
        hue = (g - b) / delta + (6 if g < b else 0)
    elif high == g:
        hue = (b - r) / delta + 2
    else:
        hue = (r - g) / delta + 4

    return (
        round(hue * 60, _HSL_PRECISION),
        round(saturation * 100, _HSL_PRECISION),
        round(lightness * 100, _HSL_PRECISION),
    )


def parse_color(sample: Optional[str]) -> Optional[Rgb]:
    if not isinstance(sample, str):
        return None

    sample = sample.strip()

    if match := _RGB_PATTERN.match(sample):
        rgb = tuple(int(channel) for channel in match.groups())
        if any(channel > 255 for channel in rgb):
            return None
        return rgb

    if _HEX_PATTERN.match(sample):
        return hex_to_rgb(sample)

    return None


def _hue_distance(a: float, b: float) -> float:
    diff = abs(a - b)
    return 360 - diff if diff > 180 else diff


def _hue_candidates() -> List[Tuple[str, float]]:
    candidates = []
    for hex_color in PALETTE:
        hue, saturation, _ = rgb_to_hsl(*hex_to_rgb(hex_color))
        if saturation < _PALETTE_MIN_SATURATION:
            continue
        candidates.append((hex_color, hue))
    return candidates


_HUE_CANDIDATES = _hue_candidates()


def normalize_color(sample):
    """
    Snap ``sample`` (``rgb()``, ``rgba()`` or hex) to the closest palette entry.

    Anything we can't parse is returned unchanged.
    """
    rgb = parse_color(sample)
    if rgb is None:
        return sample

    hue, saturation, lightness = rgb_to_hsl(*rgb)

    if saturation < _NEUTRAL_SATURATION:
        return LIGHT_NEUTRAL if lightness > _NEUTRAL_LIGHTNESS else COOL_NEUTRAL

    closest, closest_distance = PALETTE[0], float("inf")
    for hex_color, candidate_hue in _HUE_CANDIDATES:
        distance = _hue_distance(hue, candidate_hue)
        if distance < closest_distance:
            closest, closest_distance = hex_color, distance

    return closest


def is_canonical(color: str) -> bool:
    return color in PALETTE
