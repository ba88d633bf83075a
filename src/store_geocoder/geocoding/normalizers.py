"""
Address normalizers.

Cleans free-text store addresses before they are sent to a geocoding
service.
"""

import re
from typing import Optional, Dict, List

from .base import Normalizer
from .models import normalize_address

# Street type abbreviations expanded to full words. "ST" is handled
# separately because it also abbreviates "Saint".
_STREET_TYPE_EXPANSIONS: Dict[str, str] = {
    "AVE": "Avenue",
    "AV": "Avenue",
    "RD": "Road",
    "DR": "Drive",
    "LN": "Lane",
    "BLVD": "Boulevard",
    "PKWY": "Parkway",
    "HWY": "Highway",
    "CT": "Court",
    "PL": "Place",
    "TER": "Terrace",
    "SQ": "Square",
}

# Street "ST" only when it ends an address part: "12 Main St, Springfield"
_RE_TRAILING_ST = re.compile(r"(?<=\w)\s+ST\.?(?=\s*(?:,|$))", re.I)

# Keep letters, digits, whitespace and the punctuation addresses use
_RE_DISALLOWED = re.compile(r"[^\w\s,.\-/#&']")

# Repeated separators left behind by empty parts: "Main St, , Springfield"
_RE_EMPTY_PARTS = re.compile(r"\s*,(?:\s*,)+\s*")


class AddressNormalizer(Normalizer):
    """
    Normalizes a free-text address into a geocoding query.

    Handles:
    - Whitespace trimming and collapsing
    - Stray symbols (emoji, bullets, control characters)
    - Empty comma-separated parts
    - Optional street type expansion (Ave → Avenue, Rd → Road, ...)
    """

    def __init__(self, expand_abbreviations: bool = False):
        """
        Initialize address normalizer.

        Args:
            expand_abbreviations: If True, expand street type abbreviations
        """
        self.expand_abbreviations = expand_abbreviations

    def normalize(self, value: str, context: Optional[str] = None) -> str:
        """
        Normalize a single address.

        Args:
            value: Address to normalize
            context: Optional country or region appended when the address
                does not already end with it

        Returns:
            Normalized address, or "" when nothing usable remains
        """
        t = normalize_address(value)
        if not t:
            return ""

        t = _RE_DISALLOWED.sub(" ", t)
        t = _RE_EMPTY_PARTS.sub(", ", t)
        t = normalize_address(t).strip(" ,")

        if self.expand_abbreviations:
            t = self._expand_street_types(t)

        if context:
            region = normalize_address(context)
            if region and not t.lower().endswith(region.lower()):
                t = f"{t}, {region}" if t else ""

        return t

    def _expand_street_types(self, text: str) -> str:
        """Replace street type abbreviations with full words."""
        t = text
        for abbrev, full in _STREET_TYPE_EXPANSIONS.items():
            t = re.sub(rf"\b{abbrev}\b\.?", full, t, flags=re.I)
        t = _RE_TRAILING_ST.sub(" Street", t)
        return t

    def normalize_batch(self, values: List[str]) -> List[str]:
        """Normalize multiple addresses."""
        return [self.normalize(v) for v in values]
