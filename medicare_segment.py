# medicare_segment.py
"""
The Medicare enrollment segments a beneficiary can be covered under. Each one
becomes a separate Coverage resource, identified by its URL prefix.
"""
from enum import Enum
from typing import Dict, Optional


class MedicareSegment(Enum):
    PART_A = ("part-a", "Part A")
    PART_B = ("part-b", "Part B")
    PART_D = ("part-d", "Part D")

    def __init__(self, url_prefix: str, display_plan: str):
        self.url_prefix = url_prefix
        self.display_plan = display_plan


_BY_URL_PREFIX: Dict[str, MedicareSegment] = {s.url_prefix: s for s in MedicareSegment}


def select_by_url_prefix(url_prefix: Optional[str]) -> Optional[MedicareSegment]:
    """Return the segment whose url_prefix is exactly url_prefix, or None."""
    if url_prefix is None:
        return None
    return _BY_URL_PREFIX.get(url_prefix)
