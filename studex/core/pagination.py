from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, List, Optional, Tuple, TypeVar

from studex.core.config import get_settings

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: List[T]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


def normalize_page(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int, int]:
    """
    1-indexed page; page size defaults to settings.default_page_size and is
    clamped to settings.max_page_size. Returns (page, page_size, offset).
    """
    settings = get_settings()
    p = max(1, int(page or 1))
    size = int(page_size or settings.default_page_size)
    size = max(1, min(size, settings.max_page_size))
    return p, size, (p - 1) * size
