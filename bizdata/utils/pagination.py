"""
Pagination math shared by adapters and repositories.
"""

from __future__ import annotations

import math


def page_offset(page: int, limit: int) -> int:
    """Zero-based row offset of a 1-based page."""
    return (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    """ceil(total / limit); 0 when there are no rows."""
    if total <= 0:
        return 0
    return math.ceil(total / limit)

