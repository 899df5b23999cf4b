"""Page-window over an in-memory sequence.

Used for citizen "my reports" lists and admin listings after filtering and
sorting. Page numbers are 1-based.
"""

import math

from flask import request


class Paginator:
    """Stateful pager.

    ``go_to_page`` ignores pages outside ``[1, total_pages]`` rather than
    clamping, so an out-of-range request keeps the current page.
    """

    def __init__(self, items, per_page=10):
        if per_page <= 0:
            raise ValueError("per_page must be positive")
        self._items = list(items)
        self.per_page = per_page
        self.current_page = 1

    @property
    def total_items(self):
        return len(self._items)

    @property
    def total_pages(self):
        return math.ceil(len(self._items) / self.per_page)

    @property
    def items(self):
        start = (self.current_page - 1) * self.per_page
        return self._items[start:start + self.per_page]

    def go_to_page(self, page):
        if 1 <= page <= self.total_pages:
            self.current_page = page

    def next_page(self):
        if self.current_page < self.total_pages:
            self.current_page += 1

    def previous_page(self):
        if self.current_page > 1:
            self.current_page -= 1

    def reset(self, items=None):
        if items is not None:
            self._items = list(items)
        self.current_page = 1

    def to_dict(self):
        return {
            "page": self.current_page,
            "per_page": self.per_page,
            "total": self.total_items,
            "total_pages": self.total_pages,
        }


def paginate_list(items, default_per_page=10, max_per_page=100):
    """Apply ``page`` / ``per_page`` query params to a list.

    Returns:
        (page_items, meta_dict)
    """
    try:
        per_page = min(int(request.args.get("per_page", default_per_page)), max_per_page)
    except (ValueError, TypeError):
        per_page = default_per_page
    if per_page <= 0:
        per_page = default_per_page
    try:
        page = int(request.args.get("page", 1))
    except (ValueError, TypeError):
        page = 1

    pager = Paginator(items, per_page=per_page)
    pager.go_to_page(page)
    return pager.items, pager.to_dict()
