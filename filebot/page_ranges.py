"""
Page range parsing shared by every page-scoped operation.

A selector is a comma-separated list of tokens:
    "5"      -> page 5
    "2-4"    -> pages 2, 3, 4
    "5-"     -> page 5 to the last page
    "-3"     -> first page to page 3

Pages outside [1, total] are dropped silently. The result is always sorted
ascending with no duplicates, and an empty result is an error. Split, extract,
remove, rotate and pdf-to-image all go through these functions so they agree
on every edge case.
"""

from typing import Iterable

from filebot.error_handler import InputValidationError


ALL_PAGES = "all"


class InvalidSelector(InputValidationError):
    """Selector could not be parsed or selects no page"""


def _bound(text: str, default: int) -> int:
    text = text.strip()
    return int(text) if text.isdigit() else default


def parse_selector(selector: str, total_count: int) -> list[int]:
    """
    Parse a page selector into a sorted list of unique 1-indexed pages.

    Raises:
        InvalidSelector: a bare token is not a number, a range has more than
            one dash, or no page is selected
    """
    pages: set[int] = set()

    for token in (selector or "").split(","):
        token = token.strip()
        if not token:
            continue

        if "-" in token:
            parts = token.split("-")
            if len(parts) > 2:
                raise InvalidSelector(f"'{token}' is not a page range. Use formats like 1-3, 5, 7-")
            start = max(1, _bound(parts[0], 1))
            end = min(total_count, _bound(parts[1], total_count))
            pages.update(range(start, end + 1))
            continue

        if not token.isdigit():
            raise InvalidSelector(f"'{token}' is not a page number. Use formats like 1-3, 5, 7-")
        page = int(token)
        if 1 <= page <= total_count:
            pages.add(page)

    if not pages:
        raise InvalidSelector(
            f"No valid pages in '{selector}'. The document has {total_count} page(s)."
        )
    return sorted(pages)


def resolve_selector(selector: str, total_count: int) -> list[int]:
    """Like parse_selector, but also accepts the 'all' shortcut."""
    if (selector or "").strip().lower() == ALL_PAGES:
        if total_count < 1:
            raise InvalidSelector("The document has no pages.")
        return list(range(1, total_count + 1))
    return parse_selector(selector, total_count)


def pages_to_keep(selector: str, total_count: int) -> list[int]:
    """Complement of the selected pages; used when removing pages."""
    removed = set(parse_selector(selector, total_count))
    kept = [page for page in range(1, total_count + 1) if page not in removed]
    if not kept:
        raise InvalidSelector("Cannot remove all pages. Leave at least one page in the document.")
    return kept


def format_selector(pages: Iterable[int]) -> str:
    """Canonical selector for a page set, e.g. [1, 2, 3, 5] -> '1-3,5'"""
    ordered = sorted(set(pages))
    runs: list[str] = []
    i = 0
    while i < len(ordered):
        start = ordered[i]
        while i + 1 < len(ordered) and ordered[i + 1] == ordered[i] + 1:
            i += 1
        end = ordered[i]
        runs.append(str(start) if start == end else f"{start}-{end}")
        i += 1
    return ",".join(runs)
