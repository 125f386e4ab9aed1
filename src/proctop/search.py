"""Search box state for the process table."""

import logging
from collections.abc import Callable

import regex
from rich.cells import cell_len

from proctop.models import ProcessRecord
from proctop.query import Query, QueryError, parse_query

logger = logging.getLogger(__name__)

_GRAPHEME = regex.compile(r"\X")

Predicate = Callable[[ProcessRecord, bool], bool]


def grapheme_boundaries(text: str) -> list[int]:
    """Return the string offsets at which a grapheme starts, plus len(text)."""
    boundaries = [match.start() for match in _GRAPHEME.finditer(text)]
    boundaries.append(len(text))
    return boundaries


class SearchState:
    """
    Text, cursor, matching flags and parsed query of the process search box.

    The cursor is a string offset that always sits on a grapheme boundary, so
    combined characters and emoji sequences are never split while editing.
    A query that fails to parse marks the search invalid but keeps the last
    valid query in effect.
    """

    def __init__(
        self,
        is_ignoring_case: bool = True,
        is_searching_whole_word: bool = False,
        is_searching_with_regex: bool = False,
    ) -> None:
        self.is_ignoring_case = is_ignoring_case
        self.is_searching_whole_word = is_searching_whole_word
        self.is_searching_with_regex = is_searching_with_regex
        self.is_enabled = False
        self.reset()

    def reset(self) -> None:
        """Clear the text, cursor and parsed query. Matching flags are kept."""
        self.current_search_query = ""
        self.cursor = 0
        self.query: Query | None = None
        self.is_blank_search = True
        self.is_invalid_search = False
        self.error_message: str | None = None

    @property
    def is_invalid_or_blank_search(self) -> bool:
        return self.is_blank_search or self.is_invalid_search

    @property
    def cursor_cell_position(self) -> int:
        """Terminal column of the cursor within the query text."""
        return cell_len(self.current_search_query[: self.cursor])

    def toggle_ignore_case(self) -> None:
        self.is_ignoring_case = not self.is_ignoring_case

    def toggle_whole_word(self) -> None:
        self.is_searching_whole_word = not self.is_searching_whole_word

    def toggle_regex(self) -> None:
        self.is_searching_with_regex = not self.is_searching_with_regex

    def set_query(self, text: str) -> None:
        """Replace the query text, put the cursor at its end and re-parse."""
        self.current_search_query = text
        self.cursor = len(text)
        self.update_query()

    def update_query(self) -> None:
        """Re-parse the current text with the current flags."""
        if not self.current_search_query:
            self.is_blank_search = True
            self.is_invalid_search = False
            self.error_message = None
            return

        try:
            parsed = parse_query(
                self.current_search_query,
                self.is_searching_whole_word,
                self.is_ignoring_case,
                self.is_searching_with_regex,
            )
        except QueryError as err:
            logger.debug("Rejected search query %r: %s", self.current_search_query, err)
            self.is_blank_search = False
            self.is_invalid_search = True
            self.error_message = str(err)
        else:
            self.query = parsed
            self.is_blank_search = False
            self.is_invalid_search = False
            self.error_message = None

    def active_predicate(self) -> Predicate | None:
        """
        Return the filter predicate, or None when every process matches.

        None when the search is blank, or when it is invalid and no query was
        ever parsed successfully.
        """
        if self.is_blank_search or self.query is None:
            return None
        return self.query.check

    def walk_forward(self) -> None:
        """Move the cursor one grapheme to the right."""
        for boundary in grapheme_boundaries(self.current_search_query):
            if boundary > self.cursor:
                self.cursor = boundary
                return

    def walk_back(self) -> None:
        """Move the cursor one grapheme to the left."""
        previous = 0
        for boundary in grapheme_boundaries(self.current_search_query):
            if boundary >= self.cursor:
                break
            previous = boundary
        self.cursor = previous

    def move_to_start(self) -> None:
        self.cursor = 0

    def move_to_end(self) -> None:
        self.cursor = len(self.current_search_query)

    def insert(self, text: str) -> None:
        """Insert text at the cursor and move the cursor past it."""
        query = self.current_search_query
        self.current_search_query = query[: self.cursor] + text + query[self.cursor :]
        end = self.cursor + len(text)
        # The insertion may merge into the following grapheme (a combining mark).
        self.cursor = next(
            b for b in grapheme_boundaries(self.current_search_query) if b >= end
        )

    def backspace(self) -> None:
        """Delete the grapheme before the cursor."""
        if self.cursor == 0:
            return
        end = self.cursor
        self.walk_back()
        query = self.current_search_query
        self.current_search_query = query[: self.cursor] + query[end:]

    def delete(self) -> None:
        """Delete the grapheme under the cursor."""
        query = self.current_search_query
        if self.cursor >= len(query):
            return
        start = self.cursor
        self.walk_forward()
        self.current_search_query = query[:start] + query[self.cursor :]
        self.cursor = start
