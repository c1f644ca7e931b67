# paging.py
"""
Paging for search operations: the `_count` / `startIndex` query parameters and
the first/prev/next/last links on the returned Bundle.

Clients follow the generated links verbatim, so the link format is fixed:
  <serverBase><resource>_count=<count>&startIndex=<index><searchByDesc><identifier>
"""
import logging
import re
from typing import Mapping, Optional, Sequence, Union

from starlette.requests import Request

from fhir_errors import ArgumentError, InvalidRequestError
from fhir_models import Bundle

log = logging.getLogger("paging")

PAGE_SIZE_PARAM = "_count"
START_INDEX_PARAM = "startIndex"

INTEGER_RE = re.compile(r"[+-]?\d+")
_INT_MIN, _INT_MAX = -(2 ** 31), 2 ** 31 - 1


def _first_value(params, name: str) -> Optional[str]:
    if hasattr(params, "getlist"):
        values = params.getlist(name)
    else:
        values = params.get(name)
        if isinstance(values, str):
            values = [values]
    if not values:
        return None
    return values[0]


def parse_integer_parameter(params, name: str) -> Optional[int]:
    """Parse the first occurrence of `name` as a base-10 integer, or None when absent."""
    raw = _first_value(params, name)
    if raw is None:
        return None
    message = f"Invalid argument in request URL: {name}. Cannot parse to Integer."
    if not INTEGER_RE.fullmatch(raw):
        log.warning(message)
        raise InvalidRequestError(message)
    value = int(raw)
    if not _INT_MIN <= value <= _INT_MAX:
        log.warning(message)
        raise InvalidRequestError(message)
    if value < 0:
        raise InvalidRequestError(f"Invalid argument in request URL: {name}. Must not be negative.")
    return value


class PagingArguments:
    """Paging requested for one search request."""

    def __init__(self, params: Union[Mapping[str, Sequence[str]], object], server_base: str):
        self.page_size = parse_integer_parameter(params, PAGE_SIZE_PARAM)
        self.start_index = parse_integer_parameter(params, START_INDEX_PARAM)
        self.server_base = server_base

    @classmethod
    def from_request(cls, request: Request, base_path: str = "") -> "PagingArguments":
        server_base = str(request.base_url).rstrip("/") + base_path.rstrip("/")
        return cls(request.query_params, server_base)

    def is_paging_requested(self) -> bool:
        if self.page_size is not None:
            return True
        if self.start_index is None:
            return False
        # Better to tell clients their paging arguments don't match than to guess.
        raise ArgumentError(
            f"Mismatched paging arguments: pageSize='{self.page_size}', startIndex='{self.start_index}'"
        )

    def get_page_size(self) -> int:
        if not self.is_paging_requested():
            raise RuntimeError("page size is only defined when paging is requested")
        return self.page_size

    def get_start_index(self) -> int:
        if not self.is_paging_requested():
            raise RuntimeError("start index is only defined when paging is requested")
        return self.start_index if self.start_index is not None else 0

    def add_paging_links(self, bundle: Bundle, resource: str, search_by_desc: str, identifier: str, num_total: int) -> None:
        page_size = self.get_page_size()
        start_index = self.get_start_index()

        bundle.add_link("first", self._paging_link(resource, search_by_desc, identifier, 0, page_size))

        if start_index + page_size < num_total:
            bundle.add_link("next", self._paging_link(resource, search_by_desc, identifier, start_index + page_size, page_size))

        if start_index - page_size >= 0:
            bundle.add_link("prev", self._paging_link(resource, search_by_desc, identifier, start_index - page_size, page_size))

        # Rounds num_total down to the nearest multiple of page_size strictly below it.
        # With num_total == 0 this is negative.
        try:
            last_index = (num_total - 1) // page_size * page_size
        except ZeroDivisionError:
            raise InvalidRequestError(f"Cannot divide by zero: pageSize={page_size}")
        bundle.add_link("last", self._paging_link(resource, search_by_desc, identifier, last_index, page_size))

    def _paging_link(self, resource: str, descriptor: str, identifier: str, start_index: int, count: int) -> str:
        return f"{self.server_base}{resource}_count={count}&startIndex={start_index}{descriptor}{identifier}"
