"""Tests for PagingArguments."""

import re

import pytest
from starlette.datastructures import QueryParams

from fhir_errors import ArgumentError, InvalidRequestError
from fhir_models import Bundle
from paging import PagingArguments

SERVER_BASE = "https://bb.example.com/v1/fhir"


def paging(query: str) -> PagingArguments:
    return PagingArguments(QueryParams(query), SERVER_BASE)


def link_index(bundle, relation):
    link = bundle.get_link(relation)
    if link is None:
        return None
    return int(re.search(r"startIndex=(-?\d+)", link.url).group(1))


def links_for(query: str, num_total: int) -> Bundle:
    bundle = Bundle()
    paging(query).add_paging_links(bundle, "/Coverage?", "&beneficiary=", "BENE001", num_total)
    return bundle


class TestParsing:
    def test_no_paging(self):
        args = paging("beneficiary=BENE001")
        assert args.is_paging_requested() is False

    def test_count_only(self):
        args = paging("_count=5")
        assert args.is_paging_requested() is True
        assert args.get_page_size() == 5
        assert args.get_start_index() == 0

    def test_count_and_start_index(self):
        args = paging("_count=5&startIndex=10")
        assert args.get_page_size() == 5
        assert args.get_start_index() == 10

    def test_first_occurrence_wins(self):
        args = paging("_count=2&_count=7&startIndex=4&startIndex=1")
        assert args.get_page_size() == 2
        assert args.get_start_index() == 4

    def test_plain_mapping_params(self):
        args = PagingArguments({"_count": ["3"], "startIndex": ["6"]}, SERVER_BASE)
        assert (args.get_page_size(), args.get_start_index()) == (3, 6)

    @pytest.mark.parametrize("query, name", [
        ("_count=abc", "_count"),
        ("_count=1.5", "_count"),
        ("_count=", "_count"),
        ("_count=1_0", "_count"),
        ("_count=99999999999", "_count"),
        ("_count=5&startIndex=x", "startIndex"),
    ])
    def test_unparseable(self, query, name):
        with pytest.raises(InvalidRequestError) as excinfo:
            paging(query)
        assert name in str(excinfo.value)

    def test_negative_rejected(self):
        with pytest.raises(InvalidRequestError):
            paging("_count=-1")

    def test_start_index_without_count(self):
        """The server refuses to guess what a lone startIndex means."""
        args = paging("startIndex=5")
        with pytest.raises(ArgumentError) as excinfo:
            args.is_paging_requested()
        message = str(excinfo.value)
        assert "pageSize='None'" in message
        assert "startIndex='5'" in message

    def test_page_size_without_paging(self):
        with pytest.raises(RuntimeError):
            paging("").get_page_size()
        with pytest.raises(RuntimeError):
            paging("").get_start_index()


class TestLinks:
    def test_link_format(self):
        bundle = links_for("_count=1&startIndex=1", 3)
        assert bundle.get_link("next").url == (
            "https://bb.example.com/v1/fhir/Coverage?_count=1&startIndex=2&beneficiary=BENE001"
        )

    def test_first_page(self):
        bundle = links_for("_count=1", 3)
        assert link_index(bundle, "first") == 0
        assert link_index(bundle, "next") == 1
        assert link_index(bundle, "prev") is None
        assert link_index(bundle, "last") == 2

    def test_middle_page(self):
        bundle = links_for("_count=10&startIndex=10", 35)
        assert link_index(bundle, "prev") == 0
        assert link_index(bundle, "next") == 20
        assert link_index(bundle, "last") == 30

    def test_last_page(self):
        bundle = links_for("_count=10&startIndex=30", 35)
        assert link_index(bundle, "next") is None
        assert link_index(bundle, "prev") == 20

    @pytest.mark.parametrize("page_size", [1, 2, 3, 5, 7])
    @pytest.mark.parametrize("num_total", [1, 4, 10, 21])
    def test_link_presence(self, page_size, num_total):
        """first and last always; prev iff startIndex >= pageSize; next iff more results follow."""
        for start_index in range(0, num_total, page_size):
            bundle = links_for(f"_count={page_size}&startIndex={start_index}", num_total)
            assert bundle.get_link("first") is not None
            assert bundle.get_link("last") is not None
            assert (bundle.get_link("prev") is not None) == (start_index >= page_size)
            assert (bundle.get_link("next") is not None) == (start_index + page_size < num_total)
            last = link_index(bundle, "last")
            assert last % page_size == 0
            assert last < num_total <= last + page_size

    def test_zero_total_gives_negative_last(self):
        bundle = links_for("_count=1", 0)
        assert link_index(bundle, "last") == -1

    def test_zero_page_size(self):
        with pytest.raises(InvalidRequestError) as excinfo:
            links_for("_count=0", 3)
        assert "pageSize=0" in str(excinfo.value)
