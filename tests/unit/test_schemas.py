"""Unit tests for pagination, sorting and listing schemas."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from image_catalog.models.schemas import (
    ListImagesRequest,
    ListImagesResponse,
    Pagination,
    PaginationParams,
    SearchFilters,
    SortParams,
    calculate_total_pages,
    clamp_recent_limit,
)


class TestTotalPages:
    """Test calculate_total_pages."""

    @pytest.mark.parametrize(
        "total, page_size, expected",
        [
            (0, 20, 0),
            (1, 20, 1),
            (20, 20, 1),
            (21, 20, 2),
            (105, 20, 6),
            (10, 0, 0),
            (10, -5, 0),
        ],
    )
    def test_total_pages(self, total, page_size, expected):
        assert calculate_total_pages(total, page_size) == expected


class TestListImagesResponse:
    """Test page metadata of listing responses."""

    def test_middle_page(self):
        response = ListImagesResponse.build([], total_count=105, page=3, page_size=20)

        assert response.total_pages == 6
        assert response.has_next_page is True
        assert response.has_prev_page is True

    def test_last_page(self):
        response = ListImagesResponse.build([], total_count=105, page=6, page_size=20)

        assert response.has_next_page is False
        assert response.has_prev_page is True

    def test_first_page(self):
        response = ListImagesResponse.build([], total_count=105, page=1, page_size=20)

        assert response.has_next_page is True
        assert response.has_prev_page is False

    def test_empty_result(self):
        response = ListImagesResponse.build([], total_count=0, page=1, page_size=20)

        assert response.total_pages == 0
        assert response.has_next_page is False
        assert response.has_prev_page is False

    def test_page_past_the_end(self):
        response = ListImagesResponse.build([], total_count=5, page=4, page_size=20)

        assert response.has_next_page is False
        assert response.has_prev_page is True

    def test_computed_fields_are_serialized(self):
        data = ListImagesResponse.build([], total_count=30, page=1, page_size=20).model_dump()

        assert data["has_next_page"] is True
        assert data["has_prev_page"] is False

    def test_json_round_trip_keeps_page_flags(self):
        response = ListImagesResponse.build([], total_count=30, page=2, page_size=20)
        restored = ListImagesResponse.model_validate_json(response.model_dump_json())

        assert restored.total_pages == 2
        assert restored.has_next_page is False
        assert restored.has_prev_page is True


class TestPagination:
    """Test store-level clamping."""

    def test_defaults(self):
        pagination = Pagination()

        assert pagination.limit == 20
        assert pagination.offset == 0

    @pytest.mark.parametrize("limit", [0, -1, 101, 10_000])
    def test_out_of_range_limit_falls_back_to_default(self, limit):
        assert Pagination(limit=limit).limit == 20

    def test_limit_bounds_are_inclusive(self):
        assert Pagination(limit=1).limit == 1
        assert Pagination(limit=100).limit == 100

    def test_negative_offset_becomes_zero(self):
        assert Pagination(offset=-10).offset == 0

    def test_page_params_offset(self):
        params = PaginationParams(page=3, page_size=25)

        assert params.offset == 50
        assert params.to_pagination() == Pagination(limit=25, offset=50)

    def test_page_params_reject_page_zero(self):
        with pytest.raises(ValidationError):
            PaginationParams(page=0)


class TestSortParams:
    """Test the sort whitelist."""

    def test_default_is_newest_first(self):
        sort = SortParams()

        assert sort.field == "uploaded_at"
        assert sort.order == "desc"
        assert sort.descending is True

    @pytest.mark.parametrize("field", ["filename", "file_size", "created_at", "uploaded_at"])
    def test_whitelisted_fields(self, field):
        assert SortParams(field=field, order="asc").field == field

    def test_case_and_whitespace_are_ignored(self):
        sort = SortParams(field=" FileName ", order="ASC")

        assert sort.field == "filename"
        assert sort.order == "asc"
        assert sort.descending is False

    @pytest.mark.parametrize(
        "field",
        ["id; DROP TABLE images", "storage_path", "", None, "width"],
    )
    def test_unknown_field_falls_back_to_default(self, field):
        assert SortParams(field=field).field == "uploaded_at"

    @pytest.mark.parametrize("order", ["sideways", "", None, "descending"])
    def test_unknown_order_falls_back_to_default(self, order):
        assert SortParams(order=order).order == "desc"


class TestListImagesRequest:
    """Test listing request helpers."""

    def test_tags_take_precedence_over_single_tag(self):
        request = ListImagesRequest(tag="ignored", tags=["Nature", " sunset "])

        assert request.effective_tags() == ["nature", "sunset"]

    def test_single_tag(self):
        assert ListImagesRequest(tag="Nature").effective_tags() == ["nature"]

    def test_filter_drops_blanks_and_repeats(self):
        request = ListImagesRequest(tags=["a", "A", " ", "b", "a"])

        assert request.effective_tags() == ["a", "b"]

    def test_no_filter(self):
        assert ListImagesRequest().effective_tags() == []

    def test_pagination_window(self):
        request = ListImagesRequest(page=4, page_size=10)

        assert request.pagination() == Pagination(limit=10, offset=30)

    def test_sort_is_whitelisted(self):
        sort = ListImagesRequest(sort_by="bogus", sort_order="bogus").sort()

        assert sort == SortParams()

    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_bounds(self, page_size):
        with pytest.raises(ValidationError):
            ListImagesRequest(page_size=page_size)

    def test_blank_tags_fall_back_to_single_tag(self):
        request = ListImagesRequest(tags=["", "  "], tag="Nature")

        assert request.effective_tags() == ["nature"]

    def test_search_filters_carry_tags_and_attributes(self):
        request = ListImagesRequest(
            tag="Nature",
            match_all=True,
            content_types=["image/PNG", "image/png"],
            min_size=10,
            filename="  beach ",
        )

        filters = request.search_filters()

        assert filters.tags == ["nature"]
        assert filters.match_all is True
        assert filters.content_types == ["image/png"]
        assert filters.min_size == 10
        assert filters.filename == "beach"
        assert filters.has_attribute_filters is True

    def test_inverted_size_range_rejected(self):
        with pytest.raises(ValidationError):
            ListImagesRequest(min_size=100, max_size=10)

    def test_inverted_date_range_rejected(self):
        with pytest.raises(ValidationError):
            ListImagesRequest(
                uploaded_after=datetime(2024, 2, 1),
                uploaded_before=datetime(2024, 1, 1),
            )


class TestSearchFilters:
    """Test normalization of attribute filters."""

    def test_empty(self):
        filters = SearchFilters()

        assert filters.has_attribute_filters is False
        assert filters.tags == []

    def test_tags_alone_are_not_attribute_filters(self):
        assert SearchFilters(tags=["a"]).has_attribute_filters is False

    def test_blank_filename_is_dropped(self):
        assert SearchFilters(filename="   ").filename is None

    def test_aware_dates_become_naive_utc(self):
        plus_two = timezone(timedelta(hours=2))

        filters = SearchFilters(uploaded_after=datetime(2024, 1, 1, 14, 0, tzinfo=plus_two))

        assert filters.uploaded_after == datetime(2024, 1, 1, 12, 0)

    def test_equal_bounds_allowed(self):
        filters = SearchFilters(min_size=5, max_size=5)

        assert filters.min_size == filters.max_size == 5

    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            SearchFilters(min_size=-1)


@pytest.mark.parametrize("limit, expected", [(1, 1), (1000, 1000), (0, 50), (-3, 50), (1001, 50)])
def test_clamp_recent_limit(limit, expected):
    assert clamp_recent_limit(limit) == expected
