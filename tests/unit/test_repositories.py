"""Unit tests for repositories.

Every test runs against both the SQL repositories (on SQLite) and the
in-memory stores, which must behave the same.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Dict, Iterable, Tuple

import pytest
import pytest_asyncio

from image_catalog.core.constants import PredefinedTag
from image_catalog.core.exceptions import DatabaseException, DuplicateException
from image_catalog.models.database import Image
from image_catalog.models.schemas import Pagination, SearchFilters, SortParams
from image_catalog.repositories import (
    ImageRepository,
    InMemoryImageStore,
    InMemoryTagStore,
    TagRepository,
)
from tests.factories import BASE_TIME, ImageFactory, TagFactory


@pytest_asyncio.fixture(params=["sql", "memory"])
async def stores(request, db_session, catalog):
    """(image store, tag store) sharing one transaction."""
    if request.param == "sql":
        return ImageRepository(db_session), TagRepository(db_session)
    return InMemoryImageStore(catalog), InMemoryTagStore(catalog)


async def seed(stores, images: Dict[str, Iterable[str]], minutes: Dict[str, int] = None) -> Dict[str, Image]:
    """Create images named by key, each carrying the listed tag names."""
    image_store, tag_store = stores
    tags = {}
    created = {}
    for key, names in images.items():
        image = await image_store.create(
            ImageFactory.uploaded((minutes or {}).get(key, 0), filename=f"{key}.png")
        )
        tag_ids = []
        for name in names:
            if name not in tags:
                tags[name] = await tag_store.create(TagFactory.create(name=name))
            tag_ids.append(tags[name].id)
        await tag_store.set_image_tags(image.id, tag_ids)
        created[key] = image
    await image_store.commit()
    return created


@pytest_asyncio.fixture
async def tagged(stores):
    return await seed(
        stores,
        {"ab": ["a", "b"], "a": ["a"], "bc": ["b", "c"], "none": []},
        minutes={"ab": 3, "a": 2, "bc": 1, "none": 4},
    )


def ids(images) -> Tuple[int, ...]:
    return tuple(image.id for image in images)


@pytest.mark.asyncio
class TestImageStore:
    """Test image persistence."""

    async def test_create_image(self, stores):
        image_store, _ = stores

        created = await image_store.create(ImageFactory.create(filename="one.png"))
        await image_store.commit()

        assert created.id is not None
        found = await image_store.get_by_id(created.id)
        assert found.filename == "one.png"
        assert (await image_store.get_by_filename("one.png")).id == created.id
        assert (await image_store.get_by_storage_path(created.storage_path)).id == created.id

    async def test_duplicate_filename(self, stores):
        image_store, _ = stores
        await image_store.create(ImageFactory.create(filename="same.png"))

        with pytest.raises(DuplicateException):
            await image_store.create(ImageFactory.create(filename="same.png"))

        assert await image_store.count() == 1

    async def test_get_missing(self, stores):
        image_store, _ = stores

        assert await image_store.get_by_id(999) is None

    async def test_update_thumbnail(self, stores):
        image_store, _ = stores
        image = await image_store.create(ImageFactory.create())

        assert await image_store.update_thumbnail(image.id, "thumbs/a.jpg") is True
        assert await image_store.update_thumbnail(999, "thumbs/b.jpg") is False

    async def test_delete(self, stores):
        image_store, _ = stores
        image = await image_store.create(ImageFactory.create())

        assert await image_store.delete(image.id) is True
        assert await image_store.delete(image.id) is False
        assert await image_store.get_by_id(image.id) is None

    async def test_list_sorted_with_id_tie_break(self, stores):
        created = await seed(
            stores,
            {"a": [], "b": [], "c": [], "d": []},
            minutes={"a": 5, "b": 10, "c": 5, "d": 1},
        )
        image_store, _ = stores

        newest_first = await image_store.list(Pagination(), SortParams())
        oldest_first = await image_store.list(Pagination(), SortParams(order="asc"))

        a, b, c, d = (created[k].id for k in "abcd")
        assert ids(newest_first) == (b, a, c, d)
        assert ids(oldest_first) == (d, a, c, b)

    async def test_list_pages_do_not_overlap(self, stores):
        await seed(stores, {f"img{i}": [] for i in range(7)})
        image_store, _ = stores

        pages = [
            await image_store.list(Pagination(limit=3, offset=offset), SortParams())
            for offset in (0, 3, 6)
        ]

        seen = [image.id for page in pages for image in page]
        assert [len(page) for page in pages] == [3, 3, 1]
        assert len(set(seen)) == 7

    async def test_sort_by_file_size(self, stores):
        image_store, _ = stores
        small = await image_store.create(ImageFactory.create(file_size=10))
        large = await image_store.create(ImageFactory.create(file_size=1000))

        result = await image_store.list(Pagination(), SortParams(field="file_size", order="asc"))

        assert ids(result) == (small.id, large.id)

    async def test_content_type_queries(self, stores):
        image_store, _ = stores
        await image_store.create(ImageFactory.create(content_type="image/png"))
        jpeg = await image_store.create(
            ImageFactory.create(content_type="image/jpeg", filename="x.jpg")
        )

        assert await image_store.count_by_content_type("image/jpeg") == 1
        assert ids(await image_store.list_by_content_type("image/jpeg", Pagination())) == (jpeg.id,)

    async def test_stats(self, stores):
        image_store, _ = stores

        empty = await image_store.get_stats()
        assert empty.total_images == 0
        assert empty.total_size == 0

        await image_store.create(ImageFactory.create(file_size=100, content_type="image/png"))
        await image_store.create(ImageFactory.create(file_size=300, content_type="image/jpeg"))
        stats = await image_store.get_stats()

        assert stats.total_images == 2
        assert stats.content_types == 2
        assert stats.total_size == 400
        assert stats.average_size == pytest.approx(200.0)
        assert stats.max_size == 300
        assert stats.min_size == 100


@pytest.mark.asyncio
class TestTagFilters:
    """Test set-membership filtering by tag names."""

    async def test_match_any(self, stores, tagged):
        image_store, _ = stores

        result = await image_store.find_by_tags(["a", "b"], False, Pagination(), SortParams())

        assert ids(result) == (tagged["ab"].id, tagged["a"].id, tagged["bc"].id)
        assert await image_store.count_by_tags(["a", "b"], False) == 3

    async def test_match_all(self, stores, tagged):
        image_store, _ = stores

        result = await image_store.find_by_tags(["a", "b"], True, Pagination(), SortParams())

        assert ids(result) == (tagged["ab"].id,)
        assert await image_store.count_by_tags(["a", "b"], True) == 1

    async def test_match_all_with_one_name_equals_match_any(self, stores, tagged):
        image_store, _ = stores

        every = await image_store.find_by_tags(["b"], True, Pagination(), SortParams())
        some = await image_store.find_by_tags(["b"], False, Pagination(), SortParams())

        assert ids(every) == ids(some) == (tagged["ab"].id, tagged["bc"].id)

    async def test_unknown_tag(self, stores, tagged):
        image_store, _ = stores

        assert await image_store.find_by_tags(["zzz"], False, Pagination(), SortParams()) == []
        assert await image_store.count_by_tags(["a", "zzz"], True) == 0

    async def test_empty_names(self, stores, tagged):
        image_store, _ = stores

        assert await image_store.find_by_tags([], False, Pagination(), SortParams()) == []
        assert await image_store.count_by_tags([], True) == 0

    async def test_total_is_independent_of_page(self, stores, tagged):
        image_store, _ = stores

        page = await image_store.find_by_tags(["a", "b"], False, Pagination(limit=2, offset=2), SortParams())

        assert ids(page) == (tagged["bc"].id,)
        assert await image_store.count_by_tags(["a", "b"], False) == 3


@pytest.mark.asyncio
class TestTagStore:
    """Test tags and image-tag associations."""

    async def test_duplicate_tag_name(self, stores):
        _, tag_store = stores
        await tag_store.create(TagFactory.create(name="nature"))

        with pytest.raises(DuplicateException):
            await tag_store.create(TagFactory.create(name="nature"))

        assert await tag_store.count() == 1

    async def test_get_by_name(self, stores):
        _, tag_store = stores
        tag = await tag_store.create(TagFactory.create(name="nature"))

        assert (await tag_store.get_by_name("nature")).id == tag.id
        assert await tag_store.get_by_name("missing") is None

    async def test_image_tags_ordered_by_name(self, stores):
        created = await seed(stores, {"img": ["zebra", "apple", "mango"]})
        _, tag_store = stores

        tags = await tag_store.get_image_tags(created["img"].id)

        assert [tag.name for tag in tags] == ["apple", "mango", "zebra"]
        assert await tag_store.count_image_tags(created["img"].id) == 3

    async def test_set_image_tags_replaces(self, stores):
        created = await seed(stores, {"img": ["a", "b"]})
        _, tag_store = stores
        c = await tag_store.create(TagFactory.create(name="c"))

        await tag_store.set_image_tags(created["img"].id, [c.id, c.id])

        assert [tag.name for tag in await tag_store.get_image_tags(created["img"].id)] == ["c"]

    async def test_failed_replace_keeps_previous_set(self, stores):
        created = await seed(stores, {"img": ["a", "b"]})
        _, tag_store = stores

        with pytest.raises(DatabaseException):
            await tag_store.set_image_tags(created["img"].id, [9999])

        assert [tag.name for tag in await tag_store.get_image_tags(created["img"].id)] == ["a", "b"]

    async def test_add_and_remove(self, stores):
        created = await seed(stores, {"img": []})
        _, tag_store = stores
        tag = await tag_store.create(TagFactory.create(name="a"))
        image_id = created["img"].id

        assert await tag_store.add_to_image(image_id, tag.id) is True
        assert await tag_store.add_to_image(image_id, tag.id) is False
        assert await tag_store.remove_from_image(image_id, tag.id) is True
        assert await tag_store.remove_from_image(image_id, tag.id) is False

    async def test_batch_tags_for_images(self, stores):
        created = await seed(stores, {"x": ["b", "a"], "y": ["c"], "z": []})
        _, tag_store = stores
        x, y, z = (created[k].id for k in "xyz")

        rows = await tag_store.get_tags_for_images([x, y, z])

        assert [(image_id, tag.name) for image_id, tag in rows] == [(x, "a"), (x, "b"), (y, "c")]
        assert await tag_store.get_tags_for_images([]) == []

    async def test_deleting_image_removes_associations(self, stores):
        created = await seed(stores, {"img": ["a"]})
        image_store, tag_store = stores
        tag = await tag_store.get_by_name("a")

        await image_store.delete(created["img"].id)
        await image_store.commit()

        assert await tag_store.count_tag_images(tag.id) == 0
        assert await tag_store.get_by_name("a") is not None

    async def test_deleting_tag_removes_associations(self, stores):
        created = await seed(stores, {"img": ["a", "b"]})
        _, tag_store = stores
        tag = await tag_store.get_by_name("a")

        assert await tag_store.delete(tag.id) is True
        await tag_store.commit()

        assert [t.name for t in await tag_store.get_image_tags(created["img"].id)] == ["b"]
        assert await tag_store.delete(tag.id) is False

    async def test_popular(self, stores):
        await seed(stores, {"x": ["common", "rare"], "y": ["common"], "z": ["common"]})
        _, tag_store = stores
        await tag_store.create(TagFactory.create(name="unused"))

        popular = await tag_store.get_popular(10)

        assert [(tag.name, count) for tag, count in popular] == [
            ("common", 3),
            ("rare", 1),
            ("unused", 0),
        ]
        assert len(await tag_store.get_popular(1)) == 1

    async def test_list_and_search(self, stores):
        _, tag_store = stores
        for name in ("sunset", "sun-dog", "moon"):
            await tag_store.create(TagFactory.create(name=name))

        listed = await tag_store.list(Pagination(limit=2))
        found = await tag_store.search("SUN", Pagination())

        assert [tag.name for tag in listed] == ["moon", "sun-dog"]
        assert [tag.name for tag in found] == ["sun-dog", "sunset"]
        assert await tag_store.search("%", Pagination()) == []

    async def test_upsert_predefined_promotes_existing_tag(self, stores):
        _, tag_store = stores
        existing = await tag_store.create(TagFactory.create(name="nature"))

        tag = await tag_store.upsert_predefined(
            PredefinedTag("nature", "Natural scenery", "subject", 3)
        )
        await tag_store.upsert_predefined(PredefinedTag("portrait", "People", "subject", 1))

        assert tag.id == existing.id
        assert tag.is_predefined is True
        assert tag.category == "subject"
        assert [t.name for t in await tag_store.get_predefined()] == ["portrait", "nature"]


@pytest_asyncio.fixture
async def assorted(stores):
    """Images differing in type, size, upload time and name."""
    image_store, tag_store = stores
    specs = {
        "beach": ("image/png", 100, 0, "Beach_Day.png", ["sea"]),
        "city": ("image/jpeg", 500, 10, "city.jpg", ["sea", "urban"]),
        "forest": ("image/png", 900, 20, "forest.png", []),
        "odd": ("image/webp", 300, 30, "100%_real.webp", ["urban"]),
    }
    tags = {}
    created = {}
    for key, (content_type, size, minutes, original, names) in specs.items():
        image = await image_store.create(
            ImageFactory.uploaded(
                minutes,
                filename=f"{key}_0001.{original.rsplit('.', 1)[1]}",
                original_filename=original,
                content_type=content_type,
                file_size=size,
                storage_path=f"st/{key}",
            )
        )
        tag_ids = []
        for name in names:
            if name not in tags:
                tags[name] = await tag_store.create(TagFactory.create(name=name))
            tag_ids.append(tags[name].id)
        await tag_store.set_image_tags(image.id, tag_ids)
        created[key] = image
    await image_store.commit()
    return created


async def searched(stores, **criteria):
    image_store, _ = stores
    filters = SearchFilters(**criteria)
    found = await image_store.search(filters, Pagination(), SortParams())
    assert await image_store.count_search(filters) == len(found)
    return found


@pytest.mark.asyncio
class TestSearch:
    """Test attribute filtering."""

    async def test_no_criteria_selects_everything(self, stores, assorted):
        found = await searched(stores)

        assert len(found) == 4

    async def test_content_types(self, stores, assorted):
        found = await searched(stores, content_types=["image/PNG", "image/webp"])

        assert ids(found) == ids([assorted["odd"], assorted["forest"], assorted["beach"]])

    async def test_size_bounds_are_inclusive(self, stores, assorted):
        found = await searched(stores, min_size=300, max_size=900)

        assert ids(found) == ids([assorted["odd"], assorted["forest"], assorted["city"]])

    async def test_date_window_is_inclusive(self, stores, assorted):
        found = await searched(
            stores,
            uploaded_after=BASE_TIME + timedelta(minutes=10),
            uploaded_before=BASE_TIME + timedelta(minutes=20),
        )

        assert ids(found) == ids([assorted["forest"], assorted["city"]])

    async def test_filename_matches_either_name_ignoring_case(self, stores, assorted):
        by_original = await searched(stores, filename="BEACH_day")
        by_stored = await searched(stores, filename="city_0001")

        assert ids(by_original) == (assorted["beach"].id,)
        assert ids(by_stored) == (assorted["city"].id,)

    async def test_filename_wildcards_are_literal(self, stores, assorted):
        assert ids(await searched(stores, filename="100%")) == (assorted["odd"].id,)
        assert ids(await searched(stores, filename="%")) == (assorted["odd"].id,)
        assert await searched(stores, filename="c_t") == []

    async def test_criteria_combine_with_tags(self, stores, assorted):
        any_sea = await searched(stores, tags=["sea"], content_types=["image/jpeg", "image/png"])
        all_of = await searched(stores, tags=["sea", "urban"], match_all=True, max_size=1000)

        assert ids(any_sea) == ids([assorted["city"], assorted["beach"]])
        assert ids(all_of) == (assorted["city"].id,)

    async def test_sorted_and_paged(self, stores, assorted):
        image_store, _ = stores
        filters = SearchFilters(min_size=100)

        page = await image_store.search(
            filters, Pagination(limit=2, offset=1), SortParams(field="file_size", order="asc")
        )

        assert ids(page) == ids([assorted["odd"], assorted["city"]])
        assert await image_store.count_search(filters) == 4


@pytest.mark.asyncio
class TestImageRangeQueries:
    """Test date, recency and size queries."""

    async def test_date_range(self, stores, assorted):
        image_store, _ = stores

        found = await image_store.get_by_date_range(
            BASE_TIME, BASE_TIME + timedelta(minutes=20), Pagination()
        )

        assert ids(found) == ids([assorted["forest"], assorted["city"], assorted["beach"]])

    async def test_recent(self, stores, assorted):
        image_store, _ = stores
        since = BASE_TIME + timedelta(minutes=10)

        assert ids(await image_store.get_recent(since, 2)) == ids([assorted["odd"], assorted["forest"]])
        assert len(await image_store.get_recent(since, 0)) == 3
        assert len(await image_store.get_recent(since, 5000)) == 3

    async def test_largest(self, stores, assorted):
        image_store, _ = stores

        found = await image_store.get_largest(Pagination(limit=3))

        assert ids(found) == ids([assorted["forest"], assorted["city"], assorted["odd"]])

    async def test_delete_by_storage_path(self, stores, assorted):
        image_store, tag_store = stores
        sea = await tag_store.get_by_name("sea")

        assert await image_store.delete_by_storage_path("st/city") is True
        await image_store.commit()

        assert await image_store.get_by_storage_path("st/city") is None
        assert await image_store.delete_by_storage_path("st/city") is False
        assert await image_store.count() == 3
        assert await tag_store.count_tag_images(sea.id) == 1


@pytest.mark.asyncio
class TestTagUsage:
    """Test tag-side usage queries."""

    async def test_tag_images_newest_first(self, stores, assorted):
        _, tag_store = stores
        sea = await tag_store.get_by_name("sea")

        found = await tag_store.get_tag_images(sea.id, Pagination())
        second = await tag_store.get_tag_images(sea.id, Pagination(limit=1, offset=1))

        assert ids(found) == ids([assorted["city"], assorted["beach"]])
        assert ids(second) == (assorted["beach"].id,)

    async def test_with_image_count_includes_unused(self, stores, assorted):
        _, tag_store = stores
        await tag_store.create(TagFactory.create(name="lonely"))

        rows = await tag_store.get_with_image_count(Pagination())
        paged = await tag_store.get_with_image_count(Pagination(limit=1, offset=1))

        assert [(tag.name, count) for tag, count in rows] == [
            ("lonely", 0),
            ("sea", 2),
            ("urban", 2),
        ]
        assert [tag.name for tag, _ in paged] == ["sea"]

    async def test_unused(self, stores, assorted):
        _, tag_store = stores
        await tag_store.create(TagFactory.create(name="zzz"))
        await tag_store.create(TagFactory.create(name="aaa"))

        assert [tag.name for tag in await tag_store.get_unused()] == ["aaa", "zzz"]

    async def test_usage_totals(self, stores, assorted):
        _, tag_store = stores

        assert await tag_store.get_usage_totals() == (4, 3)

    async def test_usage_totals_empty(self, stores):
        _, tag_store = stores

        assert await tag_store.get_usage_totals() == (0, 0)
