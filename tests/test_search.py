"""Tests for local filtering and remote search fallback."""

from timehut.models import PageResult
from timehut.search import filter_photos_locally, paginate, search_photos


def _ten_photos(photo_factory):
    photos = [photo_factory(str(i), tags="park summer") for i in range(10)]
    photos[3] = photo_factory("3", tags="dog park")
    photos[7] = photo_factory("7", tags="Dog beach")
    return photos


class TestFilterPhotosLocally:
    def test_matches_title_description_and_tags(self, photo_factory):
        photos = [
            photo_factory("t", title="Birthday cake"),
            photo_factory("d", description="First birthday party"),
            photo_factory("g", tags="birthday"),
            photo_factory("n", title="Beach"),
        ]
        result = filter_photos_locally(photos, "BIRTHDAY")
        assert [p.id for p in result] == ["t", "d", "g"]

    def test_matches_uploader_tag(self, photo_factory):
        photos = [photo_factory("a", uploader="媽媽"), photo_factory("b")]
        assert [p.id for p in filter_photos_locally(photos, "uploader:媽媽")] == ["a"]

    def test_empty_query_returns_all(self, photo_factory):
        photos = [photo_factory("a"), photo_factory("b")]
        assert filter_photos_locally(photos, "") == photos


class TestSearchPhotos:
    def test_local_matches_skip_remote(self, photo_factory, mock_source):
        result = search_photos("dog", mock_source, local=_ten_photos(photo_factory))

        assert [p.id for p in result.photos] == ["3", "7"]
        assert result.total == 2
        assert result.pages == 1
        mock_source.search_photos.assert_not_called()

    def test_no_local_matches_falls_back_to_remote(self, photo_factory, mock_source):
        remote = PageResult(photos=[photo_factory("r")], total=1, pages=1, page=1)
        mock_source.search_photos.return_value = remote

        result = search_photos("cat", mock_source, local=_ten_photos(photo_factory))

        assert result is remote
        mock_source.search_photos.assert_called_once_with("cat", page=1, per_page=50)

    def test_no_local_collection_goes_remote(self, mock_source):
        result = search_photos("  dog ", mock_source, local=None, page=2, per_page=10)
        assert result.photos == []
        mock_source.search_photos.assert_called_once_with("dog", page=2, per_page=10)

    def test_local_results_are_paginated(self, photo_factory, mock_source):
        photos = [photo_factory(str(i), tags="dog") for i in range(5)]
        result = search_photos("dog", mock_source, local=photos, page=2, per_page=2)
        assert [p.id for p in result.photos] == ["2", "3"]
        assert (result.total, result.pages, result.page) == (5, 3, 2)


class TestPaginate:
    def test_past_the_end_is_empty(self, photo_factory):
        result = paginate([photo_factory("a")], page=3, per_page=1)
        assert result.photos == []
        assert result.pages == 1
