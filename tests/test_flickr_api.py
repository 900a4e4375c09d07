"""Tests for the Flickr client and response parsing."""

import json
from datetime import datetime
from unittest.mock import Mock, patch

import pytest
import requests

from timehut.errors import AuthorizationError, FlickrAPIError, UploadError
from timehut.flickr.api import (
    FlickrClient,
    FlickrCreds,
    get_creds,
    parse_date_taken,
    parse_page,
    parse_photo,
    parse_upload_response,
    photo_url,
    save_creds,
    select_video_url,
)


def _response(payload=None, text="", status=200):
    r = Mock()
    r.status_code = status
    r.text = text
    if payload is None:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = payload
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(response=r)
    return r


RAW_PHOTO = {
    "id": "5301",
    "title": "Beach day",
    "description": {"_content": "First time at the sea"},
    "tags": "uploader:媽媽 beach summer",
    "media": "photo",
    "datetaken": "2023-09-06 10:15:00",
    "datetakenunknown": "0",
    "dateupload": "1694000000",
    "url_m": "https://live.staticflickr.com/1/5301_abc_m.jpg",
    "url_sq": "https://live.staticflickr.com/1/5301_abc_s.jpg",
    "server": "1",
    "secret": "abc",
}


class TestParsePhoto:
    def test_fields(self):
        photo = parse_photo(RAW_PHOTO)
        assert photo.id == "5301"
        assert photo.description == "First time at the sea"
        assert photo.uploader == "媽媽"
        assert photo.tags == "beach summer"
        assert photo.taken == datetime(2023, 9, 6, 10, 15)
        assert photo.uploaded == datetime.fromtimestamp(1694000000)
        assert set(photo.urls) == {"m", "sq"}

    def test_unknown_date_taken_is_ignored(self):
        photo = parse_photo({**RAW_PHOTO, "datetakenunknown": "1"})
        assert photo.taken is None
        assert photo.effective_date == photo.uploaded

    def test_video(self):
        assert parse_photo({**RAW_PHOTO, "media": "video"}).is_video


class TestParsePage:
    def test_page(self):
        data = {"photoset": {"photo": [RAW_PHOTO], "total": "120", "pages": "3", "page": 2}}
        result = parse_page(data, "photoset", 2)
        assert [p.id for p in result.photos] == ["5301"]
        assert (result.total, result.pages, result.page) == (120, 3, 2)

    @pytest.mark.parametrize(
        "data",
        [{}, {"photos": None}, {"photos": {"photo": "oops"}}, ["not", "a", "dict"]],
    )
    def test_malformed_is_empty(self, data):
        result = parse_page(data, "photos", 1)
        assert result.photos == []
        assert result.pages == 0

    def test_entries_without_id_skipped(self):
        data = {"photos": {"photo": [{"title": "x"}, RAW_PHOTO], "pages": 1, "total": 2}}
        assert [p.id for p in parse_page(data, "photos").photos] == ["5301"]


class TestUrls:
    def test_stored_url_preferred(self):
        photo = parse_photo(RAW_PHOTO)
        assert photo_url(photo, "m") == RAW_PHOTO["url_m"]

    def test_built_from_server_and_secret(self):
        photo = parse_photo(RAW_PHOTO)
        assert photo_url(photo, "l") == "https://live.staticflickr.com/1/5301_abc_b.jpg"

    def test_video_preference(self):
        sizes = [
            {"label": "Original", "source": "orig.jpg"},
            {"label": "Mobile MP4", "source": "mobile.mp4"},
            {"label": "Site MP4", "source": "site.mp4"},
        ]
        assert select_video_url(sizes) == "site.mp4"

    def test_video_falls_back_to_any_video_then_original(self):
        assert select_video_url([{"label": "700p", "media": "video", "source": "v"}]) == "v"
        assert select_video_url([{"label": "Original", "source": "o.jpg"}]) == "o.jpg"
        assert select_video_url([]) is None


class TestParseDateTaken:
    def test_month_granularity(self):
        assert parse_date_taken("2023年6月") == ("2023-06-01 12:00:00", 4)

    def test_passthrough(self):
        assert parse_date_taken("2023-06-15 09:00:00") == ("2023-06-15 09:00:00", 0)


class TestParseUploadResponse:
    def test_photo_id(self):
        assert parse_upload_response('<rsp stat="ok"><photoid>987</photoid></rsp>') == "987"

    def test_async_ticket(self):
        assert parse_upload_response('<rsp stat="ok"><ticketid>1-2</ticketid></rsp>') is None

    def test_error(self):
        xml = '<rsp stat="fail"><err code="5" msg="Filetype was not recognised" /></rsp>'
        with pytest.raises(UploadError, match="Filetype"):
            parse_upload_response(xml)

    def test_garbage(self):
        with pytest.raises(UploadError):
            parse_upload_response("<html>oops")


class TestCreds:
    def test_round_trip_file(self, temp_dir):
        path = temp_dir / "token.json"
        save_creds(FlickrCreds("t", "s", "123@N00", "dad"), path)
        assert get_creds(path) == FlickrCreds("t", "s", "123@N00", "dad")

    def test_missing_file(self, temp_dir):
        assert get_creds(temp_dir / "none.json") is None

    def test_unreadable_file(self, temp_dir):
        path = temp_dir / "token.json"
        path.write_text(json.dumps({"unexpected": 1}))
        assert get_creds(path) is None

    def test_settings_tokens_used(self, flickr_settings):
        client = FlickrClient(flickr_settings)
        assert client.authenticated
        assert client.creds.oauth_token == "token"

    def test_write_requires_auth(self, flickr_settings):
        settings = flickr_settings.model_copy(update={"oauth_token": ""})
        with pytest.raises(AuthorizationError):
            FlickrClient(settings).delete_photo("1")


class TestCall:
    @patch("timehut.flickr.api.requests.get")
    def test_album_photos(self, mock_get, flickr_settings):
        mock_get.return_value = _response(
            {"stat": "ok", "photoset": {"photo": [RAW_PHOTO], "pages": 1, "total": 1}}
        )

        result = FlickrClient(flickr_settings).get_album_photos("72157", page=1, per_page=50)

        assert [p.id for p in result.photos] == ["5301"]
        params = mock_get.call_args.kwargs["params"]
        assert params["method"] == "flickr.photosets.getPhotos"
        assert params["photoset_id"] == "72157"
        assert params["per_page"] == 50
        assert params["format"] == "json"

    @patch("timehut.flickr.api.requests.get")
    def test_search_sends_text_and_tags(self, mock_get, flickr_settings):
        mock_get.return_value = _response({"stat": "ok", "photos": {"photo": [], "pages": 0}})

        FlickrClient(flickr_settings).search_photos("beach dog", page=2, per_page=10)

        params = mock_get.call_args.kwargs["params"]
        assert params["text"] == "beach dog"
        assert params["tags"] == "beach,dog"
        assert params["tag_mode"] == "any"
        assert params["page"] == 2

    @patch("timehut.flickr.api.requests.get")
    def test_stat_fail_raises(self, mock_get, flickr_settings):
        mock_get.return_value = _response({"stat": "fail", "code": 1, "message": "Photoset not found"})

        with pytest.raises(FlickrAPIError) as exc:
            FlickrClient(flickr_settings).get_album_photos("bad")

        assert exc.value.code == 1
        assert mock_get.call_count == 1

    @patch("timehut.flickr.api.requests.get")
    def test_malformed_json_raises(self, mock_get, flickr_settings):
        mock_get.return_value = _response(None, text="<html>")
        with pytest.raises(FlickrAPIError):
            FlickrClient(flickr_settings).get_public_photos()

    @patch("timehut.utils.retry.time.sleep")
    @patch("timehut.flickr.api.requests.get")
    def test_server_error_surfaces_without_retry(self, mock_get, mock_sleep, flickr_settings):
        mock_get.return_value = _response(status=503)

        with pytest.raises(requests.HTTPError):
            FlickrClient(flickr_settings).get_public_photos()

        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch("timehut.utils.retry.time.sleep")
    @patch("timehut.flickr.api.requests.get")
    def test_connection_error_surfaces_without_retry(self, mock_get, mock_sleep, flickr_settings):
        mock_get.side_effect = requests.ConnectionError("offline")

        with pytest.raises(requests.ConnectionError):
            FlickrClient(flickr_settings).search_photos("beach")

        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch("timehut.flickr.api.requests.get")
    def test_video_media_url(self, mock_get, flickr_settings):
        mock_get.return_value = _response(
            {"stat": "ok", "sizes": {"size": [{"label": "HD MP4", "source": "hd.mp4"}]}}
        )
        video = parse_photo({**RAW_PHOTO, "media": "video"})
        assert FlickrClient(flickr_settings).get_media_url(video) == "hd.mp4"


class TestUpload:
    @patch("timehut.flickr.api.requests.post")
    def test_upload_file(self, mock_post, flickr_settings, temp_dir):
        path = temp_dir / "a.jpg"
        path.write_bytes(b"jpeg")
        mock_post.return_value = _response(text="<rsp stat='ok'><photoid>42</photoid></rsp>")

        photo_id = FlickrClient(flickr_settings).upload_file(
            path, title="a.jpg", tags="uploader:爸爸 beach", mimetype="image/jpeg"
        )

        assert photo_id == "42"
        kwargs = mock_post.call_args.kwargs
        assert kwargs["data"]["tags"] == "uploader:爸爸 beach"
        assert kwargs["data"]["is_public"] == "0"
        assert kwargs["headers"]["Authorization"].startswith("OAuth ")
        assert kwargs["files"]["photo"][0] == "a.jpg"

    @patch("timehut.utils.retry.time.sleep")
    @patch("timehut.flickr.api.requests.post")
    def test_upload_not_resent_after_transport_error(
        self, mock_post, mock_sleep, flickr_settings, temp_dir
    ):
        path = temp_dir / "a.jpg"
        path.write_bytes(b"jpeg")
        mock_post.side_effect = requests.ConnectionError("reset")

        with pytest.raises(requests.ConnectionError):
            FlickrClient(flickr_settings).upload_file(path, mimetype="image/jpeg")

        assert mock_post.call_count == 1
        mock_sleep.assert_not_called()

    @patch("timehut.utils.retry.time.sleep")
    def test_album_add_retried_until_photo_visible(self, mock_sleep, flickr_settings):
        client = FlickrClient(flickr_settings)
        with patch.object(client, "call") as mock_call:
            mock_call.side_effect = [FlickrAPIError(1, "Photo not found"), {}]
            client.add_photo_to_album_with_retry("42", "72157")

        assert mock_call.call_count == 2
        mock_sleep.assert_called_once_with(1.5)

    @patch("timehut.utils.retry.time.sleep")
    def test_album_add_gives_up_after_three_attempts(self, mock_sleep, flickr_settings):
        client = FlickrClient(flickr_settings)
        with patch.object(client, "call") as mock_call:
            mock_call.side_effect = FlickrAPIError(1, "Photo not found")
            with pytest.raises(FlickrAPIError):
                client.add_photo_to_album_with_retry("42", "72157")

        assert mock_call.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.5, 1.5]


class TestBatchOperations:
    def test_partial_failure_reported_per_photo(self, flickr_settings):
        client = FlickrClient(flickr_settings)
        with patch.object(client, "call") as mock_call:
            mock_call.side_effect = [{}, FlickrAPIError(1, "Photo not found"), {}]
            results = client.delete_photos(["1", "2", "3"])

        assert [r["success"] for r in results] == [True, False, True]
        assert "Photo not found" in results[1]["error"]

    def test_already_in_album_counts_as_success(self, flickr_settings):
        client = FlickrClient(flickr_settings)
        with patch.object(client, "call") as mock_call:
            mock_call.side_effect = [FlickrAPIError(3, "Photo already in set"), {}]
            results = client.add_photos_to_album(["1", "2"], "72157")

        assert all(r["success"] for r in results)
        assert results[0]["message"] == "Already in album"

    def test_add_tags_to_photos(self, flickr_settings):
        client = FlickrClient(flickr_settings)
        with patch.object(client, "call") as mock_call:
            client.add_tags_to_photos(["1"], "beach")
        mock_call.assert_called_once_with(
            "flickr.photos.addTags", http_method="POST", photo_id="1", tags="beach"
        )

    def test_set_photo_date_uses_granularity(self, flickr_settings):
        client = FlickrClient(flickr_settings)
        with patch.object(client, "call") as mock_call:
            client.set_photo_date("1", "2023年06月")
        assert mock_call.call_args.kwargs["date_taken"] == "2023-06-01 12:00:00"
        assert mock_call.call_args.kwargs["date_taken_granularity"] == 4
