"""Unit tests for the Dropbox API client."""

import io
import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import httpx
import pytest

from pydbx.api import DropboxClient
from pydbx.chunked import UploadSession
from pydbx.exceptions import (
    DbxAPIError,
    DbxAuthenticationError,
    DbxConfigError,
    DbxFileNotFoundError,
    DbxInvalidResponseError,
    DbxNetworkError,
    DbxNotFoundError,
    DbxRateLimitError,
    DbxRetryExhaustedError,
    DbxValidationError,
)

METADATA = {
    "size": "225.4KB",
    "rev": "35e97029684fe",
    "thumb_exists": False,
    "bytes": 230783,
    "modified": "Tue, 19 Jul 2011 21:55:38 +0000",
    "client_mtime": "Mon, 18 Jul 2011 18:04:35 +0000",
    "path": "/Getting_Started.pdf",
    "is_dir": False,
    "icon": "page_white_acrobat",
    "root": "dropbox",
    "mime_type": "application/pdf",
    "revision": 220823,
}


def json_response(data, status_code=200, headers=None):
    return httpx.Response(status_code, json=data, headers=headers)


def sent_request(mock_send, index=-1) -> httpx.Request:
    return mock_send.call_args_list[index].args[0]


@pytest.fixture
def client():
    return DropboxClient(access_token="test_token", root="auto", locale="en")


class TestDropboxClient:
    """Tests for DropboxClient initialization."""

    def test_init_with_access_token(self):
        client = DropboxClient(access_token="test_token", root="sandbox", locale="CN")
        assert client.root == "sandbox"
        assert client.locale == "CN"
        assert client.signer.access_token == "test_token"

    def test_init_without_token_raises_error(self):
        with patch("pydbx.api.config") as mock_config:
            mock_config.access_token = None
            mock_config.root = "auto"
            mock_config.locale = "en"
            with pytest.raises(DbxConfigError, match="Access token not configured"):
                DropboxClient()

    def test_init_uses_config_defaults(self):
        with patch("pydbx.api.config") as mock_config:
            mock_config.access_token = "from_config"
            mock_config.root = "dropbox"
            mock_config.locale = "de"
            client = DropboxClient()
        assert client.signer.access_token == "from_config"
        assert client.root == "dropbox"
        assert client.locale == "de"

    def test_init_with_invalid_root(self):
        with pytest.raises(DbxValidationError, match="root must be"):
            DropboxClient(access_token="t", root="home")

    def test_custom_signer(self):
        signer = Mock()
        client = DropboxClient(signer=signer, root="auto")
        assert client.signer is signer

    def test_context_manager_closes_client(self):
        with DropboxClient(access_token="t", root="auto") as client:
            http_client = client._get_client()
        assert http_client.is_closed
        assert client._client is None

    def test_threads_share_one_http_client(self):
        client = DropboxClient(access_token="t", root="auto")
        with ThreadPoolExecutor(max_workers=8) as pool:
            clients = list(pool.map(lambda _: client._get_client(), range(32)))
        assert all(c is clients[0] for c in clients)
        client.close()


@patch("pydbx.api.httpx.Client.send")
class TestSignedRequests:
    """Tests for signing, sending and error mapping."""

    def test_request_is_signed(self, mock_send, client):
        mock_send.return_value = json_response({"uid": 1, "display_name": "A"})

        client.get_account_info()

        request = sent_request(mock_send)
        assert request.headers["Authorization"] == "Bearer test_token"

    def test_custom_signer_is_used(self, mock_send):
        def sign(request):
            request.headers["Authorization"] = "Custom xyz"

        signer = Mock()
        signer.sign.side_effect = sign
        mock_send.return_value = json_response({})
        client = DropboxClient(signer=signer, root="auto")

        client.get_account_info()

        signer.sign.assert_called_once()
        assert sent_request(mock_send).headers["Authorization"] == "Custom xyz"

    def test_empty_response(self, mock_send, client):
        mock_send.return_value = httpx.Response(200, content=b"")
        assert client._request("GET", "https://api.dropbox.com/1/x") == {}

    def test_invalid_json_response(self, mock_send, client):
        mock_send.return_value = httpx.Response(200, content=b"{invalid json}")
        with pytest.raises(DbxInvalidResponseError, match="Invalid JSON"):
            client._request("GET", "https://api.dropbox.com/1/x")

    def test_error_message_passed_through(self, mock_send, client):
        mock_send.return_value = json_response(
            {"error": "Path '/x' not found"}, status_code=400
        )
        with pytest.raises(DbxAPIError) as exc_info:
            client.get_file_metadata("/x")
        assert exc_info.value.status_code == 400
        assert "Path '/x' not found" in str(exc_info.value)

    def test_error_without_json_body(self, mock_send, client):
        mock_send.return_value = httpx.Response(500, content=b"<html>oops</html>")
        with pytest.raises(DbxAPIError, match="status 500$"):
            client.get_account_info()

    def test_http_401_error(self, mock_send, client):
        mock_send.return_value = json_response({"error": "bad token"}, 401)
        with pytest.raises(DbxAuthenticationError):
            client.get_account_info()

    def test_http_404_error(self, mock_send, client):
        mock_send.return_value = json_response({"error": "not found"}, 404)
        with pytest.raises(DbxNotFoundError):
            client.get_file_metadata("/missing")

    def test_rate_limit_with_retry_after(self, mock_send, client):
        mock_send.return_value = json_response(
            {"error": "slow down"}, 503, headers={"Retry-After": "7"}
        )
        with pytest.raises(DbxRateLimitError) as exc_info:
            client.get_account_info()
        assert exc_info.value.retry_after == 7.0

    def test_network_error(self, mock_send, client):
        mock_send.side_effect = httpx.ConnectError("Connection failed")
        with pytest.raises(DbxNetworkError, match="Network error"):
            client.get_account_info()

    def test_no_automatic_retry(self, mock_send, client):
        """Test that a failed request is attempted exactly once."""
        mock_send.side_effect = httpx.ConnectError("Connection failed")
        with pytest.raises(DbxNetworkError):
            client.get_account_info()
        assert mock_send.call_count == 1


@patch("pydbx.api.httpx.Client.send")
class TestEndpoints:
    """Tests for URL and query parameter construction."""

    def test_get_account_info(self, mock_send, client):
        mock_send.return_value = json_response(
            {
                "referral_link": "https://www.dropbox.com/referrals/r1a2n3d4m5s6t7",
                "display_name": "John P. User",
                "uid": 12345678,
                "country": "US",
                "email": "john@example.com",
                "quota_info": {"shared": 253738410565, "quota": 107374182400000, "normal": 680031877871},
            }
        )

        info = client.get_account_info()

        request = sent_request(mock_send)
        assert request.method == "GET"
        assert request.url.host == "api.dropbox.com"
        assert request.url.path == "/1/account/info"
        assert request.url.params["locale"] == "en"
        assert info.uid == 12345678
        assert info.quota_info.quota == 107374182400000

    def test_get_file_metadata(self, mock_send, client):
        listing = dict(METADATA, path="/Photos", is_dir=True, hash="abc")
        listing["contents"] = [METADATA]
        mock_send.return_value = json_response(listing)

        metadata = client.get_file_metadata("/Photos")

        request = sent_request(mock_send)
        assert "/1/metadata/auto/%2FPhotos" in str(request.url)
        params = request.url.params
        assert params["file_limit"] == "10000"
        assert params["list"] == "true"
        assert params["include_deleted"] == "false"
        assert params["hash"] == ""
        assert params["locale"] == "en"
        assert metadata.is_dir
        assert metadata.hash == "abc"
        assert metadata.contents[0].path == "/Getting_Started.pdf"

    def test_metadata_with_explicit_root(self, mock_send, client):
        mock_send.return_value = json_response(METADATA)
        client.get_file_metadata("/a", root="sandbox")
        assert "/1/metadata/sandbox/" in str(sent_request(mock_send).url)

    @pytest.mark.parametrize("root, path", [("auto", ""), ("home", "/a")])
    def test_invalid_root_or_path(self, mock_send, client, root, path):
        with pytest.raises(DbxValidationError) as exc_info:
            client.get_file_metadata(path, root=root)
        assert exc_info.value.status_code == -1
        mock_send.assert_not_called()

    def test_get_file(self, mock_send, client):
        mock_send.return_value = httpx.Response(
            200,
            content=b"%PDF-1.4",
            headers={"x-dropbox-metadata": json.dumps(METADATA)},
        )

        entry = client.get_file("/Getting_Started.pdf", rev="35e97029684fe")

        request = sent_request(mock_send)
        assert request.url.host == "api-content.dropbox.com"
        assert request.url.params["rev"] == "35e97029684fe"
        assert entry.data == b"%PDF-1.4"
        assert entry.metadata.bytes == 230783

    def test_download_file(self, mock_send, client, tmp_path):
        mock_send.return_value = httpx.Response(
            200,
            content=b"hello",
            headers={"x-dropbox-metadata": json.dumps(METADATA)},
        )
        output = tmp_path / "out.pdf"

        metadata = client.download_file("/Getting_Started.pdf", output)

        assert output.read_bytes() == b"hello"
        assert metadata.rev == "35e97029684fe"

    def test_thumbnails(self, mock_send, client):
        mock_send.return_value = httpx.Response(200, content=b"\xff\xd8")

        entry = client.thumbnails("/a.jpg", format="png", size="m")

        params = sent_request(mock_send).url.params
        assert params["format"] == "png"
        assert params["size"] == "m"
        assert entry.data == b"\xff\xd8"

    def test_put_file(self, mock_send, client):
        mock_send.return_value = json_response(METADATA)

        client.put_file(b"data", "/a.txt", parent_rev="r1", overwrite=False)

        request = sent_request(mock_send)
        assert request.method == "PUT"
        assert "/1/files_put/auto/%2Fa.txt" in str(request.url)
        assert request.url.params["overwrite"] == "false"
        assert request.url.params["parent_rev"] == "r1"
        assert request.content == b"data"

    def test_put_file_by_name_missing_file(self, mock_send, client, tmp_path):
        with pytest.raises(DbxFileNotFoundError):
            client.put_file_by_name(tmp_path / "missing.txt", "/a.txt")

    def test_delta(self, mock_send, client):
        mock_send.return_value = json_response(
            {
                "entries": [
                    ["/getting_started.pdf", METADATA],
                    ["/deleted.txt", None],
                ],
                "reset": True,
                "cursor": "nTZYLOcTQnyB7-Wc72M-kEAcBQdk2EjLaJIRupQWgDXmRwKWzuG5V4se2mvU7yzXn4cZSJltoW4tpbqgy0E",
                "has_more": False,
            }
        )

        result = client.delta("prev-cursor")

        request = sent_request(mock_send)
        assert request.method == "POST"
        assert request.url.params["cursor"] == "prev-cursor"
        assert result.reset
        assert len(result.entries) == 2
        assert result.entries[0].metadata.rev == "35e97029684fe"
        assert result.entries[1].is_deleted

    def test_revisions(self, mock_send, client):
        mock_send.return_value = json_response([METADATA, METADATA])

        revs = client.revisions("/a.txt", rev_limit=2)

        assert sent_request(mock_send).url.params["rev_limit"] == "2"
        assert len(revs) == 2

    def test_restore(self, mock_send, client):
        mock_send.return_value = json_response(METADATA)

        client.restore("/a.txt", "r9")

        request = sent_request(mock_send)
        assert "/1/restore/auto/" in str(request.url)
        assert request.url.params["rev"] == "r9"

    def test_search(self, mock_send, client):
        mock_send.return_value = json_response([METADATA])

        results = client.search("/", "getting", include_deleted=True)

        params = sent_request(mock_send).url.params
        assert params["query"] == "getting"
        assert params["file_limit"] == "1000"
        assert params["include_deleted"] == "true"
        assert results[0].mime_type == "application/pdf"

    def test_shares(self, mock_send, client):
        mock_send.return_value = json_response(
            {"url": "https://db.tt/APqhX1", "expires": "Tue, 01 Jan 2030 00:00:00 +0000"}
        )

        result = client.shares("/a.txt", short_url=False)

        assert sent_request(mock_send).url.params["short_url"] == "false"
        assert result["url"] == "https://db.tt/APqhX1"

    def test_media_and_copy_ref(self, mock_send, client):
        mock_send.return_value = json_response({"copy_ref": "z1X6ATl6aWtzOGq0c3g5Ng"})

        assert client.copy_ref("/a.txt")["copy_ref"] == "z1X6ATl6aWtzOGq0c3g5Ng"
        assert sent_request(mock_send).method == "GET"

        client.media("/a.txt")
        assert "/1/media/auto/" in str(sent_request(mock_send).url)

    def test_copy(self, mock_send, client):
        mock_send.return_value = json_response(METADATA)

        client.copy("/a.txt", "/b.txt")

        request = sent_request(mock_send)
        assert request.url.path == "/1/fileops/copy"
        assert request.url.params["root"] == "auto"
        assert request.url.params["from_path"] == "/a.txt"
        assert request.url.params["to_path"] == "/b.txt"

    def test_copy_requires_a_source(self, mock_send, client):
        with pytest.raises(DbxValidationError, match="from_copy_ref"):
            client.copy("", "/b.txt")
        with pytest.raises(DbxValidationError, match="to_path"):
            client.copy("/a.txt", "")
        mock_send.assert_not_called()

    def test_copy_from_ref(self, mock_send, client):
        mock_send.return_value = json_response(METADATA)
        client.copy("", "/b.txt", from_copy_ref="ref")
        assert sent_request(mock_send).url.params["from_copy_ref"] == "ref"

    def test_create_folder_delete_move(self, mock_send, client):
        mock_send.return_value = json_response(dict(METADATA, is_dir=True))

        client.create_folder("/new")
        assert sent_request(mock_send).url.path == "/1/fileops/create_folder"

        client.delete("/new")
        assert sent_request(mock_send).url.path == "/1/fileops/delete"

        client.move("/a", "/b")
        request = sent_request(mock_send)
        assert request.url.path == "/1/fileops/move"
        assert request.url.params["to_path"] == "/b"

    def test_move_requires_both_paths(self, mock_send, client):
        with pytest.raises(DbxValidationError):
            client.move("/a", "")
        mock_send.assert_not_called()


@patch("pydbx.api.httpx.Client.send")
class TestChunkedUploadEndpoints:
    """Tests for the chunked upload and commit endpoints."""

    def test_first_chunk_omits_upload_id(self, mock_send, client):
        mock_send.return_value = json_response(
            {"upload_id": "abc", "offset": 3, "expires": "soon"}
        )

        session = client.chunked_upload(b"123")

        request = sent_request(mock_send)
        assert request.method == "PUT"
        assert request.url.path == "/1/chunked_upload"
        assert "upload_id" not in request.url.params
        assert request.url.params["offset"] == "0"
        assert request.content == b"123"
        assert session == UploadSession("abc", 3, "soon")

    def test_later_chunk_sends_upload_id(self, mock_send, client):
        mock_send.return_value = json_response({"upload_id": "abc", "offset": 6})

        client.chunked_upload(b"456", upload_id="abc", offset=3)

        params = sent_request(mock_send).url.params
        assert params["upload_id"] == "abc"
        assert params["offset"] == "3"

    def test_commit(self, mock_send, client):
        mock_send.return_value = json_response(METADATA)

        metadata = client.commit_chunked_upload(
            "/big.bin", "abc", parent_rev="r1", overwrite=False
        )

        request = sent_request(mock_send)
        assert request.method == "POST"
        assert "/1/commit_chunked_upload/auto/%2Fbig.bin" in str(request.url)
        params = request.url.params
        assert params["upload_id"] == "abc"
        assert params["overwrite"] == "false"
        assert params["parent_rev"] == "r1"
        assert params["locale"] == "en"
        assert metadata.rev == "35e97029684fe"

    def test_upload_reader_by_chunked(self, mock_send, client):
        mock_send.side_effect = [
            json_response({"upload_id": "abc", "offset": 4}),
            json_response({"upload_id": "abc", "offset": 6}),
            json_response(METADATA),
        ]
        source = io.BytesIO(b"abcdef")

        metadata = client.upload_reader_by_chunked(
            source, "/a.bin", chunk_size=4, retry_count=2
        )

        contents = [sent_request(mock_send, i).content for i in range(2)]
        assert contents == [b"abcd", b"ef"]
        assert sent_request(mock_send).url.params["upload_id"] == "abc"
        assert metadata.path == "/Getting_Started.pdf"
        assert source.closed

    def test_upload_retries_transport_errors(self, mock_send, client):
        mock_send.side_effect = [
            httpx.ReadTimeout("timed out"),
            json_response({"upload_id": "abc", "offset": 2}),
            json_response(METADATA),
        ]

        client.upload_reader_by_chunked(
            io.BytesIO(b"ab"), "/a.bin", chunk_size=4, retry_count=2
        )

        assert mock_send.call_count == 3

    def test_upload_gives_up_after_retry_count(self, mock_send, client):
        mock_send.return_value = json_response({"error": "server busy"}, 500)

        with pytest.raises(DbxRetryExhaustedError, match="server busy"):
            client.upload_reader_by_chunked(
                io.BytesIO(b"ab"), "/a.bin", chunk_size=4, retry_count=3
            )

        assert mock_send.call_count == 3

    def test_upload_by_chunked(self, mock_send, client, tmp_path):
        local = tmp_path / "data.bin"
        local.write_bytes(b"x" * 5)
        mock_send.side_effect = [
            json_response({"upload_id": "abc", "offset": 5}),
            json_response(METADATA),
        ]
        progress = Mock()

        client.upload_by_chunked(
            local, "/data.bin", chunk_size=8, progress_callback=progress
        )

        progress.assert_called_once_with(5, 5)

    @pytest.mark.parametrize("options", [{"chunk_size": 0}, {"retry_count": 0}])
    def test_upload_reader_closes_source_on_bad_options(
        self, mock_send, client, options
    ):
        source = io.BytesIO(b"abc")

        with pytest.raises(ValueError):
            client.upload_reader_by_chunked(source, "/a.bin", **options)

        assert source.closed
        mock_send.assert_not_called()

    def test_upload_reader_rejects_bad_path_before_sending(self, mock_send, client):
        source = io.BytesIO(b"x" * 40)

        with pytest.raises(DbxValidationError):
            client.upload_reader_by_chunked(source, "", chunk_size=4)

        assert source.closed
        mock_send.assert_not_called()

    def test_upload_by_chunked_stat_failure_opens_nothing(
        self, mock_send, client, tmp_path
    ):
        local = tmp_path / "data.bin"
        local.write_bytes(b"x" * 5)

        path_type = type(local)
        with patch("pydbx.api.open", create=True) as mock_open, patch.object(
            path_type, "is_file", return_value=True
        ), patch.object(path_type, "stat", side_effect=FileNotFoundError("gone")):
            with pytest.raises(FileNotFoundError):
                client.upload_by_chunked(local, "/data.bin")

        mock_open.assert_not_called()
        mock_send.assert_not_called()

    def test_upload_by_chunked_missing_file(self, mock_send, client, tmp_path):
        with pytest.raises(DbxFileNotFoundError):
            client.upload_by_chunked(tmp_path / "nope.bin", "/nope.bin")
        mock_send.assert_not_called()
