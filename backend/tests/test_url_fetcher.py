"""URL 抓取与解析测试"""

import json

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from chromagui.exceptions import URLFetchError
from chromagui.services import url_fetcher
from chromagui.services.url_fetcher import URLFetcher, find_text_column, format_row_as_text
from helpers import make_response


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout, "stream": stream})
        if self.error is not None:
            raise self.error
        return self.response


class EndlessResponse:
    """无限输出 10 字节块的流式响应，记录已读取的块数"""

    status_code = 200
    reason = "OK"
    encoding = "utf-8"

    def __init__(self, headers=None):
        self.headers = CaseInsensitiveDict(headers or {})
        self.chunks_read = 0
        self.closed = False

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=1):
        while True:
            self.chunks_read += 1
            yield b"x" * 10

    def close(self):
        self.closed = True


def fetch_with(response, url="http://example.test/page", **kwargs):
    session = StubSession(response=response)
    result = URLFetcher(session=session).fetch(url, **kwargs)
    return result, session


class TestFetch:

    def test_plain_text_metadata(self):
        response = make_response(text="  hello  ", headers={"content-type": "text/plain"})
        result, session = fetch_with(response)

        assert result.type == "text"
        assert result.text == "hello"
        assert result.metadata["source_url"] == "http://example.test/page"
        assert result.metadata["content_type"] == "text/plain"
        assert result.metadata["doc_type"] == "text"
        assert "fetched_at" in result.metadata
        assert session.calls[0]["headers"]["User-Agent"] == "ChromaDBUI/1.0"
        assert session.calls[0]["timeout"] == 30

    @pytest.mark.parametrize("auth_type, header, value", [
        ("bearer", "Authorization", "Bearer tok"),
        ("api-key", "X-API-Key", "tok"),
        ("basic", "Authorization", "tok"),
    ])
    def test_auth_headers(self, auth_type, header, value):
        _, session = fetch_with(make_response(text="x"), auth_token="tok", auth_type=auth_type)
        assert session.calls[0]["headers"][header] == value

    def test_no_auth_header_without_token(self):
        _, session = fetch_with(make_response(text="x"), auth_type="bearer")
        assert "Authorization" not in session.calls[0]["headers"]

    def test_http_error(self):
        with pytest.raises(URLFetchError, match="HTTP 404: Not Found"):
            fetch_with(make_response(404, text="missing"))

    def test_timeout(self):
        fetcher = URLFetcher(session=StubSession(error=requests.exceptions.Timeout()))
        with pytest.raises(URLFetchError, match=r"timed out \(30s limit\)"):
            fetcher.fetch("http://example.test/slow")

    def test_connection_error(self):
        fetcher = URLFetcher(session=StubSession(error=requests.exceptions.ConnectionError("no route")))
        with pytest.raises(URLFetchError, match="no route"):
            fetcher.fetch("http://example.test")

    def test_body_is_streamed(self):
        _, session = fetch_with(make_response(text="x"))
        assert session.calls[0]["stream"] is True

    def test_content_too_large(self, monkeypatch):
        monkeypatch.setattr(url_fetcher, "MAX_CONTENT_LENGTH", 4)
        with pytest.raises(URLFetchError, match="exceeds"):
            fetch_with(make_response(text="too long"))

    def test_declared_length_over_cap_is_rejected_before_reading(self, monkeypatch):
        monkeypatch.setattr(url_fetcher, "MAX_CONTENT_LENGTH", 100)
        response = EndlessResponse(headers={"content-length": "101"})

        with pytest.raises(URLFetchError, match="exceeds 100 bytes"):
            URLFetcher(session=StubSession(response=response)).fetch("http://example.test/big")

        assert response.chunks_read == 0
        assert response.closed

    def test_streamed_body_stops_at_cap(self, monkeypatch):
        monkeypatch.setattr(url_fetcher, "MAX_CONTENT_LENGTH", 100)
        response = EndlessResponse()

        with pytest.raises(URLFetchError, match="exceeds 100 bytes"):
            URLFetcher(session=StubSession(response=response)).fetch("http://example.test/big")

        assert response.chunks_read == 11
        assert response.closed

    def test_body_decoded_with_response_encoding(self):
        response = make_response(headers={"content-type": "text/plain"})
        response._content = "café".encode("latin-1")
        response.encoding = "latin-1"
        result, _ = fetch_with(response)
        assert result.text == "café"


class TestParseContent:

    def setup_method(self):
        self.fetcher = URLFetcher(session=StubSession())

    def test_dispatch_by_url_suffix(self):
        assert self.fetcher.parse_content("# Title", "", "http://x/readme.md").type == "markdown"
        assert self.fetcher.parse_content('{"a": 1}', "", "http://x/data.json").type == "json"
        assert self.fetcher.parse_content("a,b\n1,2", "", "http://x/data.csv").type == "csv"
        assert self.fetcher.parse_content("plain", "", "http://x/file").type == "text"

    def test_content_type_wins_over_suffix(self):
        assert self.fetcher.parse_content('{"a": 1}', "application/json; charset=utf-8", "http://x/data.txt").type == "json"

    def test_json_is_pretty_printed(self):
        result = self.fetcher.parse_json('{"a":[1,2]}')
        assert result.text == json.dumps({"a": [1, 2]}, indent=2)
        assert result.metadata == {"doc_type": "json"}

    def test_invalid_json_falls_back_to_text(self):
        result = self.fetcher.parse_json("{not json")
        assert result.type == "text"
        assert result.text == "{not json"

    def test_markdown_is_kept_verbatim(self):
        result = self.fetcher.parse_markdown("\n# Title\n\nBody\n")
        assert result.text == "# Title\n\nBody"
        assert result.documents == [{"text": "# Title\n\nBody"}]


class TestParseCSV:

    def setup_method(self):
        self.fetcher = URLFetcher(session=StubSession())

    def test_rows_use_text_column(self):
        result = self.fetcher.parse_csv("id,content,lang\n1,First row,en\n\n2,Second row,de\n")

        assert result.type == "csv"
        assert [d["text"] for d in result.documents] == ["First row", "Second row"]
        assert result.documents[1]["metadata"] == {
            "id": "2",
            "content": "Second row",
            "lang": "de",
            "row_index": 2,
            "doc_type": "csv_row",
        }
        assert result.metadata == {"doc_type": "csv", "row_count": 2, "columns": ["id", "content", "lang"]}

    def test_rows_without_text_column_are_formatted(self):
        result = self.fetcher.parse_csv("name,age\nAda,36\n")
        assert result.documents[0]["text"] == "name: Ada | age: 36"

    def test_quoted_fields(self):
        result = self.fetcher.parse_csv('text,tag\n"Hello, world",greeting\n')
        assert result.documents[0]["text"] == "Hello, world"

    def test_ragged_rows_fall_back_to_text(self):
        result = self.fetcher.parse_csv("a,b\n1,2,3\n")
        assert result.type == "text"

    def test_empty_csv(self):
        result = self.fetcher.parse_csv("\n\n")
        assert result.documents == []
        assert result.metadata["row_count"] == 0


def test_find_text_column_prefers_exact_then_case_insensitive():
    assert find_text_column({"body": "x", "text": "y"}) == "text"
    assert find_text_column({"Content": "x"}) == "Content"
    assert find_text_column({"name": "x"}) is None


def test_format_row_as_text():
    assert format_row_as_text({"a": "1", "b": "2"}) == "a: 1 | b: 2"


class TestParseHTML:

    @pytest.fixture
    def partition(self, monkeypatch):
        html_module = pytest.importorskip("unstructured.partition.html")
        captured = {}

        def install(elements):
            def fake_partition_html(text=None, **kwargs):
                captured["text"] = text
                return elements
            monkeypatch.setattr(html_module, "partition_html", fake_partition_html)
            return captured

        return install

    def test_extracts_paragraphs_and_title(self, partition):
        elements = [
            _Element("Header", "Site navigation"),
            _Element("Title", "Welcome"),
            _Element("NarrativeText", "First   paragraph\nwrapped."),
            _Element("NarrativeText", "   "),
            _Element("Footer", "Copyright"),
        ]
        captured = partition(elements)
        raw = "<html><head><title>Page &amp; Title</title></head><body>...</body></html>"

        result = URLFetcher(session=StubSession()).parse_html(raw)

        assert captured["text"] == raw
        assert result.type == "html"
        assert result.text == "Welcome\n\nFirst paragraph wrapped."
        assert result.metadata == {"title": "Page & Title", "doc_type": "html_page"}

    def test_title_falls_back_to_first_title_element(self, partition):
        partition([_Element("NarrativeText", "Body"), _Element("Title", "Heading")])
        result = URLFetcher(session=StubSession()).parse_html("<p>Body</p>")
        assert result.metadata["title"] == "Heading"

    def test_untitled(self, partition):
        partition([_Element("NarrativeText", "Body")])
        result = URLFetcher(session=StubSession()).parse_html("<p>Body</p>")
        assert result.metadata["title"] == "Untitled"


class _Element:
    def __init__(self, category, text):
        self.category = category
        self.text = text

    def __str__(self):
        return self.text
