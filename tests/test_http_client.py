import pytest
import requests
from requests.adapters import BaseAdapter
from requests.utils import get_encoding_from_headers

from modules.job_search.lib.http_client import DEFAULT_USER_AGENT, HttpClient


class CannedAdapter(BaseAdapter):
    """Serves one canned response per call and records the prepared requests."""

    def __init__(self, status=200, body=b"", content_type="application/json"):
        super().__init__()
        self.status = status
        self.body = body
        self.content_type = content_type
        self.requests = []

    def send(self, request, **kwargs):
        self.requests.append(request)
        resp = requests.Response()
        resp.status_code = self.status
        resp._content = self.body
        if self.content_type:
            resp.headers["Content-Type"] = self.content_type
        resp.encoding = get_encoding_from_headers(resp.headers)
        resp.url = request.url
        resp.request = request
        resp.reason = "Not Found" if self.status == 404 else "OK"
        return resp

    def close(self):
        pass


def _client(adapter):
    client = HttpClient(timeout=2)
    client.session.mount("https://", adapter)
    return client


def test_get_json_parses_body_regardless_of_content_type():
    adapter = CannedAdapter(body=b'{"jobs": [1, 2]}', content_type="text/plain; charset=utf-8")
    client = _client(adapter)
    assert client.get_json("https://api.example.com/jobs", params={"q": "dev"}) == {"jobs": [1, 2]}
    sent = adapter.requests[0]
    assert sent.headers["Accept"] == "application/json"
    assert sent.headers["User-Agent"] == DEFAULT_USER_AGENT
    assert sent.url == "https://api.example.com/jobs?q=dev"


def test_get_json_caller_headers_are_merged():
    adapter = CannedAdapter(body=b"[]")
    _client(adapter).get_json("https://api.example.com/jobs", headers={"X-RapidAPI-Key": "k"})
    sent = adapter.requests[0]
    assert sent.headers["X-RapidAPI-Key"] == "k"
    assert sent.headers["Accept"] == "application/json"


def test_get_json_rejects_html_with_the_url_in_the_message():
    adapter = CannedAdapter(body=b"<html>rate limited</html>", content_type="text/html; charset=utf-8")
    with pytest.raises(ValueError) as exc:
        _client(adapter).get_json("https://api.example.com/jobs")
    assert "https://api.example.com/jobs" in str(exc.value)
    assert "rate limited" in str(exc.value)


def test_error_status_raises_http_error():
    adapter = CannedAdapter(status=404, body=b"{}")
    with pytest.raises(requests.HTTPError):
        _client(adapter).get_json("https://api.example.com/jobs/1")
    with pytest.raises(requests.HTTPError):
        _client(adapter).get_text("https://api.example.com/jobs/1")


def test_get_text_returns_decoded_body():
    body = "<ul><li>Comptable à Rabat</li></ul>".encode("utf-8")
    adapter = CannedAdapter(body=body, content_type="text/html; charset=utf-8")
    assert _client(adapter).get_text("https://www.emploi.ma/recherche") == "<ul><li>Comptable à Rabat</li></ul>"


def test_close_closes_mounted_adapters():
    adapter = CannedAdapter()
    closed = []
    adapter.close = lambda: closed.append(True)
    _client(adapter).close()
    assert closed == [True]
