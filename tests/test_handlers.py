from __future__ import annotations

import json
import threading
from types import MappingProxyType
from typing import Any

import pytest

from pyasi.application import Application
from pyasi.errors import InvalidResponseError
from pyasi.handlers import Dispatcher, unpack_result
from pyasi.http import HttpRequest

CONFIG = MappingProxyType({"server_name": "asi-host", "bind_address": "0.0.0.0", "port": "7077"})


class HelloApplication(Application):
    def __init__(self) -> None:
        self.environments: list[Any] = []

    def call(self, environment):
        self.environments.append(environment)
        return 200, "Hello, ASI!!", {"Content-Type": "text/plain"}


class FlakyBuffer:
    """Buffer factory that fails the first ``failures`` allocations."""

    def __init__(self, failures: int = 1) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self) -> bytearray:
        self.calls += 1
        if self.calls <= self.failures:
            raise MemoryError("buffer allocation failed")
        return bytearray()


def make_request(method: str = "GET", target: str = "/", query: str | None = "") -> HttpRequest:
    path = target.split("?", 1)[0]
    return HttpRequest(method=method, target=target, path=path, query=query, client=("127.0.0.1", 50000))


def decode_error(body: bytes) -> str:
    return json.loads(body.decode())["error"]


def test_response_triple_is_passed_through_verbatim() -> None:
    dispatcher = Dispatcher(HelloApplication(), CONFIG)

    response = dispatcher.dispatch(make_request())

    assert response.status == 200
    assert response.body == b"Hello, ASI!!"
    assert response.headers["Content-Type"] == "text/plain"
    assert response.headers["Content-Length"] == str(len(b"Hello, ASI!!"))


def test_application_receives_read_only_environment() -> None:
    app = HelloApplication()
    dispatcher = Dispatcher(app, CONFIG)

    dispatcher.dispatch(make_request("POST", "/items?id=3", query="id=3"))

    env = app.environments[0]
    assert env["REQUEST_METHOD"] == "POST"
    assert env["PATH_INFO"] == "/items"
    assert env["QUERY_STRING"] == "id=3"
    assert env["SERVER_NAME"] == "asi-host"
    assert env["SERVER_PORT"] == "7077"
    with pytest.raises(TypeError):
        env["PATH_INFO"] = "/other"


def test_plain_function_is_accepted_as_application() -> None:
    def app(environment):
        return 201, environment["PATH_INFO"], {"X-Handled-By": "function"}

    response = Dispatcher(app, CONFIG).dispatch(make_request(target="/created"))

    assert response.status == 201
    assert response.body == b"/created"
    assert response.headers["X-Handled-By"] == "function"


def test_status_and_headers_are_honoured() -> None:
    def app(environment):
        return 404, "", {"Content-Type": "application/json", "X-Request-Path": environment["PATH_INFO"]}

    response = Dispatcher(app, CONFIG).dispatch(make_request(target="/missing"))

    assert response.status == 404
    assert response.body == b""
    assert response.headers == {
        "Content-Type": "application/json",
        "X-Request-Path": "/missing",
        "Content-Length": "0",
    }


def test_application_content_length_is_kept() -> None:
    def app(environment):
        return 200, "abc", {"content-length": "3"}

    response = Dispatcher(app, CONFIG).dispatch(make_request())

    assert response.headers == {"content-length": "3"}


def test_bytes_body_is_sent_unchanged() -> None:
    def app(environment):
        return 200, b"\x00\xffraw", {}

    response = Dispatcher(app, CONFIG).dispatch(make_request())

    assert response.body == b"\x00\xffraw"


def test_text_body_is_utf8_encoded() -> None:
    def app(environment):
        return 200, "olá", {}

    assert Dispatcher(app, CONFIG).dispatch(make_request()).body == "olá".encode("utf-8")


def test_buffer_failure_only_affects_one_request() -> None:
    buffers = FlakyBuffer(failures=1)
    dispatcher = Dispatcher(HelloApplication(), CONFIG, buffer_factory=buffers)

    failed = dispatcher.dispatch(make_request())
    succeeded = dispatcher.dispatch(make_request())

    assert failed.status == 500
    assert decode_error(failed.body) == "Internal Server Error"
    assert succeeded.status == 200
    assert succeeded.body == b"Hello, ASI!!"


def test_application_exception_becomes_500(caplog: pytest.LogCaptureFixture) -> None:
    def app(environment):
        raise RuntimeError("boom")

    with caplog.at_level("ERROR", logger="pyasi.handlers"):
        response = Dispatcher(app, CONFIG).dispatch(make_request())

    assert response.status == 500
    assert response.headers["Content-Type"] == "application/json"
    assert decode_error(response.body) == "Internal Server Error"
    assert "application failed" in caplog.text


@pytest.mark.parametrize(
    "result",
    [
        None,
        (200, "body"),
        ("200", "body", {}),
        (True, "body", {}),
        (0, "body", {}),
        (200, 42, {}),
        (200, "body", [("Content-Type", "text/plain")]),
        (200, "body", {"X-Count": 1}),
    ],
)
def test_invalid_result_becomes_500(result: Any) -> None:
    def app(environment):
        return result

    response = Dispatcher(app, CONFIG).dispatch(make_request())

    assert response.status == 500


def test_unpack_result_rejects_missing_status() -> None:
    with pytest.raises(InvalidResponseError):
        unpack_result((None, "body", {}))


def test_non_application_is_rejected() -> None:
    with pytest.raises(TypeError):
        Dispatcher(object(), CONFIG)


def test_requests_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("INFO", logger="pyasi.handlers"):
        Dispatcher(HelloApplication(), CONFIG).dispatch(make_request(target="/logged"))

    entry = json.loads(caplog.records[-1].getMessage())
    assert entry["method"] == "GET"
    assert entry["path"] == "/logged"
    assert entry["status"] == 200
    assert entry["remote"] == "127.0.0.1"


def test_dispatch_is_safe_to_call_concurrently() -> None:
    def app(environment):
        return 200, environment["PATH_INFO"], {}

    dispatcher = Dispatcher(app, CONFIG)
    results: dict[int, bytes] = {}

    def worker(index: int) -> None:
        results[index] = dispatcher.dispatch(make_request(target=f"/worker/{index}")).body

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == {i: f"/worker/{i}".encode() for i in range(16)}


@pytest.mark.parametrize(
    "headers",
    [
        {"X-Price": "10 €"},
        {"X-Näme-€": "value"},
        {"X-A": "v\r\nSet-Cookie: evil=1"},
        {"X-A": "v\nX-B: injected"},
        {"X-A\r\nSet-Cookie": "evil=1"},
        {"X-A: b": "value"},
        {"": "value"},
    ],
)
def test_headers_that_cannot_be_sent_become_500(headers: dict[str, str]) -> None:
    def app(environment):
        return 200, "ok", headers

    response = Dispatcher(app, CONFIG).dispatch(make_request())

    assert response.status == 500
    assert decode_error(response.body) == "Internal Server Error"
    assert "Set-Cookie" not in response.headers


def test_latin1_header_values_are_accepted() -> None:
    def app(environment):
        return 200, "ok", {"X-City": "Zürich"}

    response = Dispatcher(app, CONFIG).dispatch(make_request())

    assert response.status == 200
    assert response.headers["X-City"] == "Zürich"
