import pytest
import requests


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = "" if payload is None else str(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Answers requests from a url -> response table and records every call.

    A table value may be a FakeResponse, an exception to raise, or a callable
    taking the request params and returning either.
    """

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def _answer(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if url not in self.routes:
            return FakeResponse({"data": []}, status_code=404)
        answer = self.routes[url]
        if callable(answer) and not isinstance(answer, type):
            answer = answer(kwargs.get("params") or kwargs.get("data"))
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get(self, url, **kwargs):
        return self._answer("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._answer("POST", url, **kwargs)


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def ok():
    return FakeResponse
