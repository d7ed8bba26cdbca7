"""Shared fixtures: on-disk books and a fake HTTP session."""

import os
import zipfile

import pytest
import requests


def write_file(root, rel, content):
    path = os.path.join(str(root), *rel.split("/"))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    mode = "wb" if isinstance(content, bytes) else "w"
    kwargs = {} if isinstance(content, bytes) else {"encoding": "utf-8"}
    with open(path, mode, **kwargs) as f:
        f.write(content)
    return path


def read_archive(path):
    """All entries of a zip archive as {name: bytes}."""
    with zipfile.ZipFile(path) as z:
        return {name: z.read(name) for name in z.namelist()}


class FakeResponse:
    def __init__(self, content=b"", status_code=200, headers=None):
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class FakeSession:
    """
    Maps URL → FakeResponse or exception instance. Unknown URLs raise
    ConnectionError, like an unreachable host.
    """

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        result = self.routes.get(url)
        if result is None:
            raise requests.ConnectionError(f"Failed to resolve host for {url}")
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


@pytest.fixture
def make_file(tmp_path):
    def _make(rel, content=""):
        return write_file(tmp_path, rel, content)
    return _make


@pytest.fixture
def offline(monkeypatch):
    """Every requests.Session created during the test is a FakeSession."""
    session = FakeSession()
    monkeypatch.setattr(requests, "Session", lambda: session)
    return session
