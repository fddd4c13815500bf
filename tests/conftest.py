"""Fixtures — temporary page store, page factory, stub chat model."""

from datetime import datetime, timezone

import pytest

from sitedigest.storage.models import Page
from sitedigest.storage.pages import PageStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "pages.db"


@pytest.fixture
def page_store(db_path):
    """PageStore on a fresh database file."""
    store = PageStore(db_path)
    yield store
    store.close()


@pytest.fixture
def make_page():
    def _make(url="https://example.com/a", **overrides):
        fields = dict(
            url=url,
            added_at=BASE_TIME,
            lastmod=BASE_TIME,
            html="<html><body><p>hello</p></body></html>",
        )
        fields.update(overrides)
        return Page(**fields)

    return _make


class StubChatModel:
    """ChatModel returning canned replies and recording every call."""

    def __init__(self, reply="Summary", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def chat(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        if callable(self.reply):
            return self.reply(messages)
        return self.reply


@pytest.fixture
def chat_model():
    return StubChatModel()


@pytest.fixture
def make_chat_model():
    return StubChatModel
