import pytest
import sqlite3
import os
import sys

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ["TESTING"] = "1"
os.environ.setdefault("MAKARON_LOG_FILE", "")

_test_conn = None
_test_wrapper = None

class NonClosingConnection:
    def __init__(self, conn):
        self._conn = conn

    def close(self):
        pass

    def __getattr__(self, name):
        return getattr(self._conn, name)

def get_test_connection():
    global _test_conn, _test_wrapper
    if _test_conn is None:
        _test_conn = sqlite3.connect(":memory:", check_same_thread=False, timeout=30)
        _test_conn.row_factory = sqlite3.Row
        _test_conn.execute("PRAGMA foreign_keys = ON")
        _test_wrapper = NonClosingConnection(_test_conn)
    return _test_wrapper

import db.connection
db.connection.get_db_connection = get_test_connection

from db.connection import init_db
init_db()

import db.series
db.series.get_db_connection = get_test_connection

import db.sources
db.sources.get_db_connection = get_test_connection

import db.progress
db.progress.get_db_connection = get_test_connection

import catalog.hydrator
catalog.hydrator.get_db_connection = get_test_connection

from config import CatalogSettings
from catalog.client import MangaDexClient
from dependencies import CatalogServices

API = "https://api.mangadex.test"
UPLOADS = "https://uploads.mangadex.test"


class FakeMangaDex:
    """In-memory stand-in for the MangaDex endpoints the catalog core calls."""

    def __init__(self):
        self.manga = {}
        self.feeds = {}
        self.chapters = {}
        self.groups = {}
        self.at_home = {}
        self.search = {}
        self.statistics = {}
        # path prefix -> statuses served before falling through; None lets one request pass
        self.failures = {}
        self.requests = []

    def add_manga(self, manga_id, title, cover_file=None):
        rels = []
        if cover_file:
            rels.append({"id": "cover-1", "type": "cover_art", "attributes": {"fileName": cover_file}})
        self.manga[manga_id.lower()] = {
            "id": manga_id.lower(),
            "type": "manga",
            "attributes": {"title": {"en": title}, "altTitles": []},
            "relationships": rels,
        }

    def add_chapter(self, manga_id, chapter_id, label, lang="en", group_id=None,
                    publish_at="2020-01-01T00:00:00+00:00", pages=20, title=""):
        rels = [{"id": manga_id, "type": "manga"}]
        if group_id:
            rels.append({"id": group_id, "type": "scanlation_group"})
        chapter = {
            "id": chapter_id,
            "type": "chapter",
            "attributes": {
                "chapter": label,
                "title": title,
                "pages": pages,
                "translatedLanguage": lang,
                "readableAt": publish_at,
                "publishAt": publish_at,
                "createdAt": publish_at,
            },
            "relationships": rels,
        }
        self.feeds.setdefault(manga_id.lower(), []).append(chapter)
        self.chapters[chapter_id] = chapter
        return chapter

    def fail(self, path_prefix, *statuses):
        self.failures.setdefault(path_prefix, []).extend(statuses)

    def calls(self, path_prefix):
        return [r for r in self.requests if r.url.path.startswith(path_prefix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        for prefix, statuses in self.failures.items():
            if path.startswith(prefix) and statuses:
                status = statuses.pop(0)
                if status is None:
                    break
                if status == "timeout":
                    raise httpx.ReadTimeout("timed out", request=request)
                headers = {"retry-after": "3"} if status == 429 else {}
                return httpx.Response(status, json={"result": "error"}, headers=headers)

        parts = path.strip("/").split("/")

        if parts[0] == "manga" and len(parts) == 1:
            title = params.get("title", "")
            ids = self.search.get(title, [])
            return httpx.Response(200, json={"data": [self.manga.get(i, {"id": i, "type": "manga"}) for i in ids]})

        if parts[0] == "manga" and len(parts) == 3 and parts[2] == "feed":
            feed = self.feeds.get(parts[1])
            if feed is None:
                return httpx.Response(404, json={"result": "error"})
            langs = params.get_list("translatedLanguage[]")
            rows = [c for c in feed if not langs or c["attributes"]["translatedLanguage"] in langs]
            offset = int(params.get("offset", "0"))
            limit = int(params.get("limit", "100"))
            return httpx.Response(200, json={"data": rows[offset:offset + limit], "total": len(rows)})

        if parts[0] == "manga" and len(parts) == 2:
            manga = self.manga.get(parts[1])
            if manga is None:
                return httpx.Response(404, json={"result": "error"})
            return httpx.Response(200, json={"data": manga})

        if parts[0] == "chapter" and len(parts) == 2:
            chapter = self.chapters.get(parts[1])
            if chapter is None:
                return httpx.Response(404, json={"result": "error"})
            return httpx.Response(200, json={"data": chapter})

        if parts[0] == "group" and len(parts) == 1:
            ids = params.get_list("ids[]")
            data = [{"id": i, "attributes": {"name": self.groups[i]}} for i in ids if i in self.groups]
            return httpx.Response(200, json={"data": data})

        if parts[0] == "group" and len(parts) == 2:
            if parts[1] not in self.groups:
                return httpx.Response(404, json={"result": "error"})
            return httpx.Response(200, json={"data": {"id": parts[1], "attributes": {"name": self.groups[parts[1]]}}})

        if parts[0] == "at-home":
            entry = self.at_home.get(parts[-1])
            if entry is None:
                return httpx.Response(404, json={"result": "error"})
            return httpx.Response(200, json=entry)

        if parts[0] == "statistics":
            ids = params.get_list("manga[]")
            return httpx.Response(200, json={"statistics": {i: self.statistics[i] for i in ids if i in self.statistics}})

        return httpx.Response(404, json={"result": "error"})


@pytest.fixture(scope="function")
def test_db():
    global _test_conn
    _test_conn.execute("DELETE FROM reading_progress")
    _test_conn.execute("DELETE FROM series_sources")
    _test_conn.execute("DELETE FROM series")
    _test_conn.commit()
    yield _test_conn

@pytest.fixture(scope="function")
def upstream():
    return FakeMangaDex()

@pytest.fixture(scope="function")
def settings():
    return CatalogSettings(api_url=API, uploads_url=UPLOADS, site_url="https://mangadex.test", backoff=0)

@pytest.fixture(scope="function")
def services(test_db, upstream, settings):
    client = MangaDexClient(settings, transport=httpx.MockTransport(upstream.handler))
    return CatalogServices(settings=settings, client=client)

@pytest.fixture(scope="function")
def test_client(services):
    from fastapi.testclient import TestClient
    from server import app

    previous = app.state.services
    app.state.services = services
    client = TestClient(app)
    yield client
    app.state.services = previous

def add_series(conn, slug, title=None, external_id=None):
    """Insert a local series (and optionally its MangaDex link) directly"""
    cursor = conn.execute(
        "INSERT INTO series (slug, title, cover_url) VALUES (?, ?, NULL)",
        (slug, title or slug.replace("-", " ").title())
    )
    series_id = cursor.lastrowid
    if external_id:
        source_id = conn.execute("SELECT id FROM sources WHERE key = 'mangadex'").fetchone()["id"]
        conn.execute(
            "INSERT INTO series_sources (series_id, source_id, external_id, external_url) VALUES (?, ?, ?, ?)",
            (series_id, source_id, external_id.lower(), None)
        )
    conn.commit()
    return series_id

@pytest.fixture(scope="function")
def make_series(test_db):
    def _make(slug, title=None, external_id=None):
        return add_series(test_db, slug, title=title, external_id=external_id)
    return _make
