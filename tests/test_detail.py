"""Tests for chapter detail resolution and page URL construction."""

import pytest

from catalog.errors import (
    BadSlug,
    ChapterNotFound,
    InvalidInput,
    SeriesNotFound,
    UpstreamRateLimited,
)

MANGA = "6b1eb93e-473a-4ab3-9922-1a66d2a29a4a"
GROUP_A = "aaaaaaaa-0000-4000-8000-000000000001"
GROUP_B = "bbbbbbbb-0000-4000-8000-000000000002"
CH_EARLY = "c0ffee00-0000-4000-8000-000000000001"
CH_LATE = "c0ffee00-0000-4000-8000-000000000002"
BASE = "https://uploads.node.test"


def serve_pages(upstream, chapter_id, data=("1.png", "2.png"), saver=("1.jpg", "2.jpg")):
    upstream.at_home[chapter_id] = {
        "result": "ok",
        "baseUrl": BASE,
        "chapter": {"hash": "h4sh", "data": list(data), "dataSaver": list(saver)},
    }


class TestChapterPages:
    """Page URLs by chapter id."""

    @pytest.mark.asyncio
    async def test_full_quality_pages(self, services, upstream):
        serve_pages(upstream, CH_EARLY)

        detail = await services.detail.resolve_detail(chapter_id=CH_EARLY)

        assert detail.pages == [f"{BASE}/data/h4sh/1.png", f"{BASE}/data/h4sh/2.png"]
        assert detail.resolved_chapter_id is None

    @pytest.mark.asyncio
    async def test_data_saver_pages(self, services, upstream):
        serve_pages(upstream, CH_EARLY)

        detail = await services.detail.resolve_detail(chapter_id=CH_EARLY, save_data=True)
        assert detail.pages == [f"{BASE}/data-saver/h4sh/1.jpg", f"{BASE}/data-saver/h4sh/2.jpg"]

    @pytest.mark.asyncio
    async def test_saver_falls_back_to_full_quality(self, services, upstream):
        serve_pages(upstream, CH_EARLY, saver=())

        detail = await services.detail.resolve_detail(chapter_id=CH_EARLY, save_data=True)
        assert detail.pages[0] == f"{BASE}/data/h4sh/1.png"

    @pytest.mark.asyncio
    async def test_unknown_chapter(self, services):
        with pytest.raises(ChapterNotFound):
            await services.detail.resolve_detail(chapter_id=CH_EARLY)

    @pytest.mark.asyncio
    async def test_chapter_id_must_be_uuid(self, services, upstream):
        with pytest.raises(InvalidInput):
            await services.detail.resolve_detail(chapter_id="12345")
        assert upstream.requests == []


class TestSlugResolution:
    """Series key plus canonical slug."""

    @pytest.mark.asyncio
    async def test_missing_arguments(self, services):
        with pytest.raises(InvalidInput):
            await services.detail.resolve_detail(series_key="some-series")
        with pytest.raises(InvalidInput):
            await services.detail.resolve_detail(chapter_slug="g-aaaaaaaa-chapter-1-en")

    @pytest.mark.asyncio
    async def test_bad_slug_makes_no_upstream_calls(self, services, upstream, make_series):
        make_series("linked", external_id=MANGA)

        with pytest.raises(BadSlug):
            await services.detail.resolve_detail(series_key="linked", chapter_slug="chapter-one")
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_earliest_upload_wins(self, services, upstream, make_series):
        make_series("linked", external_id=MANGA)
        upstream.add_chapter(MANGA, CH_LATE, "3", group_id=GROUP_A, publish_at="2022-01-01T00:00:00+00:00")
        upstream.add_chapter(MANGA, CH_EARLY, "3", group_id=GROUP_B, publish_at="2021-01-01T00:00:00+00:00")
        serve_pages(upstream, CH_EARLY)

        # The slug names group A, the earlier group B upload still wins
        detail = await services.detail.resolve_detail(series_key="linked", chapter_slug="g-aaaaaaaa-chapter-3-en")

        assert detail.resolved_chapter_id == CH_EARLY
        assert detail.pages[0] == f"{BASE}/data/h4sh/1.png"

    @pytest.mark.asyncio
    async def test_language_must_match(self, services, upstream, make_series):
        make_series("linked", external_id=MANGA)
        upstream.add_chapter(MANGA, CH_EARLY, "3", lang="fr")

        with pytest.raises(ChapterNotFound):
            await services.detail.resolve_detail(series_key="linked", chapter_slug="g-aaaaaaaa-chapter-3-en")

        feed_call = upstream.calls(f"/manga/{MANGA}/feed")[0]
        assert feed_call.url.params.get_list("translatedLanguage[]") == ["en"]

    @pytest.mark.asyncio
    async def test_oneshot_slug_matches_unlabeled_chapter(self, services, upstream, make_series):
        make_series("linked", external_id=MANGA)
        upstream.add_chapter(MANGA, CH_EARLY, None, group_id=GROUP_A)
        serve_pages(upstream, CH_EARLY)

        detail = await services.detail.resolve_detail(
            series_key="linked", chapter_slug="g-aaaaaaaa-chapter-Oneshot-en", save_data=True,
        )

        assert detail.resolved_chapter_id == CH_EARLY
        assert detail.pages[0].startswith(f"{BASE}/data-saver/")

    @pytest.mark.asyncio
    async def test_bare_uuid_series_is_hydrated(self, services, upstream, test_db):
        upstream.add_manga(MANGA, "Fresh")
        upstream.add_chapter(MANGA, CH_EARLY, "1")
        serve_pages(upstream, CH_EARLY)

        detail = await services.detail.resolve_detail(series_key=MANGA, chapter_slug="g-unknown-chapter-1-en")

        assert detail.resolved_chapter_id == CH_EARLY
        assert test_db.execute("SELECT slug FROM series").fetchone()["slug"] == "fresh"

    @pytest.mark.asyncio
    async def test_unknown_uuid_series(self, services):
        with pytest.raises(SeriesNotFound):
            await services.detail.resolve_detail(series_key=MANGA, chapter_slug="g-unknown-chapter-1-en")

    @pytest.mark.asyncio
    async def test_unknown_series_slug(self, services):
        with pytest.raises(SeriesNotFound):
            await services.detail.resolve_detail(series_key="nothing-here", chapter_slug="g-unknown-chapter-1-en")

    @pytest.mark.asyncio
    async def test_series_without_upstream_id(self, services, make_series):
        make_series("local-only")

        with pytest.raises(SeriesNotFound):
            await services.detail.resolve_detail(series_key="local-only", chapter_slug="g-unknown-chapter-1-en")

    @pytest.mark.asyncio
    async def test_rate_limit_during_scan_propagates(self, services, upstream, make_series):
        make_series("linked", external_id=MANGA)
        upstream.fail(f"/manga/{MANGA}/feed", 429)

        with pytest.raises(UpstreamRateLimited):
            await services.detail.resolve_detail(series_key="linked", chapter_slug="g-unknown-chapter-1-en")
