"""Tests for series key resolution and upstream id mapping."""

import pytest

from db.series import delete_series
from db.sources import find_link_by_external_id

MANGA = "6b1eb93e-473a-4ab3-9922-1a66d2a29a4a"
OTHER = "9d3f1c2a-1111-4222-8333-444455556666"


class TestResolve:
    """SeriesResolver.resolve"""

    @pytest.mark.asyncio
    async def test_by_numeric_id(self, services, make_series):
        series_id = make_series("one-piece", external_id=MANGA)

        resolved = await services.resolver.resolve(str(series_id))

        assert resolved.id == series_id
        assert resolved.slug == "one-piece"
        assert resolved.external_id == MANGA

    @pytest.mark.asyncio
    async def test_numeric_id_wins_over_numeric_slug(self, services, make_series):
        first = make_series("first", external_id=MANGA)
        make_series(str(first), title="Numbered", external_id=OTHER)

        resolved = await services.resolver.resolve(str(first))
        assert resolved.slug == "first"

    @pytest.mark.asyncio
    async def test_missing_numeric_id_does_not_try_slug(self, services, make_series):
        make_series("1984", external_id=MANGA)

        assert await services.resolver.resolve("1984") is None

    @pytest.mark.asyncio
    async def test_numeric_id_beyond_integer_range(self, services, make_series, upstream):
        make_series("99999999999999999999", external_id=MANGA)

        assert await services.resolver.resolve("99999999999999999999") is None
        assert await services.resolver.resolve(str(2 ** 63)) is None
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_by_slug_case_insensitive(self, services, make_series):
        series_id = make_series("attack-on-example", external_id=MANGA)

        resolved = await services.resolver.resolve("  Attack-On-Example ")
        assert resolved.id == series_id

    @pytest.mark.asyncio
    async def test_by_upstream_id(self, services, make_series):
        series_id = make_series("linked", external_id=MANGA)

        resolved = await services.resolver.resolve(MANGA.upper())

        assert resolved.id == series_id
        assert resolved.external_id == MANGA

    @pytest.mark.asyncio
    async def test_unknown_upstream_id_does_not_hydrate(self, services, upstream, test_db):
        upstream.add_manga(MANGA, "Elsewhere")

        assert await services.resolver.resolve(MANGA) is None
        assert upstream.requests == []
        assert test_db.execute("SELECT COUNT(*) FROM series").fetchone()[0] == 0

    @pytest.mark.asyncio
    async def test_dangling_link_resolves_to_none(self, services, make_series):
        series_id = make_series("gone", external_id=MANGA)
        delete_series(series_id)

        assert await services.resolver.resolve(MANGA) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", "   ", None, "no-such-series"])
    async def test_unresolvable_keys(self, services, key):
        assert await services.resolver.resolve(key) is None

    @pytest.mark.asyncio
    async def test_local_series_gets_healed(self, services, upstream, make_series):
        series_id = make_series("local-only", title="Local Only")
        upstream.add_manga(MANGA, "Local Only")
        upstream.search["Local Only"] = [MANGA]

        resolved = await services.resolver.resolve("local-only")

        assert resolved.external_id == MANGA
        assert find_link_by_external_id(MANGA)["series_id"] == series_id

    @pytest.mark.asyncio
    async def test_heal_failure_does_not_break_lookup(self, services, upstream, make_series):
        series_id = make_series("unlucky", title="Unlucky")
        upstream.fail("/manga", 500, 500, 500)

        resolved = await services.resolver.resolve("unlucky")

        assert resolved.id == series_id
        assert resolved.external_id is None
        assert services.hydrator.heal_stats["failed"] == 1


class TestMapExternalIds:
    """SeriesResolver.map_external_ids"""

    @pytest.mark.asyncio
    async def test_maps_known_ids_in_caller_spelling(self, services, make_series):
        make_series("known", external_id=MANGA)

        result = await services.resolver.map_external_ids([MANGA.upper(), OTHER])

        assert result == {"map": {MANGA.upper(): "known"}, "errors": []}

    @pytest.mark.asyncio
    async def test_hydrates_unknown_ids(self, services, upstream, make_series):
        make_series("known", external_id=MANGA)
        upstream.add_manga(OTHER, "Fresh Import")

        result = await services.resolver.map_external_ids([MANGA, OTHER], hydrate=True)

        assert result["map"] == {MANGA: "known", OTHER: "fresh-import"}
        assert result["errors"] == []

    @pytest.mark.asyncio
    async def test_hydrate_failures_are_collected(self, services, upstream):
        upstream.add_manga(MANGA, "Works")

        result = await services.resolver.map_external_ids([MANGA, OTHER, "garbage"], hydrate=True)

        assert result["map"] == {MANGA: "works"}
        assert [e["id"] for e in result["errors"]] == [OTHER]
