"""Search engine tests."""

import pytest

from crawlindex.search.engine import (
    FullTextSearch, SearchEngine, SubstringSearch, build_match_expression, validate_limit,
)


pytestmark = pytest.mark.asyncio


async def _seed(store):
    await store.upsert_page("https://title.example", "Foo Bar Handbook", "a practical handbook")
    await store.upsert_page("https://body.example", "Misc notes", "here foo and bar appear in the body")
    await store.upsert_page("https://foo-only.example", "Foo", "only one of the two words")
    for n in range(3):
        await store.upsert_page(f"https://filler{n}.example", "Filler", "unrelated filler text")


@pytest.fixture
def ranked_store(store):
    if not store.fts_available:
        pytest.skip("SQLite built without FTS5")
    return store


class TestRanked:
    async def test_title_match_ranks_first(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        results = await engine.search("foo bar")

        assert [r.url for r in results] == ["https://title.example", "https://body.example"]
        assert results[0].rank > results[1].rank

    async def test_terms_are_anded(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        results = await engine.search("foo handbook")

        assert [r.url for r in results] == ["https://title.example"]

    async def test_terms_match_word_prefixes(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        results = await engine.search("HAND")

        assert [r.url for r in results] == ["https://title.example"]

    async def test_snippet_comes_from_content(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        [result] = await engine.search("appear")

        assert "appear" in result.snippet

    async def test_limit(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        assert len(await engine.search("filler", limit=2)) == 2

    async def test_punctuation_only_query(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        assert await engine.search('"* -') == []

    async def test_quotes_inside_terms_are_escaped(self, ranked_store):
        await _seed(ranked_store)
        engine = SearchEngine(FullTextSearch(ranked_store))

        # Treated as the phrase "foo bar", not as FTS5 syntax
        results = await engine.search('foo"bar')

        assert [r.url for r in results] == ["https://title.example"]


class TestSubstring:
    async def test_case_insensitive_containment(self, store):
        await _seed(store)
        engine = SearchEngine(SubstringSearch(store))

        results = await engine.search("FOO BAR")

        assert [r.url for r in results] == ["https://title.example"]
        assert results[0].rank == 0.0

    async def test_long_content_snippet_is_truncated(self, store):
        await store.upsert_page("https://long.example", "Long", "needle " + "x" * 500)
        engine = SearchEngine(SubstringSearch(store))

        [result] = await engine.search("needle")

        assert result.snippet == ("needle " + "x" * 500)[:200] + "..."

    async def test_short_content_snippet_is_whole(self, store):
        await store.upsert_page("https://short.example", "Short", "tiny needle")
        engine = SearchEngine(SubstringSearch(store))

        [result] = await engine.search("needle")

        assert result.snippet == "tiny needle"


class TestEngine:
    async def test_blank_queries_return_nothing(self, store):
        await _seed(store)
        engine = SearchEngine.from_store(store)

        assert await engine.search("") == []
        assert await engine.search("   \t") == []
        assert await engine.search(None) == []

    @pytest.mark.parametrize("limit", [0, -1, 101, 10 ** 20, 2.5, "3", True])
    async def test_bad_limit_is_rejected(self, store, limit):
        engine = SearchEngine.from_store(store)
        with pytest.raises(ValueError):
            await engine.search("foo", limit=limit)

    async def test_default_limit(self, store):
        for n in range(5):
            await store.upsert_page(f"https://p{n}.example", "Page", "common word")
        engine = SearchEngine.from_store(store, mode="substring", default_limit=3)

        assert len(await engine.search("common")) == 3

    async def test_substring_mode_selected(self, store):
        engine = SearchEngine.from_store(store, mode="substring")
        assert engine.mode == "substring"

    async def test_ranked_falls_back_without_index(self, store):
        store.fts_available = False
        engine = SearchEngine.from_store(store, mode="ranked")
        assert engine.mode == "substring"


async def test_build_match_expression():
    assert build_match_expression("foo bar") == '"foo"* AND "bar"*'
    assert build_match_expression('say "hi"') == '"say"* AND """hi"""*'
    assert build_match_expression("  -- ** ") is None


async def test_validate_limit():
    assert validate_limit(None, 7) == 7
    assert validate_limit(25) == 25


async def test_underscore_only_terms_are_dropped():
    assert build_match_expression("foo _") == '"foo"*'
    assert build_match_expression("__ ___") is None
    assert build_match_expression("snake_case") == '"snake_case"*'


async def test_underscore_term_does_not_block_matches(ranked_store):
    await _seed(ranked_store)
    engine = SearchEngine(FullTextSearch(ranked_store))

    results = await engine.search("handbook _")

    assert [r.url for r in results] == ["https://title.example"]
