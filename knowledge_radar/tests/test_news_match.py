"""Tests for keyword news matching."""

import pytest

from knowledge_radar.engine.config import NewsMatchConfig
from knowledge_radar.engine.errors import ErrorSink, TransientNetworkError
from knowledge_radar.engine.models import ArticleSummary, NoteSummary
from knowledge_radar.engine.news_match import (
    NewsMatchService,
    extract_study_topics,
    match_articles,
)


@pytest.fixture
def matcher(content, clock):
    return NewsMatchService(content, NewsMatchConfig(check_interval_seconds=1800),
                            clock=clock, error_sink=ErrorSink())


class TestTopics:

    def test_tags_and_title_words(self, notes):
        keywords = [t.keyword for t in extract_study_topics(notes)]

        assert "rbi" in keywords
        assert "monetary" in keywords
        assert "monetary policy" in keywords
        assert "fundamental rights" in keywords

    def test_short_and_common_words_are_skipped(self):
        note = NoteSummary(id="1", title="The GDP and Important Notes", tags=["ir", "gdp"])

        keywords = [t.keyword for t in extract_study_topics([note])]

        assert "ir" not in keywords
        assert "the" not in keywords
        assert "important" not in keywords
        assert "notes" not in keywords
        assert keywords.count("gdp") == 1

    def test_untitled_notes_contribute_only_tags(self):
        note = NoteSummary(id="1", title=None, tags=[{"id": 3, "name": "Budget", "color": "#fff"}])

        topics = extract_study_topics([note])

        assert [(t.keyword, t.source) for t in topics] == [("budget", "tag")]


class TestMatching:

    def test_tag_match_uses_tag_label(self, notes, articles):
        matches = match_articles(extract_study_topics(notes), articles, {n.id: n for n in notes})

        assert len(matches) == 1
        match = matches[0]
        assert match.article_id == "a1"
        assert match.note_title == "Tag: rbi"
        assert match.note_id == "n1"
        assert match.match_reason == 'Matched topic: "rbi"'

    def test_title_word_match_uses_note_title(self):
        note = NoteSummary(id="n9", title="Chandrayaan Mission")
        article = ArticleSummary(id="a9", title="Chandrayaan-4 cleared for launch")

        matches = match_articles(extract_study_topics([note]), [article], {"n9": note})

        assert matches[0].note_title == "Chandrayaan Mission"
        assert matches[0].matched_keyword == "chandrayaan"

    def test_synonyms_match(self):
        note = NoteSummary(id="n1", title="Untitled", tags=["isro"])
        article = ArticleSummary(id="a1", title="Launch update",
                                 summary_or_excerpt="The Indian Space Research Organisation confirmed the date.")

        matches = match_articles(extract_study_topics([note]), [article], {"n1": note})

        assert len(matches) == 1
        assert matches[0].matched_keyword == "isro"

    def test_one_match_per_article(self):
        note = NoteSummary(id="n1", title="Untitled", tags=["inflation", "rbi"])
        article = ArticleSummary(id="a1", title="RBI targets inflation")

        matches = match_articles(extract_study_topics([note]), [article, article], {"n1": note})

        assert len(matches) == 1


class TestService:

    @pytest.mark.asyncio
    async def test_matches_are_cached_within_interval(self, matcher, content, clock):
        first = await matcher.check_matches()
        clock.advance(60)
        second = await matcher.check_matches()

        assert content.fetch_recent_articles.await_count == 1
        assert [m.article_id for m in first] == [m.article_id for m in second] == ["a1"]

    @pytest.mark.asyncio
    async def test_rescan_after_interval(self, matcher, content, clock):
        await matcher.check_matches()
        clock.advance(1801)
        await matcher.check_matches()

        assert content.fetch_recent_articles.await_count == 2

    @pytest.mark.asyncio
    async def test_article_limit_is_passed(self, content, clock):
        matcher = NewsMatchService(content, NewsMatchConfig(article_limit=25), clock=clock)

        await matcher.check_matches()

        content.fetch_recent_articles.assert_awaited_once_with(25)

    @pytest.mark.asyncio
    async def test_mark_read_survives_rescan(self, matcher, clock):
        await matcher.check_matches()
        matcher.mark_read("a1")

        assert matcher.unread_count() == 0
        clock.advance(1801)
        assert await matcher.check_matches() == []

    @pytest.mark.asyncio
    async def test_no_topics_skips_articles(self, matcher, content):
        content.fetch_recent_notes.return_value = [NoteSummary(id="1", title="Untitled")]

        assert await matcher.check_matches() == []
        content.fetch_recent_articles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_returns_previous_matches(self, matcher, content, clock):
        await matcher.check_matches()
        content.fetch_recent_articles.side_effect = TransientNetworkError("offline")

        clock.advance(1801)
        found = await matcher.check_matches()

        assert [m.article_id for m in found] == ["a1"]
        assert matcher.error_sink.error_counts == {"news_match:TransientNetworkError": 1}

    @pytest.mark.asyncio
    async def test_force_refresh_ignores_interval(self, matcher, content):
        await matcher.check_matches()
        await matcher.force_refresh()

        assert content.fetch_recent_articles.await_count == 2

    @pytest.mark.asyncio
    async def test_clear(self, matcher):
        await matcher.check_matches()
        matcher.clear()

        assert matcher.unread_count() == 0
