"""Keyword news matching: the cheap, non-AI radar scan.

Study topics come from note tags and note titles. An article matches when
its title or summary mentions a topic (or a known synonym of it). At most
one match is produced per article.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set

from loguru import logger

from .config import NewsMatchConfig
from .errors import ErrorSink
from .models import ArticleSummary, KeywordMatch, NoteSummary


COMMON_WORDS: Set[str] = {
    'the', 'and', 'for', 'are', 'but', 'not', 'you', 'all', 'can',
    'had', 'her', 'was', 'one', 'our', 'out', 'has', 'his', 'how',
    'its', 'may', 'new', 'now', 'old', 'see', 'way', 'who', 'boy',
    'did', 'get', 'let', 'put', 'say', 'she', 'too', 'use', 'with',
    'from', 'have', 'this', 'will', 'your', 'that', 'they', 'been',
    'note', 'notes', 'study', 'chapter', 'unit', 'page', 'book',
    'about', 'important', 'topic', 'lesson', 'class', 'exam',
}

SYNONYMS: Dict[str, List[str]] = {
    'aadhar': ['aadhaar'],
    'aadhaar': ['aadhar'],
    'gst': ['goods and services tax'],
    'mgnrega': ['nrega'],
    'isro': ['indian space research organisation'],
    'rbi': ['reserve bank of india'],
    'sc': ['supreme court'],
    'hc': ['high court'],
}


@dataclass
class StudyTopic:
    keyword: str
    source: str  # tag|note_title
    note_id: Optional[str] = None


class NewsSource(Protocol):
    async def fetch_recent_notes(self, limit: int) -> List[NoteSummary]: ...

    async def fetch_recent_articles(self, limit: int) -> List[ArticleSummary]: ...


def extract_study_topics(notes: List[NoteSummary]) -> List[StudyTopic]:
    """Collect de-duplicated study topics from note tags and titles."""
    topics: List[StudyTopic] = []
    seen: Set[str] = set()

    def add(keyword: str, source: str, note_id: Optional[str]) -> None:
        if keyword and keyword not in seen:
            topics.append(StudyTopic(keyword=keyword, source=source, note_id=note_id))
            seen.add(keyword)

    for note in notes:
        for tag in note.tags:
            keyword = tag.lower().strip()
            if len(keyword) > 2:
                add(keyword, "tag", note.id)

        if note.title and note.title != "Untitled":
            for word in note.title.lower().split():
                if len(word) > 3 and word not in COMMON_WORDS:
                    add(word, "note_title", note.id)

            full_title = note.title.lower().strip()
            if len(full_title) > 4:
                add(full_title, "note_title", note.id)

    return topics


def match_articles(topics: List[StudyTopic], articles: List[ArticleSummary],
                   notes_by_id: Dict[str, NoteSummary]) -> List[KeywordMatch]:
    """Match each article against the first topic it mentions."""
    matches: List[KeywordMatch] = []
    processed: Set[str] = set()

    for article in articles:
        if article.id in processed:
            continue
        text = f"{article.title} {article.summary_or_excerpt}".lower()

        for topic in topics:
            candidates = [topic.keyword, *SYNONYMS.get(topic.keyword, [])]
            if not any(candidate in text for candidate in candidates):
                continue

            note = notes_by_id.get(topic.note_id or "")
            if topic.source == "tag":
                note_title = f"Tag: {topic.keyword}"
            else:
                note_title = note.title if note else topic.keyword
            matches.append(KeywordMatch(
                note_id=topic.note_id or "",
                note_title=note_title,
                article_id=article.id,
                article_title=article.title,
                article_summary=article.summary_or_excerpt,
                article_source=article.source,
                match_reason=f'Matched topic: "{topic.keyword}"',
                matched_keyword=topic.keyword,
            ))
            processed.add(article.id)
            break

    return matches


class NewsMatchService:
    """Caches keyword matches between notes and the latest articles."""

    def __init__(self,
                 content: NewsSource,
                 config: Optional[NewsMatchConfig] = None,
                 note_limit: int = 50,
                 clock: Callable[[], float] = time.monotonic,
                 error_sink: Optional[ErrorSink] = None):
        self.content = content
        self.config = config or NewsMatchConfig()
        self.note_limit = note_limit
        self.clock = clock
        self.error_sink = error_sink or ErrorSink()

        self._matches: List[KeywordMatch] = []
        self._last_check: Optional[float] = None

    def _unread(self) -> List[KeywordMatch]:
        return [m for m in self._matches if not m.is_read]

    async def check_matches(self) -> List[KeywordMatch]:
        """Return unread matches, rescanning when the cached set has expired."""
        if self._last_check is not None:
            elapsed = self.clock() - self._last_check
            if elapsed < self.config.check_interval_seconds:
                logger.debug("Using cached news matches")
                return self._unread()

        try:
            notes = await self.content.fetch_recent_notes(self.note_limit)
            topics = extract_study_topics(notes)
            if not topics:
                logger.info("No study topics found")
                return []

            articles = await self.content.fetch_recent_articles(self.config.article_limit)
            matches = match_articles(topics, articles, {n.id: n for n in notes})
        except Exception as e:
            self.error_sink.record("news_match", e)
            return self._unread()

        # Keep read flags for articles that are still matched
        read_ids = {m.article_id for m in self._matches if m.is_read}
        for match in matches:
            match.is_read = match.article_id in read_ids

        self._matches = matches
        self._last_check = self.clock()
        self.error_sink.record_success("news_match")
        logger.info(f"Found {len(matches)} matching articles across {len(topics)} topics")
        return self._unread()

    async def force_refresh(self) -> List[KeywordMatch]:
        self._last_check = None
        return await self.check_matches()

    def mark_read(self, article_id: str) -> None:
        for match in self._matches:
            if match.article_id == str(article_id):
                match.is_read = True

    def unread_count(self) -> int:
        return len(self._unread())

    def clear(self) -> None:
        self._matches = []
        self._last_check = None
