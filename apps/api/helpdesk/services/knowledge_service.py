"""Knowledge base search - keyword overlap ranking over published articles."""

import re
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.db.models import KnowledgeArticle

TOKEN_PATTERN = re.compile(r"[a-z0-9']+")
STOPWORDS = frozenset(
    {
        "the", "and", "for", "you", "your", "with", "that", "this", "have", "has",
        "was", "are", "but", "not", "can", "how", "what", "why", "when", "does",
        "did", "its", "it's", "from", "any", "all", "out", "get", "got", "our",
        "will", "would", "could", "should", "there", "they", "them", "been", "into",
        "about", "just", "please", "help", "hello", "thanks",
    }
)

FAQ_CATEGORY = "faq"
TROUBLESHOOTING_CATEGORY = "troubleshooting"


@dataclass
class KnowledgeResult:
    id: UUID
    title: str
    content: str
    category: str | None
    similarity: float

    @property
    def is_faq(self) -> bool:
        return (self.category or "").lower() == FAQ_CATEGORY

    @property
    def is_troubleshooting(self) -> bool:
        return (self.category or "").lower() == TROUBLESHOOTING_CATEGORY


def tokenize(text: str) -> set[str]:
    words = TOKEN_PATTERN.findall((text or "").lower())
    return {w.strip("'") for w in words if len(w) >= 3 and w not in STOPWORDS}


def score_article(query_tokens: set[str], title: str, content: str) -> float:
    """Overlap score in [0, 1]; title matches count double."""
    if not query_tokens:
        return 0.0
    title_hits = len(query_tokens & tokenize(title))
    content_hits = len(query_tokens & tokenize(content))
    return round((2 * title_hits + content_hits) / (3 * len(query_tokens)), 4)


def search_articles(
    db: Session,
    query: str,
    limit: int | None = None,
    threshold: float | None = None,
) -> list[KnowledgeResult]:
    """Top published articles for a query, best match first."""
    limit = limit or settings.KB_MAX_RESULTS
    threshold = settings.KB_SIMILARITY_THRESHOLD if threshold is None else threshold
    query_tokens = tokenize(query)
    if not query_tokens:
        return []

    articles = db.query(KnowledgeArticle).filter(KnowledgeArticle.is_published.is_(True)).all()
    results = []
    for article in articles:
        similarity = score_article(query_tokens, article.title, article.content)
        if similarity >= threshold:
            results.append(
                KnowledgeResult(
                    id=article.id,
                    title=article.title,
                    content=article.content,
                    category=article.category,
                    similarity=similarity,
                )
            )
    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[:limit]


def format_results_for_prompt(results: list[KnowledgeResult], max_chars: int = 1500) -> str:
    """Render results as a numbered context block, truncating long articles."""
    blocks = []
    for index, result in enumerate(results, start=1):
        content = result.content
        if len(content) > max_chars:
            content = content[: max_chars - 3] + "..."
        blocks.append(f"[{index}] {result.title}\n{content}")
    return "\n\n".join(blocks)
