"""Tests for knowledge base search."""

from helpdesk.db.models import KnowledgeArticle
from helpdesk.services import knowledge_service


def _article(db, title, content, category="faq", published=True):
    article = KnowledgeArticle(title=title, content=content, category=category, is_published=published)
    db.add(article)
    db.commit()
    return article


def test_tokenize_drops_stopwords_and_short_words():
    assert knowledge_service.tokenize("How do I reset the camera?") == {"reset", "camera"}


def test_score_weights_title_matches():
    tokens = {"reset", "camera"}

    assert knowledge_service.score_article(tokens, "Reset camera", "") == round(4 / 6, 4)
    assert knowledge_service.score_article(tokens, "", "reset camera") == round(2 / 6, 4)
    assert knowledge_service.score_article(set(), "Reset", "camera") == 0.0


def test_search_ranks_published_articles(db):
    _article(db, "Camera reset", "Hold the power button for ten seconds.")
    _article(db, "Billing", "Refunds take five days.", category="billing")
    _article(db, "Camera reset (draft)", "Old steps for camera reset.", published=False)
    _article(db, "Power issues", "If the camera reset is not working, contact us.", category="troubleshooting")

    results = knowledge_service.search_articles(db, "camera reset not working")

    assert [r.title for r in results] == ["Camera reset", "Power issues"]
    assert results[0].is_faq
    assert results[1].is_troubleshooting


def test_search_with_no_meaningful_terms_returns_nothing(db):
    _article(db, "Camera reset", "Hold the power button.")

    assert knowledge_service.search_articles(db, "how do I") == []


def test_format_results_truncates_long_content():
    result = knowledge_service.KnowledgeResult(
        id=None, title="Long", content="x" * 50, category="faq", similarity=1.0
    )

    text = knowledge_service.format_results_for_prompt([result], max_chars=10)

    assert text == "[1] Long\nxxxxxxx..."
