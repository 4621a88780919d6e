from finfeed.enrichment import enrich_article
from finfeed.models import POSITIVE
from finfeed.normalizer import normalize_item

from .helpers import NOW, make_source


def test_enrich_fills_every_analyzer_field():
    src = make_source("Reuters", category="Markets", credibility=0.5)
    raw = {
        "title": "AAPL rises after earnings beat",
        "summary": "Apple shares jump as revenue tops analyst forecasts.",
        "published": "Mon, 02 Mar 2026 14:00:00 GMT",
    }
    article = normalize_item(raw, src, now=lambda: NOW)
    enriched = enrich_article(article, src, now=NOW)

    assert enriched.id == article.id
    assert enriched.tickers[0] == "AAPL"
    assert enriched.extracted_tickers[0].symbol == "AAPL"
    assert enriched.sentiment == POSITIVE
    assert enriched.sentiment_details.sentiment == POSITIVE
    assert 0.0 < enriched.relevance_score <= 1.0
    assert enriched.source_credibility == 1.0
    assert enriched.processed_at == NOW
    # original is untouched
    assert article.tickers == ()


def test_enrich_caps_ticker_count():
    src = make_source()
    raw = {
        "title": "$AAPL $MSFT $NVDA $AMZN $META $TSLA $GOOGL all rally",
        "summary": "Megacaps lead the market higher.",
    }
    enriched = enrich_article(normalize_item(raw, src, now=lambda: NOW), src, now=NOW)
    assert len(enriched.tickers) == 5


def test_detailed_dict_shape():
    src = make_source()
    raw = {"title": "$NVDA jumps", "summary": "Chip stocks climb on AI demand."}
    enriched = enrich_article(normalize_item(raw, src, now=lambda: NOW), src, now=NOW)
    plain = enriched.to_dict()
    detailed = enriched.to_dict(detailed=True)
    assert "sentimentDetails" not in plain
    assert detailed["extractedTickers"][0]["symbol"] == "NVDA"
    assert plain["publishedAt"] == NOW.isoformat()
