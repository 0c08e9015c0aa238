from __future__ import annotations

import pytest

from spider_runner import InvalidUrlError, Spider
from spider_runner.engine.context import RunContext
from spider_runner.engine.dispatcher import validate_url
from spider_runner.errors import UnknownHandlerError


class ArticleSpider(Spider):
    name = "article_spider"
    engine = "fake"

    def parse_article(self, response, url=None, data=None):
        return {"title": response.css_first("h1").text(), "url": url, "data": data}

    def parse_api(self, response, url=None, data=None):
        return response

    def _private(self, response, url=None, data=None):
        return "hidden"


@pytest.mark.parametrize(
    "url",
    ["https://example.com", "http://example.com/path?q=1"],
)
def test_validate_url_accepts_http(url: str) -> None:
    assert validate_url(url) == url


@pytest.mark.parametrize(
    "url",
    [
        "",
        "example.com",
        "ftp://example.com",
        "javascript:alert(1)",
        "https://",
        "http://[::1",
        "https://exa mple.com/",
        " https://example.com",
        "https://example.com/\n",
        None,
        42,
    ],
)
def test_validate_url_rejects(url) -> None:
    with pytest.raises(InvalidUrlError):
        validate_url(url)


def test_validate_url_chains_parse_errors() -> None:
    with pytest.raises(InvalidUrlError) as excinfo:
        validate_url("http://[::1")
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_spaced_host_never_fetches(fake_web) -> None:
    spider = ArticleSpider()
    with pytest.raises(InvalidUrlError):
        spider.request_to("parse_article", url="https://exa mple.com/")
    assert fake_web.visits == []
    spider.close()


def test_invalid_url_never_fetches(fake_web) -> None:
    spider = ArticleSpider()
    with pytest.raises(InvalidUrlError):
        spider.request_to("parse_article", url="/relative/path")
    assert fake_web.visits == []
    assert fake_web.created == 0
    spider.close()


def test_request_to_invokes_handler_with_html(fake_web) -> None:
    fake_web.pages["https://example.com/a"] = "<html><body><h1>Hello</h1></body></html>"
    spider = ArticleSpider()

    result = spider.request_to("parse_article", url="https://example.com/a", data={"page": 1})

    assert result == {"title": "Hello", "url": "https://example.com/a", "data": {"page": 1}}
    assert spider.run.ledger.counters("visits") == {"requests": 1, "responses": 1}
    spider.close()
    assert fake_web.destroyed == 1


def test_request_to_defaults_data_to_empty_dict(fake_web) -> None:
    spider = ArticleSpider()
    result = spider.request_to("parse_article", url="https://example.com/b")
    assert result["data"] == {}
    spider.close()


@pytest.mark.parametrize(
    ("response_type", "expected"),
    [("json", {"ok": True}), ("text", '{"ok": true}')],
)
def test_request_to_response_types(fake_web, response_type: str, expected) -> None:
    fake_web.pages["https://api.example.com/v1"] = '{"ok": true}'
    spider = ArticleSpider()
    assert spider.request_to("parse_api", url="https://api.example.com/v1", response_type=response_type) == expected
    spider.close()


def test_duplicate_request_skipped_once_recorded(fake_web) -> None:
    context = RunContext.open(ArticleSpider.spider_name())
    spider = ArticleSpider(config={"skip_duplicate_requests": True}, run=context)

    first = spider.request_to("parse_article", url="https://example.com/dup")
    second = spider.request_to("parse_article", url="https://example.com/dup")

    assert first is not None
    assert second is None
    assert fake_web.visit_count("https://example.com/dup") == 1
    assert context.ledger.event_count("duplicate_requests", "https://example.com/dup") == 1
    spider.close()


def test_duplicate_check_only_scope_uses_existing_entries(fake_web) -> None:
    context = RunContext.open(ArticleSpider.spider_name())
    spider = ArticleSpider(
        config={"skip_duplicate_requests": {"scope": "archived", "check_only": True}},
        run=context,
    )
    context.store.test_and_insert("archived", "https://example.com/old")

    assert spider.request_to("parse_article", url="https://example.com/old") is None
    assert spider.request_to("parse_article", url="https://example.com/new") is not None
    assert spider.request_to("parse_article", url="https://example.com/new") is not None
    assert fake_web.visit_count("https://example.com/new") == 2
    spider.close()


def test_fetch_failure_skips_handler(fake_web) -> None:
    fake_web.unreachable.add("https://down.example.com")
    spider = ArticleSpider()

    assert spider.request_to("parse_article", url="https://down.example.com") is None
    ledger = spider.run.ledger
    assert ledger.counters("visits") == {"requests": 1, "responses": 0}
    assert ledger.event_count("requests_errors") == 1
    spider.close()


def test_fetch_failure_retries_before_giving_up(fake_web) -> None:
    fake_web.unreachable.add("https://down.example.com")
    spider = ArticleSpider(config={"request_retries": 2})

    assert spider.request_to("parse_article", url="https://down.example.com") is None
    assert fake_web.visit_count("https://down.example.com") == 3
    assert spider.run.ledger.event_count("requests_errors") == 3
    spider.close()


def test_unknown_or_private_handler_rejected(fake_web) -> None:
    spider = ArticleSpider()
    with pytest.raises(UnknownHandlerError):
        spider.request_to("missing_handler", url="https://example.com")
    with pytest.raises(UnknownHandlerError):
        spider.invoke_handler("_private", None)
    spider.close()
