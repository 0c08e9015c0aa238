from __future__ import annotations

import pytest
import typer
from typer.testing import CliRunner

from spider_runner import Spider, app as app_module
from spider_runner.app import _load_spider, _parse_data, app
from spider_runner.logging_conf import default_log_dir

runner = CliRunner()


class CliSpider(Spider):
    name = "cli_spider"
    engine = "fake"
    start_urls = ["https://example.com/cli"]

    def parse(self, response, url=None, data=None):
        self.send_item({"url": url, **(data or {})})

    def describe(self, data=None):
        return {"spider": self.spider_name(), "data": data}


class CliBrokenSpider(Spider):
    name = "cli_broken_spider"
    engine = "fake"

    def parse(self, response=None, url=None, data=None):
        raise RuntimeError("selector missing")


@pytest.fixture
def use_spider(monkeypatch):
    def _use(spider_cls: type[Spider]) -> None:
        monkeypatch.setattr(app_module, "_load_spider", lambda target: spider_cls)

    return _use


def test_crawl_reports_summary(fake_web, use_spider) -> None:
    use_spider(CliSpider)
    result = runner.invoke(app, ["crawl", "anything:CliSpider", "--data", '{"page": 1}'])
    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert fake_web.visits == ["https://example.com/cli"]


def test_crawl_failure_exit_code(fake_web, use_spider) -> None:
    use_spider(CliBrokenSpider)
    result = runner.invoke(app, ["crawl", "anything:CliBrokenSpider"])
    assert result.exit_code == 1
    assert "failed" in result.output
    assert "selector missing" in result.output


def test_crawl_raise_flag_propagates(fake_web, use_spider) -> None:
    use_spider(CliBrokenSpider)
    result = runner.invoke(app, ["crawl", "anything:CliBrokenSpider", "--raise"])
    assert result.exit_code != 0
    assert isinstance(result.exception, RuntimeError)


def test_crawl_with_config_file(fake_web, use_spider, tmp_path) -> None:
    use_spider(CliSpider)
    config = tmp_path / "override.yaml"
    config.write_text("start_urls:\n  - https://example.com/from-config\n", encoding="utf-8")
    result = runner.invoke(app, ["crawl", "anything:CliSpider", "--config", str(config)])
    assert result.exit_code == 0, result.output
    assert fake_web.visits == ["https://example.com/from-config"]


def test_parse_prints_handler_result(fake_web, use_spider) -> None:
    use_spider(CliSpider)
    result = runner.invoke(app, ["parse", "anything:CliSpider", "describe", "--data", '{"q": "lamp"}'])
    assert result.exit_code == 0, result.output
    assert '"spider": "cli_spider"' in result.output
    assert '"q": "lamp"' in result.output


def test_engines_lists_registered(fake_web) -> None:
    result = runner.invoke(app, ["engines"])
    assert result.exit_code == 0
    for name in ("fake", "httpx", "playwright"):
        assert name in result.output


def test_log_list_and_show(fake_web, use_spider) -> None:
    use_spider(CliSpider)
    runner.invoke(app, ["crawl", "anything:CliSpider"])

    listing = runner.invoke(app, ["log", "list"])
    assert listing.exit_code == 0
    assert "cli_spider.log" in listing.output
    assert (default_log_dir() / "spiders" / "cli_spider.log").exists()

    shown = runner.invoke(app, ["log", "show", "cli_spider", "--tail", "5"])
    assert shown.exit_code == 0
    assert "cli_spider.log" in shown.output


def test_load_spider_validation() -> None:
    assert _load_spider("spider_runner.spider:Spider") is Spider
    with pytest.raises(typer.BadParameter):
        _load_spider("no_colon_here")
    with pytest.raises(typer.BadParameter):
        _load_spider("json:loads")
    with pytest.raises(typer.BadParameter):
        _load_spider("module_that_does_not_exist_xyz:Spider")


def test_parse_data_validation() -> None:
    assert _parse_data(None) is None
    assert _parse_data('{"a": 1}') == {"a": 1}
    with pytest.raises(typer.BadParameter):
        _parse_data("[1, 2]")
    with pytest.raises(typer.BadParameter):
        _parse_data("{broken")
