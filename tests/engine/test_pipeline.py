from __future__ import annotations

import pytest

from spider_runner import DropItem, Pipeline, Spider
from spider_runner.engine.context import RunContext
from spider_runner.engine.pipeline import PipelineRunner, build_stages, resolve_pipeline
from spider_runner.errors import UnknownPipelineError


class StripTitle(Pipeline):
    def process_item(self, item, options=None):
        item["title"] = item["title"].strip()
        return item


class RequirePrice(Pipeline):
    name = "require_price"

    def process_item(self, item, options=None):
        minimum = (options or {}).get("minimum", 0)
        if item.get("price") is None:
            raise DropItem("price missing")
        if item["price"] < minimum:
            raise DropItem(f"price below {minimum}")
        return item


class CollectItems(Pipeline):
    collected: list[dict] = []

    def process_item(self, item, options=None):
        type(self).collected.append(item)
        return item


class ShopSpider(Spider):
    name = "shop_spider"
    engine = "fake"
    pipelines = ["StripTitle", "require_price", CollectItems]


@pytest.fixture(autouse=True)
def _reset_collected() -> None:
    CollectItems.collected = []


def test_pipeline_names_register_on_subclass() -> None:
    assert resolve_pipeline("StripTitle") is StripTitle
    assert resolve_pipeline("require_price") is RequirePrice
    assert resolve_pipeline(CollectItems) is CollectItems
    with pytest.raises(UnknownPipelineError):
        resolve_pipeline("NoSuchStage")


def test_stages_keep_declared_order() -> None:
    stages = build_stages(["require_price", "StripTitle"])
    assert [name for name, _ in stages] == ["require_price", "StripTitle"]
    assert all(isinstance(stage, Pipeline) for _, stage in stages)


def test_send_item_accounts_for_drops(fake_web) -> None:
    spider = ShopSpider(run=RunContext.open(ShopSpider.spider_name()))
    items = [
        {"title": "  Lamp ", "price": 10},
        {"title": "Chair", "price": None},
        {"title": " Desk", "price": 120},
        {"title": "Rug"},
    ]

    results = [spider.send_item(item) for item in items]

    assert results == [True, False, True, False]
    ledger = spider.run.ledger
    assert ledger.counters("items") == {"sent": 4, "processed": 2}
    assert ledger.info.dropped == 2
    assert ledger.event_count("drop_items_errors") == 2
    assert ledger.event_count("drop_items_errors", "DropItem('price missing')") == 2
    assert [item["title"] for item in CollectItems.collected] == ["Lamp", "Desk"]
    spider.close()


def test_send_item_passes_stage_options(fake_web) -> None:
    spider = ShopSpider(run=RunContext.open(ShopSpider.spider_name()))
    assert spider.send_item({"title": "Pen", "price": 3}, options={"require_price": {"minimum": 5}}) is False
    assert spider.send_item({"title": "Pen", "price": 3}) is True
    assert spider.run.ledger.event_count("drop_items_errors", "DropItem('price below 5')") == 1
    spider.close()


def test_unexpected_stage_error_only_drops_item() -> None:
    class Explode(Pipeline):
        name = "explode_on_flag"

        def process_item(self, item, options=None):
            if item.get("explode"):
                raise KeyError("boom")
            return item

    context = RunContext.open("explode_test")
    runner = PipelineRunner(build_stages(["explode_on_flag"]), context)

    assert runner.run({"explode": True}) is False
    assert runner.run({"explode": False}) is True
    assert context.ledger.counters("items") == {"sent": 2, "processed": 1}
    assert context.ledger.event_count("drop_items_errors", "KeyError('boom')") == 1


def test_configured_pipelines_override_class_list(fake_web) -> None:
    spider = ShopSpider(config={"pipelines": ["StripTitle"]}, run=RunContext.open("override"))
    assert spider.send_item({"title": " Bare "}) is True
    assert CollectItems.collected == []
    spider.close()


def test_unknown_pipeline_fails_spider_construction(fake_web) -> None:
    with pytest.raises(UnknownPipelineError):
        ShopSpider(config={"pipelines": ["Missing"]})
