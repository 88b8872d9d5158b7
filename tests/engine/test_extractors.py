from __future__ import annotations

import json

import pytest

from listing_harvester.config import ExtractorConfig, PatternStrategy
from listing_harvester.engine.extractors import (
    DelimitedTextExtractor,
    ExtractionContext,
    JsonApiExtractor,
    PatternExtractor,
    build_extractor,
    fragment_text,
)
from listing_harvester.errors import ConfigurationError

CONTEXT = ExtractionContext(source_name="test-source", url="https://example.test/list", page=1, per_page=10)

SHOP_HTML = """
<div class="list">
  <div class="shop-info">
    <h3 class="shop-name">カフェ &amp; バー 月</h3>
    <span class="address">東京都渋谷区神南1-2-3</span>
    <span class="category">カフェ</span>
    TEL 03-1234-5678
    <a href="https://tsuki.example.jp">公式サイト</a>
  </div>
  <div class="shop-info">
    <h3 class="shop-name">花屋 はな</h3>
    <span class="address">大阪府大阪市北区梅田2-2</span>
  </div>
  <div class="shop-info">
    <h3 class="shop-name">花屋 はな</h3>
  </div>
  <div class="shop-info"><span class="address">名無し</span></div>
</div>
"""


def _pattern_config(**overrides) -> ExtractorConfig:
    strategies = overrides.pop(
        "strategies",
        [
            PatternStrategy(
                name="shop-info",
                block=r'<div[^>]*class="[^"]*shop-info[^"]*"[^>]*>(.*?)</div>',
                fields={
                    "name": [r'<h3[^>]*class="[^"]*shop-name[^"]*"[^>]*>([^<]+)</h3>'],
                    "address": r'<span[^>]*class="[^"]*address[^"]*"[^>]*>([^<]+)</span>',
                    "industry": r'<span[^>]*class="[^"]*category[^"]*"[^>]*>([^<]+)</span>',
                    "phone": r"(\d{2,4}-\d{2,4}-\d{4})",
                    "website": r'<a[^>]*href="(https?://[^"]+)"[^>]*>[^<]*サイト',
                },
            ),
            PatternStrategy(
                name="any-heading",
                block=r"(<h2[^>]*>.*?</h2>)",
                fields={"name": r"<h2[^>]*>(.*?)</h2>"},
            ),
        ],
    )
    return ExtractorConfig(type="pattern", strategies=strategies, **overrides)


def test_json_extractor_maps_aliases_and_derives_location() -> None:
    config = ExtractorConfig(
        type="json",
        field_map={
            "name": ["name", "company_name"],
            "website": ["website", "homepage"],
            "address": ["address", "office.address"],
            "employee_count": ["employees"],
        },
        defaults={"industry": "不明"},
    )
    payload = json.dumps(
        {
            "results": [
                {"company_name": "株式会社アルファ", "homepage": "https://alpha.test", "address": "東京都港区1-1", "employees": 120},
                {"name": "ベータ", "office": {"address": "福岡県福岡市中央区"}, "industry": "小売業", "is_listed": True},
                {"homepage": "https://nameless.test"},
                "not-a-row",
            ]
        }
    )

    records = JsonApiExtractor(config).extract(payload, CONTEXT)

    assert [record.name for record in records] == ["株式会社アルファ", "ベータ"]
    alpha, beta = records
    assert alpha.website == "https://alpha.test"
    assert alpha.location == "東京都"
    assert alpha.employee_count == "120"
    assert alpha.industry == "不明"
    assert alpha.source_name == "test-source"
    assert beta.address == "福岡県福岡市中央区"
    assert beta.location == "福岡県"
    assert beta.industry == "小売業"
    assert beta.is_listed is True


def test_json_extractor_accepts_top_level_list() -> None:
    records = JsonApiExtractor(ExtractorConfig()).extract('[{"name": "Solo"}]', CONTEXT)

    assert [record.name for record in records] == ["Solo"]


@pytest.mark.parametrize(
    "raw",
    [
        "<html>not json</html>",
        '{"unexpected": 1}',
        "[1, 2, 3]",
        "",
        pytest.param("[" * 200_000, id="deeply-nested"),
    ],
)
def test_json_extractor_degrades_to_empty(raw: str) -> None:
    assert JsonApiExtractor(ExtractorConfig()).extract(raw, CONTEXT) == []


def test_delimited_extractor_reads_registry_rows() -> None:
    config = ExtractorConfig(type="delimited", columns={"name": 2, "address": 7}, defaults={"industry": "不明"})
    payload = "\n".join(
        [
            "seq,number,name,kind,a,b,c,address",
            '1,1234567890123,"株式会社ガンマ",301,x,y,z,"愛知県名古屋市中区1-1"',
            "2,1234567890124,,301,x,y,z,北海道札幌市",
            "3,short,row",
        ]
    )

    records = DelimitedTextExtractor(config).extract(payload, CONTEXT)

    assert len(records) == 2
    gamma = records[0]
    assert gamma.name == "株式会社ガンマ"
    assert gamma.address == "愛知県名古屋市中区1-1"
    assert gamma.location == "愛知県"
    assert gamma.industry == "不明"
    assert records[1].name == "row"
    assert records[1].address is None


def test_delimited_extractor_empty_input() -> None:
    config = ExtractorConfig(type="delimited", columns={"name": 0})
    assert DelimitedTextExtractor(config).extract("   \n", CONTEXT) == []


def test_pattern_extractor_first_strategy_wins() -> None:
    records = PatternExtractor(_pattern_config()).extract(SHOP_HTML, CONTEXT)

    assert [record.name for record in records] == ["カフェ & バー 月", "花屋 はな"]
    cafe = records[0]
    assert cafe.address == "東京都渋谷区神南1-2-3"
    assert cafe.location == "東京都"
    assert cafe.industry == "カフェ"
    assert cafe.phone == "03-1234-5678"
    assert cafe.website == "https://tsuki.example.jp"
    assert cafe.extra["strategy"] == "shop-info"
    assert records[1].location == "大阪府"


def test_pattern_extractor_falls_back_to_later_strategy() -> None:
    html = "<h2>Fallback <b>Corp</b></h2><h2>Second&nbsp;Shop</h2>"

    records = PatternExtractor(_pattern_config()).extract(html, CONTEXT)

    assert [record.name for record in records] == ["Fallback Corp", "Second Shop"]
    assert records[0].extra["strategy"] == "any-heading"


def test_pattern_extractor_caps_at_per_page() -> None:
    html = "".join(f"<h2>Shop {index}</h2>" for index in range(30))
    context = ExtractionContext(source_name="s", url="u", page=1, per_page=5)

    records = PatternExtractor(_pattern_config()).extract(html, context)

    assert len(records) == 5


@pytest.mark.parametrize("raw", ["", "plain text with no markup", "<div class='shop-info'><h3>unclosed"])
def test_pattern_extractor_degrades_to_empty(raw: str) -> None:
    assert PatternExtractor(_pattern_config()).extract(raw, CONTEXT) == []


def test_fragment_text_unescapes_entities() -> None:
    assert fragment_text("A &amp; B") == "A & B"
    assert fragment_text("<span>  C\n &lt;D&gt; </span>") == "C <D>"


def test_build_extractor_dispatches_on_type(make_source) -> None:
    assert isinstance(build_extractor(make_source()), JsonApiExtractor)
    assert isinstance(
        build_extractor(ExtractorConfig(type="delimited", columns={"name": 0})), DelimitedTextExtractor
    )
    assert isinstance(build_extractor(_pattern_config()), PatternExtractor)


def test_invalid_regex_is_a_configuration_error() -> None:
    config = _pattern_config(strategies=[PatternStrategy(name="broken", block="(", fields={"name": "x"})])

    with pytest.raises(ConfigurationError):
        build_extractor(config)
