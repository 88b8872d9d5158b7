from __future__ import annotations

import pytest

from listing_harvester.engine.identity import (
    UNKNOWN_PREFECTURE,
    extract_prefecture,
    identity_key,
    normalize_location,
    normalize_name,
    richness_score,
)
from listing_harvester.engine.records import CandidateRecord


def test_english_legal_form_and_romanised_suffix_collide() -> None:
    first = CandidateRecord(name="Example Inc.", location="Tokyo-to")
    second = CandidateRecord(name="Example", location="Tokyo")

    assert identity_key(first) == identity_key(second) == "example-tokyo"


@pytest.mark.parametrize(
    "raw",
    ["株式会社サンプル", "サンプル株式会社", "(株)サンプル", "㈱サンプル", "（株）サンプル", "サンプル 有限会社"],
)
def test_japanese_legal_forms_are_stripped(raw: str) -> None:
    assert normalize_name(raw) == "サンプル"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Acme Corporation", "acme"),
        ("ACME Co., Ltd.", "acme"),
        ("Acme  LLC", "acme"),
        ("Ａｃｍｅ　Ｋ.Ｋ.", "acme"),
        ("Open Data Foundation", "open data"),
    ],
)
def test_english_names_normalise(raw: str, expected: str) -> None:
    assert normalize_name(raw) == expected


def test_japanese_locations_drop_division_suffixes() -> None:
    assert normalize_location("東京都港区") == normalize_location("東京港")
    assert normalize_location("大阪府") == normalize_location("大阪")
    assert normalize_location("北海道") == "北海"


def test_romanised_locations_drop_division_tokens() -> None:
    assert normalize_location("Osaka-fu") == "osaka"
    assert normalize_location("Minato-ku, Tokyo") == "minato tokyo"
    assert normalize_location("Kanagawa Prefecture") == "kanagawa"
    assert normalize_location(None) == ""


def test_name_variants_from_different_sources_collide() -> None:
    registry = CandidateRecord(name="株式会社テックラボ", location="東京都")
    listing = CandidateRecord(name="テックラボ(株)", location="東京")

    assert identity_key(registry) == identity_key(listing)


def test_extract_prefecture() -> None:
    assert extract_prefecture("大阪府大阪市北区梅田1-1") == "大阪府"
    assert extract_prefecture("somewhere else") == UNKNOWN_PREFECTURE
    assert extract_prefecture(None) == UNKNOWN_PREFECTURE


def test_richness_score_weights_website_double() -> None:
    bare = CandidateRecord(name="A")
    with_site = CandidateRecord(name="A", website="https://a.example")
    full = CandidateRecord(
        name="A",
        website="https://a.example",
        phone="03-0000-0000",
        address="東京都港区",
        description="a fairly long description",
        established_date="2001-04-01",
        employee_count="12",
        capital="1000万円",
    )

    assert richness_score(bare) == 0
    assert richness_score(with_site) == 2
    assert richness_score(full) == 8
    assert richness_score(CandidateRecord(name="A", description="short")) == 0
