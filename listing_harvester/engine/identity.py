"""Identity keys and information-richness scoring for business records.

Two listings describe the same business when their identity keys collide.
The key is ``normalize_name(name) + "-" + normalize_location(location)``;
normalisation is a best-effort heuristic tuned for Japanese listings
(legal-entity designators, prefecture and ward suffixes) with romanised
fallbacks.
"""

from __future__ import annotations

import re
import unicodedata

from .records import CandidateRecord

PREFECTURES = (
    "北海道", "青森県", "岩手県", "宮城県", "秋田県", "山形県", "福島県",
    "茨城県", "栃木県", "群馬県", "埼玉県", "千葉県", "東京都", "神奈川県",
    "新潟県", "富山県", "石川県", "福井県", "山梨県", "長野県", "岐阜県",
    "静岡県", "愛知県", "三重県", "滋賀県", "京都府", "大阪府", "兵庫県",
    "奈良県", "和歌山県", "鳥取県", "島根県", "岡山県", "広島県", "山口県",
    "徳島県", "香川県", "愛媛県", "高知県", "福岡県", "佐賀県", "長崎県",
    "熊本県", "大分県", "宮崎県", "鹿児島県", "沖縄県",
)
UNKNOWN_PREFECTURE = "不明"

# Applied after NFKC folding, so ㈱ / （株） already read as (株).
_JA_LEGAL_FORMS = re.compile(
    r"株式会社|有限会社|合同会社|合資会社|合名会社"
    r"|(?:一般|公益)(?:社団|財団)法人|特定非営利活動法人|NPO法人"
    r"|医療法人(?:社団|財団)?|社会福祉法人|学校法人|宗教法人|社団法人|財団法人"
    r"|\((?:株|有|合|資|名|社|財|医|学|福)\)"
)
_EN_LEGAL_FORMS = re.compile(
    r"(?<![\w])(?:incorporated|inc|l\.?l\.?c|ltd|limited|co|corp|corporation|company"
    r"|k\.k|g\.k|kabushiki\s+kaisha|godo\s+kaisha|foundation)\.?(?![\w])",
    re.IGNORECASE,
)
_PUNCTUATION = re.compile(r"[,、，.。・&＆'\"“”「」『』]")
_WHITESPACE = re.compile(r"\s+")

# Ward/city/town suffix at the end of a segment (followed by space, digits, hyphen or end).
_JA_DIVISION_SUFFIX = re.compile(r"(?<=[\u3040-\u30ff\u4e00-\u9fff])[市区町村郡](?=$|[\s\d\-])")
_ROMAN_DIVISION_TOKENS = frozenset(
    {
        "to", "do", "fu", "ken", "shi", "ku", "cho", "machi", "mura", "son", "gun",
        "prefecture", "pref", "city", "ward", "town", "village", "state", "county", "province",
    }
)
_ROMAN_SPLIT = re.compile(r"[\s\-_,/]+")


def _fold(text: str | None) -> str:
    if not text:
        return ""
    return unicodedata.normalize("NFKC", text)


def normalize_name(name: str | None) -> str:
    """Strip legal-entity designators and punctuation, collapse spaces, lowercase."""

    text = _fold(name)
    text = _JA_LEGAL_FORMS.sub(" ", text)
    text = _EN_LEGAL_FORMS.sub(" ", text)
    text = _PUNCTUATION.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip().lower()


def normalize_location(location: str | None) -> str:
    """Strip administrative-division suffixes, collapse spaces, lowercase."""

    text = _fold(location).strip()
    if not text:
        return ""
    prefecture = next((p for p in PREFECTURES if text.startswith(p)), None)
    if prefecture is not None:
        rest = text[len(prefecture):]
        text = (prefecture[:-1] if len(prefecture) > 2 else prefecture) + rest
    text = _JA_DIVISION_SUFFIX.sub("", text)

    tokens = [token for token in _ROMAN_SPLIT.split(text.lower()) if token]
    if not tokens:
        return ""
    kept = [tokens[0]] + [t for t in tokens[1:] if t not in _ROMAN_DIVISION_TOKENS]
    return _WHITESPACE.sub(" ", " ".join(kept)).strip()


def identity_key(record: CandidateRecord) -> str:
    return f"{normalize_name(record.name)}-{normalize_location(record.location)}"


def extract_prefecture(address: str | None) -> str:
    """Return the prefecture mentioned in an address, or 不明."""

    text = _fold(address)
    for prefecture in PREFECTURES:
        if prefecture in text:
            return prefecture
    return UNKNOWN_PREFECTURE


def _filled(value: str | None) -> bool:
    return bool(value and str(value).strip())


def richness_score(record: CandidateRecord) -> int:
    """Count populated detail fields; a website is worth two points."""

    score = 2 if _filled(record.website) else 0
    score += sum(
        1
        for value in (
            record.phone,
            record.address,
            record.established_date,
            record.employee_count,
            record.capital,
        )
        if _filled(value)
    )
    if record.description and len(record.description.strip()) > 10:
        score += 1
    return score


__all__ = [
    "PREFECTURES",
    "UNKNOWN_PREFECTURE",
    "extract_prefecture",
    "identity_key",
    "normalize_location",
    "normalize_name",
    "richness_score",
]
