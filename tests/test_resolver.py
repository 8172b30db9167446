import pytest

from nestcarve.file_signatures import SignatureRegistry, SignatureRule
from nestcarve.models import Confidence, ScanMatch
from nestcarve.resolver import AnalysisResult, MatchResolver


@pytest.fixture
def registry() -> SignatureRegistry:
    return SignatureRegistry(
        [
            SignatureRule(id="png", name="PNG", pattern=b"\x89PNG", description="PNG image"),
            SignatureRule(id="zlib_default", name="zlib", pattern=b"\x78\x9c"),
            SignatureRule(id="zlib_best", name="zlib-best", pattern=b"\x78\xda"),
        ]
    )


def _match(sid: str, offset: int, confidence: Confidence = Confidence.MEDIUM, order: int = 0, size=None) -> ScanMatch:
    return ScanMatch(signature_id=sid, offset=offset, confidence=confidence, size=size, order=order)


def test_results_ordered_by_offset_then_confidence_then_order(registry: SignatureRegistry) -> None:
    matches = [
        _match("zlib_best", 50, Confidence.LOW, order=2),
        _match("zlib_default", 10, Confidence.LOW, order=1),
        _match("png", 10, Confidence.HIGH, order=0),
        _match("zlib_best", 10, Confidence.LOW, order=2),
    ]
    results = MatchResolver(registry).resolve(matches)
    assert [(r.offset, r.id) for r in results] == [
        (10, "png"),
        (10, "zlib_default"),
        (10, "zlib_best"),
        (50, "zlib_best"),
    ]


def test_distinct_signatures_at_same_offset_are_kept(registry: SignatureRegistry) -> None:
    results = MatchResolver(registry).resolve([_match("png", 0, order=0), _match("zlib_default", 0, order=1)])
    assert len(results.at_offset(0)) == 2


def test_exact_duplicates_collapse(registry: SignatureRegistry) -> None:
    results = MatchResolver(registry).resolve([_match("png", 4, Confidence.LOW), _match("png", 4, Confidence.HIGH)])
    assert len(results) == 1
    assert results[0].confidence is Confidence.HIGH


def test_include_by_name_is_case_insensitive(registry: SignatureRegistry) -> None:
    matches = [_match("png", 0), _match("zlib_default", 8, order=1), _match("zlib_best", 16, order=2)]
    results = MatchResolver(registry, include=["ZLIB"]).resolve(matches)
    assert [r.id for r in results] == ["zlib_default"]


def test_exclude_by_id(registry: SignatureRegistry) -> None:
    matches = [_match("png", 0), _match("zlib_default", 8, order=1)]
    results = MatchResolver(registry, exclude=["zlib_default"]).resolve(matches)
    assert [r.id for r in results] == ["png"]


def test_exclude_wins_over_include(registry: SignatureRegistry) -> None:
    matches = [_match("png", 0), _match("zlib_default", 8, order=1)]
    results = MatchResolver(registry, include=["png", "zlib"], exclude=["PNG"]).resolve(matches)
    assert [r.id for r in results] == ["zlib_default"]


def test_unknown_filter_term_is_reported(registry: SignatureRegistry, caplog) -> None:
    MatchResolver(registry, include=["jpeg"])
    assert "jpeg" in caplog.text


def test_registry_filtered_preserves_order(registry: SignatureRegistry) -> None:
    filtered = registry.filtered(include=["zlib-best", "png"])
    assert filtered.ids() == ["png", "zlib_best"]
    assert registry.filtered(exclude=["png"]).ids() == ["zlib_default", "zlib_best"]


def test_result_fields_come_from_rule(registry: SignatureRegistry) -> None:
    results = MatchResolver(registry).resolve([_match("png", 32, Confidence.HIGH, size=57)])
    assert results[0] == AnalysisResult(
        id="png", name="PNG", description="PNG image", confidence=Confidence.HIGH, offset=32, size=57
    )
    assert results[0].to_dict() == {
        "description": "PNG image",
        "id": "png",
        "name": "PNG",
        "confidence": "high",
        "offset": "32",
        "size": "57",
    }


def test_unknown_size_reported_as_zero(registry: SignatureRegistry) -> None:
    results = MatchResolver(registry).resolve([_match("zlib_best", 3)])
    assert results[0].size == 0


def test_confidence_parse_and_display() -> None:
    assert Confidence.parse(" High ") is Confidence.HIGH
    assert str(Confidence.MEDIUM) == "medium"
    with pytest.raises(ValueError):
        Confidence.parse("certain")
