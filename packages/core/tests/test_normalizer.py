"""Tests for decoding, validating and normalizing pr-analysis responses."""

import copy
import json

import pytest

from prscout_core.errors import SchemaMismatchError, SchemaValidationError
from prscout_core.models import (
    AnalysisComment,
    AnalysisSummary,
    MacroscopeComment,
    PRAnalysisResultV1,
    PRAnalysisResultV2,
)
from prscout_core.normalizer import (
    SchemaVariant,
    SchemaVersion,
    backfill,
    best_bug_for_outreach,
    category_rank,
    classify,
    comment_to_bug_snippet,
    decode,
    has_meaningful_bugs,
    meaningful_bugs_sorted,
    most_impactful_bug,
    normalize,
    outreach_ready,
    severity_for_category,
    to_dict,
    to_v1,
    validate_v1,
    validate_v2,
)


def _entry(index, category="suggestion", meaningful=False, outreach=False, **extra):
    entry = {
        "index": index,
        "file_path": f"src/file_{index}.py",
        "category": category,
        "title": f"Finding {index}",
        "is_meaningful_bug": meaningful,
        "outreach_ready": outreach,
    }
    entry.update(extra)
    return entry


def _payload(entries=None, best=None, recommendation="No bugs."):
    entries = entries if entries is not None else [_entry(0), _entry(1)]
    meaningful = sum(1 for e in entries if e["is_meaningful_bug"])
    return {
        "total_comments_processed": len(entries),
        "meaningful_bugs_count": meaningful,
        "outreach_ready_count": sum(1 for e in entries if e["outreach_ready"]),
        "best_bug_for_outreach_index": best,
        "all_comments": entries,
        "summary": {
            "bugs_by_severity": {"critical": 0, "high": 0, "medium": 0, "low": 0},
            "non_bugs": {"suggestions": len(entries) - meaningful, "style": 0, "nitpicks": 0},
            "recommendation": recommendation,
        },
    }


def _originals(n):
    return [
        MacroscopeComment(
            id=100 + i,
            path=f"src/file_{i}.py",
            line=10 + i,
            body=f"bot finding {i}",
            diff_hunk="@@ -1 +1 @@",
            created_at="2024-05-01T12:00:00+00:00",
        )
        for i in range(n)
    ]


def _comment(index, category="bug_medium", meaningful=True, **kwargs):
    return AnalysisComment(
        index=index,
        file_path=f"src/file_{index}.py",
        category=category,
        title=f"Finding {index}",
        is_meaningful_bug=meaningful,
        outreach_ready=kwargs.pop("outreach_ready", False),
        **kwargs,
    )


def _v2(comments, best=None, recommendation="Reach out."):
    return PRAnalysisResultV2(
        total_comments_processed=len(comments),
        meaningful_bugs_count=sum(1 for c in comments if c.is_meaningful_bug),
        outreach_ready_count=sum(1 for c in comments if c.outreach_ready),
        best_bug_for_outreach_index=best,
        all_comments=comments,
        summary=AnalysisSummary(bugs_by_severity={}, recommendation=recommendation),
    )


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    def test_v2_payload(self):
        assert classify(_payload()) == SchemaVersion.V2

    def test_v1_payload(self):
        assert classify({"meaningful_bugs_found": False, "reason": "none"}) == SchemaVersion.V1

    def test_v2_wins_when_both_shapes_present(self):
        payload = _payload()
        payload["meaningful_bugs_found"] = True
        assert classify(payload) == SchemaVersion.V2

    def test_typed_results(self):
        assert classify(_v2([])) == SchemaVersion.V2
        assert classify(PRAnalysisResultV1(meaningful_bugs_found=False, reason="x")) == SchemaVersion.V1

    def test_unknown_shape_raises(self):
        with pytest.raises(SchemaMismatchError, match="bugs"):
            classify({"bugs": []})

    def test_non_bool_flag_is_not_v1(self):
        with pytest.raises(SchemaMismatchError):
            classify({"meaningful_bugs_found": "yes"})

    def test_summary_must_be_object_for_v2(self):
        with pytest.raises(SchemaMismatchError):
            classify({"all_comments": [], "summary": "fine"})

    def test_non_object_raises(self):
        with pytest.raises(SchemaMismatchError, match="list"):
            classify([1, 2])

    def test_round_trip_keeps_v2_classification(self):
        result = normalize(_payload(), _originals(2))
        assert classify(json.loads(json.dumps(to_dict(result)))) == SchemaVersion.V2


# ---------------------------------------------------------------------------
# validate_v2
# ---------------------------------------------------------------------------


class TestValidateV2:
    def test_valid_payload_returns_typed_result(self):
        result = validate_v2(_payload())
        assert isinstance(result, PRAnalysisResultV2)
        assert result.total_comments_processed == 2
        assert result.summary.recommendation == "No bugs."
        assert result.summary.non_bugs["suggestions"] == 2
        assert [c.index for c in result.all_comments] == [0, 1]

    @pytest.mark.parametrize(
        "field",
        ["total_comments_processed", "meaningful_bugs_count", "outreach_ready_count", "all_comments", "summary"],
    )
    def test_missing_top_level_field_is_named(self, field):
        payload = _payload()
        del payload[field]
        with pytest.raises(SchemaValidationError, match=field) as exc:
            validate_v2(payload)
        assert exc.value.field == field

    def test_missing_recommendation_is_named(self):
        payload = _payload()
        del payload["summary"]["recommendation"]
        with pytest.raises(SchemaValidationError, match=r"summary\.recommendation") as exc:
            validate_v2(payload)
        assert exc.value.field == "summary.recommendation"

    def test_blank_recommendation_rejected(self):
        with pytest.raises(SchemaValidationError, match=r"summary\.recommendation"):
            validate_v2(_payload(recommendation="   "))

    def test_missing_bugs_by_severity_is_named(self):
        payload = _payload()
        del payload["summary"]["bugs_by_severity"]
        with pytest.raises(SchemaValidationError, match=r"summary\.bugs_by_severity"):
            validate_v2(payload)

    def test_all_comments_must_be_array(self):
        payload = _payload()
        payload["all_comments"] = {"0": _entry(0)}
        with pytest.raises(SchemaValidationError, match="array"):
            validate_v2(payload)

    def test_comment_error_names_position_and_field(self):
        payload = _payload()
        del payload["all_comments"][1]["title"]
        with pytest.raises(SchemaValidationError) as exc:
            validate_v2(payload)
        assert exc.value.field == "all_comments[1].title"
        assert "all_comments[1].title" in str(exc.value)

    def test_bool_is_not_an_index(self):
        payload = _payload()
        payload["all_comments"][0]["index"] = True
        with pytest.raises(SchemaValidationError, match=r"all_comments\[0\]\.index"):
            validate_v2(payload)

    def test_flags_must_be_booleans(self):
        payload = _payload()
        payload["all_comments"][0]["is_meaningful_bug"] = "false"
        with pytest.raises(SchemaValidationError, match="is_meaningful_bug"):
            validate_v2(payload)

    def test_best_index_need_not_match_a_comment(self):
        result = validate_v2(_payload(best=5))
        assert result.best_bug_for_outreach_index == 5

    def test_best_index_must_be_integer_or_null(self):
        with pytest.raises(SchemaValidationError, match="best_bug_for_outreach_index"):
            validate_v2(_payload(best="1"))

    def test_missing_non_bugs_defaults_to_empty(self):
        payload = _payload()
        del payload["summary"]["non_bugs"]
        assert validate_v2(payload).summary.non_bugs == {}

    def test_lenient_allows_missing_explanation_and_text(self):
        result = validate_v2(_payload(), SchemaVariant.LENIENT)
        assert result.all_comments[0].explanation is None
        assert result.all_comments[0].macroscope_comment_text is None

    def test_strict_requires_explanation(self):
        with pytest.raises(SchemaValidationError, match=r"all_comments\[0\]\.explanation"):
            validate_v2(_payload(), "strict")

    def test_strict_requires_macroscope_comment_text(self):
        entries = [_entry(0, explanation="why")]
        with pytest.raises(SchemaValidationError, match=r"all_comments\[0\]\.macroscope_comment_text"):
            validate_v2(_payload(entries), SchemaVariant.STRICT)

    def test_strict_accepts_complete_entries(self):
        entries = [_entry(0, explanation="why", macroscope_comment_text="bot said")]
        result = validate_v2(_payload(entries), SchemaVariant.STRICT)
        assert result.all_comments[0].explanation == "why"

    def test_unknown_variant_rejected(self):
        with pytest.raises(ValueError):
            validate_v2(_payload(), "loose")

    def test_nullable_text_must_be_string_or_null(self):
        entries = [_entry(0, code_suggestion=42)]
        with pytest.raises(SchemaValidationError, match="code_suggestion"):
            validate_v2(_payload(entries))

    def test_unknown_category_passes_validation(self):
        result = validate_v2(_payload([_entry(0, category="performance")]))
        assert result.all_comments[0].category == "performance"


# ---------------------------------------------------------------------------
# validate_v1
# ---------------------------------------------------------------------------


def _bug(**overrides):
    bug = {"title": "Null deref", "explanation": "Crashes", "file_path": "a.py", "severity": "high"}
    bug.update(overrides)
    return bug


class TestValidateV1:
    def test_no_bugs_with_reason(self):
        result = validate_v1({"meaningful_bugs_found": False, "reason": "All style."})
        assert result.meaningful_bugs_found is False
        assert result.reason == "All style."

    def test_no_bugs_without_reason_rejected(self):
        with pytest.raises(SchemaValidationError, match="reason"):
            validate_v1({"meaningful_bugs_found": False})

    def test_empty_bugs_array_rejected(self):
        with pytest.raises(SchemaValidationError, match="empty"):
            validate_v1({"meaningful_bugs_found": True, "bugs": []})

    def test_missing_bugs_array_rejected(self):
        with pytest.raises(SchemaValidationError, match="bugs"):
            validate_v1({"meaningful_bugs_found": True})

    @pytest.mark.parametrize("field", ["title", "explanation", "file_path", "severity"])
    def test_bug_missing_field_rejected(self, field):
        bug = _bug()
        del bug[field]
        with pytest.raises(SchemaValidationError) as exc:
            validate_v1({"meaningful_bugs_found": True, "bugs": [_bug(), bug]})
        assert exc.value.field == f"bugs[1].{field}"

    @pytest.mark.parametrize("field", ["title", "explanation", "file_path", "severity"])
    def test_bug_non_string_field_rejected(self, field):
        bug = _bug(**{field: ["src/cache.ts"]})
        with pytest.raises(SchemaValidationError, match="must be a string") as exc:
            validate_v1({"meaningful_bugs_found": True, "bugs": [bug]})
        assert exc.value.field == f"bugs[0].{field}"

    def test_valid_bugs(self):
        result = validate_v1(
            {
                "meaningful_bugs_found": True,
                "bugs": [_bug(), _bug(title="Race", is_most_impactful=True)],
                "total_macroscope_bugs_found": 4,
            }
        )
        assert len(result.bugs) == 2
        assert result.bugs[1].is_most_impactful is True
        assert result.total_macroscope_bugs_found == 4

    def test_total_defaults_to_bug_count(self):
        result = validate_v1({"meaningful_bugs_found": True, "bugs": [_bug()]})
        assert result.total_macroscope_bugs_found == 1

    def test_non_bool_flag_rejected(self):
        with pytest.raises(SchemaValidationError, match="meaningful_bugs_found"):
            validate_v1({"meaningful_bugs_found": 1, "bugs": [_bug()]})


# ---------------------------------------------------------------------------
# decode / backfill / normalize
# ---------------------------------------------------------------------------


class TestDecode:
    def test_dispatches_to_v2(self):
        assert isinstance(decode(_payload()), PRAnalysisResultV2)

    def test_dispatches_to_v1(self):
        assert isinstance(decode({"meaningful_bugs_found": False, "reason": "x"}), PRAnalysisResultV1)

    def test_mismatch_propagates(self):
        with pytest.raises(SchemaMismatchError):
            decode({"result": "ok"})


class TestBackfill:
    def test_copies_original_body_by_index(self):
        result = backfill(validate_v2(_payload()), _originals(2))
        assert [c.macroscope_comment_text for c in result.all_comments] == ["bot finding 0", "bot finding 1"]

    def test_model_supplied_text_is_discarded(self):
        entries = [_entry(0, macroscope_comment_text="made up")]
        result = backfill(validate_v2(_payload(entries)), _originals(1))
        assert result.all_comments[0].macroscope_comment_text == "bot finding 0"

    def test_out_of_range_index_gets_empty_string(self, caplog):
        entries = [_entry(0), _entry(7)]
        with caplog.at_level("WARNING"):
            result = backfill(validate_v2(_payload(entries)), _originals(2))
        assert result.all_comments[1].macroscope_comment_text == ""
        assert "out of range" in caplog.text

    def test_negative_index_gets_empty_string(self):
        result = backfill(validate_v2(_payload([_entry(-1)])), _originals(2))
        assert result.all_comments[0].macroscope_comment_text == ""

    def test_does_not_mutate_input(self):
        validated = validate_v2(_payload())
        backfill(validated, _originals(2))
        assert validated.all_comments[0].macroscope_comment_text is None

    def test_absent_nullable_fields_are_explicit_none(self):
        result = normalize(_payload(), _originals(2))
        data = to_dict(result)
        for entry in data["all_comments"]:
            for key in ("explanation", "explanation_short", "impact_scenario", "code_suggestion", "line_number"):
                assert key in entry
                assert entry[key] is None

    def test_normalize_leaves_v1_alone(self):
        raw = {"meaningful_bugs_found": False, "reason": "nothing"}
        assert normalize(raw, _originals(1)) == PRAnalysisResultV1(meaningful_bugs_found=False, reason="nothing")

    def test_normalize_does_not_modify_raw_payload(self):
        raw = _payload()
        before = copy.deepcopy(raw)
        normalize(raw, _originals(2))
        assert raw == before


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_no_meaningful_bugs(self):
        result = normalize(_payload(), _originals(2))
        assert has_meaningful_bugs(result) is False
        v1 = to_v1(result)
        assert to_dict(v1) == {"meaningful_bugs_found": False, "reason": "No bugs."}

    def test_critical_bug_is_best_for_outreach(self):
        entries = [_entry(0), _entry(1, category="bug_critical", meaningful=True, outreach=True)]
        result = normalize(_payload(entries, best=1, recommendation="Email them."), _originals(2))
        best = best_bug_for_outreach(result)
        assert best is result.all_comments[1]
        v1 = to_v1(result)
        assert len(v1.bugs) == 1
        assert v1.bugs[0].is_most_impactful is True
        assert v1.bugs[0].severity == "critical"

    def test_drifted_best_index_returns_none(self):
        result = normalize(_payload(best=5), _originals(2))
        assert best_bug_for_outreach(result) is None

    def test_missing_recommendation_is_named(self):
        payload = _payload()
        del payload["summary"]["recommendation"]
        with pytest.raises(SchemaValidationError, match=r"summary\.recommendation"):
            validate_v2(payload)

    def test_empty_v1_bugs_rejected(self):
        with pytest.raises(SchemaValidationError):
            validate_v1({"meaningful_bugs_found": True, "bugs": []})


class TestAccessors:
    def test_has_meaningful_bugs_v1(self):
        v1 = PRAnalysisResultV1(meaningful_bugs_found=True, bugs=[])
        assert has_meaningful_bugs(v1) is True

    def test_has_meaningful_bugs_rejects_other_types(self):
        with pytest.raises(SchemaMismatchError):
            has_meaningful_bugs({"meaningful_bugs_found": True})

    def test_best_bug_null_index(self):
        assert best_bug_for_outreach(_v2([_comment(0)], best=None)) is None

    def test_best_bug_looked_up_by_value_not_position(self):
        comments = [_comment(3), _comment(1)]
        assert best_bug_for_outreach(_v2(comments, best=1)) is comments[1]

    def test_sorted_by_severity(self):
        comments = [
            _comment(0, "bug_low"),
            _comment(1, "bug_critical"),
            _comment(2, "suggestion", meaningful=False),
            _comment(3, "bug_high"),
        ]
        assert [c.index for c in meaningful_bugs_sorted(_v2(comments))] == [1, 3, 0]

    def test_sort_is_stable_for_equal_categories(self):
        comments = [_comment(4, "bug_high"), _comment(2, "bug_high"), _comment(9, "bug_high")]
        assert [c.index for c in meaningful_bugs_sorted(_v2(comments))] == [4, 2, 9]

    def test_unknown_category_sorts_last(self):
        comments = [_comment(0, "performance"), _comment(1, "bug_low")]
        assert [c.index for c in meaningful_bugs_sorted(_v2(comments))] == [1, 0]
        assert category_rank("performance") > category_rank("nitpick")

    def test_outreach_ready_filter(self):
        comments = [_comment(0, outreach_ready=True), _comment(1), _comment(2, outreach_ready=True)]
        assert [c.index for c in outreach_ready(_v2(comments))] == [0, 2]

    @pytest.mark.parametrize(
        "category,severity",
        [
            ("bug_critical", "critical"),
            ("bug_high", "high"),
            ("bug_medium", "medium"),
            ("bug_low", "medium"),
            ("performance", "medium"),
        ],
    )
    def test_severity_for_category(self, category, severity):
        assert severity_for_category(category) == severity

    def test_bug_snippet_falls_back_to_short_explanation(self):
        snippet = comment_to_bug_snippet(_comment(0, explanation_short="Short one."))
        assert snippet.explanation == "Short one."
        assert snippet.explanation_short == "Short one."

    def test_bug_snippet_explanation_never_none(self):
        assert comment_to_bug_snippet(_comment(0)).explanation == ""


class TestToV1:
    def test_bugs_match_sorted_order(self):
        comments = [
            _comment(0, "bug_low"),
            _comment(1, "bug_critical"),
            _comment(2, "nitpick", meaningful=False),
            _comment(3, "bug_medium"),
        ]
        result = _v2(comments, best=3)
        v1 = to_v1(result)
        expected = meaningful_bugs_sorted(result)
        assert len(v1.bugs) == len(expected)
        assert [b.title for b in v1.bugs] == [c.title for c in expected]
        assert [b.is_most_impactful for b in v1.bugs] == [False, True, False]
        assert v1.total_macroscope_bugs_found == 3
        assert v1.macroscope_comments_found == 4

    def test_no_flag_when_best_is_not_a_meaningful_bug(self):
        comments = [_comment(0, "bug_high"), _comment(1, "style", meaningful=False)]
        v1 = to_v1(_v2(comments, best=1))
        assert not any(b.is_most_impactful for b in v1.bugs)

    def test_no_flag_when_best_index_drifted(self):
        v1 = to_v1(_v2([_comment(0, "bug_high")], best=8))
        assert not any(b.is_most_impactful for b in v1.bugs)

    def test_at_most_one_flag_with_duplicate_indices(self):
        v1 = to_v1(_v2([_comment(1, "bug_high"), _comment(1, "bug_high")], best=1))
        assert sum(b.is_most_impactful for b in v1.bugs) == 1

    def test_recommendation_becomes_reason(self):
        v1 = to_v1(_v2([_comment(0, "style", meaningful=False)], recommendation="Skip this one."))
        assert v1.meaningful_bugs_found is False
        assert v1.reason == "Skip this one."

    def test_most_impactful_bug_falls_back_to_first(self):
        v1 = to_v1(_v2([_comment(0, "bug_high"), _comment(1, "bug_low")], best=None))
        assert most_impactful_bug(v1).title == "Finding 0"

    def test_most_impactful_bug_none_without_bugs(self):
        assert most_impactful_bug(PRAnalysisResultV1(meaningful_bugs_found=False, reason="x")) is None


class TestToDict:
    def test_v1_with_bugs(self):
        v1 = validate_v1({"meaningful_bugs_found": True, "bugs": [_bug()], "macroscope_comments_found": 3})
        data = to_dict(v1)
        assert data["meaningful_bugs_found"] is True
        assert data["bugs"][0]["title"] == "Null deref"
        assert data["total_macroscope_bugs_found"] == 1
        assert data["macroscope_comments_found"] == 3
        assert "reason" not in data

    def test_stored_v1_decodes_back(self):
        v1 = validate_v1({"meaningful_bugs_found": True, "bugs": [_bug(is_most_impactful=True)]})
        assert decode(json.loads(json.dumps(to_dict(v1)))) == v1

    def test_stored_v2_decodes_back(self):
        result = normalize(_payload([_entry(0, "bug_high", True, True)], best=0), _originals(1))
        assert decode(json.loads(json.dumps(to_dict(result)))) == result

    def test_rejects_other_types(self):
        with pytest.raises(SchemaMismatchError):
            to_dict({"meaningful_bugs_found": False})
