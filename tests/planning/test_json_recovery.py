"""Tests for parsing JSON out of free-form model output."""

import json

import pytest

from app.planning.errors import ParseError
from app.planning.json_recovery import (
    extract_json_candidate,
    is_truncated,
    parse_model_json,
    recover_truncated_json,
    repair_json_text,
)


def test_parses_fenced_json_with_commentary():
    text = 'Here is your plan:\n```json\n{"days": {"monday": {"reason": "ok"}}}\n```\nLet me know!'

    assert parse_model_json(text) == {"days": {"monday": {"reason": "ok"}}}


def test_braces_inside_strings_do_not_split_candidate():
    text = 'Result: {"note": "use {curly} braces", "n": 2} thanks'

    assert extract_json_candidate(text) == '{"note": "use {curly} braces", "n": 2}'
    assert parse_model_json(text) == {"note": "use {curly} braces", "n": 2}


def test_largest_candidate_wins():
    text = '{"a": 1} and then {"days": {"monday": {}, "tuesday": {}}}'

    assert parse_model_json(text) == {"days": {"monday": {}, "tuesday": {}}}


def test_repairs_unquoted_keys_single_quotes_and_trailing_commas():
    assert parse_model_json("{name: 'Squat', sets: 3,}") == {"name": "Squat", "sets": 3}


def test_repairs_ellipsis_placeholders():
    assert parse_model_json('{"items": [1, 2, ...]}') == {"items": [1, 2]}


def test_repairs_raw_newline_inside_string():
    parsed = parse_model_json('{"note": "line one\nline two"}')

    assert parsed == {"note": "line one\nline two"}


def test_repairs_missing_comma_between_lines():
    text = '{\n  "a": 1\n  "b": 2\n}'

    assert parse_model_json(text) == {"a": 1, "b": 2}


def test_repair_patches_empty_values():
    assert repair_json_text('{"a": , "b": }') == {"a": None, "b": None}


def test_repairs_leave_string_contents_alone():
    text = '{"note": "rest:, then walk", "cue": "sets ,, reps ...", "n": 1,}'

    assert parse_model_json(text) == {"note": "rest:, then walk", "cue": "sets ,, reps ...", "n": 1}


def test_truncated_output_keeps_string_contents():
    parsed = parse_model_json('{"note": "rest:, then walk", "cue": "sets ,, reps", "items": [1, 2, ')

    assert parsed == {"note": "rest:, then walk", "cue": "sets ,, reps", "items": [1, 2]}


def test_recovers_truncated_string():
    text = '{"days": {"monday": {"focus": ["Push", "Pu'

    assert parse_model_json(text) == {"days": {"monday": {"focus": ["Push"]}}}


def test_recovers_dangling_key():
    assert parse_model_json('{"a": 1, "b": ') == {"a": 1}


def test_recovery_drops_incomplete_scalar():
    recovered = recover_truncated_json('{"a": [1, 2, {"b": tru')

    assert recovered == '{"a": [1, 2, {}]}'


def test_recovery_drops_scalar_cut_by_end_of_input():
    # 22 may be the start of 225
    assert recover_truncated_json('{"a": [1, 22') == '{"a": [1]}'
    assert recover_truncated_json('{"a": [1, 22]') == '{"a": [1, 22]}'


def test_recovery_cuts_text_after_closed_object():
    assert recover_truncated_json('{"a": 1} trailing words') == '{"a": 1}'


def test_recovery_without_container_returns_input():
    assert recover_truncated_json("no json here") == "no json here"


@pytest.mark.parametrize("text", ["", "   ", "I'm sorry, I can't help with that."])
def test_unparseable_output_raises(text):
    with pytest.raises(ParseError) as exc_info:
        parse_model_json(text)

    assert "JSON_PARSE_ERROR" in str(exc_info.value)


def test_parse_error_keeps_head_of_text():
    text = "x" * 500

    with pytest.raises(ParseError) as exc_info:
        parse_model_json(text)

    assert exc_info.value.head == "x" * 200
    assert exc_info.value.tail == "x" * 200


PLAN = {
    "days": {
        "monday": {
            "workout": {
                "focus": ["Upper Body", "Push"],
                "blocks": [
                    {
                        "name": "Main",
                        "items": [
                            {"exercise": "Bench Press", "sets": 4, "reps": "8-10", "RIR": 2, "rest_s": 90},
                            {"exercise": "Dumbbell Fly", "sets": 3, "reps": "12", "RIR": 1.5, "rest_s": 60},
                        ],
                    }
                ],
                "notes": 'Keep "tempo" reps: 3-1-1, then {rest}, no failure',
            },
            "nutrition": {
                "total_kcal": 2500,
                "protein_g": 160,
                "hydration_l": 2.5,
                "meals": [
                    {"name": "Breakfast", "items": [{"food": "Oats, berries", "qty": "80 g", "kcal": 310}]},
                    {"name": "Dinner", "items": [{"food": "Crème fraîche pasta", "qty": "1 bowl", "kcal": -1}]},
                ],
            },
            "recovery": {"mobility": ["Light stretching"], "sleep": ["Aim for 7-8 hours of sleep"]},
            "supplementCard": {"current": ["Creatine"], "addOns": []},
            "isRestDay": False,
            "coachNote": None,
            "reason": "Today's plan is designed for your MUSCLE_GAIN goal with dumbbell exercises.",
        }
    }
}


def _kept_from(recovered, original) -> bool:
    """Every value in recovered appears unchanged at the same place in original."""
    if isinstance(recovered, dict):
        return isinstance(original, dict) and all(
            key in original and _kept_from(value, original[key]) for key, value in recovered.items()
        )
    if isinstance(recovered, list):
        return (
            isinstance(original, list)
            and len(recovered) <= len(original)
            and all(_kept_from(value, original[i]) for i, value in enumerate(recovered))
        )
    return type(recovered) is type(original) and recovered == original


@pytest.mark.parametrize("indent", [None, 2])
def test_every_truncation_recovers_without_changing_values(indent):
    document = json.dumps(PLAN, indent=indent, ensure_ascii=False)

    for cut in range(1, len(document)):
        parsed = parse_model_json(document[:cut])

        assert _kept_from(parsed, PLAN), f"value changed when cut at {cut}: {document[:cut][-40:]!r}"


@pytest.mark.parametrize("indent", [None, 2])
def test_well_formed_json_is_unchanged_by_every_stage(indent):
    document = json.dumps(PLAN, indent=indent, ensure_ascii=False)

    assert extract_json_candidate(document) == document
    assert parse_model_json(document) == PLAN
    assert not is_truncated(document)
    assert repair_json_text(document) == PLAN
    assert recover_truncated_json(document) == document
