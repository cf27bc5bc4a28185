"""Tests for parsing AI completions into Ok/Malformed results."""

from scoop.models.ai import Malformed, Ok, parse_json_content, parse_text_content


def test_plain_json_object():
    result = parse_json_content('{"interest_level": 12}')
    assert isinstance(result, Ok)
    assert result.parsed == {"interest_level": 12}


def test_fenced_json():
    result = parse_json_content('```json\n{"headline": "Bridge Reopens"}\n```')
    assert isinstance(result, Ok)
    assert result.parsed["headline"] == "Bridge Reopens"


def test_json_embedded_in_prose():
    result = parse_json_content('Here you go: {"groups": [{"a": 1}]} Hope this helps.')
    assert isinstance(result, Ok)
    assert result.parsed == {"groups": [{"a": 1}]}


def test_json_array():
    result = parse_json_content("Result: [1, 2, 3]")
    assert isinstance(result, Ok)
    assert result.parsed == [1, 2, 3]


def test_unparseable_is_malformed_and_keeps_raw():
    result = parse_json_content("I cannot score this post.")
    assert isinstance(result, Malformed)
    assert result.raw == "I cannot score this post."


def test_empty_responses_are_malformed():
    assert isinstance(parse_json_content(""), Malformed)
    assert isinstance(parse_json_content(None), Malformed)
    assert isinstance(parse_text_content("   "), Malformed)


def test_text_content_is_stripped():
    result = parse_text_content("  Sartell Bridge Reopens \n")
    assert isinstance(result, Ok)
    assert result.parsed == "Sartell Bridge Reopens"
