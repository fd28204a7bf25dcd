"""Court label parsing: string and list inputs must both produce correct labels."""

from courtflow.utils.courts import numbered_court_labels, parse_court_names


def test_parse_court_names_string_comma_separated():
    """'1,5,6' parses to ['1','5','6'] (no list('1,5,6') corruption)."""
    assert parse_court_names("1,5,6") == ["1", "5", "6"]


def test_parse_court_names_list_unchanged():
    assert parse_court_names(["1", "5", "6"]) == ["1", "5", "6"]


def test_parse_court_names_none_or_empty():
    assert parse_court_names(None) == []
    assert parse_court_names("") == []
    assert parse_court_names("   ") == []
    assert parse_court_names(" , ,") == []


def test_parse_court_names_string_strips_whitespace():
    assert parse_court_names(" 1 , 5 , 6 ") == ["1", "5", "6"]


def test_parse_court_names_list_coerces_to_str():
    assert parse_court_names([1, 5, 6]) == ["1", "5", "6"]


def test_parse_court_names_drops_repeats():
    """First occurrence wins."""
    assert parse_court_names("Center, 2, Center, 3") == ["Center", "2", "3"]


def test_numbered_court_labels_skip_existing():
    assert numbered_court_labels(3) == ["Court 1", "Court 2", "Court 3"]
    assert numbered_court_labels(2, existing=["Court 1", "Court 3"]) == ["Court 2", "Court 4"]
    assert numbered_court_labels(0) == []
