from lunaplan.core.text import clean_line, strip_code_fences

def test_strip_json_fence():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

def test_strip_leaves_plain_json():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'
    assert strip_code_fences("[1, 2]") == "[1, 2]"

def test_strip_surrounding_prose():
    assert strip_code_fences('Here you go: {"a": {"b": 1}} Hope it helps!') == '{"a": {"b": 1}}'

def test_strip_empty():
    assert strip_code_fences("") == ""
    assert strip_code_fences(None) == ""

def test_strip_no_object_is_unchanged():
    assert strip_code_fences("sorry, no plan today") == "sorry, no plan today"

def test_clean_line_bold():
    assert clean_line("**Hydrate** early") == "Hydrate early"
    assert clean_line("__Rest__ today") == "Rest today"
    # Unclosed markers are kept
    assert clean_line("**Open") == "**Open"

def test_clean_line_bullets():
    assert clean_line("- Item") == "Item"
    assert clean_line("* Item") == "Item"
    assert clean_line("• Item") == "Item"
    assert clean_line("  -  Indented") == "Indented"

def test_clean_line_preservation():
    # Internal hyphens are not bullets
    assert clean_line("low-impact cardio") == "low-impact cardio"
    assert clean_line("Tip: - stay warm") == "Tip: - stay warm"
