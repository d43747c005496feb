from __future__ import annotations

from certmaker.pipeline.substitute import find_placeholders, substitute, unbound_placeholders


def test_replaces_every_occurrence_ignoring_case() -> None:
    result = substitute("Hello {{name}}, {{NAME}} and {{Name}}!", [("name", "Ada")])
    assert result == "Hello Ada, Ada and Ada!"


def test_unknown_tokens_are_left_verbatim() -> None:
    result = substitute("{{name}} completed {{course}}", [("name", "Ada")])
    assert result == "Ada completed {{course}}"


def test_missing_value_substitutes_empty_string() -> None:
    assert substitute("[{{name}}]", [("name", None)]) == "[]"
    assert substitute("[{{name}}]", [("name", "")]) == "[]"


def test_values_are_inserted_literally() -> None:
    result = substitute("Path: {{dir}}", [("dir", r"C:\temp\1 $1 \g<0>")])
    assert result == r"Path: C:\temp\1 $1 \g<0>"


def test_field_names_are_matched_literally() -> None:
    assert substitute("{{aXb}} {{a.b}}", [("a.b", "dot")]) == "{{aXb}} dot"


def test_fields_apply_in_declaration_order() -> None:
    fields = [("first", "{{second}}"), ("second", "done")]
    assert substitute("{{first}}", fields) == "done"
    assert substitute("{{first}}", list(reversed(fields))) == "{{second}}"


def test_markup_passes_through_untouched() -> None:
    content = '<p style="color:red">Dear <b>{{name}}</b></p>'
    assert substitute(content, [("name", "Ada")]) == '<p style="color:red">Dear <b>Ada</b></p>'


def test_find_and_unbound_placeholders() -> None:
    content = "{{name}} finished {{Course}} at {{org}} on {{name}}"
    assert find_placeholders(content) == ["name", "Course", "org", "name"]
    assert unbound_placeholders(content, ["NAME", "course"]) == ["org"]
