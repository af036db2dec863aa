from app.ai.normalizer import parse_key_value_text


def test_parses_scalar_lines():
    result = parse_key_value_text("objectiu: strength\ndies: 3\nequip: true")

    assert result == {"objectiu": "strength", "dies": 3, "equip": True}


def test_splits_on_first_colon_only():
    result = parse_key_value_text("horari: 18:30")

    assert result == {"horari": "18:30"}


def test_decodes_json_values():
    result = parse_key_value_text('lesions: ["knee", "back"]\nmaterial: {"barra": true}')

    assert result["lesions"] == ["knee", "back"]
    assert result["material"] == {"barra": True}


def test_invalid_json_value_stays_string():
    result = parse_key_value_text("lesions: [knee")

    assert result == {"lesions": "[knee"}


def test_numbers_become_int_or_float():
    result = parse_key_value_text("edat: 34\npes: 72.5\nnegatiu: -2")

    assert result == {"edat": 34, "pes": 72.5, "negatiu": -2}
    assert isinstance(result["edat"], int)
    assert isinstance(result["pes"], float)


def test_non_numeric_text_is_not_coerced():
    result = parse_key_value_text("version: 1.2.3\nnom: 3 days")

    assert result == {"version": "1.2.3", "nom": "3 days"}


def test_skips_blank_lines_lines_without_colon_and_empty_keys():
    text = "\n\njust a sentence\n: orphan value\nnivell: principiant\n   \n"

    assert parse_key_value_text(text) == {"nivell": "principiant"}


def test_trims_keys_and_values():
    assert parse_key_value_text("   nivell   :    avançat   ") == {"nivell": "avançat"}


def test_never_raises_on_garbage():
    assert parse_key_value_text("{{{:::}}}\n:\n\x00") == {"{{{": "::}}}"}
    assert parse_key_value_text("") == {}


def test_non_string_input_yields_empty_dict():
    assert parse_key_value_text(None) == {}  # type: ignore[arg-type]
