import json

from app.ai.routine_formatter import EMPTY_ROUTINE_TEXT, extract_routine_reply, format_routine

FULL_ROUTINE = {
    "rutina": {
        "objectiu": "Guanyar força",
        "descripcio": "Programa de tres dies.",
        "durada_programa": "8 setmanes",
        "sessions": [
            {
                "dia": "Dilluns",
                "horaInici": "18:00",
                "horaFi": "19:00",
                "focus": "Cames",
                "exercicis": [
                    {"nom": "Squat", "series": 4, "repeticions": "6-8", "descanso": "120s", "notes": "Controla la baixada"},
                    {"nom": "Lunge", "series": 3},
                ],
            },
            {"dia": "Dimecres", "exercicis": []},
        ],
        "consells_generals": ["Dorm 8 hores", "Hidrata't"],
        "progressio": {"setmana_1": "Adaptació", "setmanes_2_4": "Augmenta la càrrega"},
    }
}


def test_minimal_routine_has_objective_and_no_sessions():
    text = format_routine({"routine": {"objectiu": "strength", "sessions": []}})

    assert text.startswith("# Personalized Routine")
    assert "**Objective:** strength" in text
    assert "## Training Sessions" not in text
    assert "### Session" not in text


def test_session_with_numbered_exercise():
    text = format_routine(
        {"routine": {"sessions": [{"dia": "Monday", "exercicis": [{"nom": "Squat", "series": 3, "repeticions": 10}]}]}}
    )

    assert "### Session 1: Monday" in text
    assert "1. **Squat**" in text
    assert "   - Sets: 3" in text
    assert "   - Reps: 10" in text
    assert "Rest" not in text
    assert "Notes" not in text


def test_full_routine_renders_sections_in_order():
    text = format_routine(FULL_ROUTINE)

    expected_order = [
        "# Personalized Routine",
        "**Objective:** Guanyar força",
        "Programa de tres dies.",
        "**Program duration:** 8 setmanes",
        "## Training Sessions",
        "### Session 1: Dilluns",
        "**Schedule:** 18:00 - 19:00",
        "**Focus:** Cames",
        "**Exercises:**",
        "1. **Squat**",
        "   - Rest: 120s",
        "   - Notes: Controla la baixada",
        "2. **Lunge**",
        "### Session 2: Dimecres",
        "## General Advice",
        "- Dorm 8 hores",
        "## Weekly Progression",
        "**Setmana 1:** Adaptació",
        "**Setmanes 2 4:** Augmenta la càrrega",
    ]
    positions = [text.index(fragment) for fragment in expected_order]
    assert positions == sorted(positions)


def test_schedule_needs_both_times():
    text = format_routine({"routine": {"sessions": [{"dia": "Friday", "horaInici": "07:00"}]}})

    assert "**Schedule:**" not in text


def test_missing_day_and_exercise_name_get_placeholders():
    text = format_routine({"routine": {"sessions": [{"exercicis": [{"series": 2}]}]}})

    assert "### Session 1: Day not specified" in text
    assert "1. **Exercise**" in text


def test_english_field_names_are_accepted():
    text = format_routine({"routine": {"objective": "Endurance", "general_advice": ["Warm up"]}})

    assert "**Objective:** Endurance" in text
    assert "- Warm up" in text


def test_null_sections_are_treated_as_absent():
    text = format_routine({"routine": {"objectiu": "x", "sessions": None, "consells_generals": None, "progressio": None}})

    assert "## Training Sessions" not in text
    assert "## General Advice" not in text
    assert "## Weekly Progression" not in text


def test_input_without_routine_is_dumped():
    document = {"something": "else", "n": 1}

    assert format_routine(document) == json.dumps(document, indent=2, ensure_ascii=False)


def test_none_input_is_dumped_as_empty_object():
    assert format_routine(None) == "{}"


def test_routine_that_is_not_an_object_is_dumped():
    document = {"routine": "Three sessions a week"}

    assert format_routine(document) == json.dumps(document, indent=2, ensure_ascii=False)



def test_routine_given_as_list_is_dumped():
    document = {"rutina": [{"dia": "Monday"}]}

    assert format_routine(document) == json.dumps(document, indent=2, ensure_ascii=False)


def test_focus_given_as_list_is_joined():
    text = format_routine({"rutina": {"objectiu": "Força", "sessions": [{"dia": "Dilluns", "focus": ["Cames", "Core"]}]}})

    assert text.startswith("# Personalized Routine")
    assert "**Focus:** Cames, Core" in text
    assert "**Objective:** Força" in text


def test_progression_step_given_as_object_is_flattened():
    text = format_routine(
        {"rutina": {"progressio": {"setmana_1": {"series": 3, "carrega": "70%"}, "setmana_2": "Augmenta"}}}
    )

    assert text.startswith("# Personalized Routine")
    assert "**Setmana 1:** series: 3, carrega: 70%" in text
    assert "**Setmana 2:** Augmenta" in text


def test_exercise_notes_given_as_list_are_joined():
    text = format_routine(
        {"rutina": {"sessions": [{"dia": "Dilluns", "exercicis": [{"nom": "Squat", "notes": ["Esquena recta", "Baixa lent"]}]}]}}
    )

    assert text.startswith("# Personalized Routine")
    assert "   - Notes: Esquena recta, Baixa lent" in text


def test_odd_leaf_values_are_stringified():
    text = format_routine(
        {
            "routine": {
                "objectiu": ["Força", "Resistència"],
                "durada_programa": {"setmanes": 8},
                "consells_generals": ["Dorm", {"aigua": "2L"}, None],
                "sessions": [
                    "not a session",
                    {"dia": 1, "exercicis": ["Plank", {"nom": ["Push", "up"], "series": [3, 4], "descanso": True}, 7]},
                ],
            }
        }
    )

    assert "**Objective:** Força, Resistència" in text
    assert "**Program duration:** setmanes: 8" in text
    assert "- aigua: 2L" in text
    assert "### Session 1: 1" in text
    assert "### Session 2" not in text
    assert "1. **Plank**" in text
    assert "2. **Push, up**" in text
    assert "   - Sets: 3, 4" in text
    assert "   - Rest: True" in text
    assert "3. **" not in text

def test_extract_formats_routine_object():
    reply = extract_routine_reply("application/json", json.dumps(FULL_ROUTINE))

    assert reply.startswith("# Personalized Routine")


def test_extract_formats_first_array_element():
    reply = extract_routine_reply("application/json", json.dumps([FULL_ROUTINE, {"ignored": True}]))

    assert "### Session 1: Dilluns" in reply


def test_extract_pretty_prints_other_json():
    reply = extract_routine_reply("application/json", json.dumps({"status": "queued"}))

    assert reply == '{\n  "status": "queued"\n}'


def test_extract_returns_unparseable_json_verbatim():
    assert extract_routine_reply("application/json", "{broken") == "{broken"


def test_extract_returns_plain_text_verbatim():
    assert extract_routine_reply("text/plain", "Here is your plan") == "Here is your plan"


def test_extract_empty_body():
    assert extract_routine_reply("application/json", "") == EMPTY_ROUTINE_TEXT
    assert extract_routine_reply(None, "   ") == EMPTY_ROUTINE_TEXT
