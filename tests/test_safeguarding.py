from flowforge.core.safeguarding import (
    ABUSE_DISCLOSURE,
    EXPLICIT_REQUEST,
    SELF_HARM,
    detect_concerns,
)


def test_clean_message_has_no_flags():
    assert detect_concerns("I enjoy maths and my friends are nice") == []
    assert detect_concerns("") == []


def test_self_harm_is_high_confidence():
    flags = detect_concerns("I keep hurting myself after school")
    assert [f.type for f in flags] == [SELF_HARM]
    assert flags[0].content.lower() == "hurting myself"
    assert flags[0].confidence == 0.9
    assert flags[0].needs_alert


def test_low_confidence_flag_does_not_alert():
    flags = detect_concerns("My brother makes me uncomfortable")
    assert [f.type for f in flags] == [ABUSE_DISCLOSURE]
    assert flags[0].confidence == 0.65
    assert not flags[0].needs_alert


def test_threshold_is_inclusive():
    flags = detect_concerns("I need help with something")
    assert [f.type for f in flags] == [EXPLICIT_REQUEST]
    assert flags[0].confidence == 0.7
    assert flags[0].needs_alert


def test_multiple_patterns_each_flag_once():
    flags = detect_concerns("I keep hurting myself and I need help, please help")
    assert [f.type for f in flags] == [SELF_HARM, EXPLICIT_REQUEST]


def test_to_dict_is_json_ready():
    flag = detect_concerns("I feel suicidal")[0]
    data = flag.to_dict()
    assert set(data) == {"type", "content", "confidence", "detected_at"}
    assert isinstance(data["detected_at"], str)
