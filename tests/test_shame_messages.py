"""Tests for escalation message content."""

import random
from datetime import UTC, datetime

import pytest

from src.services.email_templates import render_escalation_email
from src.services.shame_messages import (
    SHAME_MESSAGE_TEMPLATES,
    ShameContext,
    ShameMessageGenerator,
    fill_placeholders,
    format_due_date,
    format_overdue_time,
    get_escalation_emojis,
    get_intensity_label,
    get_shame_adjectives,
)


@pytest.fixture
def context():
    return ShameContext(
        task_title="Report",
        owner_name="Jo",
        owner_email="jo@example.com",
        contact_name="Sam",
        due_date=datetime(2025, 1, 15, 9, 0, tzinfo=UTC),
        overdue_minutes=125,
        relationship="friend",
    )


@pytest.mark.parametrize(
    "minutes,expected",
    [
        (0, "0 minutes"),
        (45, "45 minutes"),
        (60, "1 hours"),
        (125, "2 hours and 5 minutes"),
        (1440, "1 days"),
        (1500, "1 days and 1 hours"),
        (3 * 1440 + 59, "3 days"),
    ],
)
def test_format_overdue_time(minutes, expected):
    assert format_overdue_time(minutes) == expected


def test_format_due_date():
    due = datetime(2025, 1, 15, 9, 0, tzinfo=UTC)
    assert format_due_date(due) == "Wednesday, January 15, 2025"
    # 09:00 UTC is still the previous evening in Honolulu
    assert format_due_date(due, "Pacific/Honolulu") == "Tuesday, January 14, 2025"
    assert format_due_date(None) == ""


def test_fill_placeholders_blanks_unknown_names():
    assert fill_placeholders("{a} and {b}", {"a": "x"}) == "x and "


def test_intensity_labels():
    assert get_intensity_label(1) == "friendly nudge"
    assert get_intensity_label(2) == "serious concern"
    assert get_intensity_label(3) == "maximum shame"


def test_variant_selects_candidates(context):
    generator = ShameMessageGenerator()

    message = generator.generate(1, context, variant=0)

    assert message.subject == '⏰ Friendly reminder: Jo missed the deadline for "Report"'
    assert message.opening == "Hi Sam, a quick and friendly note from AccountaList."
    assert "Wednesday, January 15, 2025" in message.body
    assert message.intensity_label == "friendly nudge"


def test_no_placeholders_left(context):
    generator = ShameMessageGenerator(rng=random.Random(7))
    for level in (1, 2, 3):
        for variant in range(4):
            message = generator.generate(level, context, variant=variant)
            for part in (message.subject, message.opening, message.body, message.call_to_action):
                assert "{" not in part and "}" not in part


def test_level_is_clamped(context):
    generator = ShameMessageGenerator(rng=random.Random(1))

    assert generator.generate(0, context).level == 1
    high = generator.generate(9, context)
    assert high.level == 3
    assert high.intensity_label == "maximum shame"


def test_seeded_rng_is_reproducible(context):
    first = ShameMessageGenerator(rng=random.Random(42)).generate(2, context)
    second = ShameMessageGenerator(rng=random.Random(42)).generate(2, context)
    assert first == second
    assert first.subject in [
        fill_placeholders(s, {"ownerName": "Jo", "taskTitle": "Report", "contactName": "Sam"})
        for s in SHAME_MESSAGE_TEMPLATES[2]["subjects"]
    ]


def test_out_of_range_variant_falls_back_to_random(context):
    generator = ShameMessageGenerator(rng=random.Random(3))
    message = generator.generate(3, context, variant=99)
    assert message.level == 3
    assert message.subject


def test_email_escapes_content_and_marks_level_three(context):
    context.task_title = "<script>alert(1)</script>"
    message = ShameMessageGenerator().generate(3, context, variant=0)

    html = render_escalation_email(message, owner_name="Jo & Co", custom_message="Hold me to it")

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "Jo &amp; Co" in html
    assert "MAXIMUM SHAME MODE ACTIVATED" in html
    assert "Hold me to it" in html


def test_email_level_one_has_no_final_banner(context):
    message = ShameMessageGenerator().generate(1, context, variant=1)
    html = render_escalation_email(message, owner_name="Jo")
    assert "Gentle Reminder" in html
    assert "MAXIMUM SHAME MODE ACTIVATED" not in html
    assert "Personal message" not in html


def test_adjectives_and_emojis_per_level():
    assert get_shame_adjectives(1) == ["behind", "overdue", "delayed", "late"]
    assert "broken their word" in get_shame_adjectives(3)
    assert get_shame_adjectives(7) == get_shame_adjectives(1)
    assert get_escalation_emojis(2)[0] == "🚨"
    assert len(get_escalation_emojis(3)) == 5
    assert get_escalation_emojis(0) == get_escalation_emojis(1)


def test_email_header_shows_level_emojis(context):
    message = ShameMessageGenerator().generate(2, context, variant=0)
    html = render_escalation_email(message, owner_name="Jo")
    assert " ".join(get_escalation_emojis(2)) in html
