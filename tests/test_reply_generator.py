"""
Tests for the Reply Generator — auto replies, check-in prompts, fixed
templates.
"""

import pytest

from radar.gateway.agents.reply_generator import (
    COURTESY_REPLY,
    DEFAULT_TIP,
    QUESTION_BLOCK,
    generate_auto_reply,
    generate_checkin_prompt,
    generate_test_message,
)
from radar.gateway.records import RiskLevel


class TestAutoReply:

    def test_urgent_names_symptoms(self):
        reply = generate_auto_reply(RiskLevel.URGENT, ["SEVERE_PAIN", "FEVER_REPORTED"], 3, "Maria")
        assert reply.startswith("Hi Maria, thank you for your Day 3 update.")
        assert "(severe pain, fever)" in reply
        assert "CONTACT YOUR DOCTOR IMMEDIATELY" in reply
        assert "ER" in reply

    def test_urgent_rule_flags_count_as_symptoms(self):
        reply = generate_auto_reply(3, ["BLEEDING_HEAVY"], 4, "Sam")
        assert "(heavy bleeding)" in reply

    def test_urgent_without_named_symptoms(self):
        reply = generate_auto_reply(3, ["CHEST_PAIN"], 4, "Sam")
        assert "need medical attention" not in reply
        assert "CONTACT YOUR DOCTOR IMMEDIATELY" in reply

    def test_review_self_care_sections(self):
        reply = generate_auto_reply(
            RiskLevel.REVIEW_TODAY,
            ["HIGH_PAIN", "BLEEDING_LIGHT", "SWELLING_INCREASED"],
            2,
            "Ana",
        )
        assert "pain medication" in reply
        assert "ice 20 min on/20 min off" in reply
        assert "light bleeding" in reply
        assert "elevated" in reply
        assert "review this update today" in reply

    def test_review_without_flags(self):
        reply = generate_auto_reply(2, [], 5, "Ana")
        assert "pain medication" not in reply
        assert reply.endswith("Call if symptoms worsen.")

    @pytest.mark.parametrize("day,phrase", [
        (1, "early post-op"),
        (4, "typical healing progress"),
        (8, "Excellent progress"),
        (13, "final stretch"),
    ])
    def test_routine_encouragement_by_day(self, day, phrase):
        assert phrase in generate_auto_reply(RiskLevel.ROUTINE, [], day, "Li")

    def test_routine_tip_and_fallback(self):
        assert "Week 1 complete!" in generate_auto_reply(1, [], 7, "Li")
        assert DEFAULT_TIP in generate_auto_reply(0, [], 6, "Li")

    def test_same_input_same_output(self):
        args = (RiskLevel.REVIEW_TODAY, ["MODERATE_PAIN"], 3, "Jo")
        assert generate_auto_reply(*args) == generate_auto_reply(*args)


class TestCheckinPrompt:

    def test_day_zero_welcome(self):
        prompt = generate_checkin_prompt("Maria", 0)
        assert prompt.startswith("Hi Maria! I'm your recovery companion.")
        assert QUESTION_BLOCK in prompt
        assert prompt.endswith("Reply STOP to opt out anytime.")

    def test_day_with_intro(self):
        prompt = generate_checkin_prompt("Maria", 7)
        assert prompt.startswith("Hi Maria! Day 7 check-in. One week milestone reached!")
        assert QUESTION_BLOCK in prompt

    def test_day_without_intro(self):
        prompt = generate_checkin_prompt("Maria", 9)
        assert "Day 9 check-in. How are you feeling today?" in prompt


class TestFixedTemplates:

    def test_courtesy(self):
        assert "active monitoring program" in COURTESY_REPLY

    def test_test_send_kinds(self):
        assert "Welcome to Post-Op Radar" in generate_test_message("welcome")
        assert QUESTION_BLOCK in generate_test_message("checkin")
        assert generate_test_message("custom", "hello") == "hello"

    def test_custom_requires_body(self):
        with pytest.raises(ValueError):
            generate_test_message("custom")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            generate_test_message("promo")
