"""
Reply Generator — every outbound text the system sends.

All functions are pure: the same (level, flags, day, name) always gives the
same message.  Templates:
  - auto replies to check-in responses, one per triage tier
  - daily check-in prompts (day 0 welcome, day N check-in)
  - the courtesy reply for unrecognised senders
  - staff test-send templates
"""

from __future__ import annotations

from typing import Iterable, Optional

from radar.gateway.records import RiskLevel

COURTESY_REPLY = (
    "Thank you for your message. We don't have an active monitoring program "
    "for this number. Please contact your clinic directly if you need assistance."
)

QUESTION_BLOCK = (
    "1. Pain level 0-10?\n"
    "2. Any new bleeding/swelling? (YES/NO)\n"
    "3. Any concerns?"
)

# ── Alert symptom labels (level 3) ──
# (label, flags that name it)
ALERT_SYMPTOMS: list[tuple[str, tuple[str, ...]]] = [
    ("severe pain", ("SEVERE_PAIN", "PAIN_HIGH")),
    ("heavy bleeding", ("HEAVY_BLEEDING", "UNCONTROLLED_BLEEDING", "EXCESSIVE_BLEEDING", "BLEEDING_HEAVY")),
    ("fever", ("FEVER_REPORTED", "HIGH_FEVER", "FEVER_HIGH")),
    ("concerning symptoms", ("CONCERNING_SYMPTOMS",)),
]

PAIN_FLAGS = frozenset({"HIGH_PAIN", "MODERATE_PAIN", "PAIN_MODERATE"})
BLEEDING_FLAGS = frozenset({"ACTIVE_BLEEDING", "BLEEDING_LIGHT", "BLEEDING_YES"})
SWELLING_FLAGS = frozenset({"WORSENING_SWELLING", "SIGNIFICANT_SWELLING", "SWELLING_INCREASED"})

RECOVERY_TIPS: dict[int, str] = {
    0: "Focus on rest today. Keep your head elevated and ice 20 min on/20 min off.",
    1: "Keep your head elevated, ice regularly, and rest.",
    2: "Peak swelling is normal. Continue icing and stay hydrated.",
    3: "Swelling should start improving. Light walks are okay.",
    4: "You might feel more energy returning. Don't overdo it yet.",
    5: "Most patients feel significantly better by now.",
    7: "Week 1 complete! You're doing great.",
    10: "Most restrictions are lifting. Follow your doctor's guidance.",
    14: "Two weeks post-op! Most patients feel nearly normal.",
}
DEFAULT_TIP = "Keep following your post-op instructions."

CHECKIN_INTROS: dict[int, str] = {
    1: "Hope you rested well.",
    2: "Some swelling is normal today.",
    3: "Peak swelling typically occurs around now.",
    4: "You should start feeling a bit better.",
    5: "Most patients see improvement by now.",
    6: "Almost one week - great progress!",
    7: "One week milestone reached!",
    10: "You're doing great - keep it up!",
    14: "Final check-in - congratulations on your recovery!",
}
DEFAULT_INTRO = "How are you feeling today?"

TEST_SEND_KINDS = ("welcome", "checkin", "custom")

WELCOME_TEMPLATE = (
    "Hi! Welcome to Post-Op Radar. We'll check in daily to monitor your "
    "recovery. Reply HELP for assistance, STOP to opt out."
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Auto replies
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def generate_auto_reply(
    level: RiskLevel | int,
    flags: Iterable[str],
    day_index: int,
    first_name: str,
) -> str:
    """Reply to a processed check-in response."""
    flag_set = set(flags)

    if level >= RiskLevel.URGENT:
        return _alert_reply(flag_set, day_index, first_name)
    if level >= RiskLevel.REVIEW_TODAY:
        return _review_reply(flag_set, day_index, first_name)
    return _routine_reply(day_index, first_name)


def _alert_reply(flags: set[str], day_index: int, first_name: str) -> str:
    message = f"Hi {first_name}, thank you for your Day {day_index} update. "

    symptoms = [label for label, names in ALERT_SYMPTOMS if flags.intersection(names)]
    if symptoms:
        message += f"Your symptoms ({', '.join(symptoms)}) need medical attention. "

    message += (
        "PLEASE CONTACT YOUR DOCTOR IMMEDIATELY or visit urgent care. "
        "Our medical team has been alerted. If you feel unsafe, go to the ER right away."
    )
    return message


def _review_reply(flags: set[str], day_index: int, first_name: str) -> str:
    message = f"Hi {first_name}, thank you for your Day {day_index} update. "

    if flags & PAIN_FLAGS:
        message += (
            f"Moderate pain on Day {day_index} can be normal, but please monitor it. "
            "Take your pain medication as prescribed and apply ice 20 min on/20 min off. "
        )
    if flags & BLEEDING_FLAGS:
        message += "Some light bleeding can be normal, but keep an eye on it. "
    if flags & SWELLING_FLAGS:
        message += "Monitor swelling - keep your head elevated and continue icing. "

    message += "Your care team will review this update today and may contact you. Call if symptoms worsen."
    return message


def _routine_reply(day_index: int, first_name: str) -> str:
    message = f"Hi {first_name}, great job with your Day {day_index} check-in! "

    if day_index <= 2:
        message += "Your recovery sounds normal for early post-op. Rest is your best medicine right now."
    elif day_index <= 5:
        message += "You're doing well! This sounds like typical healing progress."
    elif day_index <= 10:
        message += "Excellent progress! You're well on your way to full recovery."
    else:
        message += "Outstanding! You're in the final stretch of recovery."

    message += " " + day_tip(day_index)
    message += " No action needed - continue your current care routine."
    return message


def day_tip(day_index: int) -> str:
    return RECOVERY_TIPS.get(day_index, DEFAULT_TIP)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Prompts and fixed templates
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def generate_checkin_prompt(first_name: str, day_index: int) -> str:
    """Daily check-in question; day 0 doubles as the welcome message."""
    if day_index == 0:
        return (
            f"Hi {first_name}! I'm your recovery companion. Each day I'll ask 3 quick "
            "questions to help monitor your healing. Let's start:\n\n"
            f"{QUESTION_BLOCK}\n\n"
            "Reply STOP to opt out anytime."
        )

    intro = CHECKIN_INTROS.get(day_index, DEFAULT_INTRO)
    return (
        f"Hi {first_name}! Day {day_index} check-in. {intro}\n\n"
        f"{QUESTION_BLOCK}\n\n"
        "You can reply with all answers in one message or separately."
    )


def generate_test_message(kind: str, body: Optional[str] = None) -> str:
    """
    Staff test-send template.

    Raises ValueError for an unknown kind or a custom message without body.
    """
    if kind == "welcome":
        return WELCOME_TEMPLATE
    if kind == "checkin":
        return (
            "Daily check-in. Please reply with:\n\n"
            f"{QUESTION_BLOCK}\n\n"
            "You can reply with all answers in one message."
        )
    if kind == "custom":
        if not body:
            raise ValueError("Custom messages require body field")
        return body
    raise ValueError(f"Invalid kind - use {'|'.join(TEST_SEND_KINDS)}")
