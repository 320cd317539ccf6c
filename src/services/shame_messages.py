"""Escalation message content with intensity that rises per level.

Candidates use ``{name}`` placeholders filled from the message context.
"""

import random
import re
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

SHAME_MESSAGE_TEMPLATES: dict[int, dict[str, list[str]]] = {
    # Level 1: friendly nudge
    1: {
        "subjects": [
            '⏰ Friendly reminder: {ownerName} missed the deadline for "{taskTitle}"',
            "🔔 {contactName}, {ownerName} could use a little support",
            '⏰ "{taskTitle}" slipped past its deadline',
        ],
        "openings": [
            "Hi {contactName}, a quick and friendly note from AccountaList.",
            "Hey {contactName}, hope your day is going well!",
            "Hi {contactName}, you're getting this because {ownerName} trusts you.",
        ],
        "bodies": [
            '{ownerName} planned to finish "{taskTitle}" by {dueDate} and has not checked it off yet.',
            '"{taskTitle}" was due {dueDate}. {ownerName} is now {overdueTime} past the deadline.',
            'Your {relationship} {ownerName} let "{taskTitle}" slide by {overdueTime}. It happens to everyone.',
            '{ownerName} is running {overdueTime} late on "{taskTitle}". A kind word could help.',
        ],
        "calls_to_action": [
            "A quick message asking how it's going might be all they need.",
            "Consider checking in to see if they could use a hand.",
            "A short text or call could get them moving again.",
            "Let them know you're rooting for them!",
        ],
    },
    # Level 2: serious concern
    2: {
        "subjects": [
            '🚨 Second alert: {ownerName} still hasn\'t finished "{taskTitle}"',
            '🔥 {ownerName} is falling further behind on "{taskTitle}"',
            "🚨 Time to step in: {ownerName} needs a push",
        ],
        "openings": [
            "Hi {contactName}, this is a second, more serious alert from AccountaList.",
            "{contactName}, the friendly reminder didn't do the trick.",
            "Hey {contactName}, {ownerName} needs more than a gentle nudge now.",
        ],
        "bodies": [
            'This is escalation number two. {ownerName} is {overdueTime} overdue on "{taskTitle}".',
            '"{taskTitle}" was due {dueDate} and is still open after {overdueTime}. The soft approach has not worked.',
            '{ownerName} has now ignored "{taskTitle}" for {overdueTime}. They asked you to hold them to it.',
            'Still nothing on "{taskTitle}". {ownerName} missed {dueDate} and is {overdueTime} behind.',
        ],
        "calls_to_action": [
            "This might be a good moment for a direct conversation.",
            "Pick up the phone and ask them when it will be done.",
            "Turn up the pressure a little. They signed up for this.",
            "Your {relationship} is struggling. Time to get involved.",
        ],
    },
    # Level 3: maximum shame
    3: {
        "subjects": [
            '💀 MAXIMUM SHAME: {ownerName} failed "{taskTitle}"',
            "💀 FINAL ESCALATION: {ownerName} dropped the ball",
            '🔥 {ownerName} broke their promise on "{taskTitle}"',
        ],
        "openings": [
            "💀 MAXIMUM SHAME MODE IS NOW ACTIVE 💀",
            "🔥 This is the final escalation, {contactName}. 🔥",
            "💀 {contactName}, the gloves are off. 💀",
        ],
        "bodies": [
            '💀 FAILURE NOTICE 💀\n\n{ownerName} promised to finish "{taskTitle}" by {dueDate}. They are {overdueTime} overdue and ignored two earlier alerts.',
            '🔥 NO MORE EXCUSES 🔥\n\n"{taskTitle}" is still not done after {overdueTime}. {ownerName} has officially broken their word.',
            '💀 ACCOUNTABILITY BREAKDOWN 💀\n\nThe nudge failed. The alert failed. {ownerName} is {overdueTime} late on "{taskTitle}".',
            '🚨 PROMISE BROKEN 🚨\n\n{ownerName} committed to "{taskTitle}" and walked away from it. {overdueTime} overdue and counting.',
        ],
        "calls_to_action": [
            "Deliver the consequences they agreed to. No excuses.",
            "They chose maximum shame for exactly this moment. Don't hold back!",
            "This is the reason you're their accountability contact. Act on it.",
            "Make sure they know this one counts.",
        ],
    },
}

INTENSITY_LABELS = {
    1: "friendly nudge",
    2: "serious concern",
    3: "maximum shame",
}

SHAME_ADJECTIVES = {
    1: ["behind", "overdue", "delayed", "late"],
    2: ["seriously behind", "chronically late", "unreliable", "struggling"],
    3: [
        "completely failed",
        "utterly unreliable",
        "broken their word",
        "accountability failure",
    ],
}

ESCALATION_EMOJIS = {
    1: ["⏰", "🔔", "💙", "🤝"],
    2: ["🚨", "🔥", "⚠️", "😟"],
    3: ["💀", "🔥", "⚡", "💯", "🚨"],
}

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

MINUTES_PER_DAY = 24 * 60


@dataclass
class ShameContext:
    """Inputs for rendering an escalation message."""

    task_title: str
    owner_name: str
    contact_name: str
    overdue_minutes: int
    owner_email: str = ""
    due_date: datetime | None = None
    relationship: str = "friend"
    custom_message: str = ""


@dataclass
class ShameMessage:
    """Rendered escalation content."""

    subject: str
    opening: str
    body: str
    call_to_action: str
    level: int
    intensity_label: str


def clamp_level(level: int) -> int:
    return min(max(level, 1), 3)


def get_intensity_label(level: int) -> str:
    return INTENSITY_LABELS.get(level, "unknown")


def get_shame_adjectives(level: int) -> list[str]:
    """Words describing the owner at a level; unknown levels get level 1."""
    return SHAME_ADJECTIVES.get(level, SHAME_ADJECTIVES[1])


def get_escalation_emojis(level: int) -> list[str]:
    return ESCALATION_EMOJIS.get(level, ESCALATION_EMOJIS[1])


def format_overdue_time(total_minutes: int) -> str:
    """Human readable overdue duration, e.g. "2 hours and 5 minutes"."""
    if total_minutes < 60:
        return f"{total_minutes} minutes"
    if total_minutes < MINUTES_PER_DAY:
        hours, minutes = divmod(total_minutes, 60)
        return f"{hours} hours and {minutes} minutes" if minutes else f"{hours} hours"
    days, remainder = divmod(total_minutes, MINUTES_PER_DAY)
    hours = remainder // 60
    return f"{days} days and {hours} hours" if hours else f"{days} days"


def format_due_date(due_date: datetime | None, timezone: str = "UTC") -> str:
    """Long-form date like "Wednesday, January 15, 2025" in the display timezone."""
    if due_date is None:
        return ""
    local = due_date.astimezone(ZoneInfo(timezone))
    return f"{local:%A, %B} {local.day}, {local.year}"


def fill_placeholders(template: str, variables: dict[str, str]) -> str:
    """Substitute {name} placeholders; unknown or empty names become ""."""
    return PLACEHOLDER_PATTERN.sub(lambda m: str(variables.get(m.group(1)) or ""), template)


class ShameMessageGenerator:
    """Picks and renders message candidates for an escalation level."""

    def __init__(self, rng: random.Random | None = None, timezone: str = "UTC"):
        self.rng = rng or random.Random()
        self.timezone = timezone

    def _select(self, candidates: list[str], variant: int | None) -> str:
        if variant is not None and 0 <= variant < len(candidates):
            return candidates[variant]
        return self.rng.choice(candidates)

    def build_variables(self, context: ShameContext) -> dict[str, str]:
        return {
            "taskTitle": context.task_title,
            "ownerName": context.owner_name,
            "ownerEmail": context.owner_email,
            "contactName": context.contact_name,
            "dueDate": format_due_date(context.due_date, self.timezone),
            "overdueTime": format_overdue_time(context.overdue_minutes),
            "relationship": context.relationship,
            "customMessage": context.custom_message,
        }

    def generate(
        self, level: int, context: ShameContext, variant: int | None = None
    ) -> ShameMessage:
        """Render subject, opening, body and call to action for a level.

        ``variant`` pins the candidate index for every part; when omitted, or
        out of range for a part, that part is chosen at random.
        """
        level = clamp_level(level)
        templates = SHAME_MESSAGE_TEMPLATES[level]
        variables = self.build_variables(context)

        return ShameMessage(
            subject=fill_placeholders(self._select(templates["subjects"], variant), variables),
            opening=fill_placeholders(self._select(templates["openings"], variant), variables),
            body=fill_placeholders(self._select(templates["bodies"], variant), variables),
            call_to_action=fill_placeholders(
                self._select(templates["calls_to_action"], variant), variables
            ),
            level=level,
            intensity_label=get_intensity_label(level),
        )
