"""HTML rendering for escalation emails."""

from dataclasses import dataclass
from html import escape

from src.services.shame_messages import ShameMessage, get_escalation_emojis


@dataclass(frozen=True)
class LevelStyle:
    emoji: str
    title: str
    color: str
    background: str


LEVEL_STYLES = {
    1: LevelStyle(emoji="⏰", title="Gentle Reminder", color="#f59e0b", background="#fef3c7"),
    2: LevelStyle(emoji="🚨", title="Escalation Alert", color="#f97316", background="#fed7aa"),
    3: LevelStyle(emoji="💀", title="MAXIMUM SHAME", color="#dc2626", background="#fecaca"),
}

FONT_STACK = '-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,"Helvetica Neue",sans-serif'


def _paragraphs(text: str) -> str:
    return "<br>".join(escape(line) for line in text.split("\n"))


def render_escalation_email(
    message: ShameMessage,
    owner_name: str,
    custom_message: str = "",
    app_name: str = "AccountaList",
    app_url: str = "http://localhost:3000",
) -> str:
    """Render the escalation email body for a contact.

    Every interpolated value is HTML-escaped. Level 3 adds a final banner.
    """
    style = LEVEL_STYLES.get(message.level, LEVEL_STYLES[1])
    emojis = " ".join(get_escalation_emojis(message.level))
    owner = escape(owner_name)
    app = escape(app_name)

    custom_block = ""
    if custom_message:
        custom_block = (
            '<div style="background:#e0f2fe;border-left:4px solid #0ea5e9;'
            'border-radius:8px;padding:20px;margin:20px 0;">'
            f'<p style="margin:0;color:#0c4a6e;font-style:italic;">'
            f"<strong>Personal message from {owner}:</strong><br>"
            f"&quot;{_paragraphs(custom_message)}&quot;</p></div>"
        )

    final_block = ""
    if message.level == 3:
        final_block = (
            '<div style="background:#dc2626;border-radius:8px;padding:20px;'
            'margin:20px 0;text-align:center;">'
            '<p style="margin:0 0 10px 0;color:#ffffff;font-size:18px;font-weight:bold;">'
            "💀 MAXIMUM SHAME MODE ACTIVATED 💀</p>"
            '<p style="margin:0;color:#ffffff;">They agreed to these consequences when '
            "they set up their accountability system.</p></div>"
        )

    return (
        "<!DOCTYPE html>"
        '<html><head><meta charset="utf-8">'
        f"<title>{escape(message.subject)}</title></head>"
        f'<body style="background:#f6f9fc;font-family:{escape(FONT_STACK)};">'
        '<div style="background:#ffffff;margin:0 auto;max-width:600px;padding:20px 0 48px;">'
        f'<div style="background:{style.background};padding:20px 30px;text-align:center;'
        'border-radius:8px 8px 0 0;">'
        f'<p style="margin:0;font-size:24px;font-weight:bold;color:{style.color};">'
        f"{style.emoji} {app} Alert</p>"
        f'<p style="margin:8px 0 0 0;font-size:20px;">{emojis}</p></div>'
        '<div style="padding:30px;color:#374151;font-size:16px;line-height:1.5;">'
        f'<h1 style="text-align:center;color:{style.color};">{style.title}</h1>'
        f"<p>{escape(message.opening)}</p>"
        f"<p>This is a <strong>{escape(message.intensity_label)}</strong> from {app}.</p>"
        '<div style="background:#f8f9fa;border-radius:8px;padding:20px;margin:20px 0;">'
        f'<p style="margin:0;padding-left:20px;border-left:4px solid {style.color};">'
        f"{_paragraphs(message.body)}</p></div>"
        f"{custom_block}"
        f"<p>{escape(message.call_to_action)}</p>"
        f"{final_block}"
        '<div style="margin-top:32px;padding-top:20px;border-top:1px solid #e5e7eb;'
        'color:#6b7280;font-size:14px;">'
        f"<p>You're receiving this because {owner} added you as their accountability "
        f"contact on {app}.</p>"
        f'<p>Want to help {owner} improve? <a href="{escape(app_url)}/dashboard">'
        f"Visit {app}</a>.</p>"
        "</div></div></div></body></html>"
    )
