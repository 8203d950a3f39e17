# roster_sms/templates.py
"""
Message templates and the placeholder renderer.

Placeholders:
    {field}                      -> context value ("" when missing)
    {field? literal with {field}} -> the literal, only when the field is non-empty after trim
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

# -------------------------------
# Compliance copy
# -------------------------------
FOOTER = " Reply STOP to opt out. HELP for help."

WELCOME_MESSAGE = (
    "Thanks for opting in to Progsu SMS alerts! Cool events are coming your way. "
    "Reply STOP to opt out. Reply HELP for help."
)

TEST_MESSAGE = "Test from progsu SMS" + FOOTER


# -------------------------------
# Template Registry
# -------------------------------
@dataclass(frozen=True)
class Template:
    key: str
    label: str
    body: str

    def as_dict(self) -> Dict[str, str]:
        return {"key": self.key, "label": self.label, "body": self.body}


TEMPLATES: Dict[str, Template] = {
    "thankyou": Template(
        "thankyou",
        "Thank you",
        "Thank you for attending {title}!\nSee upcoming events at https://www.progsu.com/events\n\n{footer}",
    ),
    "reminder": Template(
        "reminder",
        "Reminder",
        "{firstName}{firstName? , }Reminder about {title}{date? on {date}}{location? at {location}}."
        "\nWe hope to see you there.\n\n{footer}",
    ),
    "blank": Template("blank", "Blank", "\n\n{footer}"),
}


def get_template(name: str) -> Template:
    """Template by key; unknown keys fall back to 'blank'."""
    return TEMPLATES.get((name or "").strip().lower(), TEMPLATES["blank"])


def list_templates() -> List[Template]:
    return list(TEMPLATES.values())


def welcome_message(name: Optional[str] = None) -> str:
    """One-time text sent when a submission turns opt-in on."""
    first = (name or "").strip().split(" ")[0] if name else ""
    if not first:
        return WELCOME_MESSAGE
    return WELCOME_MESSAGE.replace("alerts!", f"alerts, {first}!", 1)


# -------------------------------
# Renderer
# -------------------------------
_SIMPLE = re.compile(r"\{(\w+)\}")
_OPTIONAL = re.compile(r"\{(\w+)\?([^{}]*)\}")
_PROTECTED = re.compile("\x00(\\w+)\x01")


def _ctx_value(context: Mapping[str, Any], key: str) -> str:
    value = context.get(key)
    return "" if value is None else str(value)


def expand(template: str, context: Mapping[str, Any]) -> str:
    """Substitute placeholders and resolve optional segments. Pure."""
    text = (template or "").replace("\r\n", "\n")
    # Protect simple placeholders so the optional-segment pattern never sees nested braces.
    text = _SIMPLE.sub(lambda m: f"\x00{m.group(1)}\x01", text)
    text = _OPTIONAL.sub(
        lambda m: m.group(2) if _ctx_value(context, m.group(1)).strip() else "",
        text,
    )
    return _PROTECTED.sub(lambda m: _ctx_value(context, m.group(1)), text)


def tidy(text: str) -> str:
    """Collapse horizontal whitespace, drop space before punctuation, trim each line. Newlines are kept."""
    out = (text or "").replace("\r\n", "\n")
    out = re.sub(r"[^\S\n]+", " ", out)
    out = re.sub(r"[ \t]+([!?.,;:])", r"\1", out)
    return "\n".join(line.strip(" \t") for line in out.split("\n"))


def render(template: str, context: Mapping[str, Any]) -> str:
    return tidy(expand(template, context))


def build_context(event=None, first_name: str = "") -> Dict[str, str]:
    """Render context for an event (``EventInfo`` or None) and one recipient."""
    return {
        "title": (getattr(event, "title", "") or "").strip(),
        "date": (getattr(event, "date", "") or "").strip(),
        "location": (getattr(event, "location", "") or "").strip(),
        "footer": FOOTER,
        "firstName": (first_name or "").strip(),
    }
