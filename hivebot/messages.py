from __future__ import annotations

from .constants import (
    CATEGORIES,
    CB_CATEGORIES_NEXT,
    CB_CATEGORY_PREFIX,
    CB_NO,
    CB_SKIP,
    CB_START,
    CB_SUBMIT,
    CB_TOOL_PREFIX,
    CB_TOOLS_NEXT,
    CB_YES,
    MESSAGE_TEMPLATES,
    TOOLS,
)
from .models import Button, OutgoingMessage


def _greeting(display_name: str | None) -> str:
    return f"Hey {display_name}!" if display_name else "Hey there!"


def _checkbox_rows(
    items: list[dict[str, str]],
    selected: list[str],
    prefix: str,
    per_row: int = 2,
) -> list[list[Button]]:
    rows: list[list[Button]] = []
    for start in range(0, len(items), per_row):
        row = []
        for item in items[start : start + per_row]:
            mark = "✅" if item["id"] in selected else item["emoji"]
            row.append(Button(f"{mark} {item['name']}", f"{prefix}{item['id']}"))
        rows.append(row)
    return rows


def weekly_prompt(display_name: str | None = None) -> OutgoingMessage:
    tpl = MESSAGE_TEMPLATES["weekly_checkin"]
    text = "\n\n".join(
        [
            tpl["title"],
            f"{_greeting(display_name)} {tpl['description']}",
            f"What does \"playing with AI\" mean?\n{tpl['ai_definition']}",
        ]
    )
    return OutgoingMessage(
        text=text,
        buttons=[[Button(tpl["yes_button"], CB_YES), Button(tpl["no_button"], CB_NO)]],
    )


def reminder(display_name: str | None = None) -> OutgoingMessage:
    tpl = MESSAGE_TEMPLATES["reminder"]
    return OutgoingMessage(
        text=f"{_greeting(display_name)} {tpl['description']}",
        buttons=[[Button(tpl["start_button"], CB_START)]],
    )


def category_keyboard(selected: list[str]) -> list[list[Button]]:
    tpl = MESSAGE_TEMPLATES["category_selection"]
    rows = _checkbox_rows(CATEGORIES, selected, CB_CATEGORY_PREFIX)
    rows.append([Button(tpl["next_button"], CB_CATEGORIES_NEXT)])
    return rows


def category_picker(selected: list[str] | None = None) -> OutgoingMessage:
    tpl = MESSAGE_TEMPLATES["category_selection"]
    return OutgoingMessage(
        text=f"{tpl['title']}\n\n{tpl['description']}",
        buttons=category_keyboard(selected or []),
    )


def tool_keyboard(selected: list[str]) -> list[list[Button]]:
    tpl = MESSAGE_TEMPLATES["tool_selection"]
    rows = _checkbox_rows(TOOLS, selected, CB_TOOL_PREFIX)
    rows.append([Button(tpl["next_button"], CB_TOOLS_NEXT)])
    return rows


def tool_picker(selected: list[str] | None = None) -> OutgoingMessage:
    tpl = MESSAGE_TEMPLATES["tool_selection"]
    return OutgoingMessage(
        text=f"{tpl['title']}\n\n{tpl['description']}",
        buttons=tool_keyboard(selected or []),
    )


def details_prompt() -> OutgoingMessage:
    tpl = MESSAGE_TEMPLATES["custom_details"]
    return OutgoingMessage(
        text=f"{tpl['title']}\n\n{tpl['description']}",
        buttons=[[Button(tpl["submit_button"], CB_SUBMIT), Button(tpl["skip_button"], CB_SKIP)]],
    )


def thank_you() -> OutgoingMessage:
    return OutgoingMessage(text=MESSAGE_TEMPLATES["thank_you"]["description"])


def no_response() -> OutgoingMessage:
    return OutgoingMessage(text=MESSAGE_TEMPLATES["no_response"]["description"])


def plain(text: str) -> OutgoingMessage:
    return OutgoingMessage(text=text)
