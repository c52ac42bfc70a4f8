"""
Rendering helpers for assistant replies.

Replies are model-generated markdown and must be treated as untrusted: the
HTML renderer escapes everything first and only then re-introduces a small,
fixed set of tags, and links are limited to web and mail URLs.
"""

from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table


SAFE_LINK_SCHEMES = ("http://", "https://", "mailto:")

_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET = re.compile(r"^[-*+]\s+")
_NUMBERED = re.compile(r"^\d+\.\s+")
_QUOTE = re.compile(r"^>\s?")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")


def escape_html(value: str) -> str:
    return html.escape(value, quote=True)


def _link(match: re.Match) -> str:
    label, href = match.group(1), match.group(2)
    # href is already entity-escaped; unescape only to inspect the scheme
    if not html.unescape(href).strip().lower().startswith(SAFE_LINK_SCHEMES):
        return label
    return f'<a href="{href}" target="_blank" rel="noreferrer">{label}</a>'


def apply_inline_formatting(value: str) -> str:
    output = escape_html(value)
    output = re.sub(r"`([^`]+)`", r"<code>\1</code>", output)
    output = re.sub(r"(\*\*|__)(.+?)\1", r"<strong>\2</strong>", output)
    output = re.sub(r"(?<![\w*])(\*|_)(?!\s)(.+?)(?<!\s)\1(?![\w*])", r"<em>\2</em>", output)
    output = re.sub(r"~~(.+?)~~", r"<del>\1</del>", output)
    output = _LINK.sub(_link, output)
    return output


def markdown_to_html(raw: str) -> str:
    if not raw or not raw.strip():
        return ""

    lines = raw.replace("\r\n", "\n").split("\n")
    parts: List[str] = []
    list_type: Optional[str] = None
    in_code = False
    code_language = ""
    code_lines: List[str] = []

    def close_list() -> None:
        nonlocal list_type
        if list_type:
            parts.append(f"</{list_type}>")
            list_type = None

    def open_list(kind: str) -> None:
        nonlocal list_type
        if list_type != kind:
            close_list()
            list_type = kind
            parts.append(f"<{kind}>")

    def close_code() -> None:
        nonlocal in_code, code_language, code_lines
        if not in_code:
            return
        lang_attr = f' class="language-{escape_html(code_language)}"' if code_language else ""
        parts.append(f"<pre><code{lang_attr}>{escape_html(chr(10).join(code_lines))}</code></pre>")
        in_code = False
        code_language = ""
        code_lines = []

    for line in lines:
        stripped = line.strip()

        if stripped.startswith("```"):
            if in_code:
                close_code()
            else:
                close_list()
                in_code = True
                code_language = stripped[3:].strip()
            continue

        if in_code:
            code_lines.append(line)
            continue

        if not stripped:
            close_list()
            parts.append("<br />")
            continue

        heading = _HEADING.match(stripped)
        if heading:
            close_list()
            level = len(heading.group(1))
            parts.append(f"<h{level}>{apply_inline_formatting(heading.group(2))}</h{level}>")
            continue

        if _BULLET.match(stripped):
            open_list("ul")
            parts.append(f"<li>{apply_inline_formatting(_BULLET.sub('', stripped))}</li>")
            continue

        if _NUMBERED.match(stripped):
            open_list("ol")
            parts.append(f"<li>{apply_inline_formatting(_NUMBERED.sub('', stripped))}</li>")
            continue

        if _QUOTE.match(stripped):
            close_list()
            parts.append(f"<blockquote>{apply_inline_formatting(_QUOTE.sub('', stripped))}</blockquote>")
            continue

        close_list()
        parts.append(f"<p>{apply_inline_formatting(stripped)}</p>")

    close_code()
    close_list()
    return "".join(parts)


def transcript_html(title: str, messages: List[Dict[str, str]]) -> str:
    body = []
    for message in messages:
        role = "Assistant" if message.get("role") == "assistant" else "You"
        body.append(
            f'<section class="{escape_html(message.get("role", ""))}">'
            f"<h4>{role}</h4>{markdown_to_html(message.get('content', ''))}</section>"
        )
    return (
        "<!DOCTYPE html>\n<html><head><meta charset=\"utf-8\">"
        f"<title>{escape_html(title)}</title></head><body>{''.join(body)}</body></html>\n"
    )


def parse_expires_at(value: str) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def seconds_remaining(expires_at: str, now: Optional[datetime] = None) -> int:
    deadline = parse_expires_at(expires_at)
    if deadline is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return max(0, int((deadline - now).total_seconds()))


def format_countdown(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes}:{secs:02d}"


def render_reply(console: Console, text: str) -> None:
    if text.strip():
        console.print(Markdown(text))


def proposal_panel(proposal: Dict[str, Any]) -> Panel:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    for key, value in (proposal.get("arguments") or {}).items():
        if value in (None, "", {}):
            continue
        if isinstance(value, dict):
            value = ", ".join(f"{k}: {v}" for k, v in value.items() if v)
        table.add_row(str(key), str(value))
    return Panel(
        table,
        title=proposal.get("summary") or "Proposed change",
        subtitle=str(proposal.get("tool", "")),
        border_style="yellow",
    )
