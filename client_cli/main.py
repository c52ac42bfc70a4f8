from __future__ import annotations

from typing import Dict, List, Optional
from pathlib import Path
import os
import queue
import sys
import threading

import typer
from rich.console import Console
from rich.live import Live
from rich.text import Text

from .render import format_countdown, proposal_panel, render_reply, seconds_remaining, transcript_html
from .stream import AssistantClient, AssistantClientError


app = typer.Typer()
console = Console()
trace_console = Console(stderr=True)

APPROVE_ANSWERS = {"y", "yes", "approve", "a"}
DECLINE_ANSWERS = {"n", "no", "decline", "d"}
EXIT_ANSWERS = {"exit", "quit", "q"}


class LineReader:
    """Reads stdin on a daemon thread so prompts can time out."""

    def __init__(self, stream=None) -> None:
        self._stream = stream or sys.stdin
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        for line in self._stream:
            self._lines.put(line.rstrip("\n"))
        self._lines.put(None)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next line, None on EOF. Raises queue.Empty on timeout."""
        return self._lines.get(timeout=timeout)


def parse_answer(answer: str) -> Optional[str]:
    lower = answer.strip().lower()
    if lower in APPROVE_ANSWERS:
        return "approve"
    if lower in DECLINE_ANSWERS:
        return "decline"
    return None


def await_decision(reader: LineReader, proposal: Dict, live_console: Console = console) -> str:
    """Countdown until the user answers; "timeout" once the proposal expires."""
    expires_at = str(proposal.get("expiresAt") or "")

    def banner() -> Text:
        left = seconds_remaining(expires_at)
        return Text(f"Apply this change? [y/n] ({format_countdown(left)} left) ", style="bold yellow")

    with Live(banner(), console=live_console, refresh_per_second=2, transient=True) as live:
        while True:
            if seconds_remaining(expires_at) <= 0:
                return "timeout"
            try:
                line = reader.get(timeout=1.0)
            except queue.Empty:
                live.update(banner())
                continue
            if line is None:
                return "decline"
            decision = parse_answer(line)
            if decision is not None:
                return decision
            live.update(banner())


def append_markdown(output_file: Path, role: str, content: str) -> None:
    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with output_file.open("a", encoding="utf-8") as f:
            label = "Assistant" if role == "assistant" else "You"
            f.write(f"**{label}:**\n\n{content}\n\n---\n\n")
    except OSError as e:
        trace_console.print(f"Failed to write file: {e}", style="bold red")


@app.command()
def chat(
    trip_id: str = typer.Argument(..., help="The trip to talk about."),
    prompt_str: Optional[str] = typer.Option(
        None, "--prompt", help="Ask one question and exit."
    ),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Append the conversation as Markdown."
    ),
    html_file: Optional[Path] = typer.Option(
        None, "--html", help="Write a sanitized HTML transcript on exit."
    ),
    single_shot: bool = typer.Option(
        False, "--no-stream", help="Use the non-streaming endpoint (no change proposals)."
    ),
) -> None:
    base_url = os.getenv("ASSISTANT_URL", "http://localhost:3002")
    api_key = os.getenv("ASSISTANT_API_KEY")
    messages: List[Dict[str, str]] = []
    reader = LineReader()

    def record(role: str, content: str) -> None:
        if not content:
            return
        messages.append({"role": role, "content": content})
        if output_file:
            append_markdown(output_file, role, content)

    def run_once(client: AssistantClient, question: str) -> None:
        record("user", question)
        if single_shot:
            try:
                with console.status("Thinking through the best answer..."):
                    reply = client.ask(messages)
            except AssistantClientError as e:
                trace_console.print(e.message, style="bold red")
                return
            render_reply(console, reply)
            record("assistant", reply)
            return

        def on_delta(text: str) -> None:
            console.print(text, end="", markup=False, highlight=False)

        result = client.run_turn(messages, on_delta=on_delta)
        if result.text:
            console.print()
        record("assistant", result.text)
        if result.error:
            trace_console.print(result.error, style="bold red")
            return
        if result.proposal is None:
            return

        proposal = result.proposal
        console.print(proposal_panel(proposal))
        decision = await_decision(reader, proposal)
        try:
            outcome = client.decide(str(proposal.get("id", "")), decision)
        except AssistantClientError as e:
            trace_console.print(e.message, style="bold red")
            record("assistant", e.message)
            return
        style = "green" if outcome.get("status") == "approved" else "yellow"
        message = str(outcome.get("message", ""))
        console.print(message, style=style)
        record("assistant", message)

    with AssistantClient(base_url, trip_id, api_key=api_key) as client:
        if prompt_str:
            run_once(client, prompt_str)
        else:
            while True:
                console.print("[bold]You:[/bold] ", end="")
                line = reader.get()
                if line is None:
                    break
                question = line.strip()
                if not question:
                    continue
                if question.lower() in EXIT_ANSWERS:
                    break
                run_once(client, question)

    if html_file:
        try:
            html_file.parent.mkdir(parents=True, exist_ok=True)
            html_file.write_text(transcript_html(f"Trip {trip_id}", messages), encoding="utf-8")
            console.print(f"\nSaved transcript to {html_file}", style="green")
        except OSError as e:
            trace_console.print(f"Failed to write file: {e}", style="bold red")


if __name__ == "__main__":
    app()
