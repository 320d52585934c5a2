#!/usr/bin/env python3
"""Interactive chat CLI for the assistant service, rendering turns as they stream."""

import json
import sys

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from assistant.api.sse import iter_frames


class ChatCLI:
    """Interactive chat interface for the assistant service."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.conversation_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(10.0, read=120.0))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Personal Assistant - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}. Is it running?[/red]")
            return

        self.console.print("[green]Connected to assistant service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.conversation_id = None
                    self.console.print("[yellow]Conversation cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self._stream_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _stream_message(self, message: str) -> None:
        """Send a message and render the turn's events as they arrive."""
        payload = {"message": message}
        if self.conversation_id:
            payload["conversation_id"] = self.conversation_id

        try:
            with self.client.stream("POST", f"{self.base_url}/conversation/stream", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
                    return

                self.conversation_id = response.headers.get("x-conversation-id", self.conversation_id)
                self.console.print("[bold green]Assistant[/bold green]: ", end="")
                for event, data in iter_frames(response.iter_lines()):
                    self._render(event, data)

        except httpx.HTTPError as e:
            self.console.print(f"\n[red]Connection error: {e}[/red]")
        except ValueError as e:
            self.console.print(f"\n[red]Unreadable response from the service: {e}[/red]")

    def _render(self, event: str, data: dict) -> None:
        if event == "message.delta":
            self.console.print(data.get("text", ""), end="", markup=False, highlight=False)
        elif event == "item.appended":
            item = data.get("item") or {}
            if item.get("type") == "tool_call":
                self.console.print(f"\n[dim]-> {item.get('tool_name')}({item.get('arguments_json') or ''})[/dim]")
            elif item.get("type") == "tool_call_output":
                output = json.dumps(item.get("output_json"))
                self.console.print(f"[dim]<- {item.get('status')}: {output[:200]}[/dim]")
        elif event == "turn.complete":
            usage = data.get("usage") or {}
            self.console.print(
                f"\n[dim]({data.get('rounds')} rounds, "
                f"{usage.get('input_tokens', 0)} in / {usage.get('output_tokens', 0)} out tokens)[/dim]"
            )
        elif event == "turn.error":
            self.console.print(f"\n[red]Turn failed: {data.get('message')}[/red]")

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Start a new conversation
• /quit or /exit - Exit the chat

[bold]Things to try:[/bold]
1. "What's the weather in Boston?"
2. "Add a task to call the dentist next Friday"
3. "Remember that I'm allergic to peanuts, it's important"
4. "Who do I know at ABC Inc?"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
