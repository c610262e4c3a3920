#!/usr/bin/env python3
"""Interactive chat CLI for testing the deep search service."""

import json
import sys

import httpx
from cuid2 import cuid_wrapper
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

cuid = cuid_wrapper()


class ChatCLI:
    """Interactive chat interface for the deep search service."""

    def __init__(self, base_url: str = "http://localhost:8000", user_id: str = "cli-user"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.user_id = user_id
        self.chat_id: str | None = None
        self.messages: list[dict] = []
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(10.0, read=120.0))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🔎 Deep Search - Interactive Chat[/bold blue]\n"
                "Ask a question and watch the assistant search and read the web.\n"
                "Commands: /help, /clear, /chats, /quit",
                border_style="blue",
            )
        )

        # Test connection
        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to deep search service[/green]\n")

        # Main chat loop
        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.chat_id = None
                    self.messages = []
                    self.console.print("[yellow]🔄 Chat cleared[/yellow]")
                    continue
                elif user_input.lower() == "/chats":
                    self._show_chats()
                    continue
                elif user_input.strip() == "":
                    continue

                self._send_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> None:
        """Send a message and render the streamed turn."""
        is_new_chat = self.chat_id is None
        if is_new_chat:
            self.chat_id = cuid()

        payload = {
            "chat_id": self.chat_id,
            "is_new_chat": is_new_chat,
            "messages": [*self.messages, {"role": "user", "parts": [{"type": "text", "text": message}]}],
        }

        answer = ""
        try:
            with self.client.stream(
                "POST", f"{self.base_url}/chat", json=payload, headers={"X-User-Id": self.user_id}
            ) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return

                for line in response.iter_lines():
                    if not line.strip():
                        continue
                    event = json.loads(line)
                    answer = self._handle_event(event, answer)

        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        if answer:
            self._display_response(answer)

    def _handle_event(self, event: dict, answer: str) -> str:
        """Render one stream event, returning the text of the current step."""
        match event.get("type"):
            case "chat-id-assigned":
                self.console.print(f"[dim]New chat {event['chat_id']}[/dim]")
            case "text-delta":
                return answer + event["text"]
            case "tool-call-started":
                args = json.dumps(event.get("args", {}))
                self.console.print(f"[magenta]🔧 {event['tool_name']}[/magenta] [dim]{args[:120]}[/dim]")
                return ""
            case "tool-call-result":
                if event.get("error"):
                    self.console.print(f"[red]   ✗ {event['error'][:200]}[/red]")
                else:
                    self.console.print("[green]   ✓ done[/green]")
            case "turn-finished":
                self.messages = event["messages"]
                self.console.print(f"[dim]{event['phase']} after {event['steps']} steps[/dim]")
            case "turn-errored":
                self.messages = event["messages"]
                self.console.print(f"[red]❌ Turn failed: {event['error']}[/red]")
        return answer

    def _show_chats(self) -> None:
        """List stored chats for this user."""
        response = self.client.get(f"{self.base_url}/chats", headers={"X-User-Id": self.user_id})
        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return

        chats = response.json()
        if not chats:
            self.console.print("[dim]No chats yet[/dim]")
            return

        chat_list = "\n".join(f"• {chat['id']}  {chat['title']}" for chat in chats)
        self.console.print(Panel(chat_list, title="[yellow]📋 Your Chats[/yellow]", border_style="yellow"))

    def _display_response(self, answer: str) -> None:
        """Display the final answer with nice formatting."""
        self.console.print(
            Panel(
                Markdown(answer),
                title="[bold green]🤖 Deep Search[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Start a new chat
• /chats - List your stored chats
• /quit or /exit - Exit the chat

[bold]Tips:[/bold]
• Ask about recent events so the assistant has to search
• Tool calls and their outcomes are shown as they happen
• Set the user id with the second command line argument
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    user_id = sys.argv[2] if len(sys.argv) > 2 else "cli-user"

    chat = ChatCLI(base_url, user_id)
    chat.start()


if __name__ == "__main__":
    main()
