"""Terminal chat client -- a minimal UI shell over ChatSession.

Talks to a running groqchat server through RelayTransport and renders
the assistant turn incrementally from store mutation events.

Commands:
  /mode <key>   switch mode
  /models       list modes
  /reset        start a new conversation
  /quit         exit
Ctrl-C while a reply is streaming cancels it.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import TextIO

from groqchat.config import Settings
from groqchat.controller import ChatSession
from groqchat.errors import TurnInFlightError, ValidationError
from groqchat.events import MutationEvent, MutationKind
from groqchat.main import configure_logging
from groqchat.transport import RelayTransport

logger = logging.getLogger(__name__)

PROMPT = "you> "


class ConsoleRenderer:
    """Writes assistant output as it streams."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self._out = out

    def __call__(self, event: MutationEvent) -> None:
        if event.role != "assistant":
            return
        if event.kind is MutationKind.APPENDED:
            self._out.write("assistant> ")
        elif event.kind is MutationKind.CHUNK:
            self._out.write(event.chunk)
        elif event.kind is MutationKind.COMPLETED:
            self._out.write("\n")
        elif event.kind is MutationKind.ERRORED:
            self._out.write(f"\n[error: {event.error_reason}]\n")
        self._out.flush()


def handle_command(session: ChatSession, line: str, mode: str, out: TextIO) -> tuple[str, bool]:
    """Apply a slash command. Returns (mode, keep_running)."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()
    if command == "/quit":
        return mode, False
    if command == "/models":
        for key, model_id in session.catalog.as_dict().items():
            marker = "*" if key == mode else " "
            out.write(f"{marker} {key} ({model_id})\n")
    elif command == "/mode":
        if arg in session.catalog:
            mode = arg
            out.write(f"mode: {mode}\n")
        else:
            out.write(f"unknown mode {arg!r}; try /models\n")
    elif command == "/reset":
        session.reset()
        out.write("conversation cleared\n")
    else:
        out.write(f"unknown command {command}\n")
    return mode, True


async def run_console(settings: Settings, mode: str, out: TextIO = sys.stdout) -> None:
    transport = RelayTransport(settings)
    session = ChatSession(transport, settings.catalog(), settings.inactivity_timeout)
    session.subscribe(ConsoleRenderer(out))
    loop = asyncio.get_running_loop()

    async with transport:
        out.write(f"groqchat -- mode: {mode} (/models, /mode <key>, /reset, /quit)\n")
        while True:
            try:
                line = await asyncio.to_thread(input, PROMPT)
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                mode, keep_running = handle_command(session, line, mode, out)
                if not keep_running:
                    break
                continue

            try:
                handle = session.submit(line, mode)
            except (ValidationError, TurnInFlightError) as e:
                out.write(f"{e}\n")
                continue

            try:
                loop.add_signal_handler(signal.SIGINT, handle.cancel)
            except (NotImplementedError, RuntimeError):
                pass  # signal handlers unavailable (Windows / non-main thread)
            try:
                await handle.wait()
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except (NotImplementedError, RuntimeError):
                    pass


def main(argv: list[str] | None = None) -> None:
    settings = Settings()
    parser = argparse.ArgumentParser(description="Chat with a groqchat server from the terminal")
    parser.add_argument("--url", default=settings.relay_url, help="groqchat server base URL")
    parser.add_argument(
        "--mode",
        default=settings.default_mode,
        choices=sorted(settings.models),
        help="mode key from the catalog",
    )
    args = parser.parse_args(argv)

    settings = settings.model_copy(update={"relay_url": args.url})
    configure_logging(settings)
    try:
        asyncio.run(run_console(settings, args.mode))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
