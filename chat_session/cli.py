"""Terminal front end: renders a conversation session as it streams."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable, Optional, TextIO

from chat_relay.config import RelayConfig, RelayLLMConfig
from chat_relay.llm_client import EchoLLMClient
from chat_relay.service import CompletionRelay
from chat_relay.utils import setup_logging

from .config import SessionConfig
from .models import USER_ROLE
from .session import ConversationSession
from .storage import FileStore
from .transport import HttpRelayTransport, InProcessTransport, RelayTransport

logger = logging.getLogger(__name__)

PREFIXES = {USER_ROLE: "You: ", "assistant": "AI: "}
CLEAR_COMMAND = "/clear"
QUIT_COMMAND = "/quit"


class TerminalRenderer:
    """Session listener that writes only what changed since the last notification."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self._index = 0
        self._offset = 0
        self._started = False
        self._reported_error = None

    def __call__(self, session: ConversationSession) -> None:
        messages = session.messages
        if len(messages) < self._index:
            if self._started:
                self.out.write("\n")
            self.out.write("[conversation cleared]\n")
            self._index = self._offset = 0
            self._started = False

        while self._index < len(messages):
            message = messages[self._index]
            if not self._started:
                self.out.write(PREFIXES.get(message.role, ""))
                self._started = True
            self.out.write(message.content[self._offset:])
            self._offset = len(message.content)

            is_last = self._index == len(messages) - 1
            if is_last and session.is_streaming and message.role != USER_ROLE:
                break
            if message.incomplete:
                self.out.write(f" [incomplete: {message.error or 'unknown'}]")
            self.out.write("\n")
            self._index += 1
            self._offset = 0
            self._started = False

        if session.persistence_error is not None and session.persistence_error is not self._reported_error:
            self._reported_error = session.persistence_error
            self.out.write(f"[warning: {session.persistence_error.message}]\n")
        self.out.flush()


def run(
    session: ConversationSession,
    *,
    input_func: Callable[[str], str] = input,
    out: TextIO = sys.stdout,
) -> None:
    """Read lines until EOF or ``/quit``, submitting each one."""
    session.subscribe(TerminalRenderer(out))
    session.hydrate()
    out.write(f"Type a message. {CLEAR_COMMAND} erases the history, {QUIT_COMMAND} exits.\n")

    while True:
        try:
            line = input_func("> ")
        except (EOFError, KeyboardInterrupt):
            out.write("\n")
            break

        command = line.strip()
        if command == QUIT_COMMAND:
            break
        if command == CLEAR_COMMAND:
            session.clear()
            continue

        session.draft = line
        try:
            session.submit()
        except KeyboardInterrupt:
            out.write("\n")
            break


def build_transport(args: argparse.Namespace) -> RelayTransport:
    if args.local or args.echo:
        client = EchoLLMClient() if args.echo else None
        relay = CompletionRelay(RelayConfig(llm=RelayLLMConfig.from_env()), client=client)
        return InProcessTransport(relay)
    return HttpRelayTransport(args.relay_url, timeout=args.request_timeout)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with a model through the completion relay.")
    parser.add_argument("--relay_url", default=SessionConfig.relay_url, help="URL of the relay's chat endpoint.")
    parser.add_argument(
        "--store_dir",
        default=os.path.join(os.path.expanduser("~"), ".chat_session"),
        help="Directory holding the stored conversation.",
    )
    parser.add_argument("--request_timeout", type=int, default=60, help="Timeout for relay calls (seconds).")
    parser.add_argument("--local", action="store_true", help="Run the relay in-process instead of over HTTP.")
    parser.add_argument("--echo", action="store_true", help="Run in-process against the offline echo model.")
    parser.add_argument("--log_dir", help="Directory for application logs.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_dir, logging.WARNING)
    config = SessionConfig(relay_url=args.relay_url, request_timeout=args.request_timeout)
    session = ConversationSession(build_transport(args), FileStore(args.store_dir), config)
    logger.debug("Using store at %s", args.store_dir)
    run(session)


if __name__ == "__main__":
    main()
