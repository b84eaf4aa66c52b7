"""CLI entry point for the voice calendar assistant.

A terminal chat loop against the in-memory store, for development.  For
production use the FastAPI server (``voice_calendar/server.py``).

Usage:
    python -m voice_calendar.main                      # normal mode (quiet)
    python -m voice_calendar.main --debug              # show API calls
    python -m voice_calendar.main --timezone Europe/Lisbon --calendar-token ya29...
"""

from __future__ import annotations

import argparse
import logging
import uuid

from dotenv import load_dotenv

from voice_calendar.agent import create_voice_calendar_agent

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("voice_calendar").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Voice calendar assistant CLI")
    parser.add_argument("--debug", action="store_true", help="Show all log messages")
    parser.add_argument("--timezone", default="UTC", help="IANA timezone, e.g. Europe/Lisbon")
    parser.add_argument("--calendar-token", default=None, help="Google Calendar access token")
    parser.add_argument("--user", default=None, help="User id (a random one by default)")
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Voice Calendar Assistant - CLI")
    print("=" * 60)
    print("  Type a command and press Enter.")
    print("  Commands: 'quit' to exit, 'new' to start as a new user.")
    print("=" * 60 + "\n")

    agent = create_voice_calendar_agent()
    user_id = args.user or f"cli-{uuid.uuid4().hex[:8]}"
    logger.info("Chatting as user %s", user_id)

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break
        if user_input.lower() == "new":
            user_id = f"cli-{uuid.uuid4().hex[:8]}"
            print(f"\n>> Now chatting as {user_id}\n")
            continue

        try:
            result = agent.process_command(
                user_input, user_id, timezone=args.timezone, calendar_token=args.calendar_token,
            )
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break

        print(f"\nAssistant: {result.message}\n")
        for appointment in result.appointments or []:
            when = appointment.get("time") or "all day"
            print(f"   - {appointment['date']} {when}  {appointment['title']}")


if __name__ == "__main__":
    main()
