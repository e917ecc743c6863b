"""CLI entry point: ``python -m diag_dialogue [--script FILE] [--vin VIN]``."""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from typing import Iterable, Optional

import structlog

from diag_dialogue.logging_setup import configure_logging


async def _run(messages: Optional[Iterable[str]], conversation_id: str, vin: str, use_llm: bool) -> None:
    from diag_dialogue.config import DialogueSettings
    from diag_dialogue.schemas import TurnRequest, VehicleContext
    from diag_dialogue.service import DialogueService

    settings = DialogueSettings()
    if use_llm:
        settings.use_llm = True
    service = DialogueService(settings)
    await service.start()
    try:
        vehicle = VehicleContext(vin=vin)
        source = messages if messages is not None else _prompt_lines()
        for line in source:
            message = line.strip()
            if not message:
                continue
            if message == "/reset":
                await service.reset(conversation_id)
                print("-- conversation reset --\n")
                continue
            if messages is not None:
                print(f"> {message}")
            response = await service.handle_turn(
                TurnRequest(message=message, conversation_id=conversation_id, vehicle_context=vehicle)
            )
            print(f"{response.reply}\n")
    finally:
        await service.close()


def _prompt_lines() -> Iterable[str]:
    while True:
        try:
            yield input("> ")
        except EOFError:
            return


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="diag_dialogue",
        description="Turn-by-turn diagnostic dialogue for automotive technicians",
    )
    parser.add_argument(
        "--script",
        type=argparse.FileType("r"),
        default=None,
        help="Replay one message per line from FILE instead of reading stdin interactively",
    )
    parser.add_argument(
        "--conversation-id",
        default=None,
        help="Conversation id (random when omitted)",
    )
    parser.add_argument("--vin", default="", help="VIN to decode for the vehicle context")
    parser.add_argument(
        "--llm",
        action="store_true",
        default=False,
        help="Use the OpenAI-compatible endpoint for phrasing and extraction",
    )
    args = parser.parse_args()

    from diag_dialogue.config import DialogueSettings

    settings = DialogueSettings()
    configure_logging(settings.log_level, settings.log_format)

    conversation_id = args.conversation_id or uuid.uuid4().hex
    logger = structlog.get_logger("diag_dialogue")
    logger.info(
        "cli_starting",
        version=__import__("diag_dialogue").__version__,
        conversation_id=conversation_id,
        scripted=args.script is not None,
        llm=args.llm or settings.use_llm,
    )

    messages = args.script.read().splitlines() if args.script is not None else None
    try:
        asyncio.run(_run(messages, conversation_id, args.vin, args.llm))
    except KeyboardInterrupt:
        logger.info("cli_interrupted")
        sys.exit(0)


if __name__ == "__main__":
    main()
