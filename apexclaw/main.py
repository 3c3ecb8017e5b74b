"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging

from apexclaw.config import load_settings
from apexclaw.llm.openrouter import OpenRouterClient
from apexclaw.runtime import Runtime
from apexclaw.telegram_adapter import TelegramAdapter

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger(__name__)


async def run() -> None:
    """Initialize app layers and start processing loop."""

    settings = load_settings()
    adapter = TelegramAdapter(
        settings.telegram_bot_token,
        poll_timeout_seconds=settings.telegram_poll_timeout_seconds,
    )
    runtime = Runtime(settings, OpenRouterClient(settings), adapter)
    dispatcher = runtime.dispatcher()

    loaded = runtime.scheduler.load()
    LOGGER.info("Loaded %d heartbeat tasks from %s", loaded, runtime.scheduler.path)
    scheduler_task = asyncio.create_task(runtime.scheduler.run_forever(), name="heartbeat")

    try:
        async for message in adapter.poll_messages():
            dispatcher.spawn(message)
    except asyncio.CancelledError:
        raise
    finally:
        runtime.scheduler.stop()
        scheduler_task.cancel()
        await dispatcher.drain()
        await adapter.close()
        LOGGER.info("ApexClaw shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    asyncio.run(run())


if __name__ == "__main__":
    main()
