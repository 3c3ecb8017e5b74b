"""Clock tool."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from apexclaw.agent_session import ist_now
from apexclaw.tools.base import Tool


class DatetimeTool(Tool):
    """Returns the current local date and time."""

    name = "datetime"
    description = "Get the current date, time, day of week, and timezone."

    def __init__(self, clock: Callable[[], datetime] = ist_now) -> None:
        self._clock = clock

    async def run(self, args: dict[str, str]) -> str:
        now = self._clock()
        return (
            f"Date: {now:%Y-%m-%d}\n"
            f"Time: {now:%H:%M:%S}\n"
            f"Day: {now:%A}\n"
            f"Timezone: {now.tzname() or 'local'}\n"
            f"Unix: {int(now.timestamp())}"
        )
