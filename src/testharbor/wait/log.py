import re

from testharbor.errors import StrategyError
from testharbor.wait.strategy import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STARTUP_TIMEOUT,
    Verdict,
    WaitStrategy,
    WaitTarget,
)


class ForLog(WaitStrategy):
    """Ready once the container output contains a pattern ``occurrence`` times."""

    def __init__(
        self,
        pattern: str,
        occurrence: int = 1,
        regex: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
    ):
        super().__init__(poll_interval, startup_timeout)
        if not pattern:
            raise ValueError("pattern must not be empty")
        if occurrence < 1:
            raise ValueError("occurrence must be at least 1")
        self.pattern = pattern
        self.occurrence = occurrence
        self._regex = re.compile(pattern, re.MULTILINE) if regex else None

    def describe(self) -> str:
        return f"ForLog({self.pattern!r}, occurrence={self.occurrence})"

    def _count(self, text: str) -> int:
        if self._regex is not None:
            return len(self._regex.findall(text))
        return text.count(self.pattern)

    async def check(self, target: WaitTarget) -> Verdict:
        output = (await target.logs()).decode("utf-8", errors="replace")
        found = self._count(output)
        if found >= self.occurrence:
            return Verdict.ok()

        state = await target.state()
        if not state.running:
            raise StrategyError(
                f"container is {state.status} and its log never contained {self.pattern!r}"
            )
        return Verdict.not_yet(f"pattern {self.pattern!r} seen {found}/{self.occurrence} times")
