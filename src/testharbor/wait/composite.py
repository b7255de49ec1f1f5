"""Strategies that combine other strategies."""

from typing import Optional, Sequence

from testharbor.errors import StrategyError
from testharbor.wait.strategy import Verdict, WaitStrategy, WaitTarget


class _Composite(WaitStrategy):
    def __init__(
        self,
        strategies: Sequence[WaitStrategy],
        poll_interval: Optional[float] = None,
        startup_timeout: Optional[float] = None,
    ):
        if not strategies:
            raise ValueError(f"{type(self).__name__} needs at least one strategy")
        super().__init__(
            poll_interval if poll_interval is not None else min(s.poll_interval for s in strategies),
            startup_timeout if startup_timeout is not None else max(s.startup_timeout for s in strategies),
        )
        self.strategies = tuple(strategies)

    def describe(self) -> str:
        inner = ", ".join(s.describe() for s in self.strategies)
        return f"{type(self).__name__}({inner})"


class AllOf(_Composite):
    """Ready when every strategy is ready; stops at the first one that is not."""

    async def check(self, target: WaitTarget) -> Verdict:
        for strategy in self.strategies:
            verdict = await strategy.check(target)
            if not verdict.ready:
                return Verdict.not_yet(f"{strategy.describe()}: {verdict.reason}", verdict.error)
        return Verdict.ok()


class AnyOf(_Composite):
    """
    Ready as soon as one strategy is ready.

    Every strategy gets a check on each poll until one succeeds; a hard
    failure of one strategy only ends the wait once all of them have failed.
    """

    async def check(self, target: WaitTarget) -> Verdict:
        reasons = []
        failures: list[StrategyError] = []
        last_error = None
        for strategy in self.strategies:
            try:
                verdict = await strategy.check(target)
            except StrategyError as e:
                failures.append(e)
                reasons.append(f"{strategy.describe()}: {e}")
                continue
            if verdict.ready:
                return Verdict.ok()
            reasons.append(f"{strategy.describe()}: {verdict.reason}")
            last_error = verdict.error or last_error

        if len(failures) == len(self.strategies):
            raise StrategyError("; ".join(reasons)) from failures[-1]
        return Verdict.not_yet("; ".join(reasons), last_error)


def for_all(*strategies: WaitStrategy) -> AllOf:
    return AllOf(strategies)


def for_any(*strategies: WaitStrategy) -> AnyOf:
    return AnyOf(strategies)
