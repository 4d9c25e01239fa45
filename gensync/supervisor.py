"""Restart loop around whole-pipeline runs.

Nothing inside a run retries. When a run fails the supervisor either gives
up, returning exit code 1 so the process manager sees a real crash, or
waits a fixed delay and starts over with a fresh generation. It gives up
when the failure happens within ``min_uptime`` of the supervisor starting.

Uptime is measured once, from the start of :meth:`Supervisor.serve`,
and is not reset on restart. This deliberately differs from per-restart
crash-loop detection: once the process has been up for ``min_uptime`` it
keeps restarting after every failure, however close together they are.
"""

from __future__ import annotations

import asyncio
import time
import typing as typ

from gensync.errors import InvariantViolation
from gensync.generation import GenerationClock
from gensync.observability import SyncEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gensync.generation import Generation

    type RunGeneration = cabc.Callable[[Generation], cabc.Awaitable[object]]

DEFAULT_RESTART_DELAY_S = 5.0
DEFAULT_MIN_UPTIME_S = 300.0


class Supervisor:
    """Run one generation at a time, restarting after late failures."""

    def __init__(  # noqa: PLR0913
        self,
        run_generation: RunGeneration,
        *,
        restart_delay: float = DEFAULT_RESTART_DELAY_S,
        min_uptime: float = DEFAULT_MIN_UPTIME_S,
        clock: GenerationClock | None = None,
        monotonic: cabc.Callable[[], float] = time.monotonic,
        sleep: cabc.Callable[[float], cabc.Awaitable[None]] = asyncio.sleep,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Configure the restart policy; clock and sleep are injectable."""
        self._run_generation = run_generation
        self._restart_delay = restart_delay
        self._min_uptime = min_uptime
        self._clock = clock or GenerationClock()
        self._monotonic = monotonic
        self._sleep = sleep
        self._event_logger = event_logger or SyncEventLogger()
        self._active: Generation | None = None
        self._attempts = 0

    @property
    def active_generation(self) -> Generation | None:
        """Return the generation currently running, if any."""
        return self._active

    @property
    def attempts(self) -> int:
        """Return how many runs have been started."""
        return self._attempts

    async def serve(self) -> int:
        """Run generations until one returns or an early failure occurs.

        Returns
        -------
        int
            ``0`` when a run returned normally, ``1`` when a run failed
            within ``min_uptime`` of the supervisor starting.

        Raises
        ------
        InvariantViolation
            If called while another ``serve`` has a run in flight.

        """
        started = self._monotonic()
        while True:
            generation = self._begin(generation=self._clock.tick())
            try:
                await self._run_generation(generation)
            except Exception as exc:  # noqa: BLE001 - restart policy decides
                uptime = self._monotonic() - started
                self._event_logger.log_run_failed(
                    generation=generation, error=exc, uptime_s=uptime
                )
                if uptime < self._min_uptime:
                    return self._exit(1, uptime)
            else:
                return self._exit(0, self._monotonic() - started)
            finally:
                self._active = None

            self._event_logger.log_restart_scheduled(delay_s=self._restart_delay)
            await self._sleep(self._restart_delay)

    def _begin(self, *, generation: Generation) -> Generation:
        if self._active is not None:
            raise InvariantViolation.overlapping_run(self._active, generation)
        self._active = generation
        self._attempts += 1
        return generation

    def _exit(self, exit_code: int, uptime: float) -> int:
        self._event_logger.log_supervisor_exit(exit_code=exit_code, uptime_s=uptime)
        return exit_code


__all__ = ["DEFAULT_MIN_UPTIME_S", "DEFAULT_RESTART_DELAY_S", "Supervisor"]
