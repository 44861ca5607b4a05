"""Periodic removal of expired OTP challenges.

Challenges are only deleted on verify, so codes that are requested and
never used would stay in memory until restart. The lifespan in main.py runs
one OTPSweepWorker per process; it sweeps immediately on start and then
every ``OTP_SWEEP_INTERVAL_SECONDS``.
"""

import asyncio
import contextlib
import logging
from datetime import datetime

from ridepool.core.clock import Clock, utc_now
from ridepool.services.otp_manager import OTPManager

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5 * 60


class OTPSweepWorker:
    """Runs ``OTPManager.sweep_expired`` on a fixed interval.

    stop() wakes the loop out of its wait instead of cancelling it, so a
    sweep in progress always finishes.

    Args:
        manager: OTP manager whose store is swept.
        interval_seconds: Pause between sweeps.
        clock: Time source for ``last_run_at``.
    """

    def __init__(
        self,
        manager: OTPManager,
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._manager = manager
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._stop_requested = asyncio.Event()
        self._last_run_at: datetime | None = None
        self.swept_total = 0
        self.failed_sweeps = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """When the last successful sweep finished."""
        return self._last_run_at

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.is_running:
            logger.warning("OTP sweeper start ignored: already running")
            return
        self._stop_requested.clear()
        self._task = asyncio.create_task(self._loop(), name="otp-sweeper")
        logger.info("OTP sweeper every %ds", self._interval_seconds)

    async def stop(self) -> None:
        """Ask the loop to exit and wait for it."""
        task, self._task = self._task, None
        if task is None:
            return
        self._stop_requested.set()
        await task
        logger.info(
            "OTP sweeper stopped (swept=%d, failed=%d)",
            self.swept_total,
            self.failed_sweeps,
        )

    async def run_once(self) -> int:
        """Sweep now.

        Returns:
            Number of challenges removed.
        """
        removed = self._manager.sweep_expired()
        self.swept_total += removed
        self._last_run_at = self._clock()
        return removed

    async def _loop(self) -> None:
        while not self._stop_requested.is_set():
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001
                self.failed_sweeps += 1
                logger.exception("OTP sweep failed")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stop_requested.wait(), timeout=self._interval_seconds
                )
