"""Queue worker that generates doses for queued medications.

Run with ``python -m careplan.worker``. A message whose generation fails is
logged and pushed back onto the queue, so delivery is at-least-once.
Messages that are not valid generation payloads are logged and dropped.
Queue outages are retried until the worker is stopped.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careplan.core.clock import ScheduleClock, get_schedule_clock
from careplan.core.config import Settings, get_settings
from careplan.db.session import dispose_engine, get_sessionmaker
from careplan.integrations.dose_queue import (
    DoseQueue,
    DoseQueueError,
    build_dose_queue,
    create_redis_client,
)
from careplan.schemas.medication import DoseGenerationMessage
from careplan.services import dose_generation_service

logger = logging.getLogger("careplan.worker")


async def handle_message(
    body: str,
    *,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    clock: ScheduleClock | None = None,
    settings: Settings | None = None,
) -> int:
    """Generate doses for one raw queue message; returns the dose count."""
    message = DoseGenerationMessage.model_validate_json(body)
    sessionmaker = sessionmaker or get_sessionmaker()
    async with sessionmaker() as session:
        count = await dose_generation_service.generate_doses(
            session, message, clock=clock, settings=settings
        )
    return count


async def process_next(
    queue: DoseQueue,
    *,
    timeout: float = 5.0,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    clock: ScheduleClock | None = None,
    settings: Settings | None = None,
) -> bool:
    """Handle at most one message. Returns ``False`` when the queue was idle."""
    body = await queue.receive(timeout=timeout)
    if body is None:
        return False
    try:
        await handle_message(
            body, sessionmaker=sessionmaker, clock=clock, settings=settings
        )
    except ValueError:
        # schema failures and unusable ids never succeed on redelivery
        logger.error("Discarding malformed dose generation message: %s", body)
    except Exception:
        logger.exception("Error processing dose generation message; requeueing")
        await queue.send_raw(body)
    return True


async def run_worker(
    queue: DoseQueue,
    stop: asyncio.Event,
    *,
    timeout: float = 5.0,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    clock: ScheduleClock | None = None,
    settings: Settings | None = None,
    retry_delay: float = 1.0,
    max_retry_delay: float = 30.0,
) -> None:
    """Process messages until ``stop`` is set.

    Queue outages are logged and retried with exponential backoff capped at
    ``max_retry_delay`` seconds; they never end the loop.
    """
    clock = clock or get_schedule_clock()
    logger.info("Dose worker listening on %s", queue.queue_name)
    failures = 0
    while not stop.is_set():
        try:
            await process_next(
                queue,
                timeout=timeout,
                sessionmaker=sessionmaker,
                clock=clock,
                settings=settings,
            )
        except DoseQueueError:
            failures += 1
            delay = min(retry_delay * 2 ** (failures - 1), max_retry_delay)
            logger.exception(
                "Dose queue %s unavailable; retrying in %.1fs", queue.queue_name, delay
            )
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=delay)
            continue
        failures = 0
    logger.info("Dose worker stopped")


async def _serve(once: bool) -> None:
    settings = get_settings()
    client = create_redis_client()
    queue = build_dose_queue(client)
    if queue is None:
        raise SystemExit("REDIS_URL is not configured")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - non-POSIX platforms
            pass

    try:
        if once:
            await process_next(queue, settings=settings)
        else:
            await run_worker(queue, stop, settings=settings)
    finally:
        await client.aclose()
        await dispose_engine()


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--once", action="store_true", help="process a single message and exit"
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_serve(args.once))


if __name__ == "__main__":
    main()
