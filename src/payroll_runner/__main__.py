"""Entry point: run the payroll scheduler loop."""

import asyncio
import logging

from payroll_runner.config import get_settings
from payroll_runner.database import create_schema, dispose_db, init_db
from payroll_runner.scheduling import PayrollScheduler

logger = logging.getLogger("payroll_runner")


async def _run() -> None:
    settings = get_settings()
    engine, session_factory = init_db()
    if settings.create_schema:
        await create_schema(engine)

    scheduler = PayrollScheduler(session_factory)
    try:
        await scheduler.start()
    finally:
        await scheduler.stop()
        await dispose_db()


def main() -> None:
    """Run the scheduler until interrupted."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("payroll-runner %s starting", settings.engine_version)
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
