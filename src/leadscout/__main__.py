"""Entry point: ``python -m leadscout``."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from leadscout.browser.sessions import session_factory
from leadscout.discovery.stage_plan import build_stage_plan
from leadscout.queue.job_queue import JobQueue
from leadscout.reporting.archive import LeadArchive
from leadscout.reporting.console import print_banner, print_job_report, print_stage_result
from leadscout.reporting.data_export import export_to_file, write_job_result
from leadscout.settings import AppSettings


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)


async def _async_main() -> None:
    settings = AppSettings.from_yaml()
    print_banner()

    archive = LeadArchive(Path(settings.state_dir) / "leads.db")
    try:
        queue = JobQueue(
            session_factory(settings),
            lambda config: build_stage_plan(config, settings),
            max_concurrent=settings.max_concurrent_jobs,
            on_stage_result=print_stage_result,
            on_job_result=archive.save_job,
        )
        async with queue:
            job_id = queue.submit(settings.job_payload())
            result = await queue.wait(job_id)

        print_job_report(result)
        if settings.export_format:
            write_job_result(result, settings.exports_dir)
            export_to_file(archive, settings.exports_dir, settings.export_format)
    finally:
        archive.close()


def main() -> None:
    _configure_logging()
    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
