from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from photo_ingest.config import load_settings
from photo_ingest.db import create_engine, create_session_factory
from photo_ingest.job_queue import JobQueue
from photo_ingest.logger import logger


async def purge_jobs(*, yes: bool, album_id: Optional[int] = None) -> int:
    settings = load_settings()
    engine = create_engine(settings)
    queue = JobQueue(create_session_factory(engine))

    try:
        if album_id is not None:
            before = (await queue.status_counts(album_id)).as_dict()
        else:
            before = None
        logger.warning(
            "Purge finished jobs requested",
            extra={"album_id": album_id, "before": before},
        )

        if not yes:
            raise SystemExit(
                "Refusing to run without --yes. "
                "This will DELETE all completed and failed upload jobs"
                + (f" for album {album_id}." if album_id is not None else ".")
            )

        deleted = await queue.purge_terminal(album_id)
        logger.warning(
            "Purge finished jobs completed",
            extra={"album_id": album_id, "deleted": deleted},
        )
        return deleted
    finally:
        await engine.dispose()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete completed and failed upload jobs. Pending and processing jobs are kept.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm destructive action (required).",
    )
    parser.add_argument(
        "--album-id",
        type=int,
        default=None,
        help="Only purge jobs belonging to this album.",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(purge_jobs(yes=bool(args.yes), album_id=args.album_id))


if __name__ == "__main__":
    main()
