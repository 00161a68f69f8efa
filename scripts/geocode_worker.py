#!/usr/bin/env python3
"""
Geocoding worker.

Runs an rq worker on the geocoding queue. Each job is one batch step for an
import list; steps that leave work behind enqueue the next one.

Usage:
    python scripts/geocode_worker.py                 # Work until stopped
    python scripts/geocode_worker.py --burst         # Exit when the queue is empty
    python scripts/geocode_worker.py --list-id ID    # Queue a first step for a list, then work
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_backend_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..")
sys.path.insert(0, _backend_dir)

# Work horses read settings from the environment, wherever the worker was started
from dotenv import load_dotenv
load_dotenv(os.path.join(_backend_dir, ".env"))

import structlog
from rq import Worker

from config import configure_logging, settings
from integrations.task_queue import get_continuation_queue

logger = structlog.get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Batch geocoding worker")
    parser.add_argument(
        "--burst",
        action="store_true",
        help="Exit once the queue is empty"
    )
    parser.add_argument(
        "--list-id",
        default=None,
        help="Enqueue a batch step for this import list before working"
    )
    parser.add_argument(
        "--name",
        default=None,
        help="Worker name (default: generated by rq)"
    )

    args = parser.parse_args()

    configure_logging()

    queue = get_continuation_queue()
    if args.list_id:
        queue.schedule(args.list_id)

    worker = Worker(
        [queue.queue],
        connection=queue.queue.connection,
        name=args.name,
    )

    logger.info(
        "geocode_worker_starting",
        queue=settings.geocode_queue_name,
        burst=args.burst,
    )

    worker.work(burst=args.burst)


if __name__ == "__main__":
    main()
