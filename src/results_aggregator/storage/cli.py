"""Results storage admin CLI."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sys

from results_aggregator.logging_utils import configure_logging

from .config import load_storage_config
from .contracts import parse_timestamp
from .errors import StorageError
from .schema import current_version
from .service import new_storage


logger = logging.getLogger("results_aggregator.storage.cli")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Results storage admin")
    parser.add_argument("--profile", required=True, help="Path to storage profile (YAML)")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("migrate", help="Bring the schema to its latest version")
    sub.add_parser("offset", help="Print the latest stored transport offset")
    sub.add_parser("orgs", help="List organizations with stored reports")
    sub.add_parser("count", help="Print the number of stored reports")
    clusters = sub.add_parser("clusters", help="List clusters of one organization")
    clusters.add_argument("--org", type=int, required=True)
    clusters.add_argument("--since", default=None, help="ISO timestamp lower bound on reported_at")
    args = parser.parse_args(argv)

    config = load_storage_config(Path(args.profile))
    configure_logging(log_queries=config.log_queries)
    storage = new_storage(config)
    try:
        if args.command == "migrate":
            storage.migrate_to_latest()
            payload: object = {"schema_version": current_version(storage.manager)}
        elif args.command == "offset":
            payload = {"kafka_offset": storage.read_latest_offset()}
        elif args.command == "orgs":
            payload = {"orgs": storage.list_orgs()}
        elif args.command == "count":
            payload = {"reports": storage.reports_count()}
        else:
            since = parse_timestamp(args.since) or datetime(1970, 1, 1, tzinfo=timezone.utc)
            payload = {"org_id": args.org, "clusters": storage.list_clusters_for_org(args.org, since)}
    except StorageError as exc:
        logger.error("Storage command %s failed: %s", args.command, exc)
        return 1
    finally:
        storage.close()
    print(json.dumps(payload, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
