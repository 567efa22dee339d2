"""Job indexer CLI (replay one event, inspect artifacts)."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from ci_search.logging_utils import configure_logging

from .completion import classify_completion
from .config import resolve_profile
from .handler import JobIndexer, ObjectChangeEvent
from .metrics import DEFAULT_REQUIRED_METRIC, consolidate_metrics, decode_metrics_document


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CI search job indexer")
    sub = parser.add_subparsers(dest="command", required=True)

    index = sub.add_parser("index", help="Index one storage object as if its change event was delivered")
    index.add_argument("--bucket", required=True, help="Bucket holding the object")
    index.add_argument("--name", required=True, help="Object path within the bucket")
    index.add_argument("--profile", default=None, help="Path to indexer profile YAML")

    consolidate = sub.add_parser("consolidate", help="Print the consolidated form of a job_metrics.json dump")
    consolidate.add_argument("path", help="Local metrics dump")
    consolidate.add_argument("--required-metric", default=DEFAULT_REQUIRED_METRIC)

    classify = sub.add_parser("classify", help="Print the job state derived from a finished.json marker")
    classify.add_argument("path", help="Local completion marker")
    return parser


def _cmd_index(args: argparse.Namespace) -> int:
    profile = resolve_profile(args.profile)
    configure_logging(profile.log_level)
    outcome = JobIndexer(profile).handle(ObjectChangeEvent(bucket=args.bucket, name=args.name))
    print(json.dumps(outcome.as_dict(), sort_keys=True, ensure_ascii=True))
    return 0


def _cmd_consolidate(args: argparse.Namespace) -> int:
    configure_logging()
    document = decode_metrics_document(Path(args.path).read_bytes())
    consolidated = consolidate_metrics(document, required_metric=args.required_metric)
    print(json.dumps(consolidated.as_dict(), sort_keys=True, indent=2))
    return 0


def _cmd_classify(args: argparse.Namespace) -> int:
    completion = classify_completion(Path(args.path).read_bytes())
    if completion is None:
        print(json.dumps({"state": "pending"}))
        return 0
    payload = {
        "state": completion.state,
        "completed_at": completion.completed_at,
        "completed_at_utc": completion.completed_at_utc.isoformat(),
        "metadata": completion.record.metadata.strings(),
    }
    print(json.dumps(payload, sort_keys=True, ensure_ascii=True))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "index":
        return _cmd_index(args)
    if args.command == "consolidate":
        return _cmd_consolidate(args)
    if args.command == "classify":
        return _cmd_classify(args)
    raise SystemExit("UNKNOWN_COMMAND")


if __name__ == "__main__":
    raise SystemExit(main())
