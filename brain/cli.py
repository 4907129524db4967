"""
Brain command line

    brain capture "Call Dana about the venue"
    brain review
    brain accept <id> [--category task] [--set key=value ...]
    brain skip <id> [<id> ...]
    brain correct <id> <category> --note "..." [--set key=value ...]
    brain discard <id>
    brain export [--out FILE] [--status needs_review ...]
    brain knowledge <task_id> [--link ID ...]
    brain serve [--port N]
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .common.config import ensure_directories, load_config
from .common.errors import BrainError
from .intake.pipeline import build_pipeline

logger = logging.getLogger("brain.cli")


def _parse_fields(set_pairs: List[str], json_payload: Optional[str]) -> dict:
    fields: dict = {}
    if json_payload:
        try:
            payload = json.loads(json_payload)
        except json.JSONDecodeError as exc:
            raise SystemExit(f"Invalid JSON for --json: {exc}") from exc
        if not isinstance(payload, dict):
            raise SystemExit("--json must be a JSON object.")
        fields.update(payload)
    for pair in set_pairs or []:
        if "=" not in pair:
            raise SystemExit(f"Invalid --set value '{pair}'. Use key=value.")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise SystemExit(f"Invalid --set value '{pair}'. Use key=value.")
        fields[key] = value
    return fields


def _load_pipeline(args):
    config = load_config()
    if args.storage:
        config.storage.backend = args.storage
    if args.classifier:
        config.triage.classifier = args.classifier
    ensure_directories(config)
    return build_pipeline(config)


def cmd_capture(args) -> None:
    result = _load_pipeline(args).router.ingest(args.text)
    if result.destination:
        print(f"Filed {result.capture_id} -> {result.destination.table}/{result.destination.id}")
    else:
        print(f"Queued {result.capture_id} for review ({result.reason.value})")


def cmd_review(args) -> None:
    review = _load_pipeline(args).review
    pending = review.pending()
    if not pending:
        print("Nothing to review.")
        return
    for entry in pending[: args.limit]:
        print(review.format_for_review(entry))
    print(f"{len(pending)} pending.")


def cmd_skip(args) -> None:
    results = _load_pipeline(args).review.batch_skip(args.ids)
    for result in results:
        print(f"{result.id}: {'skipped' if result.ok else 'failed: ' + (result.error or '')}")
    if not all(result.ok for result in results):
        raise SystemExit(1)


def cmd_accept(args) -> None:
    fields = _parse_fields(args.set, args.json)
    ref = _load_pipeline(args).review.accept(args.id, category=args.category, fields=fields, text=args.text)
    print(f"Filed {args.id} -> {ref.table}/{ref.id}")


def cmd_correct(args) -> None:
    fields = _parse_fields(args.set, args.json)
    ref = _load_pipeline(args).correction.correct(
        args.id, args.category, fields=fields, note=args.note, text=args.text
    )
    print(f"Corrected {args.id} -> {ref.table}/{ref.id}")


def cmd_discard(args) -> None:
    _load_pipeline(args).review.discard(args.id)
    print(f"Discarded {args.id}")


def cmd_export(args) -> None:
    log = _load_pipeline(args).captures
    captures = log.search(q=args.q, category=args.category, status=args.status, band=args.confidence, days=args.days)
    text = log.export_csv(captures)
    if args.out:
        with open(args.out, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        print(f"Exported {len(captures)} captures to {args.out}")
    else:
        sys.stdout.write(text)


def cmd_knowledge(args) -> None:
    knowledge = _load_pipeline(args).knowledge
    if args.link is not None:
        result = knowledge.sync_links(args.task_id, args.link)
        print(f"Linked {len(result['linked'])}, unlinked {len(result['unlinked'])}")
        return
    print(json.dumps(knowledge.search(args.task_id), indent=2))


def cmd_serve(args) -> None:
    from .intake.server import run_server

    run_server(host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="brain", description="Capture triage and knowledge resurfacing")
    parser.add_argument("--storage", choices=["sqlite", "memory"], help="Override the storage backend")
    parser.add_argument("--classifier", choices=["llm", "rules"], help="Override the classifier")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    capture_cmd = sub.add_parser("capture", help="Classify and route a capture")
    capture_cmd.add_argument("text", help="Capture text")
    capture_cmd.set_defaults(func=cmd_capture)

    review_cmd = sub.add_parser("review", help="Show captures awaiting review")
    review_cmd.add_argument("--limit", type=int, default=20)
    review_cmd.set_defaults(func=cmd_review)

    skip_cmd = sub.add_parser("skip", help="Skip captures without filing them")
    skip_cmd.add_argument("ids", nargs="+", help="Capture ids")
    skip_cmd.set_defaults(func=cmd_skip)

    accept_cmd = sub.add_parser("accept", help="File a pending capture")
    accept_cmd.add_argument("id", help="Capture id")
    accept_cmd.add_argument("--category", help="File under this category instead of the suggestion")
    accept_cmd.add_argument("--text", help="Edited text to fill the record from")
    accept_cmd.add_argument("--set", action="append", default=[], help="Field as key=value (repeatable)")
    accept_cmd.add_argument("--json", help="JSON object of fields")
    accept_cmd.set_defaults(func=cmd_accept)

    correct_cmd = sub.add_parser("correct", help="Correct a capture's category")
    correct_cmd.add_argument("id", help="Capture id")
    correct_cmd.add_argument("category", help="New category")
    correct_cmd.add_argument("--note", required=True, help="Why the classification was wrong")
    correct_cmd.add_argument("--text", help="Edited text to fill the record from")
    correct_cmd.add_argument("--set", action="append", default=[], help="Field as key=value (repeatable)")
    correct_cmd.add_argument("--json", help="JSON object of fields")
    correct_cmd.set_defaults(func=cmd_correct)

    discard_cmd = sub.add_parser("discard", help="Delete a pending capture")
    discard_cmd.add_argument("id", help="Capture id")
    discard_cmd.set_defaults(func=cmd_discard)

    export_cmd = sub.add_parser("export", help="Export the capture log as CSV")
    export_cmd.add_argument("--out", help="Output file (default: stdout)")
    export_cmd.add_argument("--q", help="Text search")
    export_cmd.add_argument("--category")
    export_cmd.add_argument("--status", help="filed, needs_review or corrected")
    export_cmd.add_argument("--confidence", help="high, medium or low")
    export_cmd.add_argument("--days", type=int)
    export_cmd.set_defaults(func=cmd_export)

    knowledge_cmd = sub.add_parser("knowledge", help="Rank knowledge for a task")
    knowledge_cmd.add_argument("task_id")
    knowledge_cmd.add_argument("--link", nargs="*", help="Replace the task's links with these item ids")
    knowledge_cmd.set_defaults(func=cmd_knowledge)

    serve_cmd = sub.add_parser("serve", help="Run the HTTP server")
    serve_cmd.add_argument("--host")
    serve_cmd.add_argument("--port", type=int)
    serve_cmd.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        args.func(args)
    except BrainError as e:
        raise SystemExit(f"{type(e).__name__}: {e}") from e


if __name__ == "__main__":
    main()
