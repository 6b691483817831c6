"""banana CLI entrypoints."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Sequence

from .app_logging import configure_logging
from .engine import BananaEngine
from .errors import BananaError, NotFoundError, UserInputError
from .models.registry import DEFAULT_MODEL, ModelRegistry, build_registry
from .pricing.estimator import analyze_directory, analyze_session, render_breakdown, render_summary
from .runs.cleanup import render_candidates, render_outcome, run_cleanup
from .runs.receipts import read_metadata, render_metadata
from .utils import load_dotenv

GENERATE_USAGE = (
    "banana -p <prompt> -o <output.png> [-i <input>...] [-s <session>] [-S <session-out>] "
    "[-m <model>] [-r <ratio>] [-z 1k|2k|4k] [-f]"
)
CLEAN_USAGE = "banana clean [-f] <directory>"


def _build_generate_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="banana",
        usage=GENERATE_USAGE,
        description="Generate or edit an image with Gemini. Subcommands: meta, cost, clean.",
    )
    parser.add_argument("-p", "--prompt", default="", help="text prompt (required)")
    parser.add_argument("-o", "--output", default="", help="output PNG path (required)")
    parser.add_argument(
        "-i", "--input", dest="inputs", action="append", default=[],
        help="input image path (repeatable, for editing/reference)",
    )
    parser.add_argument("-s", "--session", help="session file to continue from")
    parser.add_argument("-S", "--session-out", dest="session_out", help="write the new session here instead of next to the output")
    parser.add_argument("-m", "--model", default=DEFAULT_MODEL, help="model name or alias")
    parser.add_argument("-r", "--ratio", default="1:1", help="aspect ratio, e.g. 1:1, 16:9, 9:16")
    parser.add_argument("-z", "--size", help="output size: 1k, 2k, or 4k (model permitting)")
    parser.add_argument("-f", "--force", action="store_true", help="overwrite output and session files if they exist")
    parser.add_argument("--events", help="append run events to this JSONL file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def _build_meta_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="banana meta", description="Show metadata embedded in an output image")
    parser.add_argument("image", help="PNG written by banana")
    return parser


def _build_cost_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="banana cost", description="Estimate spend from session files")
    parser.add_argument("target", help="session file or directory of session files")
    return parser


def _build_clean_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="banana clean",
        usage=CLEAN_USAGE,
        description="Find session files and report sizes (add -f to delete)",
    )
    parser.add_argument("-f", "--force", action="store_true", help="delete validated session files (default: dry run)")
    parser.add_argument("directory")
    return parser


def _handle_generate(argv: Sequence[str], registry: ModelRegistry) -> int:
    args = _build_generate_parser().parse_args(list(argv))
    if args.verbose:
        configure_logging(logging.DEBUG)
    if not args.prompt.strip() or not args.output:
        raise UserInputError(f"usage: {GENERATE_USAGE}")

    engine = BananaEngine(registry, events_path=Path(args.events) if args.events else None)
    options = engine.prepare(
        prompt=args.prompt,
        output=args.output,
        model=args.model,
        ratio=args.ratio,
        size=args.size,
        inputs=args.inputs,
        session=args.session,
        session_out=args.session_out,
        force=args.force,
    )
    result = engine.run(options)
    if result.text:
        print(result.text)
    print(f"saved {result.output_path} ({result.image_bytes} bytes)", file=sys.stderr)
    print(f"session: {result.session_path}", file=sys.stderr)
    return 0


def _handle_meta(argv: Sequence[str], registry: ModelRegistry) -> int:
    args = _build_meta_parser().parse_args(list(argv))
    for line in render_metadata(read_metadata(args.image)):
        print(line)
    return 0


def _handle_cost(argv: Sequence[str], registry: ModelRegistry) -> int:
    args = _build_cost_parser().parse_args(list(argv))
    target = Path(args.target)
    if not target.exists():
        raise NotFoundError(f"cannot access {args.target!r}: no such file or directory")

    if not target.is_dir():
        for line in render_breakdown(analyze_session(target, registry)):
            print(line)
        return 0

    summary = analyze_directory(target, registry)
    for path, exc in summary.skipped:
        print(f"skip {path.name}: {exc}", file=sys.stderr)
    if not summary.results:
        print("no session files found", file=sys.stderr)
        return 0
    for line in render_summary(summary):
        print(line)
    return 0


def _check_clean_flag_order(argv: Sequence[str]) -> None:
    seen_directory = False
    for token in argv:
        if token in {"-f", "--force"} and seen_directory:
            raise UserInputError(f"flag -f must appear before the directory\nusage: {CLEAN_USAGE}")
        if not token.startswith("-"):
            seen_directory = True


def _handle_clean(argv: Sequence[str], registry: ModelRegistry) -> int:
    _check_clean_flag_order(argv)
    args = _build_clean_parser().parse_args(list(argv))
    report = run_cleanup(args.directory, registry, force=args.force)

    for path, exc in report.skipped:
        print(f"skip {path}: {exc}", file=sys.stderr)
    if not report.candidates:
        print("no session files found", file=sys.stderr)
        return 0

    for line in render_candidates(report):
        print(line)
    for info, exc in report.failed:
        print(f"failed to delete {info.path}: {exc}", file=sys.stderr)
    if not args.force:
        print()
    print(render_outcome(report, force=args.force))
    return 0


_COMMANDS: dict[str, Callable[[Sequence[str], ModelRegistry], int]] = {
    "meta": _handle_meta,
    "cost": _handle_cost,
    "clean": _handle_clean,
}


def run(argv: Sequence[str]) -> int:
    configure_logging()
    args = list(argv)
    try:
        registry = build_registry()
        handler = _COMMANDS.get(args[0]) if args else None
        if handler is not None:
            return handler(args[1:], registry)
        return _handle_generate(args, registry)
    except BananaError as exc:
        print(exc, file=sys.stderr)
        return 1


def main(argv: Sequence[str] | None = None) -> None:
    load_dotenv()
    raise SystemExit(run(sys.argv[1:] if argv is None else argv))


if __name__ == "__main__":
    main()
