from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from .config import EngineConfig, load_config
from .exporter import export_backup, export_csv, export_text, import_backup, import_text
from .exporters.apkg import export_apkg
from .extract import extract_with_strategy
from .job import create_job_dirs, init_job_outputs, new_job_id, snapshot_input
from .pipeline import ImportPipeline, RunOptions
from .repository import JsonRepository
from .review import apply_candidate_feedback
from .session import MODE_REVIEW, ReviewSession, study_streak
from .srs import level_counts, select_due
from .types import STUDY_MODES
from .utils import now_ms


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vocabsnap")
    p.add_argument("--config", default=str(Path("config") / "default.json"), help="Config path")
    p.add_argument("--store", default=None, help="Vocabulary store JSON (default: store.path from config)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="OCR workbook pages into reviewable candidates")
    scan.add_argument("--input", required=True, help="Input path (pdf file or images folder)")
    scan.add_argument("--type", required=True, choices=["pdf", "images"], help="Input type")
    scan.add_argument("--workspace", default="./workspace", help="Workspace root")
    scan.add_argument("--source", required=True, help="Source name (e.g. BookName)")
    scan.add_argument("--dpi", type=int, default=200, help="DPI for PDF rendering (pdf only)")
    scan.add_argument("--rotate", type=int, default=0, choices=[0, 90, 180, 270], help="Rotate pages clockwise")
    scan.add_argument(
        "--use-mocked-ocr",
        default=None,
        help="Directory containing <page_id>.txt OCR text (skips real OCR when the file exists)",
    )

    parse = sub.add_parser("parse", help="Extract candidates from a raw OCR text file")
    parse.add_argument("--text", required=True, help="Text file (UTF-8)")

    accept = sub.add_parser("accept", help="Apply candidate feedback and store accepted words")
    accept.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")
    accept.add_argument("--feedback", required=True, help="Path to candidate feedback JSON")
    accept.add_argument("--skip-existing", action="store_true", help="Skip headwords already in the store")

    due = sub.add_parser("due", help="List entries due for review")
    due.add_argument("--limit", type=int, default=0, help="Show at most N entries (0 = all)")

    review = sub.add_parser("review", help="Record one study outcome for an entry")
    review.add_argument("--id", required=True, help="Entry id")
    review.add_argument("--mode", default="flashcard", choices=[*STUDY_MODES, MODE_REVIEW])
    outcome = review.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--correct", dest="correct", action="store_true")
    outcome.add_argument("--incorrect", dest="correct", action="store_false")

    sub.add_parser("stats", help="Counts per learning level and study streak")

    export = sub.add_parser("export", help="Export the vocabulary store")
    export.add_argument("--format", required=True, choices=["json", "text", "csv", "apkg"], help="Export format")
    export.add_argument("--out", required=True, help="Output file path")
    export.add_argument("--deck-name", default="vocabsnap", help="Deck name (apkg only)")

    imp = sub.add_parser("import", help="Import a backup or a word list")
    imp.add_argument("--format", required=True, choices=["json", "text"], help="Input format")
    imp.add_argument("--in", dest="in_path", required=True, help="Input file path")
    imp.add_argument("--merge", action="store_true", help="Keep existing words (json replaces by default)")

    return p


def _open_repo(args: argparse.Namespace, cfg: EngineConfig) -> JsonRepository:
    return JsonRepository(args.store or cfg.store.get("path", "vocabsnap.json"))


def cmd_scan(args: argparse.Namespace, cfg: EngineConfig) -> int:
    job_id = new_job_id()
    paths = create_job_dirs(args.workspace, job_id)
    init_job_outputs(paths)
    snapshot_input(paths, args.input, args.type)

    opts = RunOptions(
        input_path=args.input,
        input_type=args.type,
        source=args.source,
        dpi=args.dpi,
        rotate=args.rotate,
        mocked_ocr_dir=args.use_mocked_ocr,
    )
    try:
        ImportPipeline(paths=paths, cfg=cfg, opts=opts).run(job_id=job_id)
    except Exception as e:
        print(f"scan_failed: {e}")
        return 1
    print(str(paths.job_dir))
    return 0


def cmd_parse(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        text = Path(args.text).read_text(encoding="utf-8")
    except OSError as e:
        print(f"parse_failed: {e}")
        return 1
    strategy, candidates = extract_with_strategy(text, stopwords=cfg.stopwords)
    doc = {"strategy": strategy, "candidates": [c.to_dict() for c in candidates]}
    print(json.dumps(doc, ensure_ascii=False, indent=2))
    return 0


def cmd_accept(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        stats = apply_candidate_feedback(
            job_dir=args.job_dir,
            feedback_path=args.feedback,
            repo=_open_repo(args, cfg),
            require_meaning=cfg.require_meaning,
            skip_existing_words=bool(args.skip_existing),
        )
        print(
            f"feedback_items={stats.feedback_items} accepted={stats.accepted} rejected={stats.rejected} "
            f"skipped_unknown_candidate={stats.skipped_unknown_candidate} "
            f"skipped_already_applied={stats.skipped_already_applied} "
            f"skipped_incomplete={stats.skipped_incomplete} skipped_duplicate_word={stats.skipped_duplicate_word} "
            f"skipped_empty_edit={stats.skipped_empty_edit}"
        )
        return 0
    except Exception as e:
        print(f"accept_failed: {e}")
        return 1


def cmd_due(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        entries = select_due(_open_repo(args, cfg).get_all())
    except Exception as e:
        print(f"due_failed: {e}")
        return 1
    if args.limit > 0:
        entries = entries[: args.limit]
    for e in entries:
        print(f"{e.id}\t{e.word_display or e.word}\t{e.meaning}")
    print(f"due={len(entries)}")
    return 0


def cmd_review(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        session = ReviewSession(_open_repo(args, cfg), mode=args.mode)
        entry = session.answer(args.id, bool(args.correct))
        session.finish()
    except Exception as e:
        print(f"review_failed: {e}")
        return 1
    print(
        f"word={entry.word} repetitions={entry.srs.repetitions} interval={entry.srs.interval} "
        f"ease_factor={entry.srs.ease_factor} next_review={entry.srs.next_review}"
    )
    return 0


def cmd_stats(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        repo = _open_repo(args, cfg)
        entries = repo.get_all()
        counts = level_counts(entries)
        today = datetime.now(timezone.utc).date()
        streak = study_streak(repo.study_logs(days=None), today)
        due = len(select_due(entries, now=now_ms()))
    except Exception as e:
        print(f"stats_failed: {e}")
        return 1
    levels = " ".join(f"{k}={v}" for k, v in counts.items())
    print(f"total={len(entries)} due={due} {levels} bookmarked={len(repo.bookmarked())} streak={streak}")
    return 0


def cmd_export(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        repo = _open_repo(args, cfg)
        out = Path(args.out)
        if args.format == "json":
            out.write_text(export_backup(repo), encoding="utf-8")
            exported = repo.count()
        elif args.format == "text":
            out.write_text(export_text(repo.get_all()) + "\n", encoding="utf-8")
            exported = repo.count()
        elif args.format == "csv":
            exported = export_csv(repo.get_all(), out)
        else:
            exported = export_apkg(repo.get_all(), out, deck_name=args.deck_name).notes_exported
        print(f"exported={exported}")
        return 0
    except Exception as e:
        print(f"export_failed: {e}")
        return 1


def cmd_import(args: argparse.Namespace, cfg: EngineConfig) -> int:
    try:
        repo = _open_repo(args, cfg)
        text = Path(args.in_path).read_text(encoding="utf-8")
        if args.format == "json":
            added = import_backup(repo, text, merge=bool(args.merge))
        else:
            added = import_text(repo, text, merge=True)
        print(f"imported={added}")
        return 0
    except Exception as e:
        print(f"import_failed: {e}")
        return 1


COMMANDS = {
    "scan": cmd_scan,
    "parse": cmd_parse,
    "accept": cmd_accept,
    "due": cmd_due,
    "review": cmd_review,
    "stats": cmd_stats,
    "export": cmd_export,
    "import": cmd_import,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_config(args.config)
    except Exception as e:
        print(f"{args.command}_failed: {e}")
        return 1

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
