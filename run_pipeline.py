import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from notes_pipeline.config import load_config
from notes_pipeline.core import NotePipeline
from notes_pipeline.errors import ConfigurationError
from notes_pipeline.export import export_images
from notes_pipeline.models import Stage, VisualSettings, unit_to_dict
from notes_pipeline.prompts import STYLES_BY_ID
from notes_pipeline.scheduler import PhaseReport


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Turn a text file into illustrated visual notes."
    )
    parser.add_argument(
        "--input",
        required=True,
        help="Path to the source text file, or '-' to read from stdin.",
    )
    parser.add_argument(
        "--style",
        choices=sorted(STYLES_BY_ID),
        default="healing",
        help="Visual style of the notes.",
    )
    parser.add_argument(
        "--color-theme",
        default="",
        help="Optional color palette description overriding the default palette.",
    )
    parser.add_argument(
        "--watermark",
        default="",
        help="Footer watermark text.",
    )
    parser.add_argument(
        "--output-root",
        type=Path,
        default=Path("outputs"),
        help="Root folder where rendered notes will be stored.",
    )
    parser.add_argument(
        "--dump-json",
        action="store_true",
        help="Also write the final state of every note to notes.json.",
    )
    return parser.parse_args()


def read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def log_phase(report: PhaseReport) -> None:
    print(f"✔ {report.phase}: {len(report.succeeded)} ok, {len(report.failed)} failed")


async def run(args: argparse.Namespace) -> int:
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = VisualSettings(
        style_id=args.style,
        color_theme=args.color_theme,
        watermark=args.watermark,
    )
    pipeline = NotePipeline.from_config(config, settings=settings)
    pipeline.scheduler.add_listener(log_phase)

    units = await pipeline.run(read_input(args.input))

    out_dir = args.output_root / pipeline.batch_id
    saved = export_images(units, out_dir)
    if args.dump_json:
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / "notes.json").write_text(
            json.dumps([unit_to_dict(u) for u in units], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    for unit in units:
        if unit.stage == Stage.DONE:
            print(f"🖼  Note {unit.order}: done")
        else:
            print(f"⚠️  Note {unit.order}: {unit.stage.name.lower()} ({unit.error or 'no image'})")
    print(f"Saved {len(saved)} image(s) to {out_dir}")
    return 0 if len(saved) == len(units) else 1


def main() -> None:
    # Load environment variables from a local .env file if present
    # (e.g. OPENAI_API_KEY=sk-..., GEMINI_API_KEY=...).
    load_dotenv()

    args = parse_args()
    try:
        code = asyncio.run(run(args))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
