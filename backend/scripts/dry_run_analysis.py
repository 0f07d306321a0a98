"""
Dry-run theme extraction against a real model

Parses transcript files the way POST /api/upload does, runs one extraction,
and prints the themes plus the plain-text export. Nothing is stored.

Usage:
    cd backend
    python3 -m scripts.dry_run_analysis path/to/interview.txt [more files...] \
        [--type testing_notes] [--goal "Reduce onboarding drop-off"] [--provider openai]
"""

import argparse
import asyncio
import time
from pathlib import Path

from themesync.export import category_label, format_text
from themesync.extraction import combine_transcripts, extract_insights
from themesync.files import parse_file
from themesync.models import Theme, Transcript


def load_transcripts(paths: list[str]) -> list[Transcript]:
    transcripts = []
    for index, raw_path in enumerate(paths, start=1):
        path = Path(raw_path)
        content = parse_file(path.name, path.read_bytes())
        transcripts.append(
            Transcript(
                id=index,
                project_id=1,
                filename=path.name,
                content=content,
                file_type=path.suffix.lstrip(".").lower(),
            )
        )
    return transcripts


async def main() -> None:
    parser = argparse.ArgumentParser(description="Run one extraction and print the result")
    parser.add_argument("files", nargs="+")
    parser.add_argument("--type", default="expert_interviews", dest="transcript_type")
    parser.add_argument("--goal", default=None)
    parser.add_argument("--provider", default=None)
    args = parser.parse_args()

    transcripts = load_transcripts(args.files)
    content = combine_transcripts(transcripts)

    print("=" * 80)
    print(f"  {len(transcripts)} transcript(s), {len(content):,} chars, type={args.transcript_type}")
    print("=" * 80)

    start = time.perf_counter()
    extracted = await extract_insights(
        content,
        transcript_type=args.transcript_type,
        sprint_goal=args.goal,
        provider=args.provider,
    )
    duration_ms = int((time.perf_counter() - start) * 1000)

    themes = [
        Theme(**theme.model_dump(), id=position + 1, project_id=1, position=position)
        for position, theme in enumerate(extracted)
    ]

    print(f"\n  {len(themes)} themes in {duration_ms}ms\n")
    for theme in themes:
        label = category_label(theme.category, args.transcript_type)
        print(f"  [{label}] {theme.title}  ({len(theme.quotes)} quotes, {len(theme.hmw_questions)} HMWs)")

    if not themes:
        print("  No themes extracted. Check the server log lines above for the raw model output.")
        return

    print("\n" + "-" * 80)
    print(format_text(themes, args.transcript_type, args.goal))


if __name__ == "__main__":
    asyncio.run(main())
