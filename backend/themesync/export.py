"""
ThemeSync Backend — Export Formatter

Pure formatting of themes into downloadable documents:
    - Insight exports (TXT, Markdown, CSV): one block / row per theme, with
      transcript-type labels and optional vote counts
    - Project exports (JSON, quote-level CSV, XLSX, PDF): whole project with
      transcript filenames resolved per quote
"""

import csv
import io
import json
from datetime import datetime, timezone
from typing import Optional
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from themesync.models import Project, Theme, Transcript
from themesync.voting import vote_key

# ─────────────────────────────────────────────────────────────────────────────
# Labels
# ─────────────────────────────────────────────────────────────────────────────

CATEGORY_LABELS = {
    "testing_notes": {
        "opportunities": "What Worked",
        "pain_points": "What Didn't Work",
        "ideas_hmws": "Ideas/Next Steps",
    },
    "default": {
        "opportunities": "Opportunities",
        "pain_points": "Pain Points",
        "ideas_hmws": "Ideas",
    },
}
SHARED_LABELS = {"miscellaneous": "Miscellaneous", "generic": "Generic"}
UNKNOWN_LABEL = "Other"

TRANSCRIPT_TYPE_LABELS = {
    "expert_interviews": "Expert Interviews",
    "testing_notes": "Testing Notes",
    "general_research": "General Research",
}

CSV_HEADERS = [
    "Insight Heading",
    "Type",
    "Vote Count",
    "Raw Quotes",
    "AI Suggestions",
    "Source",
    "Date and Time of Synthesis",
]
QUOTE_CSV_HEADERS = ["Theme", "Description", "Quote", "Source", "Transcript"]
PDF_QUOTES_PER_THEME = 3


def category_label(category: str, transcript_type: str) -> str:
    """Same category, transcript-type-dependent label."""
    table = CATEGORY_LABELS.get(transcript_type, CATEGORY_LABELS["default"])
    return table.get(category) or SHARED_LABELS.get(category, UNKNOWN_LABEL)


def transcript_type_label(transcript_type: str) -> str:
    return TRANSCRIPT_TYPE_LABELS.get(transcript_type, transcript_type.replace("_", " ").title())


def suggestion_label(transcript_type: str) -> str:
    return "HMW QUESTIONS" if transcript_type == "expert_interviews" else "NEXT STEPS"


def export_date() -> str:
    """Export timestamp, UTC like every stored timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _votes_suffix(vote_counts: dict[str, int], key: str) -> str:
    votes = vote_counts.get(key, 0)
    return f" ({votes} votes)" if votes > 0 else ""


def unique_sources(theme: Theme) -> list[str]:
    """Quote sources in first-seen order, blanks skipped."""
    seen: list[str] = []
    for quote in theme.quotes:
        if quote.source and quote.source not in seen:
            seen.append(quote.source)
    return seen


# ─────────────────────────────────────────────────────────────────────────────
# Insight exports (TXT / Markdown / CSV)
# ─────────────────────────────────────────────────────────────────────────────


def format_text(
    themes: list[Theme],
    transcript_type: str,
    sprint_goal: Optional[str] = None,
    exported_at: Optional[str] = None,
    vote_counts: Optional[dict[str, int]] = None,
) -> str:
    """Plain-text report. Also served for the "doc" format."""
    vote_counts = vote_counts or {}
    lines = ["SPRINT INSIGHTS EXPORT", f"Generated: {exported_at or export_date()}"]
    if sprint_goal:
        lines.append(f"Sprint Goal: {sprint_goal}")
    lines.append(f"Transcript Type: {transcript_type_label(transcript_type)}")
    lines.append(f"Total Insights: {len(themes)}")
    lines += ["", "=" * 50, ""]

    for index, theme in enumerate(themes, start=1):
        lines += [f"{index}. {category_label(theme.category, transcript_type).upper()}", ""]
        lines.append(theme.title)
        if theme.description:
            lines.append(theme.description)
        theme_votes = vote_counts.get(vote_key(theme.id, "theme"), 0)
        if theme_votes > 0:
            lines.append(f"VOTES: {theme_votes}")
        lines.append("")

        if theme.quotes:
            lines.append("QUOTES:")
            lines += [f'- "{q.text}" - {q.source}' for q in theme.quotes]
            lines.append("")

        if theme.hmw_questions or theme.ai_suggested_steps:
            lines.append(f"AI SUGGESTIONS ({suggestion_label(transcript_type)}):")
            for i, hmw in enumerate(theme.hmw_questions):
                lines.append(f"- {hmw}{_votes_suffix(vote_counts, vote_key(theme.id, 'hmw', i))}")
            for i, step in enumerate(theme.ai_suggested_steps):
                lines.append(f"- {step}{_votes_suffix(vote_counts, vote_key(theme.id, 'step', i))}")
            lines.append("")

        lines += ["-" * 30, ""]

    return "\n".join(lines) + "\n"


def format_markdown(
    themes: list[Theme],
    transcript_type: str,
    sprint_goal: Optional[str] = None,
    exported_at: Optional[str] = None,
    vote_counts: Optional[dict[str, int]] = None,
) -> str:
    vote_counts = vote_counts or {}
    lines = ["# Sprint Insights Export", "", f"**Generated:** {exported_at or export_date()}  "]
    if sprint_goal:
        lines.append(f"**Sprint Goal:** {sprint_goal}  ")
    lines.append(f"**Transcript Type:** {transcript_type_label(transcript_type)}  ")
    lines += [f"**Total Insights:** {len(themes)}", "", "---", ""]

    for index, theme in enumerate(themes, start=1):
        lines += [f"## {index}. {category_label(theme.category, transcript_type)}", ""]
        lines += [f"### {theme.title}", ""]
        if theme.description:
            lines += [theme.description, ""]
        theme_votes = vote_counts.get(vote_key(theme.id, "theme"), 0)
        if theme_votes > 0:
            lines += [f"**Votes:** {theme_votes}", ""]

        if theme.quotes:
            lines += ["#### Quotes", ""]
            for quote in theme.quotes:
                lines += [f'> "{quote.text}" - *{quote.source}*', ""]

        if theme.hmw_questions or theme.ai_suggested_steps:
            lines += [f"#### AI Suggestions ({suggestion_label(transcript_type).title()})", ""]
            for i, hmw in enumerate(theme.hmw_questions):
                lines.append(f"- {hmw}{_votes_suffix(vote_counts, vote_key(theme.id, 'hmw', i))}")
            for i, step in enumerate(theme.ai_suggested_steps):
                lines.append(f"- {step}{_votes_suffix(vote_counts, vote_key(theme.id, 'step', i))}")
            lines.append("")

        lines += ["---", ""]

    return "\n".join(lines)


def format_csv(
    themes: list[Theme],
    transcript_type: str,
    sprint_goal: Optional[str] = None,
    exported_at: Optional[str] = None,
    vote_counts: Optional[dict[str, int]] = None,
) -> str:
    """
    One row per theme. Every field is quoted; embedded quotes are doubled, so
    commas, quotes and newlines never break a row.

    Takes the same arguments as the text and markdown reports. The sprint goal
    has no column, so it is not written.
    """
    vote_counts = vote_counts or {}
    exported_at = exported_at or export_date()
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for theme in themes:
        quotes = "; ".join(f'"{q.text}" - {q.source}' for q in theme.quotes)
        suggestions = [
            f"{hmw}{_votes_suffix(vote_counts, vote_key(theme.id, 'hmw', i))}"
            for i, hmw in enumerate(theme.hmw_questions)
        ] + [
            f"{step}{_votes_suffix(vote_counts, vote_key(theme.id, 'step', i))}"
            for i, step in enumerate(theme.ai_suggested_steps)
        ]
        writer.writerow(
            [
                theme.title,
                category_label(theme.category, transcript_type),
                vote_counts.get(vote_key(theme.id, "theme"), 0),
                quotes,
                "; ".join(suggestions),
                "; ".join(unique_sources(theme)),
                exported_at,
            ]
        )
    return buffer.getvalue()


# ─────────────────────────────────────────────────────────────────────────────
# Project exports (JSON / quote CSV / XLSX / PDF)
# ─────────────────────────────────────────────────────────────────────────────


def _transcript_lookup(transcripts: list[Transcript]) -> dict[int, Transcript]:
    return {t.id: t for t in transcripts}


def project_summary(themes: list[Theme], transcripts: list[Transcript]) -> dict:
    return {
        "totalThemes": len(themes),
        "totalTranscripts": len(transcripts),
        "totalQuotes": sum(len(t.quotes) for t in themes),
    }


def format_json(project: Project, themes: list[Theme], transcripts: list[Transcript]) -> str:
    payload = {
        "project": {
            "name": project.name,
            "description": project.description,
            "createdAt": project.created_at.isoformat(),
        },
        "summary": project_summary(themes, transcripts),
        "themes": [
            {
                "title": theme.title,
                "description": theme.description,
                "category": theme.category,
                "color": theme.color,
                "quotes": [q.model_dump(by_alias=True) for q in theme.quotes],
                "hmwQuestions": theme.hmw_questions,
                "aiSuggestedSteps": theme.ai_suggested_steps,
                "createdAt": theme.created_at.isoformat(),
            }
            for theme in themes
        ],
        "transcripts": [
            {
                "filename": t.filename,
                "fileType": t.file_type,
                "uploadedAt": t.uploaded_at.isoformat(),
            }
            for t in transcripts
        ],
    }
    return json.dumps(payload, indent=2)


def quote_rows(themes: list[Theme], transcripts: list[Transcript]) -> list[list[str]]:
    """One row per quote. Dangling transcript ids resolve to "Unknown"."""
    lookup = _transcript_lookup(transcripts)
    rows = []
    for theme in themes:
        for quote in theme.quotes:
            transcript = lookup.get(quote.transcript_id) if quote.transcript_id is not None else None
            rows.append(
                [
                    theme.title,
                    theme.description or "",
                    quote.text,
                    quote.source,
                    transcript.filename if transcript else "Unknown",
                ]
            )
    return rows


def format_quotes_csv(themes: list[Theme], transcripts: list[Transcript]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(QUOTE_CSV_HEADERS)
    writer.writerows(quote_rows(themes, transcripts))
    return buffer.getvalue()


def format_excel(themes: list[Theme], transcripts: list[Transcript], transcript_type: str = "expert_interviews") -> bytes:
    """Workbook with "Themes Overview" and "Detailed Quotes" sheets."""
    output = io.BytesIO()
    wb = Workbook()

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="2563EB", end_color="2563EB", fill_type="solid")

    ws = wb.active
    ws.title = "Themes Overview"
    overview_headers = ["Theme Title", "Description", "Category", "Number of Quotes", "HMW Questions", "Last Updated"]
    ws.append(overview_headers)
    for theme in themes:
        ws.append(
            [
                theme.title,
                theme.description or "",
                category_label(theme.category, transcript_type),
                len(theme.quotes),
                "; ".join(theme.hmw_questions),
                theme.updated_at.strftime("%Y-%m-%d"),
            ]
        )

    lookup = _transcript_lookup(transcripts)
    ws2 = wb.create_sheet("Detailed Quotes")
    ws2.append(["Theme", "Quote", "Source", "Transcript", "File Type"])
    for theme in themes:
        for quote in theme.quotes:
            transcript = lookup.get(quote.transcript_id) if quote.transcript_id is not None else None
            ws2.append(
                [
                    theme.title,
                    quote.text,
                    quote.source,
                    transcript.filename if transcript else "Unknown",
                    transcript.file_type if transcript else "Unknown",
                ]
            )

    for sheet, widths in ((ws, (40, 60, 20, 16, 60, 14)), (ws2, (40, 80, 24, 30, 12))):
        for cell in sheet[1]:
            cell.font = header_font
            cell.fill = header_fill
        for column, width in zip("ABCDEF", widths):
            sheet.column_dimensions[column].width = width

    wb.save(output)
    return output.getvalue()


def format_pdf(project: Project, themes: list[Theme], transcripts: list[Transcript]) -> bytes:
    """Title, summary line, then one section per theme with at most 3 quotes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=project.name or "Theme Analysis Report")
    styles = getSampleStyleSheet()
    summary = project_summary(themes, transcripts)

    flowables = [Paragraph(escape(project.name or "Theme Analysis Report"), styles["Title"])]
    if project.description:
        flowables.append(Paragraph(escape(project.description), styles["Italic"]))
    flowables.append(
        Paragraph(
            f"Generated on {export_date()} &middot; {summary['totalThemes']} themes &middot; "
            f"{summary['totalQuotes']} quotes from {summary['totalTranscripts']} transcripts",
            styles["Normal"],
        )
    )
    flowables.append(Spacer(1, 0.3 * inch))

    for index, theme in enumerate(themes, start=1):
        flowables.append(Paragraph(f"{index}. {escape(theme.title)}", styles["Heading2"]))
        flowables.append(Paragraph(f"Category: {escape(theme.category)}", styles["Normal"]))
        if theme.description:
            flowables.append(Paragraph(escape(theme.description), styles["Normal"]))
        flowables.append(Paragraph(f"Supporting Quotes ({len(theme.quotes)}):", styles["Normal"]))
        for quote in theme.quotes[:PDF_QUOTES_PER_THEME]:
            text = f"&ldquo;{escape(quote.text)}&rdquo; - {escape(quote.source or 'Unknown')}"
            flowables.append(Paragraph(text, styles["Italic"]))
        if len(theme.quotes) > PDF_QUOTES_PER_THEME:
            flowables.append(
                Paragraph(f"... and {len(theme.quotes) - PDF_QUOTES_PER_THEME} more quotes", styles["Normal"])
            )
        flowables.append(Spacer(1, 0.2 * inch))

    doc.build(flowables)
    return buffer.getvalue()
