"""
ThemeSync Backend — Theme Filtering, Sorting & Statistics

Pure functions over a list of themes. Used by GET /api/themes and
GET /api/themes/stats.
"""

from themesync.export import category_label
from themesync.models import Theme, ThemeFilter, ThemeStatistics

# Display order for the "category" sort; anything else goes last
CATEGORY_ORDER = ("opportunities", "pain_points", "ideas_hmws", "miscellaneous", "generic")


def _matches_search(theme: Theme, term: str) -> bool:
    haystack = [theme.title, theme.description or ""]
    haystack += [q.text for q in theme.quotes]
    haystack += theme.hmw_questions + theme.ai_suggested_steps
    return any(term in text.lower() for text in haystack)


def _tri_state(flag: bool | None, present: bool) -> bool:
    """None means "don't care"."""
    return flag is None or flag == present


def filter_themes(themes: list[Theme], criteria: ThemeFilter) -> list[Theme]:
    term = criteria.search.strip().lower()
    category = criteria.category.strip().lower()
    result = []
    for theme in themes:
        if term and not _matches_search(theme, term):
            continue
        if category and category != "all" and theme.category != category:
            continue
        if not _tri_state(criteria.has_quotes, bool(theme.quotes)):
            continue
        if not _tri_state(criteria.has_hmws, bool(theme.hmw_questions)):
            continue
        if not _tri_state(criteria.has_suggestions, bool(theme.ai_suggested_steps)):
            continue
        result.append(theme)
    return result


def sort_themes(themes: list[Theme], sort: str = "position") -> list[Theme]:
    if sort == "az":
        return sorted(themes, key=lambda t: t.title.lower())
    if sort == "category":
        def rank(theme: Theme) -> int:
            if theme.category in CATEGORY_ORDER:
                return CATEGORY_ORDER.index(theme.category)
            return len(CATEGORY_ORDER)

        return sorted(themes, key=lambda t: (rank(t), t.position, t.id))
    return sorted(themes, key=lambda t: (t.position, t.id))


def apply_filter(themes: list[Theme], criteria: ThemeFilter) -> list[Theme]:
    return sort_themes(filter_themes(themes, criteria), criteria.sort)


def active_filter_count(criteria: ThemeFilter) -> int:
    """How many filters differ from their neutral value (sort is not a filter)."""
    return sum(
        [
            bool(criteria.search.strip()),
            criteria.category.strip().lower() not in ("", "all"),
            criteria.has_quotes is not None,
            criteria.has_hmws is not None,
            criteria.has_suggestions is not None,
        ]
    )


def theme_statistics(themes: list[Theme], transcript_type: str = "expert_interviews") -> ThemeStatistics:
    by_category: dict[str, int] = {}
    for theme in themes:
        by_category[theme.category] = by_category.get(theme.category, 0) + 1
    return ThemeStatistics(
        total_themes=len(themes),
        total_quotes=sum(len(t.quotes) for t in themes),
        total_hmws=sum(len(t.hmw_questions) for t in themes),
        total_suggestions=sum(len(t.ai_suggested_steps) for t in themes),
        by_category=by_category,
        category_labels={c: category_label(c, transcript_type) for c in by_category},
    )
