"""
Access SQL syntax -> PostgreSQL syntax.

The translation is split around reference resolution, which needs the
Access bracket and bang syntax intact:

    SyntaxTranslator  (stage ``syntax``)
        1. keyword synonyms (DISTINCTROW)
        2. ``SELECT [DISTINCT] TOP n``: remember n, strip it
        3. boolean literals
        4. Date() / Now() / Time()
        5. ``#...#`` date literals
        6. ``&`` concatenation
    -- reference resolution (stage ``references``) --
    SyntaxFinisher    (stage ``syntax_finish``)
        8. ``::text`` on the left operand of comparisons with ``ssN.value``
        9. double-quoted string literals -> single quotes
       10. LIKE wildcards
       11. ``[Identifier]`` -> ``"identifier"``
       12. ``LIMIT n``

Every step ignores text inside string literals, comments and (where the
step is not about them) bracketed identifiers.
"""
import re
from typing import Callable, Iterable, List, Optional, Tuple

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext
from accesslift.services.query_conversion.utils.config_loader import load_query_rules
from accesslift.services.query_conversion.utils.naming import sanitize
from accesslift.services.query_conversion.utils.regex_utils import apply_rule_section
from accesslift.services.query_conversion.utils.scanner import (
    enclosing_paren,
    find_matching_paren,
    literal_mask,
    scan,
    sub_outside_literals,
)

logger = setup_logger('SyntaxTranslator')

_TOP_RE = re.compile(r'\b(SELECT\s+(?:DISTINCT\s+)?)TOP\s+(\d+)(\s+PERCENT)?\s+', re.IGNORECASE)

_TIME = r'(?:\s+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?)?'
_US_DATE_RE = re.compile(r'#\s*(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})' + _TIME + r'\s*#')
_ISO_DATE_RE = re.compile(r'#\s*(\d{4})-(\d{1,2})-(\d{1,2})' + _TIME + r'\s*#')
_TIME_ONLY_RE = re.compile(r'#\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*#')

_STATE_COMPARISON_RE = re.compile(
    r'((?:\[[^\]]+\]|[\w."])+)(\s*\)*\s*(?:<>|[<>!]?=|[<>])\s*)(ss\d+\.value\b)'
)
_STATE_VALUE_RE = re.compile(r'ss\d+\.value', re.IGNORECASE)
_LIKE_RE = re.compile(r"\b(LIKE\s+)'((?:[^']|'')*)'", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Before reference resolution
# ---------------------------------------------------------------------------

def _rules() -> dict:
    return load_query_rules('syntax_rules.json')


def normalize_keywords(sql: str) -> str:
    return apply_rule_section(sql, _rules().get('keyword_synonyms', []), logger, 'keyword_synonyms')


def extract_row_limit(sql: str, warnings: List[str]) -> Tuple[str, Optional[int]]:
    """Strip ``TOP n`` from SELECTs.

    The first top-level ``TOP n`` becomes the returned limit (appended as
    ``LIMIT n`` once the rest of the translation is done); ``TOP n`` inside a
    subquery becomes ``LIMIT n`` before the subquery's closing paren right away.
    """
    mask = literal_mask(sql, brackets=True)
    matches = [m for m in _TOP_RE.finditer(sql) if not mask[m.start()]]
    limit: Optional[int] = None
    _, depths = scan(sql)
    for match in reversed(matches):
        count = int(match.group(2))
        prefix = match.group(1).rstrip() + ' '
        if match.group(3):
            warnings.append(f"TOP {count} PERCENT has no direct PostgreSQL equivalent; row limit dropped")
            sql = sql[:match.start()] + prefix + sql[match.end():]
            continue
        if depths[match.start()] > 0:
            open_idx = enclosing_paren(sql, match.start())
            close_idx = find_matching_paren(sql, open_idx)
            if close_idx != -1:
                sql = (sql[:match.start()] + prefix + sql[match.end():close_idx].rstrip()
                       + f' LIMIT {count}' + sql[close_idx:])
                continue
        elif limit is not None:
            warnings.append(f"TOP {limit} in a later UNION branch dropped; only the first row limit is kept")
        limit = count
        sql = sql[:match.start()] + prefix + sql[match.end():]
    return sql, limit


def canonicalize_literals(sql: str) -> str:
    return apply_rule_section(sql, _rules().get('literal_fixes', []), logger, 'literal_fixes')


def _format_time(hour: str, minute: str, second: Optional[str], meridiem: Optional[str]) -> str:
    h = int(hour)
    if meridiem:
        h = h % 12 + (12 if meridiem.lower() == 'pm' else 0)
    text = f"{h:02d}:{minute}"
    return f"{text}:{second}" if second else text


def _format_date_literal(year: str, month: str, day: str, time_groups: Tuple) -> str:
    if len(year) == 2:
        year = ('20' if int(year) < 30 else '19') + year
    date_text = f"{year}-{int(month):02d}-{int(day):02d}"
    hour, minute, second, meridiem = time_groups
    if hour is None:
        return f"'{date_text}'::date"
    return f"'{date_text} {_format_time(hour, minute, second, meridiem)}'::timestamp"


def convert_date_literals(sql: str) -> str:
    sql = sub_outside_literals(
        _US_DATE_RE,
        lambda m: _format_date_literal(m.group(3), m.group(1), m.group(2), m.groups()[3:]),
        sql, brackets=True,
    )
    sql = sub_outside_literals(
        _ISO_DATE_RE,
        lambda m: _format_date_literal(m.group(1), m.group(2), m.group(3), m.groups()[3:]),
        sql, brackets=True,
    )
    return sub_outside_literals(
        _TIME_ONLY_RE,
        lambda m: f"'{_format_time(*m.groups())}'::time",
        sql, brackets=True,
    )


def convert_operators(sql: str) -> str:
    return apply_rule_section(sql, _rules().get('operator_fixes', []), logger, 'operator_fixes')


# ---------------------------------------------------------------------------
# After reference resolution
# ---------------------------------------------------------------------------

def cast_state_comparisons(sql: str) -> str:
    """``col = ss1.value`` -> ``col::text = ss1.value``; state values are untyped text."""
    def _cast(match: re.Match) -> str:
        left = match.group(1)
        if match.string[:match.start()].endswith('::') or _STATE_VALUE_RE.fullmatch(left):
            return match.group(0)
        return f"{left}::text{match.group(2)}{match.group(3)}"

    return sub_outside_literals(_STATE_COMPARISON_RE, _cast, sql)


def _regions(sql: str, kind: str) -> Iterable[Tuple[int, int]]:
    """``(start, end)`` spans (end exclusive) of consecutive characters of one region kind."""
    kinds, _ = scan(sql)
    i = 0
    while i < len(sql):
        if kinds[i] == kind:
            j = i
            while j + 1 < len(sql) and kinds[j + 1] == kind:
                j += 1
            yield i, j + 1
            i = j + 1
        else:
            i += 1


def _replace_regions(sql: str, kind: str, render: Callable[[str], str]) -> str:
    parts = []
    last = 0
    for start, end in _regions(sql, kind):
        parts.append(sql[last:start])
        parts.append(render(sql[start:end]))
        last = end
    parts.append(sql[last:])
    return ''.join(parts)


def convert_string_literals(sql: str) -> str:
    def _render(region: str) -> str:
        if len(region) < 2 or not region.endswith('"'):
            return region
        inner = region[1:-1].replace('""', '"')
        return "'" + inner.replace("'", "''") + "'"

    return _replace_regions(sql, '"', _render)


def convert_like_patterns(sql: str) -> str:
    return sub_outside_literals(
        _LIKE_RE,
        lambda m: f"{m.group(1)}'{m.group(2).replace('*', '%').replace('?', '_')}'",
        sql, brackets=True,
    )


def convert_bracket_identifiers(sql: str, parameter_names: Iterable[str] = ()) -> str:
    params = set(parameter_names)

    def _render(region: str) -> str:
        if not region.endswith(']'):
            return region
        inner = region[1:-1].strip()
        if inner in params:
            return inner
        return f'"{sanitize(inner)}"'

    return _replace_regions(sql, '[', _render)


def append_row_limit(sql: str, limit: Optional[int]) -> str:
    if limit is None:
        return sql
    return f"{sql.rstrip().rstrip(';').rstrip()} LIMIT {limit}"


def translate_syntax(sql: str, warnings: List[str],
                     resolve_references: Optional[Callable[[str], str]] = None,
                     parameter_names: Iterable[str] = ()) -> str:
    """Every syntax pass in order; *resolve_references* runs between the operator and cast passes."""
    sql = normalize_keywords(sql)
    sql, limit = extract_row_limit(sql, warnings)
    sql = canonicalize_literals(sql)
    sql = convert_date_literals(sql)
    sql = convert_operators(sql)
    if resolve_references is not None:
        sql = resolve_references(sql)
    sql = cast_state_comparisons(sql)
    sql = convert_string_literals(sql)
    sql = convert_like_patterns(sql)
    sql = convert_bracket_identifiers(sql, parameter_names)
    return append_row_limit(sql, limit)


class SyntaxTranslator(BaseConverter):
    """Stage ``syntax``: keywords, row limit, literals, dates and ``&``. Leaves brackets, bang references and double quotes in place."""
    name = 'syntax'

    def apply(self, ctx: ConversionContext) -> None:
        sql = normalize_keywords(ctx.sql)
        sql, ctx.row_limit = extract_row_limit(sql, ctx.warnings)
        sql = canonicalize_literals(sql)
        sql = convert_date_literals(sql)
        ctx.sql = convert_operators(sql)


class SyntaxFinisher(BaseConverter):
    """Stage ``syntax_finish``: casts, strings, LIKE patterns, brackets and LIMIT. On exit the text is PostgreSQL syntax."""
    name = 'syntax_finish'

    def apply(self, ctx: ConversionContext) -> None:
        sql = cast_state_comparisons(ctx.sql)
        sql = convert_string_literals(sql)
        sql = convert_like_patterns(sql)
        sql = convert_bracket_identifiers(sql, ctx.parameter_identifiers)
        ctx.sql = append_row_limit(sql, ctx.row_limit)
