"""
Schema qualification of table sources and user-defined function calls.

Runs after syntax translation, so identifiers are either bare words or
double-quoted sanitized names at this point.
"""
import re
from typing import Dict, Set

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext
from accesslift.services.query_conversion.utils.config_loader import load_query_rules
from accesslift.services.query_conversion.utils.naming import sanitize
from accesslift.services.query_conversion.utils.scanner import (
    enclosing_paren,
    find_top_level,
    literal_mask,
    split_top_level,
    sub_outside_literals,
)

# Words that end a table source instead of aliasing it
CLAUSE_KEYWORDS = (
    'WHERE', 'INNER', 'LEFT', 'RIGHT', 'FULL', 'OUTER', 'CROSS', 'NATURAL', 'JOIN', 'ON', 'USING',
    'GROUP', 'ORDER', 'HAVING', 'WINDOW', 'UNION', 'EXCEPT', 'INTERSECT', 'LIMIT', 'OFFSET', 'FETCH',
    'SET', 'SELECT', 'VALUES', 'FROM', 'INTO', 'AND', 'OR', 'LATERAL', 'RETURNING', 'AS',
)
_KEYWORD_ALT = '|'.join(CLAUSE_KEYWORDS)

_NAME = r'(?:"[^"]+"|[A-Za-z_]\w*)'
_ALIAS = rf'(?P<alias>\s+(?:AS\s+)?(?!(?:{_KEYWORD_ALT})\b)(?:"[^"]+"|[A-Za-z_]\w*))?'

TABLE_RE = re.compile(
    r'\b(?P<keyword>FROM|JOIN|INTO|UPDATE|TABLE)(?P<gap>\s+\(*\s*)'
    r'(?P<name>' + _NAME + r')(?![\w"])(?P<dotted>\s*\.\s*' + _NAME + r')?' + _ALIAS,
    re.IGNORECASE,
)

# FROM is also an argument separator inside these calls
_FROM_FUNCTIONS = {'extract', 'substring', 'overlay', 'trim'}

_FUNCTION_CALL_RE = re.compile(r'(?<![.:"\w$])([A-Za-z_]\w*)\s*\(')

_PRECEDING_WORD_RE = re.compile(r'([A-Za-z_]\w*)\s*$')


def _builtin_names() -> Dict[str, Set[str]]:
    rules = load_query_rules('builtin_functions.json')
    return {key: {name.lower() for name in rules.get(key, [])} for key in ('functions', 'type_names', 'sql_keywords')}


def _is_reserved(name: str, keywords: Set[str]) -> bool:
    return name.lower() in keywords or name.upper() in CLAUSE_KEYWORDS


def _inside_from_function(sql: str, pos: int) -> bool:
    open_idx = enclosing_paren(sql, pos)
    if open_idx == -1:
        return False
    word = _PRECEDING_WORD_RE.search(sql[:open_idx])
    return bool(word) and word.group(1).lower() in _FROM_FUNCTIONS


def _alias_for(name: str, keywords: Set[str]) -> str:
    return f'"{name}"' if _is_reserved(name, keywords) else name


def qualify_tables(sql: str, schema_name: str, state_relation: str = '') -> str:
    """``FROM Orders`` -> ``FROM schema."orders" orders``; dotted and reserved names are left alone."""
    keywords = _builtin_names()['sql_keywords']
    mask = literal_mask(sql)
    state_name = state_relation.lower()

    def _qualify(match: re.Match) -> str:
        if mask[match.start()] or match.group('dotted'):
            return match.group(0)
        raw_name = match.group('name')
        if not raw_name.startswith('"') and _is_reserved(raw_name, keywords):
            return match.group(0)
        if raw_name.lower() == state_name:
            return match.group(0)
        keyword = match.group('keyword')
        if keyword.upper() == 'FROM' and _inside_from_function(sql, match.start()):
            return match.group(0)
        if keyword.upper() in ('FROM', 'JOIN') and not match.group('alias') and re.match(r'\s*\(', sql[match.end():]):
            # set-returning function call, qualified by the function pass
            return match.group(0)
        name = sanitize(raw_name.strip('"'))
        qualified = f'{schema_name}."{name}"'
        alias = match.group('alias')
        if alias:
            return f"{keyword}{match.group('gap')}{qualified}{alias}"
        if keyword.upper() == 'INTO':
            return f"{keyword}{match.group('gap')}{qualified}"
        return f"{keyword}{match.group('gap')}{qualified} {_alias_for(name, keywords)}"

    sql = TABLE_RE.sub(_qualify, sql)
    return _qualify_source_lists(sql, schema_name, keywords)


def _qualify_source_lists(sql: str, schema_name: str, keywords: Set[str]) -> str:
    """``schema."a" a, b`` -> ``schema."a" a, schema."b" b``, one list entry per pass."""
    pattern = re.compile(
        r'(?<![\w"])(?P<previous>' + re.escape(schema_name) + r'\."[^"]+"'
        r'(?:\s+(?:AS\s+)?(?!(?:' + _KEYWORD_ALT + r')\b)(?:"[^"]+"|[A-Za-z_]\w*))?)'
        r'(?P<comma>\s*,\s*)(?P<name>' + _NAME + r')(?![\w"])(?!\s*[.(])' + _ALIAS,
        re.IGNORECASE,
    )

    def _qualify(match: re.Match) -> str:
        raw_name = match.group('name')
        if not raw_name.startswith('"') and _is_reserved(raw_name, keywords):
            return match.group(0)
        name = sanitize(raw_name.strip('"'))
        alias = match.group('alias') or f" {_alias_for(name, keywords)}"
        return f"{match.group('previous')}{match.group('comma')}{schema_name}.\"{name}\"{alias}"

    for _ in range(50):
        qualified = sub_outside_literals(pattern, _qualify, sql)
        if qualified == sql:
            break
        sql = qualified
    return sql


_ASSIGNMENT_TARGET_RE = re.compile(r'^(\s*)(?:"[^"]+"|[A-Za-z_]\w*)\s*\.\s*(?="[^"]+"|[A-Za-z_]\w*\s*=)')


def unqualify_update_targets(sql: str) -> str:
    """PostgreSQL rejects ``SET t.col = ...``; strip the qualifier from every assignment target."""
    if not re.match(r'\s*UPDATE\b', sql, re.IGNORECASE):
        return sql
    set_match = find_top_level(sql, r'\bSET\b')
    if set_match is None:
        return sql
    end = find_top_level(sql, r'\b(?:FROM|WHERE|RETURNING)\b', set_match.end())
    stop = end.start() if end else len(sql)
    assignments = split_top_level(sql[set_match.end():stop])
    rewritten = ', '.join(_ASSIGNMENT_TARGET_RE.sub(r'\1', item) for item in assignments)
    trailing = ' ' if end else sql[len(sql.rstrip()):]
    return f"{sql[:set_match.end()]} {rewritten}{trailing}{sql[stop:] if end else ''}"


def qualify_functions(sql: str, schema_name: str) -> str:
    """``MyFunc(x)`` -> ``"schema"."myfunc"(x)`` for every call that is not a PostgreSQL built-in."""
    names = _builtin_names()
    builtins = names['functions'] | names['type_names'] | names['sql_keywords']

    def _qualify(match: re.Match) -> str:
        name = match.group(1)
        if name.lower() in builtins:
            return match.group(0)
        return f'"{schema_name}"."{name.lower()}"('

    return sub_outside_literals(_FUNCTION_CALL_RE, _qualify, sql)


class TableQualifier(BaseConverter):
    """Stage ``table_qualification``."""
    name = 'table_qualification'

    def __init__(self, source_dialect: str, target_dialect: str):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('SchemaQualifier')

    def apply(self, ctx: ConversionContext) -> None:
        sql = qualify_tables(ctx.sql, ctx.schema_name, ctx.settings.state_relation)
        ctx.sql = unqualify_update_targets(sql)


class FunctionQualifier(BaseConverter):
    """Stage ``function_qualification``."""
    name = 'function_qualification'

    def apply(self, ctx: ConversionContext) -> None:
        ctx.sql = qualify_functions(ctx.sql, ctx.schema_name)
