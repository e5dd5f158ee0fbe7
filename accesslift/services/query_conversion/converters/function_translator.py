"""
Access built-in function calls -> PostgreSQL built-ins and expressions.

Simple renames, cast-style conversions, date-part extraction and interval
units come from ``functions.json``; rewrites that restructure their
arguments (IIf, Switch, DateDiff, Format, ...) are registered below with
``@_rule``. Calls are rewritten innermost-first and the whole text is
re-scanned until nothing changes, so nested calls convert at any depth.
"""
import re
from typing import Callable, Dict, List, Optional

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext
from accesslift.services.query_conversion.utils.config_loader import load_query_rules
from accesslift.services.query_conversion.utils.scanner import find_matching_paren, literal_mask, split_top_level

# Identifier followed by "(" that is not part of a qualified or quoted name
_CALL_RE = re.compile(r'(?<![\w.$"\]:])([A-Za-z_]\w*\$?)\s*\(')

RuleFn = Callable[[List[str], List[str]], Optional[str]]
_RULES: Dict[str, RuleFn] = {}


def _rule(*names: str):
    def register(fn: RuleFn) -> RuleFn:
        for name in names:
            _RULES[name.lower()] = fn
        return fn
    return register


def _unquote(arg: str) -> str:
    return arg.strip().strip('"').strip("'").strip()


def _arg(args: List[str], idx: int, default: str = 'NULL') -> str:
    return args[idx] if idx < len(args) and args[idx] != '' else default


_SIMPLE_OPERAND = re.compile(r'(?:\[[^\]]+\]|[\w.$"]+|#[^#]+#|\'(?:[^\']|\'\')*\')')


def _operand(arg: str) -> str:
    """Parenthesize *arg* unless it is a single identifier or literal, so a suffix cast binds to all of it."""
    if _SIMPLE_OPERAND.fullmatch(arg) or re.fullmatch(r'[A-Za-z_]\w*\s*\(\s*\)', arg):
        return arg
    return f"({arg})"


# ---------------------------------------------------------------------------
# Null handling and conditionals
# ---------------------------------------------------------------------------

@_rule('Nz')
def _nz(args, warnings):
    if len(args) >= 2:
        return f"COALESCE({args[0]}, {args[1]})"
    return f"COALESCE({_arg(args, 0)}, '')"


@_rule('IsNull')
def _is_null(args, warnings):
    return f"({_arg(args, 0)} IS NULL)"


@_rule('IsDate')
def _is_date(args, warnings):
    return f"(({_arg(args, 0)})::text ~ '^\\d{{4}}-\\d{{2}}-\\d{{2}}')"


@_rule('IsNumeric')
def _is_numeric(args, warnings):
    return f"(({_arg(args, 0)})::text ~ '^-?[0-9]+(\\.[0-9]+)?$')"


@_rule('IIf')
def _iif(args, warnings):
    return f"CASE WHEN {_arg(args, 0)} THEN {_arg(args, 1)} ELSE {_arg(args, 2)} END"


@_rule('Switch')
def _switch(args, warnings):
    branches = ''.join(
        f" WHEN {args[i]} THEN {args[i + 1]}" for i in range(0, len(args) - 1, 2)
    )
    return f"CASE{branches} ELSE NULL END"


@_rule('Choose')
def _choose(args, warnings):
    branches = ''.join(f" WHEN {i} THEN {args[i]}" for i in range(1, len(args)))
    return f"CASE {_arg(args, 0)}{branches} END"


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

@_rule('Mid', 'Mid$')
def _mid(args, warnings):
    if len(args) >= 3:
        return f"SUBSTRING({args[0]} FROM {args[1]} FOR {args[2]})"
    return f"SUBSTRING({_arg(args, 0)} FROM {_arg(args, 1, '1')})"


@_rule('InStr')
def _instr(args, warnings):
    # InStr([start,] string, search[, compare])
    if len(args) >= 3:
        start, haystack, needle = args[0], args[1], args[2]
        return f"(POSITION({needle} IN SUBSTRING({haystack} FROM {start})) + {start} - 1)"
    return f"POSITION({_arg(args, 1)} IN {_arg(args, 0)})"


@_rule('InStrRev')
def _instr_rev(args, warnings):
    haystack, needle = _arg(args, 0), _arg(args, 1)
    return f"(LENGTH({haystack}) - POSITION(REVERSE({needle}) IN REVERSE({haystack})) + 1)"


@_rule('StrConv')
def _strconv(args, warnings):
    mode = _unquote(_arg(args, 1, '0'))
    target = {'1': 'UPPER', '2': 'LOWER', '3': 'INITCAP'}.get(mode)
    if target is None:
        warnings.append(f"StrConv conversion mode {mode} has no PostgreSQL equivalent; argument passed through")
        return f"({_arg(args, 0)})"
    return f"{target}({_arg(args, 0)})"


@_rule('Space', 'Space$')
def _space(args, warnings):
    return f"REPEAT(' ', {_arg(args, 0)})"


@_rule('String', 'String$')
def _string(args, warnings):
    return f"REPEAT({_arg(args, 1)}, {_arg(args, 0)})"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

@_rule('DateSerial')
def _date_serial(args, warnings):
    return f"make_date({_arg(args, 0)}, {_arg(args, 1)}, {_arg(args, 2)})"


@_rule('TimeSerial')
def _time_serial(args, warnings):
    return f"make_time({_arg(args, 0)}, {_arg(args, 1)}, {_arg(args, 2)})"


@_rule('DateAdd')
def _date_add(args, warnings):
    units = _function_rules().get('interval_units', {})
    unit = _unquote(_arg(args, 0, 'd')).lower()
    pg_unit = units.get(unit)
    if pg_unit is None:
        warnings.append(f"DateAdd interval '{unit}' not recognised; treated as days")
        pg_unit = 'day'
    amount = f"({_arg(args, 1)}) * 3" if unit == 'q' else _arg(args, 1)
    return f"({_arg(args, 2)} + ({amount}) * INTERVAL '1 {pg_unit}')"


@_rule('DateDiff')
def _date_diff(args, warnings):
    unit = _unquote(_arg(args, 0, 'd')).lower()
    start, end = _operand(_arg(args, 1)), _operand(_arg(args, 2))
    if unit == 'm':
        return (f"(EXTRACT(YEAR FROM {end}::date) * 12 + EXTRACT(MONTH FROM {end}::date) "
                f"- EXTRACT(YEAR FROM {start}::date) * 12 - EXTRACT(MONTH FROM {start}::date))::integer")
    if unit == 'q':
        return (f"((EXTRACT(YEAR FROM {end}::date) * 4 + EXTRACT(QUARTER FROM {end}::date)) "
                f"- (EXTRACT(YEAR FROM {start}::date) * 4 + EXTRACT(QUARTER FROM {start}::date)))::integer")
    if unit == 'yyyy':
        return f"(EXTRACT(YEAR FROM {end}::date) - EXTRACT(YEAR FROM {start}::date))::integer"
    if unit in ('w', 'ww'):
        return f"(({end}::date - {start}::date) / 7)"
    if unit in ('h', 'n', 's'):
        divisor = {'h': ' / 3600', 'n': ' / 60', 's': ''}[unit]
        return f"(EXTRACT(EPOCH FROM {end}::timestamp - {start}::timestamp){divisor})::integer"
    if unit not in ('d', 'y'):
        warnings.append(f"DateDiff interval '{unit}' not recognised; treated as days")
    return f"({end}::date - {start}::date)"


@_rule('DatePart')
def _date_part(args, warnings):
    fields = _function_rules().get('extract_fields', {})
    unit = _unquote(_arg(args, 0, 'd')).lower()
    field = fields.get(unit)
    if field is None:
        warnings.append(f"DatePart interval '{unit}' not recognised; treated as days")
        field = 'DAY'
    return f"EXTRACT({field} FROM {_arg(args, 1)})::integer"


@_rule('Weekday')
def _weekday(args, warnings):
    return f"(EXTRACT(DOW FROM {_arg(args, 0)})::integer + 1)"


@_rule('MonthName')
def _month_name(args, warnings):
    return f"to_char(make_date(2000, {_arg(args, 0)}, 1), 'FMMonth')"


@_rule('WeekdayName')
def _weekday_name(args, warnings):
    # 2000-01-02 was a Sunday, so day n of that week is weekday n
    return f"to_char(make_date(2000, 1, ({_arg(args, 0)}) + 1), 'FMDay')"


@_rule('Format', 'Format$')
def _format(args, warnings):
    if len(args) < 2:
        return f"({_arg(args, 0)})::text"
    named = _function_formats()
    fmt = _unquote(args[1])
    pattern = named.get(fmt)
    if pattern is None:
        pattern = {key.lower(): value for key, value in named.items()}.get(fmt.lower())
    if pattern is None:
        warnings.append(f"Format pattern '{fmt}' has no known PostgreSQL equivalent; passed through to to_char unchanged")
        pattern = fmt
    return f"to_char({args[0]}, '{pattern.replace(chr(39), chr(39) * 2)}')"


# ---------------------------------------------------------------------------
# Rule data
# ---------------------------------------------------------------------------

def _function_rules() -> Dict:
    return load_query_rules('functions.json')


def _function_formats() -> Dict[str, str]:
    return load_query_rules('formats.json').get('named_formats', {})


def _table_rule(name: str, rules: Dict) -> Optional[Callable[[List[str]], str]]:
    """Rename, cast or date-part rewrite configured for *name*, if any."""
    if name in rules.get('renames', {}):
        target = rules['renames'][name]
        return lambda args: f"{target}({', '.join(args)})"
    if name in rules.get('casts', {}):
        cast = rules['casts'][name]
        return lambda args: f"({_arg(args, 0)})::{cast}"
    if name in rules.get('date_parts', {}):
        part = rules['date_parts'][name]
        return lambda args: f"EXTRACT({part} FROM {_arg(args, 0)})::integer"
    return None


def translate_functions(sql: str, warnings: List[str], max_passes: int = 20) -> str:
    """Rewrite every known Access function call in *sql* until a fixpoint is reached."""
    rules = _function_rules()
    for _ in range(max_passes):
        sql, changed = _rewrite_pass(sql, warnings, rules)
        if not changed:
            break
    return sql


def _rewrite_pass(sql: str, warnings: List[str], rules: Dict) -> tuple[str, bool]:
    mask = literal_mask(sql, brackets=True)
    calls = [m for m in _CALL_RE.finditer(sql) if not mask[m.start()]]
    changed = False
    # Right to left: inner calls are rewritten before the calls enclosing them,
    # and positions of matches further left stay valid.
    for match in reversed(calls):
        name = match.group(1).lower()
        table_rule = _table_rule(name, rules)
        handler = _RULES.get(name)
        if table_rule is None and handler is None:
            continue
        open_idx = match.end() - 1
        close_idx = find_matching_paren(sql, open_idx)
        if close_idx == -1:
            continue
        args = split_top_level(sql[open_idx + 1:close_idx])
        replacement = table_rule(args) if table_rule else handler(args, warnings)
        original = sql[match.start():close_idx + 1]
        if replacement is None or replacement == original:
            continue
        sql = sql[:match.start()] + replacement + sql[close_idx + 1:]
        changed = True
    return sql, changed


class FunctionTranslator(BaseConverter):
    """Stage ``functions``: runs on the raw Access text, before any syntax rewrite."""
    name = 'functions'

    def __init__(self, source_dialect: str, target_dialect: str):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('FunctionTranslator')

    def apply(self, ctx: ConversionContext) -> None:
        before = ctx.sql
        ctx.sql = translate_functions(ctx.sql, ctx.warnings, ctx.settings.max_function_passes)
        if ctx.sql != before:
            self.logger.debug(f"Translated function calls for '{ctx.query.name}'")
