"""
Routes a translated query to its PostgreSQL object shape and renders the DDL.

    Select / Union, no parameters     -> CREATE OR REPLACE VIEW
    Select / Union with parameters    -> SQL function RETURNS TABLE(...) (or SETOF record)
    Update / Delete / Append          -> plpgsql function returning the affected row count
    Make-table                        -> plpgsql function: drop, CREATE TABLE AS, row count
    Crosstab, DDL, pass-through, ...  -> nothing, with a warning
"""
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext
from accesslift.services.query_conversion.models import ObjectShape, QueryType, ResolvedParameter
from accesslift.services.query_conversion.utils.naming import sanitize
from accesslift.services.query_conversion.utils.parser_utils import validate_statement_body
from accesslift.services.query_conversion.utils.scanner import find_top_level, split_top_level, split_top_level_segments

SELECT_TYPES = {QueryType.SELECT, QueryType.UNION}
ACTION_TYPES = {QueryType.UPDATE, QueryType.DELETE, QueryType.APPEND}

_SELECT_HEAD_RE = re.compile(r'\s*SELECT\s+(?:(?:DISTINCT|ALL)\s+)?', re.IGNORECASE)
_SELECT_LIST_END = r'\b(?:FROM|INTO|WHERE|GROUP\s+BY|HAVING|ORDER\s+BY|LIMIT|OFFSET|WINDOW)\b'

_IDENT = r'(?:"[^"]+"|[A-Za-z_]\w*)'
_ALIASED_RE = re.compile(r'^(?P<expr>.+?)\s+AS\s+(?P<alias>' + _IDENT + r')\s*$', re.IGNORECASE | re.DOTALL)
_COLUMN_RE = re.compile(r'^' + _IDENT + r'(?:\s*\.\s*' + _IDENT + r'){0,2}$')
_MAKE_TABLE_INTO_RE = re.compile(r'\bINTO\s+(?:' + _IDENT + r'\s*\.\s*)?(?P<table>' + _IDENT + r')\s*', re.IGNORECASE)

_AGGREGATES = (
    ('first_agg', 'SELECT COALESCE($1, $2)'),
    ('last_agg', 'SELECT $2'),
)


@dataclass
class DdlResult:
    object_type: ObjectShape = ObjectShape.NONE
    statements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _unquote(identifier: str) -> str:
    return identifier.strip().strip('"')


def _column_type(reference: str, column_types: Mapping[str, str]) -> Optional[str]:
    parts = [_unquote(part).lower() for part in reference.split('.')]
    if len(parts) >= 2 and f"{parts[-2]}.{parts[-1]}" in column_types:
        return column_types[f"{parts[-2]}.{parts[-1]}"]
    return column_types.get(parts[-1])


def _select_list(sql: str) -> Optional[str]:
    start, end = split_top_level_segments(sql)[0]
    segment = sql[start:end].strip()
    while segment.startswith('(') and segment.endswith(')'):
        segment = segment[1:-1].strip()
    head = _SELECT_HEAD_RE.match(segment)
    if head is None:
        return None
    stop = find_top_level(segment, _SELECT_LIST_END, head.end())
    return segment[head.end():stop.start() if stop else len(segment)]


def infer_return_columns(sql: str, column_types: Optional[Mapping[str, str]] = None,
                         default_type: str = 'text') -> Optional[List[Tuple[str, str]]]:
    """``(name, type)`` per item of the first top-level select list, or None if any item is not nameable.

    Accepted items: ``expr AS alias``, ``table.column`` and bare ``column``
    (each optionally quoted). ``*``, ``t.*``, unaliased expressions and
    duplicate output names give None.
    """
    column_types = column_types or {}
    select_list = _select_list(sql)
    if not select_list or not select_list.strip():
        return None
    columns: List[Tuple[str, str]] = []
    for item in split_top_level(select_list):
        aliased = _ALIASED_RE.match(item)
        if aliased:
            name = sanitize(_unquote(aliased.group('alias')))
            expr = aliased.group('expr').strip()
            source_type = _column_type(expr, column_types) if _COLUMN_RE.match(expr) else None
        elif _COLUMN_RE.match(item):
            name = sanitize(_unquote(item.split('.')[-1]))
            source_type = _column_type(item, column_types)
        else:
            return None
        if not name or name in {existing for existing, _ in columns}:
            return None
        columns.append((name, source_type or default_type))
    return columns


def aggregate_bootstrap_statements(sql: str, schema_name: str) -> List[str]:
    """``DO`` blocks creating the first/last aggregates used by *sql*, if they are missing."""
    statements = []
    for aggregate, body in _AGGREGATES:
        if not re.search(aggregate + r'"?\s*\(', sql, re.IGNORECASE):
            continue
        sfunc = f"{aggregate}_sfunc"
        statements.append(
            f"DO $$ BEGIN\n"
            f"  IF NOT EXISTS (SELECT 1 FROM pg_proc WHERE proname = '{sfunc}' "
            f"AND pronamespace = '{schema_name}'::regnamespace) THEN\n"
            f"    CREATE FUNCTION {schema_name}.{sfunc}(anyelement, anyelement) RETURNS anyelement "
            f"AS '{body}' LANGUAGE SQL IMMUTABLE STRICT;\n"
            f"    CREATE AGGREGATE {schema_name}.{aggregate}(anyelement) "
            f"(SFUNC = {schema_name}.{sfunc}, STYPE = anyelement);\n"
            f"  END IF;\n"
            f"END $$"
        )
    return statements


def _signature(parameters: Sequence[ResolvedParameter]) -> str:
    return ', '.join(param.signature() for param in parameters)


def build_view(sql: str, schema_name: str, object_name: str) -> str:
    return f'CREATE OR REPLACE VIEW {schema_name}."{object_name}" AS\n{sql}'


def build_table_function(sql: str, schema_name: str, object_name: str,
                         parameters: Sequence[ResolvedParameter],
                         columns: Optional[List[Tuple[str, str]]]) -> str:
    if columns:
        returns = 'RETURNS TABLE(' + ', '.join(f'"{name}" {col_type}' for name, col_type in columns) + ')'
    else:
        returns = 'RETURNS SETOF record'
    return (f'CREATE OR REPLACE FUNCTION {schema_name}."{object_name}"({_signature(parameters)})\n'
            f'{returns} AS $$\n{sql}\n$$ LANGUAGE SQL STABLE')


def build_row_count_function(body: Sequence[str], schema_name: str, object_name: str,
                             parameters: Sequence[ResolvedParameter]) -> str:
    statements = ''.join(f'  {statement};\n' for statement in body)
    return (f'CREATE OR REPLACE FUNCTION {schema_name}."{object_name}"({_signature(parameters)})\n'
            f'RETURNS integer AS $$\n'
            f'DECLARE _count integer;\n'
            f'BEGIN\n'
            f'{statements}'
            f'  GET DIAGNOSTICS _count = ROW_COUNT;\n'
            f'  RETURN _count;\n'
            f'END;\n'
            f'$$ LANGUAGE plpgsql VOLATILE')


def split_make_table(sql: str) -> Optional[Tuple[str, str]]:
    """``SELECT ... INTO t FROM ...`` -> ``(t, SELECT ... FROM ...)``."""
    match = find_top_level(sql, _MAKE_TABLE_INTO_RE)
    if match is None:
        return None
    target = sanitize(_unquote(match.group('table')))
    select = f"{sql[:match.start()].rstrip()} {sql[match.end():]}".strip()
    return target, select


def _query_type(type_code: int) -> Optional[QueryType]:
    try:
        return QueryType(type_code)
    except ValueError:
        return None


def build_ddl(sql: str, type_code: int, object_name: str, schema_name: str,
              parameters: Sequence[ResolvedParameter] = (),
              column_types: Optional[Mapping[str, str]] = None,
              type_label: str = '', default_type: str = 'text') -> DdlResult:
    """Pick the object shape for *type_code* and render its statements."""
    result = DdlResult()
    query_type = _query_type(type_code)

    if query_type == QueryType.CROSSTAB:
        result.warnings.append(
            "Crosstab queries are unsupported: they need the tablefunc extension and a manual column list"
        )
        return result
    if query_type not in SELECT_TYPES | ACTION_TYPES | {QueryType.MAKE_TABLE}:
        label = type_label or (query_type.name.replace('_', ' ').title() if query_type else 'unknown')
        result.warnings.append(f"Unsupported query type: {label} (code {type_code})")
        return result

    if query_type == QueryType.MAKE_TABLE:
        split = split_make_table(sql)
        if split is None:
            result.warnings.append("Make-table query: could not find the INTO target table")
            return result
        target, select = split
        main = build_row_count_function(
            [f'DROP TABLE IF EXISTS {schema_name}."{target}"', f'CREATE TABLE {schema_name}."{target}" AS\n  {select}'],
            schema_name, object_name, parameters,
        )
        result.object_type = ObjectShape.PROCEDURE
    elif query_type in ACTION_TYPES:
        main = build_row_count_function([sql], schema_name, object_name, parameters)
        result.object_type = ObjectShape.PROCEDURE
    elif parameters:
        columns = infer_return_columns(sql, column_types, default_type)
        if columns is None:
            result.warnings.append(
                "Could not infer the result columns; using RETURNS SETOF record, manual column definition needed"
            )
        main = build_table_function(sql, schema_name, object_name, parameters, columns)
        result.object_type = ObjectShape.PROCEDURE
    else:
        main = build_view(sql, schema_name, object_name)
        result.object_type = ObjectShape.VIEW

    result.statements = aggregate_bootstrap_statements(sql, schema_name) + [main]
    return result


class DdlBuilder(BaseConverter):
    """Stage ``ddl``: sets ``object_type`` and ``statements`` together, only once everything rendered."""
    name = 'ddl'

    def __init__(self, source_dialect: str, target_dialect: str):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('DdlBuilder')

    def apply(self, ctx: ConversionContext) -> None:
        object_name = sanitize(ctx.query.name)
        result = build_ddl(
            ctx.sql,
            ctx.query.type_code,
            object_name,
            ctx.schema_name,
            ctx.parameters,
            ctx.column_types,
            ctx.query.type_label,
            ctx.settings.default_parameter_type,
        )
        ctx.warnings.extend(result.warnings)
        if result.statements and ctx.settings.validate_output:
            body = ctx.sql
            if _query_type(ctx.query.type_code) == QueryType.MAKE_TABLE:
                body = split_make_table(ctx.sql)[1]
            problem = validate_statement_body(body, self.target_dialect)
            if problem:
                self.logger.warning(f"'{ctx.query.name}': {problem}")
                ctx.warnings.append(problem)
        ctx.object_type = result.object_type
        ctx.statements = result.statements
        self.logger.debug(f"'{ctx.query.name}' rendered as {result.object_type.value} ({len(result.statements)} statement(s))")
