"""
Live references (TempVars, form/report controls, parent chains) -> lookups
against the session state relation.

Every occurrence becomes ``ssN.value`` backed by its own
``CROSS JOIN <state relation> ssN`` plus a ``table_name``/``column_name``
filter on that alias. Session variables are resolved first, then
form/report references, each group in source order, so alias numbering is
stable. The alias counter is passed in and handed back, never stored.

Recognised forms (brackets optional around every segment):

    TempVars!x   [TempVars]![x]   TempVars("x")   TempVars.Item("x")
    Forms!Owner!Ctl   Forms!Owner.Ctl   Reports!Owner!Ctl
    Forms!Owner!Sub.Form!Ctl           (subform control; Sub is the owner)
    Form!Ctl   Report!Ctl
    Parent!Ctl   Parent!Parent!Ctl   [Parent].[Parent].[Ctl]
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext
from accesslift.services.query_conversion.models import ControlBinding, StateReference
from accesslift.services.query_conversion.utils.naming import PARAMETER_PREFIX, sanitize, strip_brackets
from accesslift.services.query_conversion.utils.scanner import (
    find_top_level,
    split_top_level_segments,
    sub_outside_literals,
)

SESSION_VARIABLE_TABLE = '_tempvars'

_SEG = r'(?:\[[^\]]+\]|\w+)'
_NOT_QUALIFIED = r'(?<![\w.\]!])'

TEMPVAR_RE = re.compile(
    _NOT_QUALIFIED
    + r'\[?TempVars\]?'
    + r'(?:!(?P<bang>' + _SEG + r')'
    + r'|(?:\.Item)?\(\s*(?P<quote>["\'])(?P<call>[^"\']+)(?P=quote)\s*\))',
    re.IGNORECASE,
)

FORM_REF_RE = re.compile(
    _NOT_QUALIFIED + r'(?:'
    # Forms!Owner!Ctl, with an optional .Form!Ctl subform hop
    + r'\[?(?P<collection>Forms|Reports)\]?!(?P<owner>' + _SEG + r')[!.](?P<control>' + _SEG + r')'
    + r'(?:[!.]\[?(?:Form|Report)\]?!(?P<subcontrol>' + _SEG + r'))?'
    # Parent!Ctl, Parent!Parent!Ctl, Parent.Parent.Ctl
    + r'|(?P<chain>(?:\[?Parent\]?!)+|(?:\[?Parent\]?[!.]){2,})(?P<ancestor_control>' + _SEG + r')'
    # Form!Ctl, Report!Ctl
    + r'|\[?(?P<current>Form|Report)\]?!(?P<current_control>' + _SEG + r')'
    + r')',
    re.IGNORECASE,
)

_CLAUSE_END = r'\b(?:WHERE|GROUP\s+BY|HAVING|ORDER\s+BY|LIMIT|OFFSET|WINDOW)\b'
_WHERE_END = r'\b(?:GROUP\s+BY|HAVING|ORDER\s+BY|LIMIT|OFFSET|WINDOW)\b'


@dataclass
class ReferenceResolution:
    sql: str
    next_alias: int
    state_references: List[StateReference] = field(default_factory=list)
    referenced_entries: List[ControlBinding] = field(default_factory=list)
    session_parameters: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def normalize_bindings(bindings: Optional[Mapping]) -> Dict[str, ControlBinding]:
    """Lowercase keys and coerce ``{table, column}`` mappings / pairs into ``ControlBinding``."""
    normalized: Dict[str, ControlBinding] = {}
    for key, value in (bindings or {}).items():
        if isinstance(value, ControlBinding):
            binding = value
        elif isinstance(value, Mapping):
            binding = ControlBinding(str(value.get('table', '')), str(value.get('column', '')))
        else:
            table, column = value
            binding = ControlBinding(str(table), str(column))
        normalized.setdefault(str(key).lower(), binding)
    return normalized


def _lookup_by_control(bindings: Dict[str, ControlBinding], control: str) -> Optional[ControlBinding]:
    """First binding (map order) whose control component is *control*, any owner."""
    for key, binding in bindings.items():
        _, _, key_control = key.partition('.')
        if key_control == control:
            return binding
    return None


class _Resolver:
    def __init__(self, bindings: Dict[str, ControlBinding], alias_start: int, session_vars_as_parameters: bool):
        self.bindings = bindings
        self.next_alias = alias_start
        self.session_vars_as_parameters = session_vars_as_parameters
        self.references: List[StateReference] = []
        self.entries: List[ControlBinding] = []
        self.session_parameters: List[str] = []
        self.warnings: List[str] = []

    def _join(self, table: str, column: str) -> str:
        alias = f"ss{self.next_alias}"
        self.next_alias += 1
        self.references.append(StateReference(alias, table, column))
        return f"{alias}.value"

    def session_variable(self, match: re.Match) -> str:
        variable = sanitize(strip_brackets(match.group('bang') or match.group('call')))
        if self.session_vars_as_parameters:
            identifier = PARAMETER_PREFIX + variable
            if identifier not in self.session_parameters:
                self.session_parameters.append(identifier)
            return f"[{identifier}]"
        return self._join(SESSION_VARIABLE_TABLE, variable)

    def form_reference(self, match: re.Match) -> str:
        if match.group('collection'):
            owner, control = match.group('owner'), match.group('control')
            if match.group('subcontrol'):
                owner, control = control, match.group('subcontrol')
            owner, control = sanitize(strip_brackets(owner)), sanitize(strip_brackets(control))
            binding = self.bindings.get(f"{owner}.{control}")
            if binding is None:
                self.warnings.append(
                    f"Unresolved form reference {match.group('collection')}!{owner}!{control}; "
                    f"using table '{owner}', column '{control}'"
                )
                return self._join(owner, control)
            self.entries.append(binding)
            return self._join(binding.table, binding.column)

        if match.group('chain'):
            label, raw_control = 'Parent', match.group('ancestor_control')
        else:
            label, raw_control = match.group('current').capitalize(), match.group('current_control')
        control = sanitize(strip_brackets(raw_control))
        binding = _lookup_by_control(self.bindings, control)
        if binding is None:
            self.warnings.append(f"Unresolved form reference {label}!{control}; substituted NULL")
            return f"NULL /* UNRESOLVED: {label}!{control} */"
        self.entries.append(binding)
        return self._join(binding.table, binding.column)


def resolve_references(sql: str, bindings: Optional[Mapping] = None, *, alias_start: int = 1,
                       state_relation: str = 'shared.session_state',
                       session_vars_as_parameters: bool = False) -> ReferenceResolution:
    """Replace every live reference in *sql* and attach the state joins it needs."""
    resolver = _Resolver(normalize_bindings(bindings), alias_start, session_vars_as_parameters)
    sql = sub_outside_literals(TEMPVAR_RE, resolver.session_variable, sql)
    sql = sub_outside_literals(FORM_REF_RE, resolver.form_reference, sql)
    if resolver.references:
        sql = attach_state_joins(sql, resolver.references, state_relation)
    return ReferenceResolution(
        sql=sql,
        next_alias=resolver.next_alias,
        state_references=resolver.references,
        referenced_entries=resolver.entries,
        session_parameters=resolver.session_parameters,
        warnings=resolver.warnings,
    )


# ---------------------------------------------------------------------------
# Join placement
# ---------------------------------------------------------------------------

def _sources(references: List[StateReference], relation: str) -> str:
    return ' CROSS JOIN '.join(f"{relation} {ref.alias}" for ref in references)


def _conditions(references: List[StateReference]) -> str:
    return ' AND '.join(ref.condition() for ref in references)


def _insert_at(text: str, pos: int, addition: str) -> str:
    """Insert *addition* at *pos*, keeping whitespace that preceded *pos* after it."""
    head = text[:pos].rstrip()
    tail = text[pos:]
    if not tail.strip():
        return f"{head} {addition}{tail}"
    return f"{head} {addition}{text[len(head):pos] or ' '}{tail}"


def _add_conditions(segment: str, condition: str, start: int) -> str:
    where = find_top_level(segment, r'\bWHERE\b', start)
    if where is None:
        end = find_top_level(segment, _WHERE_END, start)
        return _insert_at(segment, end.start() if end else len(segment.rstrip()), f"WHERE {condition}")
    end = find_top_level(segment, _WHERE_END, where.end())
    body_end = end.start() if end else len(segment.rstrip())
    body = segment[where.end():body_end].strip()
    tail = segment[body_end:]
    separator = ' ' if end else ''
    return f"{segment[:where.start()]}WHERE ({body}) AND {condition}{separator}{tail.lstrip() if end else tail}"


def _attach_to_select(segment: str, references: List[StateReference], relation: str) -> str:
    select = find_top_level(segment, r'\bSELECT\b')
    start = select.end() if select else 0
    source = find_top_level(segment, r'\bFROM\b', start)
    if source is None:
        end = find_top_level(segment, _CLAUSE_END, start)
        pos = end.start() if end else len(segment.rstrip())
        segment = _insert_at(segment, pos, f"FROM {_sources(references, relation)}")
    else:
        end = find_top_level(segment, _CLAUSE_END, source.end())
        pos = end.start() if end else len(segment.rstrip())
        sources = segment[source.end():pos]
        if any(re.search(rf'\b{ref.alias}\.value\b', sources) for ref in references):
            # a JOIN ... ON condition reads the lookup: the alias must be in scope before it
            segment = f"{segment[:source.end()]} {_sources(references, relation)} CROSS JOIN{segment[source.end():]}"
        else:
            segment = _insert_at(segment, pos, f"CROSS JOIN {_sources(references, relation)}")
    return _add_conditions(segment, _conditions(references), start)


def _attach_to_statement(sql: str, references: List[StateReference], relation: str,
                         keyword: str, after: str) -> str:
    """UPDATE gets a FROM list, DELETE a USING list, after *after* (SET / FROM target)."""
    anchor = find_top_level(sql, after)
    start = anchor.end() if anchor else 0
    existing = find_top_level(sql, rf'\b{keyword}\b', start)
    if existing is not None:
        end = find_top_level(sql, _CLAUSE_END, existing.end())
        pos = end.start() if end else len(sql.rstrip())
        sql = _insert_at(sql, pos, f"CROSS JOIN {_sources(references, relation)}")
    else:
        end = find_top_level(sql, _CLAUSE_END, start)
        pos = end.start() if end else len(sql.rstrip())
        sql = _insert_at(sql, pos, f"{keyword} {_sources(references, relation)}")
    return _add_conditions(sql, _conditions(references), start)


def _inline_lookups(sql: str, references: List[StateReference], relation: str) -> str:
    """INSERT ... VALUES has nothing to join to: each lookup becomes a scalar subquery."""
    for ref in references:
        sql = re.sub(
            rf'\b{ref.alias}\.value\b',
            f"(SELECT {ref.alias}.value FROM {relation} {ref.alias} WHERE {ref.condition()})",
            sql,
        )
    return sql


def _attach_to_query(sql: str, references: List[StateReference], relation: str) -> str:
    """Attach each alias to the UNION branch it appears in."""
    parts = []
    last = 0
    spans = split_top_level_segments(sql)
    for index, (start, end) in enumerate(spans):
        segment = sql[start:end]
        used = [ref for ref in references if re.search(rf'\b{ref.alias}\.value\b', segment)]
        if index == len(spans) - 1:
            # lookups that only occur in the trailing ORDER BY / LIMIT belong to the last branch
            used += [ref for ref in references
                     if ref not in used and not re.search(rf'\b{ref.alias}\.value\b', sql[:start])]
        parts.append(sql[last:start])
        parts.append(_attach_to_select(segment, used, relation) if used else segment)
        last = end
    parts.append(sql[last:])
    return ''.join(parts)


def attach_state_joins(sql: str, references: List[StateReference], relation: str) -> str:
    head = sql.lstrip()[:6].upper()
    if head == 'UPDATE':
        return _attach_to_statement(sql, references, relation, 'FROM', r'\bSET\b')
    if head == 'DELETE':
        return _attach_to_statement(sql, references, relation, 'USING', r'\bFROM\b')
    if head == 'INSERT':
        select = find_top_level(sql, r'\bSELECT\b')
        if select is None:
            return _inline_lookups(sql, references, relation)
        return sql[:select.start()] + _attach_to_query(sql[select.start():], references, relation)
    return _attach_to_query(sql, references, relation)


class ReferenceResolver(BaseConverter):
    """Stage ``references``: runs between the two syntax stages, while brackets are still Access syntax."""
    name = 'references'

    def __init__(self, source_dialect: str, target_dialect: str):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('ReferenceResolver')

    def apply(self, ctx: ConversionContext) -> None:
        resolution = resolve_references(
            ctx.sql,
            ctx.control_bindings,
            alias_start=ctx.next_alias,
            state_relation=ctx.settings.state_relation,
            session_vars_as_parameters=ctx.settings.session_vars_as_parameters,
        )
        ctx.sql = resolution.sql
        ctx.next_alias = resolution.next_alias
        ctx.state_references.extend(resolution.state_references)
        ctx.referenced_state_entries.extend(resolution.referenced_entries)
        ctx.session_parameters.extend(resolution.session_parameters)
        ctx.warnings.extend(resolution.warnings)
        if resolution.state_references:
            self.logger.debug(
                f"Resolved {len(resolution.state_references)} live reference(s) in '{ctx.query.name}'"
            )
