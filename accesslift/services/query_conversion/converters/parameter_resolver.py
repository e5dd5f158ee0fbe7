"""
Declared Access parameters -> PostgreSQL function arguments.

``ParameterBinder`` runs on the Access text (before the bracket pass): it
decides which declared parameters are real arguments and rewrites their
references to ``[p_<name>]``. ``ParameterTypeResolver`` runs on the final
PostgreSQL text and refines still-generic types from the column type map.
"""
import re
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext
from accesslift.services.query_conversion.models import DeclaredParameter, QueryDescriptor, ResolvedParameter
from accesslift.services.query_conversion.utils.config_loader import load_query_rules
from accesslift.services.query_conversion.utils.naming import PARAMETER_PREFIX, parameter_identifier, sanitize, strip_brackets
from accesslift.services.query_conversion.utils.scanner import split_top_level, sub_outside_literals

# Declared "parameters" that are really live references resolved through the state relation
LIVE_REFERENCE_RE = re.compile(r'\b(TempVars|Parent|Form|Forms|Report|Reports)\b', re.IGNORECASE)
_TEMPVAR_DECLARATION_RE = re.compile(r'\[?TempVars\]?[!.]\[?([^\]]+?)\]?\s*$', re.IGNORECASE)

_PARAMETERS_CLAUSE_RE = re.compile(r'^\s*PARAMETERS\s+([^;]*);', re.IGNORECASE)
_DECLARATION_RE = re.compile(r'^\s*(\[[^\]]+\]|\S+)\s+([A-Za-z]+)')

_COMPARISON = r'(?:<>|<=|>=|=|<|>)'
_COLUMN = r'(?:"[^"]+"|[A-Za-z_]\w*)(?:\s*\.\s*(?:"[^"]+"|[A-Za-z_]\w*)){0,2}'


def map_parameter_type(access_type: Optional[str], default: str = 'text') -> str:
    """Access parameter type name (``Long``, ``DateTime``, ...) -> PostgreSQL type."""
    rules = load_query_rules('parameter_types.json')
    types = rules.get('types', {})
    return types.get((access_type or '').strip().lower(), rules.get('default', default))


def is_live_reference(name: str) -> bool:
    """True for declared names that are dotted column references or form/report/session references."""
    return '.' in strip_brackets(name) or bool(LIVE_REFERENCE_RE.search(name))


def parse_parameters_clause(raw_text: str) -> Tuple[DeclaredParameter, ...]:
    """Declarations from a leading ``PARAMETERS [Start Date] DateTime, ...;`` clause."""
    match = _PARAMETERS_CLAUSE_RE.match(raw_text or '')
    if not match:
        return ()
    declared = []
    for item in split_top_level(match.group(1)):
        decl = _DECLARATION_RE.match(item)
        if decl:
            declared.append(DeclaredParameter(name=strip_brackets(decl.group(1)), declared_type=decl.group(2)))
    return tuple(declared)


def declared_parameters(query: QueryDescriptor) -> Tuple[DeclaredParameter, ...]:
    """The extractor's declarations followed by those of the query's own PARAMETERS clause."""
    return tuple(query.declared_parameters) + parse_parameters_clause(query.raw_text)


def resolve_declared_parameters(declared: Iterable[DeclaredParameter],
                                default_type: str = 'text') -> List[ResolvedParameter]:
    """Real scalar parameters, deduplicated by target identifier (first declaration wins)."""
    resolved: Dict[str, ResolvedParameter] = {}
    for param in declared:
        if not param.name or is_live_reference(param.name):
            continue
        identifier = parameter_identifier(param.name)
        if identifier in resolved:
            continue
        resolved[identifier] = ResolvedParameter(
            source_name=strip_brackets(param.name),
            target_identifier=identifier,
            target_type=map_parameter_type(param.declared_type, default_type),
        )
    return list(resolved.values())


def session_parameter_types(declared: Iterable[DeclaredParameter], default_type: str = 'text') -> Dict[str, str]:
    """``p_<var>`` -> type, taken from ``[TempVars]![var]`` declarations."""
    types: Dict[str, str] = {}
    for param in declared:
        match = _TEMPVAR_DECLARATION_RE.search(param.name or '')
        if match:
            identifier = PARAMETER_PREFIX + sanitize(match.group(1))
            types.setdefault(identifier, map_parameter_type(param.declared_type, default_type))
    return types


def bind_parameter_references(sql: str, parameters: Iterable[ResolvedParameter]) -> str:
    """``[Start Date]`` / ``StartDate`` -> ``[p_start_date]`` for every real parameter."""
    for param in parameters:
        name = param.source_name
        bracketed = re.compile(r'(?<![.!])\[\s*' + re.escape(name) + r'\s*\](?!\s*[.!])', re.IGNORECASE)
        sql = sub_outside_literals(bracketed, f"[{param.target_identifier}]", sql)
        if re.fullmatch(r'[A-Za-z_]\w*', name):
            bare = re.compile(r'(?<![\w.!\[$"])' + re.escape(name) + r'\b(?!\s*[.!(])', re.IGNORECASE)
            sql = sub_outside_literals(bare, f"[{param.target_identifier}]", sql, brackets=True)
    return sql


def refine_parameter_types(sql: str, parameters: List[ResolvedParameter],
                           column_types: Mapping[str, str], default_type: str = 'text') -> None:
    """Copy a column's type onto a generic parameter compared against that column."""
    if not column_types:
        return
    for param in parameters:
        if param.target_type != default_type:
            continue
        ident = re.escape(param.target_identifier)
        pattern = re.compile(
            rf'(?P<left>{_COLUMN})\s*\)?\s*{_COMPARISON}\s*{ident}\b'
            rf'|(?<![\w.]){ident}\s*{_COMPARISON}\s*(?P<right>{_COLUMN})',
            re.IGNORECASE,
        )
        for match in pattern.finditer(sql):
            column_type = _column_type(match.group('left') or match.group('right'), column_types)
            if column_type:
                param.target_type = column_type
                break


def _column_type(reference: str, column_types: Mapping[str, str]) -> Optional[str]:
    parts = [part.strip().strip('"').lower() for part in reference.split('.')]
    if len(parts) >= 2:
        qualified = column_types.get(f"{parts[-2]}.{parts[-1]}")
        if qualified:
            return qualified
    return column_types.get(parts[-1])


class ParameterBinder(BaseConverter):
    """Stage ``parameter_binding``: fills ``ctx.parameters`` and rewrites their references."""
    name = 'parameter_binding'

    def __init__(self, source_dialect: str, target_dialect: str):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('ParameterResolver')

    def apply(self, ctx: ConversionContext) -> None:
        declared = declared_parameters(ctx.query)
        ctx.parameters = resolve_declared_parameters(declared, ctx.settings.default_parameter_type)
        dropped = [p.name for p in declared if p.name and is_live_reference(p.name)]
        if dropped:
            self.logger.debug(f"'{ctx.query.name}': declared live references not bound as parameters: {dropped}")
        ctx.sql = bind_parameter_references(ctx.sql, ctx.parameters)


class ParameterTypeResolver(BaseConverter):
    """Stage ``parameter_types``: adds session-variable parameters and refines generic types."""
    name = 'parameter_types'

    def apply(self, ctx: ConversionContext) -> None:
        default_type = ctx.settings.default_parameter_type
        if ctx.session_parameters:
            declared = declared_parameters(ctx.query)
            types = session_parameter_types(declared, default_type)
            known = {param.target_identifier for param in ctx.parameters}
            for identifier in ctx.session_parameters:
                if identifier in known:
                    continue
                known.add(identifier)
                ctx.parameters.append(ResolvedParameter(
                    source_name=f"TempVars!{identifier[len(PARAMETER_PREFIX):]}",
                    target_identifier=identifier,
                    target_type=types.get(identifier, default_type),
                ))
        refine_parameter_types(ctx.sql, ctx.parameters, ctx.column_types, default_type)
