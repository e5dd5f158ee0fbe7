"""
Single-query conversion: one Access query definition in, PostgreSQL DDL out.

Stages run in a fixed order over one ``ConversionContext``:

    prepare               PARAMETERS / DELETE * clean-up, terminator
    functions             Access built-ins -> PostgreSQL (to a fixpoint)
    parameter_binding     real parameters -> [p_name]
    syntax                DISTINCTROW, TOP, literals, dates, &
    references            TempVars / Forms / Reports / Parent -> state joins
    syntax_finish         casts, quotes, LIKE, [identifiers], LIMIT
    table_qualification   schema."table" alias
    function_qualification  "schema"."udf"(
    parameter_types       session-variable parameters, type refinement
    ddl                   object shape and statements

A failing stage is logged, reported as a warning and skipped; the text it
received is passed on unchanged. ``convert`` never raises.
"""
from typing import Any, List, Mapping, Optional, Union

from accesslift.utils.logger import setup_logger
from accesslift.services.query_conversion.converters.base_converter import BaseConverter, ConversionContext, ConversionSettings
from accesslift.services.query_conversion.converters.ddl_builder import DdlBuilder
from accesslift.services.query_conversion.converters.function_translator import FunctionTranslator, translate_functions
from accesslift.services.query_conversion.converters.parameter_resolver import ParameterBinder, ParameterTypeResolver
from accesslift.services.query_conversion.converters.reference_resolver import ReferenceResolver, normalize_bindings
from accesslift.services.query_conversion.converters.schema_qualifier import FunctionQualifier, TableQualifier
from accesslift.services.query_conversion.converters.syntax_translator import SyntaxFinisher, SyntaxTranslator, translate_syntax
from accesslift.services.query_conversion.models import ConversionResult, ObjectShape, QueryDescriptor
from accesslift.services.query_conversion.utils.naming import sanitize
from accesslift.services.query_conversion.utils.sql_preprocessing import prepare_query_text

EMPTY_INPUT_WARNING = "Empty query text; nothing to convert"


class InputPreparer(BaseConverter):
    """Stage ``prepare``."""
    name = 'prepare'

    def apply(self, ctx: ConversionContext) -> None:
        ctx.sql = prepare_query_text(ctx.sql)


STAGES = (
    InputPreparer,
    FunctionTranslator,
    ParameterBinder,
    SyntaxTranslator,
    ReferenceResolver,
    SyntaxFinisher,
    TableQualifier,
    FunctionQualifier,
    ParameterTypeResolver,
    DdlBuilder,
)


class QueryConversionPipeline:
    """Ordered conversion stages bound to one set of conversion settings."""

    def __init__(self, settings: Optional[ConversionSettings] = None):
        self.settings = settings or ConversionSettings.from_config()
        self.logger = setup_logger('QueryConversionPipeline')
        self.stages: List[BaseConverter] = [
            stage(self.settings.source_dialect, self.settings.target_dialect) for stage in STAGES
        ]

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def run(self, query: QueryDescriptor, schema_name: str,
            column_types: Optional[Mapping[str, str]] = None,
            control_bindings: Optional[Mapping] = None) -> ConversionResult:
        object_name = sanitize(query.name)
        ctx = ConversionContext(
            query=query,
            schema_name=schema_name,
            settings=self.settings,
            column_types={str(k).lower(): v for k, v in (column_types or {}).items()},
            control_bindings=normalize_bindings(control_bindings),
            sql=query.raw_text or '',
        )
        if query.parameter_note:
            ctx.warnings.append(f"Extractor note on parameters: {query.parameter_note}")

        if not ctx.sql.strip():
            ctx.warnings.append(EMPTY_INPUT_WARNING)
            return self._result(object_name, ctx)

        for stage in self.stages:
            before = ctx.sql
            try:
                stage.apply(ctx)
            except Exception as e:
                self.logger.error(f"Stage '{stage.name}' failed for query '{query.name}': {e}", exc_info=True)
                ctx.warnings.append(f"{stage.name} stage failed: {e}")
                ctx.sql = before
            if stage.name == InputPreparer.name and not ctx.sql.strip():
                ctx.warnings.append(EMPTY_INPUT_WARNING)
                return self._result(object_name, ctx)

        if ctx.object_type == ObjectShape.NONE:
            self.logger.warning(f"Query '{query.name}' produced no statements: {'; '.join(ctx.warnings)}")
        return self._result(object_name, ctx)

    @staticmethod
    def _result(object_name: str, ctx: ConversionContext) -> ConversionResult:
        return ConversionResult(
            object_name=object_name,
            object_type=ctx.object_type,
            statements=list(ctx.statements),
            warnings=list(ctx.warnings),
            referenced_state_entries=list(ctx.referenced_state_entries),
            parameters=list(ctx.parameters),
        )


def _descriptor(query: Union[QueryDescriptor, Mapping[str, Any]]) -> QueryDescriptor:
    if isinstance(query, QueryDescriptor):
        return query
    return QueryDescriptor.from_dict(query)


def convert(query: Union[QueryDescriptor, Mapping[str, Any]], schema_name: str,
            column_types: Optional[Mapping[str, str]] = None,
            control_bindings: Optional[Mapping] = None,
            settings: Optional[ConversionSettings] = None) -> ConversionResult:
    """
    Convert one Access query definition into PostgreSQL DDL.

    Args:
        query: A ``QueryDescriptor`` or an extractor record (``queryName``,
            ``queryTypeCode``, ``sql``, ``parameters``, ...).
        schema_name: Target PostgreSQL schema.
        column_types: ``table.column`` / ``column`` -> PostgreSQL type.
        control_bindings: ``owner.control`` -> ``{table, column}``.
        settings: Overrides for the ``conversion`` section of settings.yaml.

    Returns:
        The ``ConversionResult``; problems are reported in its warnings.
    """
    try:
        descriptor = _descriptor(query)
    except Exception as e:
        setup_logger('QueryConversionPipeline').error(f"Invalid query record: {e}", exc_info=True)
        name = query.get('queryName', query.get('name', '')) if isinstance(query, Mapping) else ''
        return ConversionResult(object_name=sanitize(str(name or '')), warnings=[f"Invalid query record: {e}"])
    try:
        return QueryConversionPipeline(settings).run(descriptor, schema_name, column_types, control_bindings)
    except Exception as e:
        setup_logger('QueryConversionPipeline').error(f"Conversion of '{descriptor.name}' failed: {e}", exc_info=True)
        return ConversionResult(object_name=sanitize(descriptor.name), warnings=[f"Conversion failed: {e}"])


def convert_expression(expression: str, settings: Optional[ConversionSettings] = None) -> str:
    """Function and syntax translation of a standalone expression (calculated controls, defaults)."""
    settings = settings or ConversionSettings.from_config()
    warnings: List[str] = []
    text = translate_functions(expression or '', warnings, settings.max_function_passes)
    return translate_syntax(text, warnings)


def settings_with(**overrides: Any) -> ConversionSettings:
    """Settings from settings.yaml with the given keys replaced."""
    return ConversionSettings.from_config(overrides)
