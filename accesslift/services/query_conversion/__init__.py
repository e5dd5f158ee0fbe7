"""
Query Conversion Package - Access query definitions to PostgreSQL DDL.

Main Components:
    - convert: one query definition -> ConversionResult (statements, shape, warnings)
    - convert_expression: function and syntax translation of a standalone expression
    - QueryConversionOrchestrator: batch conversion of an extractor output directory
    - build_control_bindings / build_column_types: lookup tables the pipeline consumes

Usage:
    from accesslift.services.query_conversion import convert

    result = convert(
        {"queryName": "qryRecipe", "queryTypeCode": 0,
         "sql": "SELECT Id FROM recipe WHERE Id = [TempVars]![recipe_id]"},
        "app",
    )
    result.object_type   # ObjectShape.VIEW
"""

from .control_mapping import build_column_types, build_control_bindings
from .models import (
    ControlBinding,
    ConversionResult,
    DeclaredParameter,
    ObjectShape,
    QueryDescriptor,
    QueryType,
    ResolvedParameter,
)
from .orchestrator import QueryConversionOrchestrator
from .pipeline import QueryConversionPipeline, convert, convert_expression
from .utils.naming import sanitize

__all__ = [
    'convert',
    'convert_expression',
    'sanitize',
    'build_control_bindings',
    'build_column_types',
    'QueryConversionOrchestrator',
    'QueryConversionPipeline',
    'ControlBinding',
    'ConversionResult',
    'DeclaredParameter',
    'ObjectShape',
    'QueryDescriptor',
    'QueryType',
    'ResolvedParameter',
]
