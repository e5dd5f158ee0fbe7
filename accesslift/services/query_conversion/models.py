"""
Data model for the Access query conversion pipeline.

Inputs (``QueryDescriptor``, control bindings, column types) are immutable;
``ConversionResult`` is the only output.
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from accesslift.services.query_conversion.utils.naming import quote_literal


class QueryType(IntEnum):
    """Access DAO ``QueryDefTypeEnum`` codes."""
    SELECT = 0
    CROSSTAB = 16
    DELETE = 32
    UPDATE = 48
    APPEND = 64
    MAKE_TABLE = 80
    DATA_DEFINITION = 96
    PASS_THROUGH = 112
    UNION = 128


class ObjectShape(str, Enum):
    VIEW = 'view'
    PROCEDURE = 'procedure'
    NONE = 'none'


@dataclass(frozen=True)
class DeclaredParameter:
    name: str
    declared_type: str = 'Text'


@dataclass(frozen=True)
class QueryDescriptor:
    name: str
    type_code: int
    raw_text: str
    type_label: str = ''
    declared_parameters: Tuple[DeclaredParameter, ...] = ()
    # Extractor-side note about parameters it could not read, surfaced as a warning
    parameter_note: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'QueryDescriptor':
        """Build a descriptor from an extractor record.

        Accepts the extractor's camelCase keys (``queryName``, ``queryType``,
        ``queryTypeCode``, ``sql``, ``parameters``, ``paramWarning``) as well as
        the snake_case field names.
        """
        params = data.get('parameters', data.get('declared_parameters')) or []
        declared = tuple(
            DeclaredParameter(name=p.get('name', ''), declared_type=p.get('type', p.get('declared_type', 'Text')) or 'Text')
            if isinstance(p, Mapping) else DeclaredParameter(name=str(p))
            for p in params
        )
        type_code = data.get('queryTypeCode', data.get('type_code', 0))
        try:
            type_code = int(type_code)
        except (TypeError, ValueError):
            type_code = -1
        return cls(
            name=data.get('queryName', data.get('name', '')) or '',
            type_code=type_code,
            raw_text=data.get('sql', data.get('raw_text', '')) or '',
            type_label=data.get('queryType', data.get('type_label', '')) or '',
            declared_parameters=declared,
            parameter_note=data.get('paramWarning', data.get('parameter_note')),
        )


@dataclass(frozen=True)
class ControlBinding:
    """Underlying ``(table, column)`` a form/report control is bound to."""
    table: str
    column: str

    def to_dict(self) -> Dict[str, str]:
        return {'table': self.table, 'column': self.column}


@dataclass(frozen=True)
class StateReference:
    """One aliased cross join against the session state relation."""
    alias: str
    table: str
    column: str

    def condition(self) -> str:
        return (f"{self.alias}.table_name = {quote_literal(self.table)} "
                f"AND {self.alias}.column_name = {quote_literal(self.column)}")


@dataclass
class ResolvedParameter:
    source_name: str
    target_identifier: str
    target_type: str = 'text'

    def signature(self) -> str:
        return f"{self.target_identifier} {self.target_type}"

    def to_dict(self) -> Dict[str, str]:
        return {
            'source_name': self.source_name,
            'target_identifier': self.target_identifier,
            'target_type': self.target_type,
        }


@dataclass
class ConversionResult:
    object_name: str
    object_type: ObjectShape = ObjectShape.NONE
    statements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    referenced_state_entries: List[ControlBinding] = field(default_factory=list)
    # Kept for consumers that read it; calculated-column extraction is not performed
    extracted_helpers: List[str] = field(default_factory=list)
    parameters: List[ResolvedParameter] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'object_name': self.object_name,
            'object_type': self.object_type.value,
            'statements': list(self.statements),
            'warnings': list(self.warnings),
            'referenced_state_entries': [entry.to_dict() for entry in self.referenced_state_entries],
            'extracted_helpers': list(self.extracted_helpers),
            'parameters': [param.to_dict() for param in self.parameters],
        }
