from dataclasses import dataclass, field
from typing import Dict, List, Optional

from accesslift.config import config
from accesslift.services.query_conversion.models import ControlBinding, ObjectShape, QueryDescriptor, ResolvedParameter, StateReference


@dataclass
class ConversionSettings:
    """The ``conversion`` section of settings.yaml."""
    source_dialect: str = 'access'
    target_dialect: str = 'postgresql'
    state_relation: str = 'shared.session_state'
    default_parameter_type: str = 'text'
    max_function_passes: int = 20
    validate_output: bool = True
    session_vars_as_parameters: bool = False

    @classmethod
    def from_config(cls, overrides: Optional[Dict] = None) -> 'ConversionSettings':
        values = dict(config.get('conversion', {}) or {})
        values.update(overrides or {})
        known = {name: values[name] for name in cls.__dataclass_fields__ if values.get(name) is not None}
        return cls(**known)


@dataclass
class ConversionContext:
    """Working state threaded through the ordered conversion stages."""
    query: QueryDescriptor
    schema_name: str
    settings: ConversionSettings
    column_types: Dict[str, str] = field(default_factory=dict)
    control_bindings: Dict[str, ControlBinding] = field(default_factory=dict)
    sql: str = ''
    warnings: List[str] = field(default_factory=list)
    parameters: List[ResolvedParameter] = field(default_factory=list)
    # Synthesized from session variables when they are turned into parameters
    session_parameters: List[str] = field(default_factory=list)
    state_references: List[StateReference] = field(default_factory=list)
    referenced_state_entries: List[ControlBinding] = field(default_factory=list)
    next_alias: int = 1
    row_limit: Optional[int] = None
    object_type: ObjectShape = ObjectShape.NONE
    statements: List[str] = field(default_factory=list)

    @property
    def parameter_identifiers(self) -> set:
        return {param.target_identifier for param in self.parameters} | set(self.session_parameters)


class BaseConverter:
    """
    A base class for all conversion stages to ensure a consistent interface.

    Each stage documents what it expects of ``ctx.sql`` on entry and what it
    guarantees on exit; the pipeline runs them in a fixed order.
    """
    name = 'stage'

    def __init__(self, source_dialect: str, target_dialect: str):
        self.source_dialect = source_dialect
        self.target_dialect = target_dialect

    def apply(self, ctx: ConversionContext) -> None:
        """
        The main conversion method that each stage must implement.

        Args:
            ctx: The conversion context; the stage updates it in place.
        """
        raise NotImplementedError("Each conversion stage must implement its own apply method.")
