"""
Builders for the two lookup tables the pipeline consumes.

``build_control_bindings`` turns an exported form/report definition into
binding-map entries (``owner.control`` -> ``ControlBinding``):

    bound control (has ``field``)             -> (record source, field)
    unbound control                            -> (owner, control)
    expression control (``control-source`` =…) -> skipped

``build_column_types`` turns ``information_schema.columns``-style rows
into a column type map with both ``table.column`` and bare keys.
"""
from typing import Any, Dict, Iterable, Mapping, Sequence, Union

from accesslift.services.query_conversion.models import ControlBinding
from accesslift.services.query_conversion.utils.naming import sanitize


def _controls(definition: Mapping[str, Any]):
    # forms have header/detail/footer sections, reports banded ones; any section with a control list counts
    for section in definition.values():
        if isinstance(section, Mapping) and isinstance(section.get('controls'), list):
            yield from section['controls']
    if isinstance(definition.get('controls'), list):
        yield from definition['controls']


def build_control_bindings(owner_name: str, definition: Mapping[str, Any]) -> Dict[str, ControlBinding]:
    owner = sanitize(owner_name)
    record_source = sanitize(definition.get('record-source') or definition.get('record_source') or '')
    bindings: Dict[str, ControlBinding] = {}
    for control in _controls(definition):
        if not isinstance(control, Mapping):
            continue
        control_name = sanitize(str(control.get('name') or control.get('id') or ''))
        if not control_name:
            continue
        field = control.get('field')
        control_source = control.get('control-source', control.get('control_source'))
        if field:
            binding = ControlBinding(record_source or owner, sanitize(str(field)))
        elif isinstance(control_source, str) and control_source.startswith('='):
            continue
        else:
            binding = ControlBinding(owner, control_name)
        bindings.setdefault(f"{owner}.{control_name}", binding)
    return bindings


def build_column_types(rows: Iterable[Union[Mapping[str, str], Sequence[str]]]) -> Dict[str, str]:
    """Rows of ``(table_name, column_name, data_type)`` (tuples or mappings) -> column type map.

    A bare column name keeps the type of its first occurrence.
    """
    column_types: Dict[str, str] = {}
    for row in rows:
        if isinstance(row, Mapping):
            table, column, data_type = row['table_name'], row['column_name'], row['data_type']
        else:
            table, column, data_type = row
        table, column = str(table).lower(), str(column).lower()
        column_types[f"{table}.{column}"] = data_type
        column_types.setdefault(column, data_type)
    return column_types
