"""
SQLGlot dialect utilities for query conversion.
Handles mapping between database types and their corresponding SQLGlot dialects.
"""


def get_sqlglot_dialect(target_type: str):
    """
    Get the appropriate SQLGlot dialect for validating generated SQL.

    Args:
        target_type: Database type (e.g., 'postgresql')

    Returns:
        SQLGlot dialect string or None for default behavior
    """
    dialect_map = {
        'postgresql': 'postgres',
        'postgres': 'postgres',
        'greenplum': 'postgres',
        'redshift': 'redshift',
    }

    return dialect_map.get((target_type or '').lower())
