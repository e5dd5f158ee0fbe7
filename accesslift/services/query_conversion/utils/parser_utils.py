import sqlglot
from sqlglot import exp
import logging

from .dialect_utils import get_sqlglot_dialect

logger = logging.getLogger(__name__)


def safe_parse_one(sql: str, dialect: str) -> tuple[exp.Expression | None, str | None]:
    """
    Safely parses a single SQL statement into an AST.

    Args:
        sql: The SQL statement string to parse.
        dialect: The sqlglot dialect to use for parsing.

    Returns:
        A tuple containing (ast, error_message).
        If successful, ast is the parsed expression and error_message is None.
        If fails, ast is None and error_message is a one-line description.
    """
    try:
        ast = sqlglot.parse_one(sql, read=dialect)
        return ast, None
    except Exception as e:
        logger.debug(f"Failed to parse statement: {e}", exc_info=True)
        error_message = str(e).strip().splitlines()[0] if str(e).strip() else type(e).__name__
        return None, error_message


def validate_statement_body(sql: str, target_type: str) -> str | None:
    """Parse a generated query body with sqlglot; return a warning text when it does not parse."""
    dialect = get_sqlglot_dialect(target_type)
    ast, error = safe_parse_one(sql, dialect)
    if ast is None:
        return f"Generated SQL did not parse cleanly as {target_type}: {error}"
    return None
