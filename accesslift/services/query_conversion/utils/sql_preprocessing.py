"""
Input clean-up applied to raw Access query text before any translation.

- removes a BOM and normalizes line endings;
- applies the ``preprocessing`` rules of ``syntax_rules.json``
  (``PARAMETERS ...;`` declaration, ``DELETE * FROM``);
- strips surrounding whitespace and trailing statement terminators.
"""
import logging

from .config_loader import load_query_rules
from .regex_utils import apply_rule_section

logger = logging.getLogger(__name__)


def normalize_text(sql: str) -> str:
    if sql.startswith('\ufeff'):
        sql = sql[1:]
    return sql.replace('\r\n', '\n').replace('\r', '\n')


def strip_terminators(sql: str) -> str:
    sql = sql.strip()
    while sql.endswith(';'):
        sql = sql[:-1].rstrip()
    return sql


def prepare_query_text(sql: str) -> str:
    """Raw extractor text -> a single Access statement without declarations or terminator."""
    sql = normalize_text(sql or '').strip()
    rules = load_query_rules('syntax_rules.json').get('preprocessing', [])
    sql = apply_rule_section(sql, rules, logger, 'preprocessing')
    return strip_terminators(sql)
