import re
from typing import Any, Dict, List

from .scanner import sub_outside_literals


def re_flags(flags_str: str) -> int:
    """
    Convert a flags string (e.g., 'IGNORECASE|DOTALL') into combined re flags.

    Args:
        flags_str: String containing flag names separated by '|'.

    Returns:
        Combined re flags integer.
    """
    flags = 0
    if not flags_str:
        return flags
    for part in flags_str.split('|'):
        p = part.strip().upper()
        if p == 'IGNORECASE':
            flags |= re.IGNORECASE
        elif p == 'DOTALL':
            flags |= re.DOTALL
        elif p == 'MULTILINE':
            flags |= re.MULTILINE
    return flags


def apply_rule_section(sql: str, rules: List[Dict[str, Any]], logger, section_name: str) -> str:
    """
    Apply one section of configured ``{name, regex, replacement, flags}`` rules.

    Matches starting inside string literals, bracketed identifiers or comments
    are left alone.
    """
    for rule in rules or []:
        pattern = rule.get('regex', '')
        if not pattern:
            continue
        before = sql
        sql = sub_outside_literals(
            re.compile(pattern, re_flags(rule.get('flags', ''))),
            rule.get('replacement', ''),
            sql,
            brackets=True,
        )
        if sql != before:
            logger.debug("Applied rule '%s' from section '%s'", rule.get('name', 'Unnamed Rule'), section_name)
    return sql
