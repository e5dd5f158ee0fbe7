"""
Manual review log for converted queries.

Every warning a conversion raises is classified into an issue type with a
severity and a suggested action, then written to
``manual_review_required_<timestamp>.json`` next to the generated SQL.
"""
import json
import os
import re
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

SEVERITY_LEVELS = {
    'ERROR': 'No usable object was generated for the query',
    'WARNING': 'An object was generated but may not behave like the Access query',
    'INFO': 'Informational; the generated object is expected to work',
}

# issue type -> (message pattern, severity, suggested action); first match wins
MANUAL_REVIEW_PATTERNS = {
    'Empty_query': {
        'pattern': r'^Empty query text',
        'severity': 'ERROR',
        'suggested_action': 'Check the extractor output; the query definition has no SQL text'
    },
    'Unsupported_query_type': {
        'pattern': r'^Unsupported query type|^Crosstab queries',
        'severity': 'ERROR',
        'suggested_action': 'Recreate the query by hand (crosstabs: tablefunc crosstab() with an explicit column list)'
    },
    'Make_table_target': {
        'pattern': r'^Make-table query',
        'severity': 'ERROR',
        'suggested_action': 'Check the SELECT ... INTO target of the make-table query'
    },
    'Stage_failure': {
        'pattern': r' stage failed: |^Conversion failed|^Invalid query record',
        'severity': 'ERROR',
        'suggested_action': 'See accesslift.log for the traceback; the affected rewrite was skipped'
    },
    'Unresolved_form_reference': {
        'pattern': r'^Unresolved form reference',
        'severity': 'WARNING',
        'suggested_action': 'Add the control to control_bindings.json or rewrite the reference'
    },
    'Untyped_result_columns': {
        'pattern': r'SETOF record',
        'severity': 'WARNING',
        'suggested_action': 'Give every select-list item a name and replace SETOF record with RETURNS TABLE(...)'
    },
    'Generated_sql_parse': {
        'pattern': r'did not parse cleanly',
        'severity': 'WARNING',
        'suggested_action': 'Run the statement against a scratch database and fix the reported syntax'
    },
    'Unknown_format': {
        'pattern': r'^Format pattern',
        'severity': 'WARNING',
        'suggested_action': 'Translate the Access format string into a to_char pattern'
    },
    'Dropped_row_limit': {
        'pattern': r'^TOP ',
        'severity': 'WARNING',
        'suggested_action': 'Re-add the row limit by hand (PERCENT limits need a window function)'
    },
    'Unknown_interval': {
        'pattern': r'interval .* not recognised|conversion mode',
        'severity': 'WARNING',
        'suggested_action': 'Check the date/string function arguments in the generated SQL'
    },
    'Extractor_note': {
        'pattern': r'^Extractor note',
        'severity': 'INFO',
        'suggested_action': 'Verify the parameter list of the generated function'
    },
}


def classify_warning(message: str) -> str:
    """Issue type of a pipeline warning, ``Other`` when no pattern matches."""
    for issue_type, pattern in MANUAL_REVIEW_PATTERNS.items():
        if re.search(pattern['pattern'], message or ''):
            return issue_type
    return 'Other'


@dataclass
class ReviewItem:
    file_path: str
    object_name: str
    issue_type: str
    message: str
    severity: str = 'WARNING'
    suggested_action: Optional[str] = None
    object_type: str = 'none'
    status: str = 'PENDING_REVIEW'
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class ManualReviewLogger:
    """Collects review items for one batch run and writes them to a dedicated file."""

    def __init__(self, output_dir: str, logger=None):
        self.output_dir = output_dir
        self.logger = logger
        self.items: List[ReviewItem] = []
        self.log_file_path = None

    @property
    def review_items(self) -> List[Dict]:
        return [asdict(item) for item in self.items]

    def log_manual_review_item(self, file_path: str, object_name: str, issue_type: str, message: str,
                               severity: str = 'WARNING', suggested_action: Optional[str] = None,
                               object_type: str = 'none'):
        item = ReviewItem(file_path, object_name, issue_type, message, severity, suggested_action, object_type)
        self.items.append(item)
        if self.logger:
            log = self.logger.error if severity == 'ERROR' else self.logger.warning
            log(f"MANUAL REVIEW [{severity}] {file_path}::{object_name} - {issue_type}: {message}")

    def log_conversion_warning(self, file_path: str, object_name: str, message: str, object_type: str = 'none'):
        issue_type = classify_warning(message)
        pattern = MANUAL_REVIEW_PATTERNS.get(issue_type, {'severity': 'WARNING', 'suggested_action': None})
        self.log_manual_review_item(file_path, object_name, issue_type, message,
                                    severity=pattern['severity'],
                                    suggested_action=pattern['suggested_action'],
                                    object_type=object_type)

    def _count_by(self, attribute: str) -> Dict[str, int]:
        return dict(Counter(getattr(item, attribute) for item in self.items).most_common())

    def write_manual_review_log(self) -> Optional[str]:
        """Write the collected items as JSON; returns the file path, or None when there is nothing to review."""
        if not self.items:
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        os.makedirs(self.output_dir, exist_ok=True)
        self.log_file_path = os.path.join(self.output_dir, f"manual_review_required_{timestamp}.json")

        payload = {
            'conversion_timestamp': timestamp,
            'total_items_requiring_review': len(self.items),
            'summary_by_type': self._count_by('issue_type'),
            'summary_by_severity': self._count_by('severity'),
            'summary_by_file': self._count_by('file_path'),
            'review_items': self.review_items,
            'instructions': {
                'overview': 'Warnings raised while converting Access queries to PostgreSQL.',
                'next_steps': [
                    'Fix the generated .sql file (or the source query) for each review item',
                    'Set status to COMPLETED once the object behaves like the Access query',
                ],
                'severity_levels': SEVERITY_LEVELS,
            },
        }

        try:
            with open(self.log_file_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except (IOError, OSError) as e:
            if self.logger:
                self.logger.error(f"Error writing manual review log: {e}")
            return None

        if self.logger:
            self.logger.info(f"Manual review log written to: {self.log_file_path} ({len(self.items)} items)")
        return self.log_file_path

    def create_summary_report(self) -> str:
        """Plain-text summary for the run log."""
        if not self.items:
            return "No manual review items found."

        lines = [f"{len(self.items)} warning(s) need manual review"]
        lines += [f"  {severity}: {count}" for severity, count in self._count_by('severity').items()]
        lines += [f"  {issue_type}: {count}" for issue_type, count in self._count_by('issue_type').items()]
        errors = [item for item in self.items if item.severity == 'ERROR']
        if errors:
            lines.append("HIGH PRIORITY ITEMS (ERRORS):")
            lines += [f"  - {item.file_path}::{item.object_name} - {item.message}" for item in errors]
        if self.log_file_path:
            lines.append(f"Details: {self.log_file_path}")
        return "\n".join(lines)
