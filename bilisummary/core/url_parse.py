"""
Bilibili URL / BV id parsing.
"""

import csv
import re

from bilisummary.core.constants import BVID_PATTERN
from bilisummary.core.error_codes import PipelineError, ErrorCode

_BVID_RE = re.compile(BVID_PATTERN)


def extract_bvid(text: str) -> str | None:
    """
    Extract the BV id from a video URL or a bare id.
    Returns None if nothing looks like a BV id.
    """
    if not text:
        return None
    m = _BVID_RE.search(text.strip())
    return m.group(0) if m else None


def validate_bvid(text: str) -> str:
    """Return the BV id in text, raising PipelineError if there is none."""
    bvid = extract_bvid(text)
    if not bvid:
        raise PipelineError(ErrorCode.INVALID_INPUT, f"No BV id found in: {text!r}")
    return bvid


def parse_input_lines(text: str) -> list[str]:
    """
    Parse pasted text into a list of BV ids.
    - Trims whitespace, ignores empty lines
    - Silently skips lines without a BV id
    - De-duplicates while keeping first-seen order
    """
    bvids = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        bvid = extract_bvid(line)
        if bvid and bvid not in bvids:
            bvids.append(bvid)
    return bvids


def parse_csv_file(filepath: str) -> list[str]:
    """
    Parse a CSV file for BV ids.
    - If header includes 'url', 'bvid' or 'video' (case-insensitive), use that column
    - Else scan every cell
    """
    with open(filepath, 'r', encoding='utf-8', errors='replace') as f:
        rows = list(csv.reader(f))

    if not rows:
        return []

    col_idx = None
    for i, col in enumerate(rows[0]):
        if col.strip().lower() in ('url', 'bvid', 'video'):
            col_idx = i
            rows = rows[1:]
            break

    cells = []
    for row in rows:
        if col_idx is None:
            cells.extend(row)
        elif col_idx < len(row):
            cells.append(row[col_idx])

    return parse_input_lines('\n'.join(cells))


def parse_txt_file(filepath: str) -> list[str]:
    """Parse a .txt file containing one URL or BV id per line."""
    with open(filepath, 'r', encoding='utf-8', errors='replace') as f:
        return parse_input_lines(f.read())


def parse_input_file(filepath: str) -> list[str]:
    """Parse a .txt or .csv file for BV ids."""
    ext = filepath.lower().rsplit('.', 1)[-1] if '.' in filepath else ''
    if ext == 'csv':
        return parse_csv_file(filepath)
    return parse_txt_file(filepath)
