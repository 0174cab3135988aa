"""
Column mapping detection for uploaded debtor files.

Uploaded CSVs come without a fixed layout: comma or semicolon separated,
with or without a header row, columns in any order. Detection works in
three passes:

1. delimiter: the candidate that splits the first line into more fields
   (comma wins ties);
2. header: the first row is a header unless it holds payment data (an
   IBAN, or a BIC without any known label beside it);
3. fields: every column is run through an ordered chain of content
   recognizers (IBAN, then BIC), first match wins. Header labels name the
   remaining fields, but never override what the content says. Columns still
   unassigned that look like names become first_name / last_name, left to
   right.

A file without any IBAN-shaped column is rejected: nothing can be billed
without a destination account.
"""

import csv
import io
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sepa_billing.config import settings
from sepa_billing.core.exceptions import ValidationError
from sepa_billing.utils.iban import clean_iban, has_iban_shape

# Order is the tie-break priority
CANDIDATE_DELIMITERS = (",", ";")

MAPPED_FIELDS = ("iban", "first_name", "last_name", "bic", "amount")

HEADER_ALIASES: Dict[str, tuple] = {
    "iban": ("iban", "iban number", "iban code"),
    "bic": ("bic", "swift", "bic code", "swift code"),
    "first_name": ("first name", "firstname", "first", "given name", "prenom", "prénom", "vorname"),
    "last_name": ("last name", "lastname", "last", "surname", "family name", "nom", "name", "nachname"),
    "amount": ("amount", "montant", "sum", "betrag"),
}

_BIC_SHAPE = re.compile(r"^[A-Z]{4}[A-Z]{2}[A-Z0-9]{2}([A-Z0-9]{3})?$")
_NAME_SHAPE = re.compile(r"^[^\W\d_]+(?:[\s'.\-]+[^\W\d_]+)*\.?$")
_LABEL_SEPARATORS = re.compile(r"[\s_\-]+")


# ---------------------------------------------------------------------------
# Value recognizers
# ---------------------------------------------------------------------------

def looks_like_iban(value: str) -> bool:
    return has_iban_shape(value)


def looks_like_bic(value: str) -> bool:
    """ISO 9362: bank code, country code, location, optional branch; uppercase only."""
    return bool(_BIC_SHAPE.match(value.strip()))


def looks_like_name(value: str) -> bool:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        return False
    return bool(_NAME_SHAPE.match(value))


@dataclass(frozen=True)
class Recognizer:
    """Column-level verdict built from a per-value predicate."""

    field: str
    matches: Callable[[str], bool]
    threshold: float = 0.5

    def confidence(self, values: Sequence[str]) -> float:
        """Share of non-blank values accepted by the predicate."""
        filled = [v for v in values if v and v.strip()]
        if not filled:
            return 0.0
        return sum(1 for v in filled if self.matches(v)) / len(filled)

    def recognizes(self, values: Sequence[str]) -> bool:
        return self.confidence(values) > self.threshold


CONTENT_RECOGNIZERS = (
    Recognizer("iban", looks_like_iban),
    Recognizer("bic", looks_like_bic),
)
NAME_RECOGNIZER = Recognizer("name", looks_like_name)


@dataclass(frozen=True)
class ColumnVerdict:
    field: Optional[str]
    confidence: float = 0.0


def classify_column(values: Sequence[str]) -> ColumnVerdict:
    """Run the recognizer chain over one column; first match wins."""
    for recognizer in CONTENT_RECOGNIZERS:
        score = recognizer.confidence(values)
        if score > recognizer.threshold:
            return ColumnVerdict(recognizer.field, score)
    return ColumnVerdict(None)


# ---------------------------------------------------------------------------
# Header labels
# ---------------------------------------------------------------------------

def _normalize_label(label: str) -> str:
    return _LABEL_SEPARATORS.sub(" ", (label or "").strip().lower()).strip()


def match_header_label(label: str) -> Optional[str]:
    """
    Map a header cell to a field name.

    Exact alias matches first, then whole-word containment preferring the
    longest alias ("customer first name" is first_name, not last_name).
    """
    norm = _normalize_label(label)
    if not norm:
        return None
    for field_name, aliases in HEADER_ALIASES.items():
        if norm in aliases:
            return field_name

    best: Optional[str] = None
    best_len = 0
    for field_name, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            if len(alias) > best_len and re.search(rf"\b{re.escape(alias)}\b", norm):
                best, best_len = field_name, len(alias)
    return best


def looks_like_header(row: Sequence[str]) -> bool:
    """
    A first row is a header unless it holds payment data: an IBAN-shaped
    cell, or a BIC-shaped cell in a row without a single known label.

    Upper-case labels such as "LASTNAME" or "DEBITEUR" have the BIC shape,
    so a recognised label next to them keeps the row a header.
    """
    cells = [c for c in row if c and c.strip()]
    if any(looks_like_iban(c) for c in cells):
        return False
    if any(looks_like_bic(c) for c in cells):
        return any(match_header_label(c) for c in cells)
    return True


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _field_count(line: str, delimiter: str) -> int:
    return len(next(csv.reader([line], delimiter=delimiter), []))


def detect_delimiter(first_line: str) -> str:
    """Pick the candidate yielding the most fields (at least two); ties keep the earlier one."""
    best, best_count = CANDIDATE_DELIMITERS[0], 1
    for candidate in CANDIDATE_DELIMITERS:
        count = _field_count(first_line, candidate)
        if count >= 2 and count > best_count:
            best, best_count = candidate, count
    return best


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line
    return ""


def read_rows(text: str, delimiter: str) -> List[List[str]]:
    """Parse CSV text, dropping rows whose cells are all blank."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    return [row for row in reader if any(cell.strip() for cell in row)]


def cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------

@dataclass
class ColumnMapping:
    """Zero-based column positions; None when a field is absent."""

    delimiter: str = ","
    has_header: bool = False
    iban: Optional[int] = None
    first_name: Optional[int] = None
    last_name: Optional[int] = None
    bic: Optional[int] = None
    amount: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnMapping":
        known = {k: data.get(k) for k in ("delimiter", "has_header", *MAPPED_FIELDS) if k in data}
        return cls(**known)

    def data_rows(self, rows: List[List[str]]) -> List[List[str]]:
        return rows[1:] if self.has_header else rows

    def extract(self, row: Sequence[str]) -> Dict[str, str]:
        values = {name: cell(row, getattr(self, name)) for name in MAPPED_FIELDS}
        values["iban"] = clean_iban(values["iban"])
        return values


@dataclass
class DetectionResult:
    mapping: ColumnMapping
    total_records: int
    preview: List[Dict[str, str]] = field(default_factory=list)


def _best_column(verdicts: Dict[int, ColumnVerdict], field_name: str) -> Optional[int]:
    best, best_score = None, 0.0
    for index, verdict in sorted(verdicts.items()):
        if verdict.field == field_name and verdict.confidence > best_score:
            best, best_score = index, verdict.confidence
    return best


def map_columns(
    header: Optional[Sequence[str]],
    sample_rows: Sequence[Sequence[str]],
    delimiter: str = ",",
) -> ColumnMapping:
    """Combine content verdicts and header labels into a mapping."""
    width = max([len(r) for r in sample_rows] + [len(header or [])] + [0])
    columns = {i: [cell(row, i) for row in sample_rows] for i in range(width)}
    verdicts = {i: classify_column(values) for i, values in columns.items()}
    labels = {i: match_header_label(header[i]) if header and i < len(header) else None for i in range(width)}

    mapping = ColumnMapping(delimiter=delimiter, has_header=header is not None)
    mapping.iban = _best_column(verdicts, "iban")
    mapping.bic = _best_column(verdicts, "bic")
    claimed = {i for i in (mapping.iban, mapping.bic) if i is not None}

    # Header labels fill the rest, skipping columns whose content says otherwise
    def labelled(field_name: str) -> Optional[int]:
        for i in range(width):
            if labels[i] == field_name and i not in claimed and verdicts[i].field is None:
                return i
        return None

    for field_name in ("bic", "amount", "first_name", "last_name"):
        if getattr(mapping, field_name) is not None:
            continue
        index = labelled(field_name)
        if index is not None:
            setattr(mapping, field_name, index)
            claimed.add(index)

    # Positional fallback: unlabelled name-like columns, left to right
    open_fields = [f for f in ("first_name", "last_name") if getattr(mapping, f) is None]
    if open_fields:
        for i in range(width):
            if not open_fields:
                break
            if i in claimed or verdicts[i].field is not None or labels[i] is not None:
                continue
            if NAME_RECOGNIZER.recognizes(columns[i]):
                setattr(mapping, open_fields.pop(0), i)
                claimed.add(i)

    return mapping


def build_preview(data_rows: Sequence[Sequence[str]], mapping: ColumnMapping, limit: int) -> List[Dict[str, str]]:
    preview = []
    for row in data_rows[:limit]:
        values = mapping.extract(row)
        preview.append({k: values[k] for k in ("iban", "first_name", "last_name", "bic")})
    return preview


def detect_columns(
    text: str,
    sample_size: Optional[int] = None,
    preview_size: Optional[int] = None,
) -> DetectionResult:
    """
    Infer delimiter, header presence and field positions from raw CSV text.

    Raises:
        ValidationError: no data rows, or no IBAN-shaped column
    """
    sample_size = sample_size or settings.DETECTION_SAMPLE_ROWS
    preview_size = preview_size if preview_size is not None else settings.PREVIEW_ROWS

    delimiter = detect_delimiter(_first_line(text))
    rows = read_rows(text, delimiter)
    if not rows:
        raise ValidationError("CSV file is empty or unreadable")

    header = rows[0] if looks_like_header(rows[0]) else None
    data = rows[1:] if header is not None else rows
    if not data:
        raise ValidationError("CSV file contains no data rows")

    mapping = map_columns(header, data[:sample_size], delimiter=delimiter)
    if mapping.iban is None:
        raise ValidationError("Could not detect an IBAN column. Ensure the file contains valid IBANs.")

    return DetectionResult(
        mapping=mapping,
        total_records=len(data),
        preview=build_preview(data, mapping, preview_size),
    )
