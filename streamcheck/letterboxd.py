import re
from dataclasses import dataclass

# Letters kept as-is during normalization besides a-z and 0-9.
TITLE_EXTRA_LETTERS = "åøæ"

_PARENTHESIZED_RE = re.compile(r"\(.*?\)")
_NON_TITLE_CHAR_RE = re.compile(rf"[^a-z0-9{TITLE_EXTRA_LETTERS}\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")
_YEAR_RE = re.compile(r"\d{4}")


@dataclass(frozen=True)
class ParsedRow:
    title: str
    year: str | None = None

    @property
    def default_query(self) -> str:
        return f"{self.title} {self.year}" if self.year else self.title


def decode_csv_bytes(raw: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ValueError("Could not decode the uploaded CSV file.")


def parse_line(line: str) -> list[str]:
    """Split one CSV line on commas, honouring double-quoted fields.

    Inside quotes a comma is literal and ``""`` stands for one ``"``.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and line[i + 1:i + 2] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current))
    return fields


def _find_column(headers: list[str], *needles: str) -> int | None:
    for index, header in enumerate(headers):
        if any(needle in header for needle in needles):
            return index
    return None


def _coerce_year(value: str) -> str | None:
    value = value.strip()
    return value if _YEAR_RE.fullmatch(value) else None


def parse_csv(content: str) -> list[ParsedRow]:
    lines = [line.strip() for line in _LINE_BREAK_RE.split(content)]
    lines = [line for line in lines if line]
    if not lines:
        return []

    headers = [h.strip().lower() for h in parse_line(lines[0])]
    title_index = _find_column(headers, "title", "name")
    if title_index is None:
        title_index = 0
    year_index = _find_column(headers, "year")

    rows: list[ParsedRow] = []
    for line in lines[1:]:
        cols = parse_line(line)
        title = cols[title_index].strip() if title_index < len(cols) else ""
        if not title:
            continue
        year = None
        if year_index is not None and year_index < len(cols):
            year = _coerce_year(cols[year_index])
        rows.append(ParsedRow(title=title, year=year))
    return rows


def normalize_title(title: str) -> str:
    """Canonical form of a title, for equality checks only."""
    normalized = (title or "").lower()
    normalized = _PARENTHESIZED_RE.sub("", normalized)
    normalized = _NON_TITLE_CHAR_RE.sub(" ", normalized)
    return _WHITESPACE_RE.sub(" ", normalized).strip()
