"""
Stock spreadsheet parser.

Reads warehouse stock exports (1C "Остатки" reports and similar) whose
layout is not fixed: the header row sits somewhere in the first rows,
product name and quantity columns move around, and a section row such
as "Магазин" or "Склад" often precedes the data.

Pipeline:
    validate_upload() → decode_workbook() → detect_sheet_structure()
    → StockRowReader yields IncomingRow per data row
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Iterator, Optional, Union
import math
import re
import structlog

import pandas as pd

from exceptions import (
    UnsupportedFileTypeError,
    EmptyFileError,
    FileTooLargeError,
    SheetDecodeError,
    SheetStructureError,
)
from utils.text_utils import normalize_product_name, contains_any

logger = structlog.get_logger(__name__)


# ===================
# COLUMN MARKERS
# ===================

ALLOWED_EXTENSIONS = (".xls", ".xlsx")

# Header cell substrings (matched against lowercased, trimmed cell text)
NAME_MARKERS = (
    "номенклатура",
    "наименование",
    "название",
    "товар",
    "продукт",
    "product",
    "name",
)
QUANTITY_MARKERS = (
    "конечный остаток",
    "остаток",
    "количество",
    "кол-во",
    "колво",
    "stock",
    "qty",
    "quantity",
)
# Opening balance / incoming columns are never the current stock
QUANTITY_EXCLUDE_MARKERS = (
    "начальный остаток",
    "входящий остаток",
    "приход",
)
# Section row after which data rows begin
DATA_SECTION_MARKERS = ("магазин", "склад")

# Rows whose name is one of these words are totals or section labels
NOISE_FIRST_WORDS = {"итого", "всего", "склад", "магазин"}
NOISE_SUBSTRINGS = ("номенклатура", "наименование")

_QUANTITY_SPACES_RE = re.compile(r"[\s']")
_NUMERIC_CELL_RE = re.compile(r"^-?\d[\d\s',.]*$")


# ===================
# DATA CLASSES
# ===================

@dataclass(frozen=True)
class SheetStructure:
    """Located header and columns (0-based indices into the grid)."""
    header_row: int
    name_col: int
    qty_col: int
    data_start_row: int

    def to_dict(self) -> dict:
        return {
            "header_row": self.header_row,
            "name_col": self.name_col,
            "qty_col": self.qty_col,
            "data_start_row": self.data_start_row,
        }


@dataclass(frozen=True)
class DetectionFailure:
    """Why structure detection failed, with whatever was found."""
    reason: str
    name_col: Optional[int] = None
    qty_col: Optional[int] = None
    rows_scanned: int = 0

    def to_error(self) -> SheetStructureError:
        return SheetStructureError(
            self.reason,
            details={
                "name_col": self.name_col,
                "qty_col": self.qty_col,
                "rows_scanned": self.rows_scanned,
            }
        )


@dataclass(frozen=True)
class IncomingRow:
    """One data row extracted from the sheet."""
    row_index: int
    raw_name: str
    raw_quantity: str
    normalized_name: str
    quantity: int


@dataclass
class RowSkip:
    """Bookkeeping for rows the reader did not yield."""
    blank: int = 0
    noise: int = 0
    samples: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.blank + self.noise


# ===================
# UPLOAD / DECODE
# ===================

def validate_upload(
    filename: Optional[str],
    content: bytes,
    max_bytes: Optional[int] = None
) -> str:
    """
    Reject uploads that cannot be a stock spreadsheet.

    Args:
        filename: Original upload filename
        content: Raw file bytes
        max_bytes: Optional size limit

    Returns:
        Lowercased file extension (".xls" or ".xlsx")

    Raises:
        UnsupportedFileTypeError: Extension is not .xls/.xlsx
        EmptyFileError: No bytes uploaded
        FileTooLargeError: Upload exceeds max_bytes
    """
    extension = Path(filename or "").suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileTypeError(filename or "", ALLOWED_EXTENSIONS)

    if not content:
        raise EmptyFileError("File is empty")

    if max_bytes is not None and len(content) > max_bytes:
        raise FileTooLargeError(len(content), max_bytes)

    return extension


def _cell_to_text(value) -> str:
    """Render one decoded cell as text."""
    if value is None or value is pd.NaT or value is pd.NA:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def decode_workbook(content: bytes, filename: str = "upload.xlsx") -> list[list[str]]:
    """
    Decode the first sheet of a workbook into a grid of text cells.

    Tries the engine matching the extension first (openpyxl for .xlsx,
    xlrd for legacy .xls), then the other one, since exports are often
    mislabelled.

    Args:
        content: Raw workbook bytes
        filename: Original filename (for engine choice and logging)

    Returns:
        Rows of text cells; missing cells are ""

    Raises:
        SheetDecodeError: Neither engine can read the bytes
        EmptyFileError: Workbook has no sheets or no rows
    """
    extension = Path(filename).suffix.lower()
    engines = ("xlrd", "openpyxl") if extension == ".xls" else ("openpyxl", "xlrd")

    excel = None
    errors = {}
    for engine in engines:
        try:
            excel = pd.ExcelFile(BytesIO(content), engine=engine)
            break
        except Exception as e:
            errors[engine] = str(e)
            continue

    if excel is None:
        logger.error("workbook_decode_failed", filename=filename, errors=errors)
        raise SheetDecodeError(
            "Failed to read Excel file",
            details={"filename": filename, "errors": errors}
        )

    if not excel.sheet_names:
        raise EmptyFileError("Workbook contains no sheets")

    sheet_name = excel.sheet_names[0]
    try:
        df = excel.parse(sheet_name, header=None, dtype=object)
    except Exception as e:
        logger.error("sheet_read_failed", filename=filename, sheet=sheet_name, error=str(e))
        raise SheetDecodeError(
            "Failed to read data from the first sheet",
            details={"sheet": sheet_name, "original_error": str(e)}
        )

    grid = [
        [_cell_to_text(value) for value in row]
        for row in df.itertuples(index=False, name=None)
    ]

    if not grid:
        raise EmptyFileError("File contains no data")

    logger.info(
        "workbook_decoded",
        filename=filename,
        sheet=sheet_name,
        rows=len(grid),
        columns=len(df.columns)
    )

    return grid


# ===================
# STRUCTURE DETECTION
# ===================

def _classify_header_cell(text: str) -> Optional[str]:
    if contains_any(text, QUANTITY_MARKERS) and not contains_any(text, QUANTITY_EXCLUDE_MARKERS):
        return "qty"
    if contains_any(text, NAME_MARKERS):
        return "name"
    return None


def _has_quantity(row: list[str], qty_col: int) -> bool:
    # A section label never carries a number in the quantity column
    if qty_col >= len(row):
        return False
    return bool(_NUMERIC_CELL_RE.match(str(row[qty_col] or "").strip()))


def detect_sheet_structure(
    grid: list[list[str]],
    scan_rows: int = 15
) -> Union[SheetStructure, DetectionFailure]:
    """
    Locate the header row, the name/quantity columns and the first data row.

    Scans the first scan_rows rows. Column indices found on earlier rows
    carry over, so a header split over two rows is still recognised; the
    row on which both columns are known becomes the header row. After the
    header, up to scan_rows further rows are searched for a section marker
    ("магазин", "склад", matched as substrings) on a row without a number
    in the quantity column; data starts on the row after it, or right
    after the header when there is none.

    Never raises: failures come back as DetectionFailure.
    """
    name_col: Optional[int] = None
    qty_col: Optional[int] = None
    header_row: Optional[int] = None
    limit = min(scan_rows, len(grid))

    for i in range(limit):
        row_name = row_qty = None
        for j, cell in enumerate(grid[i]):
            text = str(cell or "").lower().strip()
            if not text:
                continue
            kind = _classify_header_cell(text)
            if kind == "qty" and row_qty is None:
                row_qty = j
            elif kind == "name" and row_name is None:
                row_name = j

        if row_name is not None:
            name_col = row_name
        if row_qty is not None:
            qty_col = row_qty

        if name_col is not None and qty_col is not None and name_col != qty_col:
            header_row = i
            break

    if header_row is None:
        missing = []
        if name_col is None:
            missing.append("name column")
        if qty_col is None:
            missing.append("quantity column")
        reason = "missing " + " and ".join(missing) if missing else "header row not found"
        logger.warning(
            "sheet_structure_not_found",
            reason=reason,
            name_col=name_col,
            qty_col=qty_col,
            rows_scanned=limit
        )
        return DetectionFailure(
            reason=reason,
            name_col=name_col,
            qty_col=qty_col,
            rows_scanned=limit
        )

    data_start_row = header_row + 1
    for i in range(header_row + 1, min(header_row + 1 + scan_rows, len(grid))):
        row_text = " ".join(str(cell or "").lower().strip() for cell in grid[i])
        if contains_any(row_text, DATA_SECTION_MARKERS) and not _has_quantity(grid[i], qty_col):
            data_start_row = i + 1
            break

    structure = SheetStructure(
        header_row=header_row,
        name_col=name_col,
        qty_col=qty_col,
        data_start_row=data_start_row
    )
    logger.info("sheet_structure_detected", **structure.to_dict())

    return structure


def require_structure(grid: list[list[str]], scan_rows: int = 15) -> SheetStructure:
    """detect_sheet_structure() that raises SheetStructureError on failure."""
    detected = detect_sheet_structure(grid, scan_rows=scan_rows)
    if isinstance(detected, DetectionFailure):
        raise detected.to_error()
    return detected


# ===================
# ROW EXTRACTION
# ===================

def parse_quantity(raw) -> int:
    """
    Parse a human-entered stock quantity.

    Strips thousands separators, accepts a comma decimal separator, floors
    and clamps to zero. Unparsable input yields 0.

    Examples:
        "1 234,5" → 1234
        "1,234.50" → 1234
        "-3" → 0
        "abc" → 0
    """
    if raw is None or isinstance(raw, bool):
        return 0

    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = _QUANTITY_SPACES_RE.sub("", str(raw))
        if not text:
            return 0
        if "," in text and "." in text:
            if text.rfind(",") > text.rfind("."):
                text = text.replace(".", "").replace(",", ".")
            else:
                text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
        try:
            value = float(text)
        except ValueError:
            return 0

    if not math.isfinite(value):
        return 0

    return max(0, math.floor(value))


def is_noise_name(normalized: str) -> bool:
    """True for totals, section labels and repeated headers."""
    if len(normalized) < 2:
        return True
    if contains_any(normalized, NOISE_SUBSTRINGS):
        return True
    first_word = normalized.split(" ", 1)[0]
    return first_word in NOISE_FIRST_WORDS


class StockRowReader:
    """
    Iterate the data rows of a detected sheet in file order.

    Blank and noise rows are counted in .skipped and not yielded.

    Usage:
        reader = StockRowReader(grid, structure)
        for row in reader:
            ...
        reader.skipped.total
    """

    def __init__(self, grid: list[list[str]], structure: SheetStructure):
        self.grid = grid
        self.structure = structure
        self.skipped = RowSkip()

    @property
    def total_rows(self) -> int:
        """Rows in the data section, including ones that will be skipped."""
        return max(0, len(self.grid) - self.structure.data_start_row)

    def _cell(self, row: list[str], col: int) -> str:
        if col < len(row):
            return str(row[col] or "").strip()
        return ""

    def __iter__(self) -> Iterator[IncomingRow]:
        for i in range(self.structure.data_start_row, len(self.grid)):
            row = self.grid[i]
            raw_name = self._cell(row, self.structure.name_col)
            if not raw_name:
                self.skipped.blank += 1
                continue

            normalized = normalize_product_name(raw_name)
            if is_noise_name(normalized):
                self.skipped.noise += 1
                if len(self.skipped.samples) < 5:
                    self.skipped.samples.append(raw_name[:60])
                continue

            raw_quantity = self._cell(row, self.structure.qty_col)
            yield IncomingRow(
                row_index=i,
                raw_name=raw_name,
                raw_quantity=raw_quantity,
                normalized_name=normalized,
                quantity=parse_quantity(raw_quantity)
            )
