"""
Spreadsheet parsers module.
"""

from parsers.stock_sheet_parser import (
    validate_upload,
    decode_workbook,
    detect_sheet_structure,
    require_structure,
    parse_quantity,
    SheetStructure,
    DetectionFailure,
    IncomingRow,
    StockRowReader,
)

__all__ = [
    "validate_upload",
    "decode_workbook",
    "detect_sheet_structure",
    "require_structure",
    "parse_quantity",
    "SheetStructure",
    "DetectionFailure",
    "IncomingRow",
    "StockRowReader",
]
