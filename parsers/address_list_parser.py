"""
Address list file parser.

Reads an uploaded CSV or Excel file into its header row plus one
header -> cell-text dict per data row. Cells are kept as text; nothing is
interpreted here.
"""

from dataclasses import dataclass, field
from io import BytesIO, StringIO
from pathlib import PurePath
import structlog

import pandas as pd

from exceptions import AddressListParseError

logger = structlog.get_logger(__name__)


CSV_EXTENSIONS = {".csv", ".txt"}
EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}

# German exports are usually ";"-separated and often cp1252-encoded
CSV_SEPARATORS = [";", ",", "\t"]
CSV_ENCODINGS = ["utf-8-sig", "cp1252"]


@dataclass
class ParsedAddressList:
    """Header row and data rows of an uploaded file."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    def sample_rows(self, count: int = 5) -> list[dict[str, str]]:
        """First rows, for column analysis."""
        return self.rows[:count]


def parse_address_list(content: bytes, file_name: str) -> ParsedAddressList:
    """
    Parse an uploaded address list.

    Args:
        content: Raw file content
        file_name: Original file name; its extension selects the format

    Returns:
        ParsedAddressList

    Raises:
        AddressListParseError: If the format is unsupported or the file can't be read
    """
    extension = PurePath(file_name or "").suffix.lower()
    logger.info("parsing_address_list", file_name=file_name, size=len(content))

    if extension in CSV_EXTENSIONS:
        df = _load_csv(content)
    elif extension in EXCEL_EXTENSIONS:
        df = _load_excel(content)
    else:
        raise AddressListParseError(
            f"Unsupported file type: {extension or 'unknown'}",
            details={"file_name": file_name, "supported": sorted(CSV_EXTENSIONS | EXCEL_EXTENSIONS)},
        )

    parsed = _to_address_list(df)

    logger.info(
        "address_list_parsed",
        file_name=file_name,
        columns=len(parsed.headers),
        rows=len(parsed.rows),
    )
    return parsed


def _decode(content: bytes) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise AddressListParseError("Could not decode CSV file")


def detect_separator(text: str) -> str:
    """Separator occurring most often in the header line (";" on a tie)."""
    header_line = text.splitlines()[0] if text else ""
    return max(CSV_SEPARATORS, key=header_line.count)


def _load_csv(content: bytes) -> pd.DataFrame:
    text = _decode(content)
    if not text.strip():
        raise AddressListParseError("File is empty")

    separator = detect_separator(text)
    try:
        df = pd.read_csv(
            StringIO(text),
            sep=separator,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except Exception as e:
        logger.error("csv_read_failed", error=str(e))
        raise AddressListParseError(
            "Failed to read CSV file",
            details={"original_error": str(e)},
        )

    logger.debug("csv_loaded", separator=separator, columns=len(df.columns))
    return df


def _load_excel(content: bytes) -> pd.DataFrame:
    try:
        df = pd.read_excel(BytesIO(content), engine="openpyxl", sheet_name=0, dtype=str)
    except Exception as e:
        logger.error("excel_read_failed", error=str(e))
        raise AddressListParseError(
            "Failed to read Excel file",
            details={"original_error": str(e)},
        )

    # Trailing formatted-but-empty columns come back as "Unnamed: n"
    empty_unnamed = [
        col for col in df.columns
        if str(col).startswith("Unnamed:") and df[col].isna().all()
    ]
    return df.drop(columns=empty_unnamed)


def _cell_text(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value)


def _to_address_list(df: pd.DataFrame) -> ParsedAddressList:
    headers = [str(col) for col in df.columns]
    rows: list[dict[str, str]] = []

    for _, record in df.iterrows():
        row = {header: _cell_text(value) for header, value in zip(headers, record.tolist())}
        # Skip rows with no content at all
        if not any(cell.strip() for cell in row.values()):
            continue
        rows.append(row)

    return ParsedAddressList(headers=headers, rows=rows)
