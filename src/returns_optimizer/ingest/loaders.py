"""File loading utilities for backing-store exports."""

import json
import logging
from io import BytesIO
from pathlib import Path
from typing import BinaryIO

import pandas as pd
import polars as pl

from returns_optimizer.ingest.normalizers import flatten_report_payloads

logger = logging.getLogger(__name__)

# Columns that should always be read as strings to preserve leading zeros
IDENTIFIER_COLUMN_NAMES = {
    "NDC",
    "ndc",
    "Ndc",
    "ndcCode",
    "identifier",
    "id",
    "pharmacy_id",
    "added_by",
    "product_id",
    "package_id",
}


def load_excel_to_polars(
    file: BinaryIO | Path | str,
    sheet_name: str | int = 0,
) -> pl.DataFrame:
    """Load Excel file into Polars DataFrame.

    Uses pandas as intermediate step for Excel parsing (openpyxl backend),
    then converts to Polars for downstream processing.

    Identifier columns are read as strings to preserve leading zeros.

    Args:
        file: File path, path string, or file-like object.
        sheet_name: Sheet name or index to load. Defaults to first sheet.

    Returns:
        Polars DataFrame with loaded data.

    Raises:
        ValueError: If file cannot be parsed as Excel.
    """
    logger.info(f"Loading Excel file, sheet: {sheet_name}")

    try:
        if isinstance(file, str):
            file = Path(file)

        pdf_headers = pd.read_excel(
            file, sheet_name=sheet_name, engine="openpyxl", nrows=0
        )

        dtype_overrides: dict[str, type] = {}
        for col in pdf_headers.columns:
            if col in IDENTIFIER_COLUMN_NAMES:
                dtype_overrides[col] = str
                logger.debug(f"Reading '{col}' as string to preserve leading zeros")

        if hasattr(file, "seek"):
            file.seek(0)

        pdf = pd.read_excel(
            file,
            sheet_name=sheet_name,
            engine="openpyxl",
            dtype=dtype_overrides if dtype_overrides else None,
        )

        df = pl.from_pandas(pdf)

        logger.info(f"Loaded {df.height} rows, {df.width} columns")
        return df

    except Exception as e:
        logger.error(f"Failed to load Excel file: {e}")
        raise ValueError(f"Cannot parse Excel file: {e}") from e


def load_csv_to_polars(
    file: BinaryIO | Path | str,
    encoding: str = "utf8",
    infer_schema_length: int = 10000,
) -> pl.DataFrame:
    """Load CSV file into Polars DataFrame.

    Identifier columns are read as strings to preserve leading zeros.

    Args:
        file: File path, path string, or file-like object.
        encoding: Character encoding.
        infer_schema_length: Number of rows to scan for schema inference.

    Returns:
        Polars DataFrame with loaded data.

    Raises:
        ValueError: If file cannot be parsed as CSV.
    """
    logger.info(f"Loading CSV file with encoding: {encoding}")

    try:
        if isinstance(file, str):
            file = Path(file)

        if isinstance(file, Path):
            source: Path | BytesIO = file
        else:
            content = file.read()
            if isinstance(content, str):
                content = content.encode(encoding)
            source = BytesIO(content)

        headers = pl.read_csv(source, encoding=encoding, n_rows=0).columns
        if isinstance(source, BytesIO):
            source.seek(0)

        schema_overrides = {
            col: pl.String for col in headers if col in IDENTIFIER_COLUMN_NAMES
        }

        df = pl.read_csv(
            source,
            encoding=encoding,
            infer_schema_length=infer_schema_length,
            truncate_ragged_lines=True,
            schema_overrides=schema_overrides if schema_overrides else None,
        )

        logger.info(f"Loaded {df.height} rows, {df.width} columns")
        return df

    except Exception as e:
        logger.error(f"Failed to load CSV file: {e}")
        raise ValueError(f"Cannot parse CSV file: {e}") from e


def load_report_json(file: BinaryIO | Path | str) -> pl.DataFrame:
    """Load an exported return_reports JSON array into report lines.

    Args:
        file: File path, path string, or file-like object holding a JSON
            array of records with a ``data`` payload each.

    Returns:
        Polars DataFrame of flattened report lines.

    Raises:
        ValueError: If the file is not a JSON array of objects.
    """
    logger.info("Loading return report JSON export")

    try:
        if isinstance(file, (str, Path)):
            records = json.loads(Path(file).read_text(encoding="utf-8"))
        else:
            records = json.load(file)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load JSON file: {e}")
        raise ValueError(f"Cannot parse JSON file: {e}") from e

    if not isinstance(records, list):
        raise ValueError("Report export must be a JSON array of records")

    return flatten_report_payloads(r for r in records if isinstance(r, dict))


def detect_file_type(filename: str) -> str:
    """Detect file type from filename extension.

    Args:
        filename: Name of the file (with extension).

    Returns:
        File type string: "excel", "csv" or "json".

    Raises:
        ValueError: If file type is not supported.
    """
    lower_name = filename.lower()

    if lower_name.endswith((".xlsx", ".xls")):
        return "excel"
    elif lower_name.endswith(".csv"):
        return "csv"
    elif lower_name.endswith(".json"):
        return "json"
    else:
        raise ValueError(
            f"Unsupported file type: {filename}. "
            "Supported types: .xlsx, .xls, .csv, .json"
        )


def load_file_auto(
    file: BinaryIO | Path | str,
    filename: str | None = None,
    sheet_name: str | int = 0,
) -> pl.DataFrame:
    """Auto-detect file type and load appropriately.

    Args:
        file: File path, path string, or file-like object.
        filename: Filename for type detection (required if file is BinaryIO).
        sheet_name: Sheet name for Excel files.

    Returns:
        Polars DataFrame with loaded data.

    Raises:
        ValueError: If file type cannot be determined or file cannot be loaded.
    """
    if filename is None:
        if isinstance(file, Path):
            filename = file.name
        elif isinstance(file, str):
            filename = Path(file).name
        else:
            raise ValueError("filename must be provided for file-like objects")

    file_type = detect_file_type(filename)

    if file_type == "excel":
        return load_excel_to_polars(file, sheet_name=sheet_name)
    elif file_type == "json":
        return load_report_json(file)
    else:
        return load_csv_to_polars(file)


def find_export(data_dir: Path, stem: str) -> Path | None:
    """Locate an export by stem, trying each supported extension."""
    for suffix in (".csv", ".xlsx", ".xls", ".json"):
        candidate = data_dir / f"{stem}{suffix}"
        if candidate.exists():
            return candidate
    return None
