"""Tests for file loading utilities."""

import json
from io import BytesIO
from pathlib import Path

import pandas as pd
import polars as pl
import pytest

from returns_optimizer.ingest.loaders import (
    detect_file_type,
    find_export,
    load_csv_to_polars,
    load_excel_to_polars,
    load_file_auto,
    load_report_json,
)


class TestDetectFileType:
    """Tests for file type detection."""

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("data.xlsx", "excel"),
            ("data.XLS", "excel"),
            ("data.csv", "csv"),
            ("data.CSV", "csv"),
            ("return_reports.json", "json"),
            ("path/to/file.csv", "csv"),
        ],
    )
    def test_detects_supported_types(self, filename: str, expected: str) -> None:
        """Should detect Excel, CSV and JSON file types."""
        assert detect_file_type(filename) == expected

    @pytest.mark.parametrize("filename", ["data.txt", "data.parquet", "noextension"])
    def test_raises_for_unsupported_types(self, filename: str) -> None:
        """Should raise ValueError for unsupported file types."""
        with pytest.raises(ValueError, match="Unsupported file type"):
            detect_file_type(filename)


class TestLoadExcelToPolars:
    """Tests for Excel file loading."""

    def test_preserves_leading_zeros(self, tmp_path: Path) -> None:
        """Identifier columns should be read as strings."""
        excel_path = tmp_path / "product_list_items.xlsx"
        pd.DataFrame(
            {"ndc": ["00456046001", "00093123405"], "full_units": [10, 0]}
        ).to_excel(excel_path, index=False)

        result = load_excel_to_polars(excel_path)

        assert result["ndc"].to_list() == ["00456046001", "00093123405"]
        assert result.height == 2

    def test_raises_for_invalid_file(self, tmp_path: Path) -> None:
        """Should raise ValueError for invalid Excel file."""
        invalid_path = tmp_path / "invalid.xlsx"
        invalid_path.write_text("not an excel file")

        with pytest.raises(ValueError, match="Cannot parse Excel file"):
            load_excel_to_polars(invalid_path)


class TestLoadCsvToPolars:
    """Tests for CSV file loading."""

    def test_preserves_leading_zeros(self, tmp_path: Path) -> None:
        """Identifier columns should keep leading zeros."""
        csv_path = tmp_path / "reports.csv"
        csv_path.write_text("ndcCode,pricePerUnit\n00456046001,3.00\n0045604601,2.00\n")

        result = load_csv_to_polars(csv_path)

        assert result["ndcCode"].to_list() == ["00456046001", "0045604601"]
        assert result["pricePerUnit"].dtype == pl.Float64

    def test_loads_csv_from_file_object(self) -> None:
        """Should load CSV from file-like object."""
        file_obj = BytesIO(b"ndc,full\n00456046001,1\n")

        result = load_csv_to_polars(file_obj)

        assert result.height == 1
        assert result["ndc"].to_list() == ["00456046001"]

    def test_raises_for_nonexistent_file(self, tmp_path: Path) -> None:
        """Should raise ValueError for non-existent file."""
        with pytest.raises(ValueError, match="Cannot parse CSV file"):
            load_csv_to_polars(tmp_path / "does_not_exist.csv")


class TestLoadReportJson:
    """Tests for return_reports JSON exports."""

    def test_flattens_payloads(self, tmp_path: Path) -> None:
        """Each payload line becomes one row."""
        json_path = tmp_path / "return_reports.json"
        json_path.write_text(
            json.dumps(
                [
                    {
                        "report_date": "2024-02-01",
                        "data": {
                            "ndcCode": "00456-0460-01",
                            "reverseDistributor": "PharmaLink",
                            "pricePerUnit": 3.0,
                        },
                    }
                ]
            )
        )

        result = load_report_json(json_path)

        assert result.height == 1
        assert result["ndcCode"].to_list() == ["00456-0460-01"]

    def test_rejects_non_array(self, tmp_path: Path) -> None:
        """A JSON object at the top level is not a report export."""
        json_path = tmp_path / "return_reports.json"
        json_path.write_text('{"data": {}}')

        with pytest.raises(ValueError, match="JSON array"):
            load_report_json(json_path)

    def test_rejects_invalid_json(self, tmp_path: Path) -> None:
        """Unparseable JSON should raise ValueError."""
        json_path = tmp_path / "return_reports.json"
        json_path.write_text("[{")

        with pytest.raises(ValueError, match="Cannot parse JSON file"):
            load_report_json(json_path)


class TestLoadFileAuto:
    """Tests for auto-detecting file loader."""

    def test_auto_loads_csv(self, tmp_path: Path) -> None:
        """Should auto-detect and load CSV files."""
        csv_path = tmp_path / "auto_test.csv"
        csv_path.write_text("Value\n100\n200\n")

        result = load_file_auto(csv_path)

        assert "Value" in result.columns

    def test_requires_filename_for_file_object(self) -> None:
        """Should require filename parameter for file-like objects."""
        with pytest.raises(ValueError, match="filename must be provided"):
            load_file_auto(BytesIO(b"A,B\n1,2\n"))

    def test_accepts_filename_for_file_object(self) -> None:
        """Should load file-like objects when a filename is given."""
        result = load_file_auto(BytesIO(b"A,B\n1,2\n"), filename="upload.csv")
        assert result.height == 1


class TestFindExport:
    """Tests for export lookup by stem."""

    def test_prefers_csv(self, tmp_path: Path) -> None:
        """CSV is tried before Excel and JSON."""
        (tmp_path / "return_reports.json").write_text("[]")
        (tmp_path / "return_reports.csv").write_text("ndc\n1\n")

        assert find_export(tmp_path, "return_reports") == tmp_path / "return_reports.csv"

    def test_missing_export(self, tmp_path: Path) -> None:
        """Missing exports return None."""
        assert find_export(tmp_path, "uploaded_documents") is None
