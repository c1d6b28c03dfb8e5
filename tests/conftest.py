"""Shared pytest fixtures for Returns Optimizer tests."""

import os
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import polars as pl
import pytest

from returns_optimizer.access.frames import FrameDataSource
from returns_optimizer.config import Settings
from returns_optimizer.models import InventoryLine
from returns_optimizer.service import ReturnOptimizer

PHARMACY_ID = "pharm-1"
FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Set up mock environment variables for testing.

    Yields:
        Dictionary of mock environment variables.
    """
    env_vars = {
        "LOG_LEVEL": "DEBUG",
        "DATA_DIR": "/tmp/test_exports",
        "OBSERVATION_BATCH_SIZE": "2",
        "RECOMMENDATION_PRICE_POLICY": "average",
        "PACKAGE_PRICE_POLICY": "latest",
        "AVAILABILITY_FILTER_ENABLED": "true",
        "AVAILABILITY_WINDOW_DAYS": "14",
        "DISTRIBUTOR_MATCH_THRESHOLD": "90",
    }
    with patch.dict(os.environ, env_vars, clear=False):
        yield env_vars


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Default settings with a small batch size to exercise paging.

    Returns:
        Settings instance configured for testing.
    """
    return Settings(
        log_level="DEBUG",
        data_dir=tmp_path / "exports",
        observation_batch_size=2,
    )


@pytest.fixture
def sample_inventory_df() -> pl.DataFrame:
    """Product-list export for two pharmacies.

    pharm-1 holds a FULL line, a PARTIAL line and a line nobody prices.
    """
    return pl.DataFrame(
        {
            "id": ["inv-1", "inv-2", "inv-3", "inv-4"],
            "added_by": [PHARMACY_ID, PHARMACY_ID, PHARMACY_ID, "pharm-2"],
            "ndc": ["00456-0460-01", "00093-1234-05", "12345-6789-01", "00456046001"],
            "product_name": ["Lisinopril 10mg", "Atorvastatin 20mg", "Unpriced", None],
            "full_units": [10, 0, 2, 1],
            "partial_units": [0, 4, 0, 0],
        }
    )


@pytest.fixture
def sample_reports_df() -> pl.DataFrame:
    """Raw report lines using the extraction pipeline's field variants."""
    return pl.DataFrame(
        {
            "ndcCode": [
                "0045604601",
                "00456046001",
                "00456-0460-01",
                "00456-0460-01",
                None,
                "00093-1234-05",
            ],
            "ndc": [None, None, None, None, "00093123405", None],
            "reverseDistributor": [
                "Return Solutions",
                "PharmaLink",
                "PharmaLink",
                "MedReturn",
                "MedReturn",
                "Return Solutions",
            ],
            "full": [5, 3, 1, 0, 0, 0],
            "partial": [0, 0, 0, 2, 3, 1],
            "pricePerUnit": [2.00, 3.00, 2.50, 9.00, None, 1.25],
            "creditAmount": [None, None, None, None, 4.50, None],
            "quantity": [None, None, None, None, 3, None],
            "report_date": [
                "2024-01-01",
                "2024-02-01",
                "2024-01-15",
                "2024-02-10",
                "2024-02-05",
                "2024-01-20",
            ],
        }
    )


@pytest.fixture
def sample_package_items_df() -> pl.DataFrame:
    """Open and delivered package items of pharm-1."""
    return pl.DataFrame(
        {
            "pharmacy_id": [PHARMACY_ID, PHARMACY_ID],
            "ndc": ["00456046001", "00093-1234-05"],
            "full": [4, 0],
            "partial": [0, 100],
            "status": [False, True],
        }
    )


@pytest.fixture
def sample_distributors_df() -> pl.DataFrame:
    """Reverse distributor directory export."""
    return pl.DataFrame(
        {
            "id": ["d1", "d2", "d3", "d4"],
            "name": ["Return Solutions", "PharmaLink", "MedReturn", "Closed Returns"],
            "contactEmail": [
                "ops@returnsolutions.test",
                "hello@pharmalink.test",
                None,
                None,
            ],
            "contactPhone": ["555-0100", None, None, None],
            "location": ["Austin, TX", "Denver, CO", None, None],
            "feeRates": ['{"standard": 0.05}', None, None, None],
            "isActive": [True, True, True, False],
        }
    )


@pytest.fixture
def sample_documents_df() -> pl.DataFrame:
    """Uploaded report documents; PharmaLink was used inside the window."""
    return pl.DataFrame(
        {
            "pharmacy_id": [PHARMACY_ID, PHARMACY_ID, "pharm-2"],
            "distributor_name": ["PharmaLink", "Return Solutions", "MedReturn"],
            "report_date": ["2024-03-01", "2024-01-05", "2024-03-10"],
        }
    )


@pytest.fixture
def data_source(
    sample_inventory_df: pl.DataFrame,
    sample_reports_df: pl.DataFrame,
    sample_package_items_df: pl.DataFrame,
    sample_distributors_df: pl.DataFrame,
    sample_documents_df: pl.DataFrame,
) -> FrameDataSource:
    """Frame-backed data source over all sample exports."""
    return FrameDataSource(
        inventory=sample_inventory_df,
        reports=sample_reports_df,
        package_items=sample_package_items_df,
        distributors=sample_distributors_df,
        documents=sample_documents_df,
    )


@pytest.fixture
def optimizer(data_source: FrameDataSource, test_settings: Settings) -> ReturnOptimizer:
    """Optimizer over the sample data with a fixed clock."""
    return ReturnOptimizer(data_source, test_settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def full_line() -> InventoryLine:
    """Inventory line held as 10 full units."""
    return InventoryLine(
        id="inv-1",
        identifier="A",
        product_name="Product A",
        full_units=10,
    )


@pytest.fixture
def fixed_now() -> datetime:
    """Reference time used by the optimizer fixture."""
    return FIXED_NOW
