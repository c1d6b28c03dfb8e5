"""Data source backed by polars DataFrames of store exports."""

import json
import logging
from collections.abc import Sequence
from datetime import date
from pathlib import Path

import polars as pl

from returns_optimizer.access.source import ReturnsDataSource
from returns_optimizer.errors import ConfigurationError
from returns_optimizer.ingest.loaders import find_export, load_file_auto
from returns_optimizer.ingest.normalizers import (
    DISTRIBUTOR_COLUMN_MAP,
    DOCUMENT_COLUMN_MAP,
    INVENTORY_COLUMN_MAP,
    OBSERVATION_SCHEMA,
    PACKAGE_ITEM_COLUMN_MAP,
    apply_column_mapping,
    frame_to_observations,
    identifier_keys,
    identifiers_match,
    latest_report_dates,
    normalize_distributors,
    normalize_documents,
    normalize_inventory,
    normalize_observations,
    normalize_package_items,
)
from returns_optimizer.ingest.validators import (
    ValidationResult,
    validate_distributor_schema,
    validate_document_schema,
    validate_inventory_schema,
    validate_observation_schema,
    validate_package_items_schema,
)
from returns_optimizer.models import (
    Distributor,
    InventoryLine,
    MatchMode,
    PriceObservation,
)

logger = logging.getLogger(__name__)

# Export file stems looked up in the data directory
INVENTORY_EXPORT = "product_list_items"
REPORTS_EXPORT = "return_reports"
PACKAGE_ITEMS_EXPORT = "custom_package_items"
DISTRIBUTORS_EXPORT = "reverse_distributors"
DOCUMENTS_EXPORT = "uploaded_documents"


def _require_valid(result: ValidationResult, export: str) -> None:
    for warning in result.warnings:
        logger.warning(f"{export}: {warning}")
    if not result.is_valid:
        raise ConfigurationError(f"Export '{export}' is invalid: {result.message}")


def _parse_fee_rates(value: object) -> dict[str, object] | None:
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(str(value))
    except json.JSONDecodeError:
        logger.warning(f"Ignoring unparseable fee rates: {value!r}")
        return None
    return parsed if isinstance(parsed, dict) else None


def _optional_text(row: dict[str, object], column: str) -> str | None:
    value = row.get(column)
    if value is None or value == "":
        return None
    return str(value)


class FrameDataSource(ReturnsDataSource):
    """Read-only view over exported store tables.

    Frames are normalized once at construction; every fetch is a pure
    filter over them, so concurrent readers never interfere.

    Args:
        inventory: Product-list items (one row per inventory line).
        reports: Raw return-report lines (any supported field variant).
        package_items: Package items joined with package pharmacy/status.
        distributors: Reverse distributor directory.
        documents: Uploaded report documents (pharmacy, distributor, date).
    """

    def __init__(
        self,
        inventory: pl.DataFrame | None = None,
        reports: pl.DataFrame | None = None,
        package_items: pl.DataFrame | None = None,
        distributors: pl.DataFrame | None = None,
        documents: pl.DataFrame | None = None,
    ) -> None:
        self._inventory = (
            normalize_inventory(inventory)
            if inventory is not None and inventory.height > 0
            else None
        )

        observations = (
            normalize_observations(reports)
            if reports is not None and reports.height > 0
            else pl.DataFrame(schema=OBSERVATION_SCHEMA)
        )
        self._observations = observations.sort(
            "observed_at", descending=True, maintain_order=True
        )
        self._observed_keys = {
            identifier: identifier_keys(identifier)
            for identifier in self._observations["identifier"].unique().to_list()
        }

        self._package_items = (
            normalize_package_items(package_items)
            if package_items is not None and package_items.height > 0
            else None
        )
        self._distributors = (
            normalize_distributors(distributors)
            if distributors is not None and distributors.height > 0
            else None
        )
        self._documents = (
            normalize_documents(documents)
            if documents is not None and documents.height > 0
            else None
        )

        logger.info(
            f"Data source ready: {self._observations.height:,} observations, "
            f"{len(self._observed_keys):,} distinct identifiers"
        )

    @classmethod
    def from_directory(cls, data_dir: Path | str) -> "FrameDataSource":
        """Load every export found in a directory.

        Only the report export is mandatory; the others default to empty.

        Args:
            data_dir: Directory holding CSV, Excel or JSON exports.

        Returns:
            Data source over the loaded exports.

        Raises:
            ConfigurationError: If the directory or report export is missing,
                or an export cannot be parsed or lacks required columns.
        """
        data_dir = Path(data_dir)
        if not data_dir.is_dir():
            raise ConfigurationError(f"Data directory not found: {data_dir}")

        # Validation runs on column-mapped frames, before any normalization
        checks = {
            INVENTORY_EXPORT: (INVENTORY_COLUMN_MAP, validate_inventory_schema),
            REPORTS_EXPORT: ({}, validate_observation_schema),
            PACKAGE_ITEMS_EXPORT: (PACKAGE_ITEM_COLUMN_MAP, validate_package_items_schema),
            DISTRIBUTORS_EXPORT: (DISTRIBUTOR_COLUMN_MAP, validate_distributor_schema),
            DOCUMENTS_EXPORT: (DOCUMENT_COLUMN_MAP, validate_document_schema),
        }

        frames: dict[str, pl.DataFrame | None] = {}
        for export, (column_map, validate) in checks.items():
            path = find_export(data_dir, export)
            if path is None:
                frames[export] = None
                continue
            try:
                df = load_file_auto(path)
            except ValueError as e:
                raise ConfigurationError(f"Cannot load export '{path.name}': {e}") from e
            if df.height > 0:
                _require_valid(validate(apply_column_mapping(df, column_map)), export)
            frames[export] = df
            logger.info(f"Loaded export {path.name} ({df.height:,} rows)")

        if frames[REPORTS_EXPORT] is None:
            raise ConfigurationError(
                f"No '{REPORTS_EXPORT}' export found in {data_dir}"
            )

        return cls(
            inventory=frames[INVENTORY_EXPORT],
            reports=frames[REPORTS_EXPORT],
            package_items=frames[PACKAGE_ITEMS_EXPORT],
            distributors=frames[DISTRIBUTORS_EXPORT],
            documents=frames[DOCUMENTS_EXPORT],
        )

    def pharmacy_ids(self) -> list[str]:
        """Pharmacies that hold at least one inventory line."""
        if self._inventory is None:
            return []
        return sorted(
            p for p in self._inventory["pharmacy_id"].unique().to_list() if p
        )

    def fetch_inventory(self, pharmacy_id: str) -> list[InventoryLine]:
        if self._inventory is None:
            return []

        rows = self._inventory.filter(pl.col("pharmacy_id") == pharmacy_id)
        lines = [
            InventoryLine(
                id=row["id"],
                identifier=row["identifier"],
                product_name=row["product_name"],
                full_units=row["full_units"],
                partial_units=row["partial_units"],
            )
            for row in rows.iter_rows(named=True)
        ]
        logger.info(f"Pharmacy {pharmacy_id}: {len(lines)} inventory lines")
        return lines

    def _matching_identifiers(
        self,
        identifiers: Sequence[str],
        mode: MatchMode,
    ) -> list[str]:
        if mode == MatchMode.EXACT:
            wanted: set[str] = set()
            for identifier in identifiers:
                wanted |= identifier_keys(identifier)
            return [
                observed
                for observed, keys in self._observed_keys.items()
                if keys & wanted
            ]

        return [
            observed
            for observed in self._observed_keys
            if any(identifiers_match(term, observed, mode) for term in identifiers)
        ]

    def fetch_observations(
        self,
        offset: int,
        limit: int,
        identifiers: Sequence[str] | None = None,
        mode: MatchMode = MatchMode.EXACT,
    ) -> list[PriceObservation]:
        frame = self._observations
        if identifiers is not None:
            matched = self._matching_identifiers(identifiers, mode)
            frame = frame.filter(pl.col("identifier").is_in(matched))
        return frame_to_observations(frame.slice(offset, limit))

    def fetch_committed_quantities(self, pharmacy_id: str) -> dict[str, int]:
        if self._package_items is None:
            return {}

        committed = (
            self._package_items.filter(
                (pl.col("pharmacy_id") == pharmacy_id) & ~pl.col("delivered")
            )
            .group_by("identifier_normalized")
            .agg((pl.col("full_units") + pl.col("partial_units")).sum().alias("units"))
        )
        return {
            row["identifier_normalized"]: int(row["units"])
            for row in committed.iter_rows(named=True)
            if row["units"] > 0
        }

    def fetch_distributors(self) -> list[Distributor]:
        if self._distributors is None:
            return []

        return [
            Distributor(
                id=str(row["id"]),
                name=row["name"],
                code=_optional_text(row, "code") or "",
                contact_email=_optional_text(row, "contact_email"),
                contact_phone=_optional_text(row, "contact_phone"),
                location=_optional_text(row, "location"),
                fee_rates=_parse_fee_rates(row.get("fee_rates")),
                is_active=bool(row["is_active"]),
            )
            for row in self._distributors.iter_rows(named=True)
        ]

    def fetch_last_report_dates(self, pharmacy_id: str) -> dict[str, date]:
        if self._documents is None:
            return {}
        names = {d.id: d.name for d in self.fetch_distributors()}
        return latest_report_dates(self._documents, pharmacy_id, names)
