"""
Vehicle Inventory Loader.

Loads dealership stock from CSV, JSON, or API sources and writes it to
the record sink.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from database.records import InventoryVehicle
from database.sink import RecordSink

logger = logging.getLogger(__name__)


class InventoryRecord(BaseModel):
    """One row of dealership stock, validated before import."""
    stock_number: str
    year: int
    make: str
    model: str
    price: float
    mileage: int = 0
    vin: Optional[str] = None
    trim_level: Optional[str] = None
    color: Optional[str] = None
    condition: str = "used"
    body_type: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    is_available: bool = True

    class Config:
        extra = "ignore"

    def to_vehicle(self) -> InventoryVehicle:
        return InventoryVehicle(**self.model_dump())


# Condition grades from dealer exports map onto our condition values
CONDITION_MAP = {
    "excellent": "certified",
    "good": "used",
    "fair": "used",
    "needs work": "used",
    "new": "new",
    "certified": "certified",
    "used": "used",
}


class InventoryLoader:
    """
    Loads and validates vehicle inventory.

    Supports:
    - CSV dealer exports (e.g. "Stock ID", "Mileage (mi)", "Price ($)" columns)
    - JSON files with a list or a {"vehicles": [...]} object
    - REST API endpoints
    """

    def __init__(self):
        self._loaded: List[InventoryRecord] = []

    def load_from_csv(self, file_path: Union[str, Path]) -> List[InventoryRecord]:
        """
        Load vehicle inventory from a CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            Validated inventory records; unparseable rows are skipped
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {file_path}")

        records = []
        with open(file_path, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row in reader:
                record = self._parse_csv_row(row)
                if record:
                    records.append(record)

        self._loaded.extend(records)
        logger.info(f"Loaded {len(records)} vehicles from {file_path}")
        return records

    def load_from_json(self, file_path: Union[str, Path]) -> List[InventoryRecord]:
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"JSON file not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        records = self._parse_items(self._unwrap(data))
        self._loaded.extend(records)
        logger.info(f"Loaded {len(records)} vehicles from {file_path}")
        return records

    async def load_from_api(
        self,
        api_url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[InventoryRecord]:
        """
        Load vehicle inventory from a REST API.

        Args:
            api_url: URL of the inventory API
            headers: Optional HTTP headers
            params: Optional query parameters
        """
        async with httpx.AsyncClient() as client:
            response = await client.get(api_url, headers=headers, params=params)
            response.raise_for_status()
            data = response.json()

        records = self._parse_items(self._unwrap(data))
        self._loaded.extend(records)
        logger.info(f"Loaded {len(records)} vehicles from API: {api_url}")
        return records

    async def import_into(self, sink: RecordSink, records: Optional[List[InventoryRecord]] = None) -> Dict[str, int]:
        """
        Write records to the sink. Stock numbers already present are skipped.

        Returns:
            Counts of inserted, skipped and failed records
        """
        counts = {"inserted": 0, "skipped": 0, "failed": 0}
        for record in records if records is not None else self._loaded:
            result = await sink.add_vehicle(record.to_vehicle())
            if result.ok:
                counts["inserted"] += 1
            elif result.duplicate:
                counts["skipped"] += 1
            else:
                counts["failed"] += 1
                logger.warning(f"Failed to import {record.stock_number}: {result.error}")
        logger.info(f"Inventory import: {counts}")
        return counts

    @staticmethod
    def _unwrap(data: Any) -> List[Any]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ["vehicles", "data", "items", "results"]:
                if key in data:
                    return data[key]
            return [data]
        return []

    def _parse_items(self, items: List[Any]) -> List[InventoryRecord]:
        records = []
        for item in items:
            try:
                records.append(InventoryRecord(**item))
            except Exception as e:
                logger.warning(f"Failed to parse vehicle: {item}. Error: {e}")
        return records

    def _parse_csv_row(self, row: Dict[str, str]) -> Optional[InventoryRecord]:
        """Parse a CSV row into an InventoryRecord."""
        mapping = {
            "stock_id": "stock_number",
            "stock": "stock_number",
            "stock_#": "stock_number",
            "trim": "trim_level",
            "mileage_(mi)": "mileage",
            "miles": "mileage",
            "price_($)": "price",
            "cost": "price",
            "type": "body_type",
            "extra_features_(in_comment)": "features",
            "status": "is_available",
        }

        normalized = {}
        for key, value in row.items():
            if key is None:
                continue
            key_lower = key.lower().strip().replace(" ", "_")
            mapped_key = mapping.get(key_lower, key_lower)
            normalized[mapped_key] = value.strip() if isinstance(value, str) else value

        try:
            condition = (normalized.get("condition") or "used").lower()
            available = normalized.get("is_available")
            return InventoryRecord(
                stock_number=normalized["stock_number"],
                year=self._parse_int(normalized.get("year")),
                make=normalized["make"],
                model=normalized["model"],
                price=self._parse_float(normalized.get("price")) or 0.0,
                mileage=self._parse_int(normalized.get("mileage")) or 0,
                vin=normalized.get("vin") or None,
                trim_level=normalized.get("trim_level") or None,
                color=normalized.get("color") or None,
                condition=CONDITION_MAP.get(condition, "used"),
                body_type=(normalized.get("body_type") or "").lower() or None,
                features=self._parse_list_field(normalized.get("features", "")),
                is_available=available is None or available.lower() in ("", "available", "true", "yes", "1"),
            )
        except Exception as e:
            logger.warning(f"Failed to parse row: {row}. Error: {e}")
            return None

    def _parse_list_field(self, value: str) -> List[str]:
        """Parse a comma or semicolon separated string into a list."""
        if not value:
            return []

        for sep in [";", "|", ","]:
            if sep in value:
                return [item.strip() for item in value.split(sep) if item.strip()]

        return [value.strip()] if value.strip() else []

    def _parse_float(self, value: Any) -> Optional[float]:
        """Safely parse a float value."""
        if value is None or value == "":
            return None
        try:
            if isinstance(value, str):
                value = value.replace(",", "").replace("$", "").strip()
            return float(value)
        except (ValueError, TypeError):
            return None

    def _parse_int(self, value: Any) -> Optional[int]:
        """Safely parse an integer value."""
        if value is None or value == "":
            return None
        try:
            if isinstance(value, str):
                value = value.replace(",", "").strip()
            return int(float(value))
        except (ValueError, TypeError):
            return None
