"""
Inventory matching.

Builds search criteria from a customer's stated preferences and runs them
against the record sink.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from database.records import CustomerProfile, InventoryVehicle
from database.sink import RecordSink

logger = logging.getLogger(__name__)


# Starter stock loaded when the datastore is empty.
MOCK_INVENTORY: List[InventoryVehicle] = [
    InventoryVehicle(
        stock_number="INV001", vin="1HGCM82633A123456", year=2024, make="Honda",
        model="Accord", price=28500, mileage=15, color="Pearl White", condition="new",
        body_type="sedan",
        features=["leather seats", "sunroof", "apple carplay", "lane keeping assist"],
    ),
    InventoryVehicle(
        stock_number="INV002", vin="5XYZU3LB8JG123456", year=2024, make="Hyundai",
        model="Santa Fe", price=34900, mileage=8, color="Calypso Red", condition="new",
        body_type="suv",
        features=["awd", "3rd row seating", "panoramic sunroof", "blind spot monitoring"],
    ),
    InventoryVehicle(
        stock_number="INV003", vin="1FTFW1ET5DFC12345", year=2023, make="Ford",
        model="F-150", price=45500, mileage=5200, color="Velocity Blue", condition="used",
        body_type="truck",
        features=["4wd", "crew cab", "towing package", "bed liner", "apple carplay"],
    ),
    InventoryVehicle(
        stock_number="INV004", vin="JTEBU5JR8K5123456", year=2024, make="Toyota",
        model="4Runner", price=42800, mileage=120, color="Army Green", condition="new",
        body_type="suv",
        features=["4wd", "crawl control", "leather seats", "jbl audio", "sunroof"],
    ),
]


def criteria_from_profile(customer: CustomerProfile, stock_number: Optional[str] = None) -> Dict[str, Any]:
    """Translate stored preferences into sink search criteria."""
    criteria = {
        "year": customer.preferred_year,
        "make": customer.preferred_make,
        "model": customer.preferred_model,
        "stock_number": stock_number,
        "min_mileage": customer.min_mileage,
        "max_mileage": customer.max_mileage,
        "price_min": customer.price_range_min,
        "price_max": customer.price_range_max,
    }
    return {k: v for k, v in criteria.items() if v not in (None, "")}


def criteria_from_tool_args(args: Mapping[str, Any]) -> Dict[str, Any]:
    """Criteria for the checkInventory tool (vehicleType, make, model, yearRange, priceRange)."""
    year_range = args.get("yearRange") or {}
    price_range = args.get("priceRange") or {}
    criteria = {
        "body_type": args.get("vehicleType"),
        "make": args.get("make"),
        "model": args.get("model"),
        "year": args.get("year"),
        "stock_number": args.get("stockNumber"),
        "price_min": price_range.get("min") if isinstance(price_range, Mapping) else None,
        "price_max": (price_range.get("max") if isinstance(price_range, Mapping) else None)
        or args.get("maxPrice"),
        "year_min": year_range.get("min") if isinstance(year_range, Mapping) else None,
        "year_max": year_range.get("max") if isinstance(year_range, Mapping) else None,
        "features": args.get("features") or [],
    }
    return {k: v for k, v in criteria.items() if v not in (None, "", [])}


class InventoryMatcher:
    """Searches available inventory for a customer."""

    def __init__(self, sink: RecordSink):
        self.sink = sink

    async def match(self, customer: CustomerProfile, stock_number: Optional[str] = None) -> List[InventoryVehicle]:
        criteria = criteria_from_profile(customer, stock_number)
        vehicles = await self.sink.search_inventory(criteria)
        logger.info(f"Matched {len(vehicles)} vehicles for customer {customer.id}")
        return vehicles

    async def search(self, criteria: Mapping[str, Any]) -> List[InventoryVehicle]:
        """
        Search with criteria that may include year_min, year_max and features.

        Those three are applied here; everything else goes to the sink.
        """
        criteria = dict(criteria)
        year_min = criteria.pop("year_min", None)
        year_max = criteria.pop("year_max", None)
        features = [f.lower() for f in criteria.pop("features", [])]

        vehicles = await self.sink.search_inventory(criteria)
        if year_min:
            vehicles = [v for v in vehicles if v.year >= int(year_min)]
        if year_max:
            vehicles = [v for v in vehicles if v.year <= int(year_max)]
        if features:
            vehicles = [
                v for v in vehicles
                if all(any(f in vf.lower() for vf in v.features) for f in features)
            ]
        return vehicles

    async def find(self, vehicle_id: str) -> Optional[InventoryVehicle]:
        """Look a vehicle up by stock number, VIN or id."""
        if not vehicle_id:
            return None
        by_stock = await self.sink.search_inventory({"stock_number": vehicle_id})
        if by_stock:
            return by_stock[0]
        by_id = await self.sink.get_vehicles([vehicle_id])
        if by_id:
            return by_id[0]
        for vehicle in await self.sink.search_inventory({}):
            if vehicle.vin == vehicle_id:
                return vehicle
        return None


async def seed_inventory(sink: RecordSink, vehicles: Optional[List[InventoryVehicle]] = None) -> int:
    """Add vehicles that are not stocked yet. Returns the number added."""
    added = 0
    for vehicle in vehicles if vehicles is not None else MOCK_INVENTORY:
        result = await sink.add_vehicle(vehicle)
        if result.ok:
            added += 1
        elif not result.duplicate:
            logger.warning(f"Could not stock {vehicle.stock_number}: {result.error}")
    if added:
        logger.info(f"Seeded {added} inventory vehicles")
    return added
