"""Static ZIP to TDSP territory map"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import structlog

logger = structlog.get_logger()


class MarketZone(str, Enum):
    NORTH = "North"
    CENTRAL = "Central"
    COAST = "Coast"
    SOUTH = "South"
    WEST = "West"


class DataSource(str, Enum):
    USPS = "USPS"
    TDU = "TDU"
    MANUAL = "MANUAL"
    PUCT = "PUCT"


REGION_NAMES = {
    MarketZone.NORTH: "East Texas",
    MarketZone.CENTRAL: "Central Texas",
    MarketZone.COAST: "Coast",
    MarketZone.SOUTH: "South Texas",
    MarketZone.WEST: "West Texas",
}


@dataclass(frozen=True)
class TdspInfo:
    """Transmission/distribution utility known by DUNS number"""
    duns: str
    name: str
    abbreviation: str
    zone: MarketZone
    is_deregulated: bool = True


TDSP_REGISTRY: Dict[str, TdspInfo] = {
    info.duns: info for info in (
        TdspInfo("1039940674000", "Oncor Electric Delivery", "ONCOR", MarketZone.NORTH),
        TdspInfo("957877905", "CenterPoint Energy Houston Electric", "CNP", MarketZone.COAST),
        TdspInfo("007924772", "AEP Texas Central Company", "AEP-C", MarketZone.CENTRAL),
        TdspInfo("007923311", "AEP Texas North Company", "AEP-N", MarketZone.NORTH),
        TdspInfo("007929441", "Texas-New Mexico Power Company", "TNMP", MarketZone.CENTRAL),
        TdspInfo("0582138934100", "Lubbock Power and Light", "LP&L", MarketZone.WEST),
    )
}

ONCOR_DUNS = "1039940674000"
CENTERPOINT_DUNS = "957877905"
AEP_CENTRAL_DUNS = "007924772"
AEP_NORTH_DUNS = "007923311"
TNMP_DUNS = "007929441"
LPL_DUNS = "0582138934100"


@dataclass
class ZipCodeMapping:
    """One validated ZIP code to territory assignment"""
    zip_code: str
    city_name: str
    city_slug: str
    county_name: str
    tdsp_territory: str
    tdsp_duns: str
    is_deregulated: bool
    market_zone: MarketZone
    priority: float = 1.0
    last_validated: Optional[datetime] = None
    data_source: DataSource = DataSource.MANUAL


@dataclass
class TdspServiceTerritory:
    """TDSP with the set of ZIP codes it serves"""
    duns: str
    name: str
    abbreviation: str
    is_deregulated: bool
    market_zone: Optional[MarketZone] = None
    zip_codes: Set[str] = field(default_factory=set)


def format_tdsp_name(territory: str) -> str:
    """Shorten a TDSP legal name to the label shown to customers"""
    if "Oncor" in territory:
        return "Oncor"
    if "CenterPoint" in territory:
        return "CenterPoint"
    if "AEP Texas Central" in territory:
        return "AEP Texas Central"
    if "AEP Texas North" in territory:
        return "AEP Texas North"
    if "AEP Texas South" in territory:
        return "AEP Texas South"
    if "Texas-New Mexico" in territory:
        return "TNMP"
    return territory


def format_city_display_name(city_slug: str) -> str:
    """Turn ``dallas-tx`` into ``Dallas, TX``"""
    parts = city_slug.split("-")
    if len(parts) > 1 and parts[-1].lower() == "tx":
        city = " ".join(part.capitalize() for part in parts[:-1])
        return f"{city}, TX"
    return " ".join(part.capitalize() for part in parts)


def city_name_from_slug(city_slug: str) -> str:
    return format_city_display_name(city_slug).split(",")[0]


def _parse_mapping(raw: Dict) -> ZipCodeMapping:
    duns = raw.get("tdspDuns", "")
    tdsp = TDSP_REGISTRY.get(duns)
    territory = raw.get("tdspTerritory") or (tdsp.name if tdsp else "")
    last_validated = raw.get("lastValidated")

    return ZipCodeMapping(
        zip_code=raw["zipCode"],
        city_name=raw.get("cityName") or city_name_from_slug(raw["citySlug"]),
        city_slug=raw["citySlug"],
        county_name=raw.get("countyName", ""),
        tdsp_territory=territory,
        tdsp_duns=duns,
        is_deregulated=bool(raw.get("isDeregulated", tdsp.is_deregulated if tdsp else False)),
        market_zone=MarketZone(raw.get("marketZone") or (tdsp.zone.value if tdsp else "North")),
        priority=float(raw.get("priority", 1.0)),
        last_validated=datetime.fromisoformat(last_validated) if last_validated else None,
        data_source=DataSource(raw.get("dataSource", "MANUAL")),
    )


class StaticZipMap:
    """Exact-match lookup table of known ZIP codes.

    Exactly one mapping exists per ZIP; loading a duplicate is an error.
    """

    def __init__(self, mappings: Optional[List[ZipCodeMapping]] = None):
        self._by_zip: Dict[str, ZipCodeMapping] = {}
        for mapping in mappings or []:
            self.add(mapping)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticZipMap":
        """Load mappings from a JSON file with a top-level ``mappings`` list"""
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)

        mappings = [_parse_mapping(raw) for raw in payload.get("mappings", [])]
        zip_map = cls(mappings)
        logger.info("Static ZIP map loaded", path=str(path), zip_count=len(zip_map))
        return zip_map

    def __len__(self) -> int:
        return len(self._by_zip)

    def __contains__(self, zip_code: str) -> bool:
        return zip_code in self._by_zip

    def add(self, mapping: ZipCodeMapping):
        if mapping.zip_code in self._by_zip:
            raise ValueError(f"Duplicate mapping for ZIP {mapping.zip_code}")
        self._by_zip[mapping.zip_code] = mapping

    def get(self, zip_code: str) -> Optional[ZipCodeMapping]:
        return self._by_zip.get(zip_code)

    def all(self) -> List[ZipCodeMapping]:
        return list(self._by_zip.values())

    def zip_codes_for_city(self, city_slug: str) -> List[str]:
        return sorted(m.zip_code for m in self._by_zip.values() if m.city_slug == city_slug)

    def mapping_for_city(self, city_slug: str) -> Optional[ZipCodeMapping]:
        """Highest-priority mapping for a city"""
        candidates = [m for m in self._by_zip.values() if m.city_slug == city_slug]
        if not candidates:
            return None
        return max(candidates, key=lambda m: (m.priority, m.is_deregulated))

    def territories(self) -> Dict[str, TdspServiceTerritory]:
        """Group the mapped ZIP codes by TDSP DUNS"""
        territories: Dict[str, TdspServiceTerritory] = {}
        for mapping in self._by_zip.values():
            if not mapping.tdsp_duns:
                continue
            territory = territories.get(mapping.tdsp_duns)
            if territory is None:
                tdsp = TDSP_REGISTRY.get(mapping.tdsp_duns)
                territory = TdspServiceTerritory(
                    duns=mapping.tdsp_duns,
                    name=mapping.tdsp_territory,
                    abbreviation=tdsp.abbreviation if tdsp else "",
                    is_deregulated=mapping.is_deregulated,
                    market_zone=tdsp.zone if tdsp else mapping.market_zone,
                )
                territories[mapping.tdsp_duns] = territory
            territory.zip_codes.add(mapping.zip_code)
        return territories
