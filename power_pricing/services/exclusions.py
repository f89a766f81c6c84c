"""Municipal utility and electric cooperative exclusion tables"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional


MUNICIPAL = "municipal"
COOPERATIVE = "cooperative"


@dataclass(frozen=True)
class ExcludedUtility:
    """A utility whose customers cannot choose a retail provider"""
    name: str
    kind: str
    phone: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None

    def suggestions(self) -> List[str]:
        suggestions = []
        if self.phone:
            suggestions.append(f"Contact {self.name} at {self.phone}")
        else:
            suggestions.append(f"Contact {self.name} for service options")
        if self.website:
            suggestions.append(f"Visit {self.website}")
        if self.kind == MUNICIPAL:
            suggestions.append("Municipal utility customers cannot choose a retail electricity provider")
        else:
            suggestions.append("Electric cooperative members are served directly by their co-op")
        return suggestions


AUSTIN_ENERGY = ExcludedUtility(
    name="Austin Energy",
    kind=MUNICIPAL,
    phone="(512) 494-9400",
    website="https://austinenergy.com",
    description="Austin Energy is a municipal utility serving the Austin area.",
)
CPS_ENERGY = ExcludedUtility(
    name="CPS Energy",
    kind=MUNICIPAL,
    phone="(210) 353-2222",
    website="https://www.cpsenergy.com",
    description="CPS Energy is a municipal utility serving the San Antonio area.",
)
CHEROKEE_COUNTY_COOP = ExcludedUtility(
    name="Cherokee County Electric Cooperative",
    kind=COOPERATIVE,
    phone="(903) 683-2416",
    website="https://ccec.coop",
)
EAST_TEXAS_COOP = ExcludedUtility(name="your East Texas electric cooperative", kind=COOPERATIVE)
NORTH_TEXAS_COOP = ExcludedUtility(name="your North Texas electric cooperative", kind=COOPERATIVE)
SOUTH_TEXAS_COOP = ExcludedUtility(name="your South Texas electric cooperative", kind=COOPERATIVE)

AUSTIN_ENERGY_ZIPS = (
    "78701", "78702", "78703", "78704", "78705", "78712", "78717", "78719",
    "78721", "78722", "78723", "78724", "78725", "78726", "78727", "78728",
    "78729", "78730", "78731", "78732", "78733", "78734", "78735", "78736",
    "78737", "78738", "78739", "78741", "78742", "78744", "78745", "78746",
    "78747", "78748", "78749", "78750", "78751", "78752", "78753", "78754",
    "78756", "78757", "78758", "78759",
)
CPS_ENERGY_ZIPS = (
    "78201", "78202", "78203", "78204", "78205", "78207", "78208", "78209",
    "78210", "78211", "78212", "78213", "78214", "78215", "78216", "78217",
    "78218", "78219", "78220", "78221", "78222", "78223", "78224", "78225",
    "78226", "78227", "78228", "78229", "78230", "78231", "78232", "78233",
    "78234", "78235", "78236", "78237", "78238", "78239", "78240", "78242",
    "78244", "78245", "78247", "78248", "78249", "78250", "78252", "78254",
    "78255", "78256", "78257", "78258", "78259", "78260", "78261", "78263",
)


def _assign(zip_codes: Iterable[str], utility: ExcludedUtility) -> Dict[str, ExcludedUtility]:
    return {zip_code: utility for zip_code in zip_codes}


DEFAULT_EXCLUSIONS: Dict[str, ExcludedUtility] = {
    **_assign(AUSTIN_ENERGY_ZIPS, AUSTIN_ENERGY),
    **_assign(CPS_ENERGY_ZIPS, CPS_ENERGY),
    "75932": CHEROKEE_COUNTY_COOP,
    **_assign(("75925", "75926", "75928", "75929"), EAST_TEXAS_COOP),
    **_assign(("76310", "76311", "76363", "76364"), NORTH_TEXAS_COOP),
    **_assign(("78002", "78003", "78013", "78015"), SOUTH_TEXAS_COOP),
}

# Cities served by a municipal utility, keyed by lowercase city name
MUNICIPAL_UTILITIES_BY_CITY: Dict[str, str] = {
    "austin": "Austin Energy",
    "san antonio": "CPS Energy",
    "garland": "Garland Power & Light",
    "bryan": "Bryan Texas Utilities",
    "college station": "College Station Utilities",
    "denton": "Denton Municipal Electric",
    "georgetown": "Georgetown Utility Systems",
    "greenville": "Greenville Electric Utility System",
}


class ExclusionList:
    """Exact-match table of ZIP codes outside the competitive market"""

    def __init__(self, entries: Optional[Dict[str, ExcludedUtility]] = None):
        self.entries = dict(DEFAULT_EXCLUSIONS if entries is None else entries)

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, zip_code: str) -> Optional[ExcludedUtility]:
        return self.entries.get(zip_code)


def get_municipal_utility_info(city_slug: str) -> Optional[Dict[str, str]]:
    """Municipal utility serving a city, with the page customers are sent to"""
    city = city_slug.lower().replace("-tx", "").replace("-", " ").strip()
    utility = MUNICIPAL_UTILITIES_BY_CITY.get(city)
    if utility is None:
        return None

    area = city.title()
    return {
        "name": utility,
        "description": f"{utility} is a municipal utility serving the {area} area.",
        "redirectUrl": f"/electricity-plans/{city_slug}/municipal-utility",
    }
