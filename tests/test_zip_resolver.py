"""ZIP resolution pipeline tests"""

import pytest

from power_pricing.services.territory import CENTERPOINT_DUNS, ONCOR_DUNS, StaticZipMap
from power_pricing.services.zip_resolver import (
    ZipErrorCode,
    ZipResolver,
    estimate_plan_count,
    is_texas_zip,
    is_valid_format,
)


class BrokenFallback:
    async def resolve(self, zip_code):
        raise RuntimeError("geocoder pool exploded")


class TestZipFormat:
    """Format and range helpers"""

    def test_valid_format(self):
        assert is_valid_format("75201")
        assert not is_valid_format("7520")
        assert not is_valid_format("752011")
        assert not is_valid_format("75-01")
        assert not is_valid_format("abcde")

    def test_texas_range(self):
        assert is_texas_zip("75000")
        assert is_texas_zip("79999")
        assert not is_texas_zip("74999")
        assert not is_texas_zip("80000")
        # Austin's 733xx IRS ZIPs fall outside the numeric range
        assert not is_texas_zip("73301")

    def test_estimate_plan_count(self):
        assert estimate_plan_count("Houston") == 120
        assert estimate_plan_count("Fort Worth") == 80
        assert estimate_plan_count("Waco") == 42
        assert estimate_plan_count("Nacogdoches") == 25


class TestZipResolver:
    """Resolution against the static map, exclusions and geocoder fallback"""

    @pytest.mark.asyncio
    async def test_static_map_hit(self, zip_resolver):
        result = await zip_resolver.resolve_zip("75201")

        assert result.success
        assert result.is_valid and result.is_texas and result.is_deregulated
        assert result.city_data["name"] == "Dallas"
        assert result.city_data["slug"] == "dallas-tx"
        assert result.city_data["redirectUrl"] == "/electricity-plans/dallas-tx/"
        assert result.tdsp_data["duns"] == ONCOR_DUNS
        assert result.tdsp_data["name"] == "Oncor"
        assert result.confidence == 100
        assert result.source == "static"

    @pytest.mark.asyncio
    async def test_whitespace_is_trimmed(self, zip_resolver):
        result = await zip_resolver.resolve_zip("  77001 ")

        assert result.success
        assert result.zip_code == "77001"
        assert result.tdsp_data["duns"] == CENTERPOINT_DUNS
        assert result.tdsp_data["name"] == "CenterPoint"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("zip_code", ["7520", "752011", "abcde", ""])
    async def test_invalid_format(self, zip_resolver, zip_code):
        result = await zip_resolver.resolve_zip(zip_code)

        assert result.error_code == ZipErrorCode.INVALID_FORMAT
        assert not result.is_valid
        assert not result.is_texas
        assert result.error_message == "Please enter a valid 5-digit ZIP code"

    @pytest.mark.asyncio
    async def test_not_texas_skips_geocoders(self, zip_resolver, geocoder_api):
        result = await zip_resolver.resolve_zip("10001")

        assert result.error_code == ZipErrorCode.NOT_TEXAS
        assert result.is_valid
        assert not result.is_texas
        assert geocoder_api.calls == 0

    @pytest.mark.asyncio
    async def test_austin_irs_zip_is_not_texas(self, zip_resolver):
        result = await zip_resolver.resolve_zip("73301")
        assert result.error_code == ZipErrorCode.NOT_TEXAS

    @pytest.mark.asyncio
    async def test_municipal_utility(self, zip_resolver, geocoder_api):
        result = await zip_resolver.resolve_zip("78701")

        assert result.error_code == ZipErrorCode.MUNICIPAL_UTILITY
        assert result.is_valid and result.is_texas
        assert not result.is_deregulated
        assert "Austin Energy" in result.error_message
        assert result.suggestions[0] == "Contact Austin Energy at (512) 494-9400"
        assert geocoder_api.calls == 0

    @pytest.mark.asyncio
    async def test_cooperative(self, zip_resolver):
        result = await zip_resolver.resolve_zip("75932")

        assert result.error_code == ZipErrorCode.COOPERATIVE
        assert "electric cooperative" in result.error_message

    @pytest.mark.asyncio
    async def test_static_regulated_mapping(self, zip_resolver):
        result = await zip_resolver.resolve_zip("79901")

        assert result.error_code == ZipErrorCode.NOT_DEREGULATED
        assert result.is_texas
        assert not result.is_deregulated

    @pytest.mark.asyncio
    async def test_every_static_zip_follows_its_mapping(self, zip_resolver, zip_map, geocoder_api):
        for mapping in zip_map.all():
            if zip_resolver.exclusions.lookup(mapping.zip_code) is not None:
                continue

            result = await zip_resolver.resolve_zip(mapping.zip_code)

            assert result.is_deregulated == mapping.is_deregulated, mapping.zip_code
            assert result.source == "static"
        assert geocoder_api.calls == 0

    @pytest.mark.asyncio
    async def test_fallback_to_hub_city(self, zip_resolver, geocoder_api):
        geocoder_api.zipcodeapi("Frisco", 33.1507, -96.8236)

        result = await zip_resolver.resolve_zip("75034")

        assert result.success
        assert result.city_data["slug"] == "frisco-tx"
        assert result.tdsp_data["duns"] == ONCOR_DUNS
        assert result.confidence == 95
        assert result.source == "geocoder:zipcodeapi"

    @pytest.mark.asyncio
    async def test_fallback_is_cached(self, zip_resolver, geocoder_api):
        geocoder_api.zipcodeapi("Frisco", 33.1507, -96.8236)

        await zip_resolver.resolve_zip("75034")
        calls = geocoder_api.calls
        await zip_resolver.resolve_zip("75034")

        assert geocoder_api.calls == calls

    @pytest.mark.asyncio
    async def test_fallback_hub_with_municipal_utility(self, zip_resolver, geocoder_api):
        geocoder_api.usps("Garland", county="Dallas")

        result = await zip_resolver.resolve_zip("75040")

        assert result.error_code == ZipErrorCode.MUNICIPAL_UTILITY
        assert "Garland Power & Light" in result.error_message
        assert result.city_data["redirectUrl"] == "/electricity-plans/garland-tx/municipal-utility"
        assert result.source == "geocoder:usps"

    @pytest.mark.asyncio
    async def test_fallback_town_with_municipal_utility(self, zip_resolver, geocoder_api):
        geocoder_api.zipcodeapi("Denton", 33.2148, -97.1331)

        result = await zip_resolver.resolve_zip("76201")

        assert result.error_code == ZipErrorCode.MUNICIPAL_UTILITY
        assert not result.is_deregulated
        assert result.tdsp_data is None
        assert result.error_message.startswith("Denton is served by Denton Municipal Electric")
        assert result.city_data["name"] == "Denton"
        assert result.city_data["redirectUrl"] == "/electricity-plans/frisco-tx/municipal-utility"
        assert result.source == "geocoder:zipcodeapi"

    @pytest.mark.asyncio
    async def test_fallback_hub_outside_market(self, zip_resolver, geocoder_api):
        geocoder_api.usps("Amarillo")

        result = await zip_resolver.resolve_zip("79101")

        assert result.error_code == ZipErrorCode.NOT_DEREGULATED
        assert not result.is_deregulated

    @pytest.mark.asyncio
    async def test_not_found_when_geocoders_fail(self, zip_resolver, geocoder_api):
        result = await zip_resolver.resolve_zip("76999")

        assert result.error_code == ZipErrorCode.NOT_FOUND
        assert result.source == "geocoder"
        assert geocoder_api.calls == 3
        assert result.suggestions == ["Check if this area is served by a municipal utility or electric cooperative"]

    @pytest.mark.asyncio
    async def test_not_found_without_fallback(self, zip_map):
        resolver = ZipResolver(zip_map)
        result = await resolver.resolve_zip("76999")

        assert result.error_code == ZipErrorCode.NOT_FOUND
        assert result.source == "static"

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_api_error(self, zip_map):
        resolver = ZipResolver(zip_map, fallback=BrokenFallback())
        result = await resolver.resolve_zip("76999")

        assert result.error_code == ZipErrorCode.API_ERROR
        assert result.suggestions == ["Please try again in a few moments"]

    @pytest.mark.asyncio
    async def test_to_dict_shape(self, zip_resolver):
        success = (await zip_resolver.resolve_zip("75201")).to_dict()
        failure = (await zip_resolver.resolve_zip("10001")).to_dict()

        assert success["zipCode"] == "75201"
        assert success["cityData"]["name"] == "Dallas"
        assert "errorCode" not in success
        assert failure["errorCode"] == "NOT_TEXAS"
        assert "cityData" not in failure
        assert isinstance(failure["validationTime"], int)


class TestCityQueries:
    """City and area listings derived from the static map"""

    def test_zip_codes_for_city(self, zip_resolver):
        zips = zip_resolver.get_zip_codes_for_city("dallas-tx")
        assert len(zips) == 10
        assert zips == sorted(zips)
        assert zip_resolver.get_zip_codes_for_city("gotham-tx") == []

    def test_deregulated_areas(self, zip_resolver):
        areas = zip_resolver.get_deregulated_areas(plan_counts={"dallas-tx": 7})
        by_slug = {area["citySlug"]: area for area in areas}

        assert "el-paso-tx" not in by_slug
        assert by_slug["dallas-tx"]["zipCodeCount"] == 10
        assert by_slug["dallas-tx"]["planCount"] == 7
        assert by_slug["houston-tx"]["planCount"] == 120
        assert by_slug["houston-tx"]["tdspName"] == "CenterPoint"
        assert areas[0]["zipCodeCount"] >= areas[-1]["zipCodeCount"]

    def test_tdsp_territories(self, zip_resolver):
        territories = zip_resolver.get_tdsp_territories()

        assert [t.abbreviation for t in territories] == ["ONCOR", "CNP", "AEP-C", "AEP-N", "LP&L", "TNMP"]
        assert len(territories[0].zip_codes) == 24
        assert "75201" in territories[0].zip_codes
        assert all(t.is_deregulated for t in territories)
        assert not any("79901" in t.zip_codes for t in territories)

    def test_duplicate_zip_rejected(self, zip_map):
        mapping = zip_map.get("75201")
        with pytest.raises(ValueError):
            StaticZipMap([mapping, mapping])
