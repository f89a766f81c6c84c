"""CLI tests"""

import json

from click.testing import CliRunner

from power_pricing.cli import cli


def test_validate_zip():
    result = CliRunner().invoke(cli, ["validate-zip", "75201"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["cityData"]["name"] == "Dallas"
    assert payload["tdspData"]["name"] == "Oncor"


def test_validate_zip_outside_texas():
    result = CliRunner().invoke(cli, ["validate-zip", "10001"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["errorCode"] == "NOT_TEXAS"


def test_cache_stats(test_db_session):
    result = CliRunner().invoke(cli, ["cache-stats"])

    assert result.exit_code == 0
    assert "totalCacheEntries: 0" in result.output


def test_clean_cache(test_db_session):
    result = CliRunner().invoke(cli, ["clean-cache", "--log-days", "7"])

    assert result.exit_code == 0
    assert "Removed 0 expired cache rows and 0 API log rows" in result.output
