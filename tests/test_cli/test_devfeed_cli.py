"""Tests for the devfeed CLI."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from devfeed.aggregation.service import FeedAggregator
from devfeed.cli import main
from devfeed.ingestion.schemas import SourceId


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_aggregator(fake_clients, aggregation_config, clock):
    return FeedAggregator(fake_clients.values(), config=aggregation_config, clock=clock)


class TestSources:
    """Test the `sources` command."""

    def test_lists_builtin_sources(self, runner: CliRunner) -> None:
        """Should list every built-in source."""
        result = runner.invoke(main, ["sources"])

        assert result.exit_code == 0, result.output
        assert "hackernews" in result.output
        assert "DEV.to" in result.output
        assert "GitHub" in result.output


class TestFetch:
    """Test the `fetch` command."""

    def test_prints_feed(self, runner: CliRunner, fake_aggregator) -> None:
        """Should print one line per item."""
        with patch.object(FeedAggregator, "from_settings", return_value=fake_aggregator):
            result = runner.invoke(main, ["fetch", "--limit", "5"])

        assert result.exit_code == 0, result.output
        assert "hackernews item 0" in result.output
        assert "5 of 23 items" in result.output

    def test_filters_by_source(self, runner: CliRunner, fake_aggregator, fake_clients) -> None:
        """Should pass --source through to the filter."""
        with patch.object(FeedAggregator, "from_settings", return_value=fake_aggregator):
            result = runner.invoke(main, ["fetch", "--source", "github"])

        assert result.exit_code == 0, result.output
        assert "5 of 5 items" in result.output
        assert fake_clients[SourceId.HACKERNEWS].fetch_calls == 0

    def test_rejects_unknown_source(self, runner: CliRunner) -> None:
        """Should reject a source outside the known choices."""
        result = runner.invoke(main, ["fetch", "--source", "reddit"])

        assert result.exit_code == 2

    def test_json_output(self, runner: CliRunner, fake_aggregator, fake_clients, service_unavailable) -> None:
        """Should print items as JSON with --json."""
        fake_clients[SourceId.DEVTO].error = service_unavailable

        with patch.object(FeedAggregator, "from_settings", return_value=fake_aggregator):
            result = runner.invoke(main, ["fetch", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert len(payload["items"]) == 15
        assert "commentCount" in payload["items"][0]
        assert payload["items"][0]["source"] == "hackernews"
        assert [e["sourceId"] for e in payload["sourceErrors"]] == ["devto"]

    def test_closes_clients(self, runner: CliRunner, fake_aggregator, fake_clients) -> None:
        """Should close the aggregator after the command."""
        with patch.object(FeedAggregator, "from_settings", return_value=fake_aggregator):
            runner.invoke(main, ["fetch"])

        assert all(client.closed for client in fake_clients.values())

    def test_exits_nonzero_on_fatal_error(self, runner: CliRunner) -> None:
        """Should exit with an error when the refresh fails."""
        broken = MagicMock(spec=FeedAggregator)
        broken.get_aggregated = AsyncMock(side_effect=RuntimeError("aggregator broke"))
        broken.get_source_errors.return_value = []
        broken.aclose = AsyncMock()

        with patch.object(FeedAggregator, "from_settings", return_value=broken):
            result = runner.invoke(main, ["fetch"])

        assert result.exit_code == 1
        assert "Refresh failed: aggregator broke" in result.output
        broken.aclose.assert_awaited_once()
