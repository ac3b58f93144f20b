"""Tests for the command line interface."""

import json

import pytest
import yaml
from typer.testing import CliRunner

from poa_scoring import __version__
from poa_scoring.cli import app

runner = CliRunner()


def _seed_events() -> list[dict]:
    events = [
        {
            "event_id": f"h2h-{i}",
            "voter_id": f"voter-{i}",
            "nft_a_id": "hero",
            "nft_b_id": f"opp-{i % 3 + 1}",
            "winner_id": "hero",
        }
        for i in range(5)
    ]
    for i, value in [(1, 80), (2, 70)]:
        events.append(
            {
                "event_id": f"s-{i}",
                "voter_id": f"rater-{i}",
                "nft_a_id": "hero",
                "slider_value": value,
            }
        )
    return events


@pytest.fixture
def database(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "votes.jsonl"
    path.write_text("\n".join(json.dumps(event) for event in _seed_events()) + "\n")
    return path


class TestBasics:
    """Tests for informational commands."""

    def test_version(self):
        """Test --version prints the package version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_info(self):
        """Test info lists example commands."""
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "poa-scoring ingest" in result.output


class TestValidate:
    """Tests for the validate command."""

    def test_valid_config(self, tmp_path):
        """Test a valid file is reported as valid."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"publish": {"grace_period_seconds": 60}}))

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Grace period: 60.0s" in result.output

    def test_invalid_config(self, tmp_path):
        """Test invalid weights fail validation."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"weights": {"elo": 1.0, "slider": 1.0, "fire": 1.0}}))

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1
        assert "weights" in result.output

    def test_missing_config(self, tmp_path):
        """Test a missing file fails."""
        result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestVoteWorkflow:
    """Tests for registering, ingesting and reading scores."""

    def test_ingest_and_score(self, database, events_file):
        """Test ingesting a publishable set of votes and reading the score."""
        result = runner.invoke(
            app, ["ingest", str(events_file), "--register-nfts", "--database", database]
        )
        assert result.exit_code == 0, result.output
        assert "Processed 7" in result.output

        result = runner.invoke(app, ["score", "hero", "--database", database])
        assert result.exit_code == 0
        assert "POA" in result.output

        result = runner.invoke(app, ["score", "opp-1", "--database", database])
        assert result.exit_code == 0
        assert "awaiting data" in result.output
        assert "slider_ratings: 2 more needed" in result.output

        result = runner.invoke(app, ["leaderboard", "--database", database])
        assert result.exit_code == 0
        assert "POA Leaderboard" in result.output
        assert "hero" in result.output

    def test_ingest_is_idempotent(self, database, events_file):
        """Test ingesting the same file twice only reports duplicates."""
        runner.invoke(app, ["ingest", str(events_file), "--register-nfts", "--database", database])
        result = runner.invoke(app, ["ingest", str(events_file), "--database", database])

        assert result.exit_code == 0
        assert "Processed 0" in result.output
        assert "duplicates 7" in result.output

    def test_ingest_rejects_bad_lines(self, database, tmp_path):
        """Test malformed and unknown-NFT events are counted as rejected."""
        path = tmp_path / "bad.jsonl"
        lines = [
            {"voter_id": "u1", "nft_a_id": "a", "nft_b_id": "b"},
            {"voter_id": "u1", "nft_a_id": "ghost", "slider_value": 50},
        ]
        path.write_text("\n".join(json.dumps(line) for line in lines))

        result = runner.invoke(app, ["ingest", str(path), "--database", database])

        assert result.exit_code == 0
        assert "rejected 2" in result.output

    def test_register_and_deactivate(self, database):
        """Test NFTs can be registered and deactivated."""
        result = runner.invoke(app, ["register", "nft-1", "nft-2", "--database", database])
        assert result.exit_code == 0
        assert "Registered" in result.output

        result = runner.invoke(app, ["register", "nft-1", "--deactivate", "--database", database])
        assert result.exit_code == 0
        assert "Deactivated" in result.output

    def test_score_unknown_nft(self, database):
        """Test asking for an unknown NFT fails cleanly."""
        result = runner.invoke(app, ["score", "ghost", "--database", database])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_rebuild_and_recompute(self, database, events_file):
        """Test rebuild replays the log and recompute drains the queue."""
        runner.invoke(app, ["ingest", str(events_file), "--register-nfts", "--database", database])

        result = runner.invoke(app, ["rebuild", "--database", database])
        assert result.exit_code == 0, result.output
        assert "Replayed 7 events" in result.output

        result = runner.invoke(app, ["recompute", "hero", "--database", database])
        assert result.exit_code == 0
        assert "hero: poa=" in result.output

        result = runner.invoke(app, ["recompute", "--database", database])
        assert result.exit_code == 0
        assert "0 still pending" in result.output

    def test_collection_index(self, database, events_file):
        """Test collections are listed and indexed from published scores."""
        runner.invoke(app, ["ingest", str(events_file), "--register-nfts", "--database", database])
        members = ["hero", "opp-1", "opp-2", "opp-3"]
        result = runner.invoke(
            app, ["register", *members, "--collection", "genesis", "--database", database]
        )
        assert result.exit_code == 0, result.output
        assert "hero in genesis" in result.output

        result = runner.invoke(app, ["collection", "--database", database])
        assert result.exit_code == 0
        assert "genesis" in result.output

        result = runner.invoke(app, ["collection", "genesis", "--database", database])
        assert result.exit_code == 0, result.output
        assert "CAI" in result.output
        assert "Scored: 1/4 NFTs" in result.output

    def test_collection_without_scores(self, database):
        """Test a collection with no published scores fails cleanly."""
        runner.invoke(app, ["register", "a", "b", "--collection", "new", "--database", database])

        result = runner.invoke(app, ["collection", "new", "--database", database])

        assert result.exit_code == 1
        assert "score computation failed" in result.output
