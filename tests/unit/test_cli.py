"""Tests for the command-line entry point (diffpublisher/__main__.py)."""

import gzip
import json

import pytest
import yaml

from diffpublisher.__main__ import (
    EXIT_ERROR,
    EXIT_OK,
    build_parser,
    main,
    settings_from_args,
)
from diffpublisher.lib.errors import ConfigurationError
from diffpublisher.lib.publisher import KeyLayout
from tests.conftest import end, make_change, start

pytestmark = pytest.mark.usefixtures("clean_env", "restore_logging")


@pytest.fixture
def feed_file(tmp_path):
    path = tmp_path / "events.ndjson"
    events = [start(42), make_change("create", "A"), end(42)]
    path.write_text("".join(json.dumps(e.to_dict()) + "\n" for e in events))
    return path


class TestParser:
    def test_initial_sequence_and_timestamp_exclusive(self):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["-i", "1", "-t", "2024-01-01T00:00:00Z"])
        assert exc.value.code == 2

    def test_feed_sources_exclusive(self):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--feed-url", "https://x", "--feed-file", "-"])
        assert exc.value.code == 2

    def test_unknown_layout(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--layout", "nested"])

    def test_settings_from_args(self):
        args = build_parser().parse_args(
            ["-i", "6018422", "--layout", "flat", "--once", "--feed-url", "https://x", "s3://b/p/"]
        )
        settings = settings_from_args(args)

        assert settings.target == "s3://b/p/"
        assert settings.initial_sequence == 6018422
        assert settings.layout is KeyLayout.FLAT
        assert settings.infinite is False
        assert settings.feed_url == "https://x"

    def test_unset_options_keep_defaults(self):
        settings = settings_from_args(build_parser().parse_args([]))
        assert settings.target == "file://./"
        assert settings.infinite is True

    def test_cli_feed_file_clears_environment_feed_url(self, monkeypatch):
        monkeypatch.setenv("OVERPASS_URL", "https://overpass.example.org/augmented_diffs")
        settings = settings_from_args(build_parser().parse_args(["--feed-file", "-"]))

        assert settings.feed_file == "-"
        assert settings.feed_url is None
        settings.check()

    def test_cli_feed_url_clears_environment_feed_file(self, monkeypatch):
        monkeypatch.setenv("DIFF_PUBLISHER_FEED_FILE", "events.ndjson")
        settings = settings_from_args(build_parser().parse_args(["--feed-url", "https://x"]))

        assert settings.feed_file is None
        assert settings.feed_url == "https://x"

    def test_cli_timestamp_clears_environment_sequence(self, monkeypatch):
        monkeypatch.setenv("DIFF_PUBLISHER_INITIAL_SEQUENCE", "7")
        settings = settings_from_args(build_parser().parse_args(["-t", "2024-05-01T12:00:00Z"]))

        assert settings.initial_sequence is None
        assert settings.timestamp == "2024-05-01T12:00:00Z"

    def test_environment_pair_conflict_still_reported(self, monkeypatch):
        monkeypatch.setenv("OVERPASS_URL", "https://overpass.example.org/augmented_diffs")
        monkeypatch.setenv("DIFF_PUBLISHER_FEED_FILE", "events.ndjson")
        settings = settings_from_args(build_parser().parse_args([]))

        with pytest.raises(ConfigurationError, match="mutually exclusive"):
            settings.check()


class TestMain:
    def test_publishes_from_feed_file(self, tmp_path, feed_file):
        target = tmp_path / "out"

        code = main(["-i", "42", "--feed-file", str(feed_file), f"file://{target}"])

        assert code == EXIT_OK
        body = gzip.decompress((target / "000/000/042.json.gz").read_bytes())
        assert json.loads(body.decode().splitlines()[0])["id"] == "create"
        assert yaml.safe_load((target / "state.yaml").read_text())["sequence"] == 42

    def test_missing_state_fails(self, tmp_path, feed_file, capsys):
        code = main(["--feed-file", str(feed_file), str(tmp_path / "empty")])

        assert code == EXIT_ERROR
        assert "No state found" in capsys.readouterr().err

    def test_unsupported_target(self, feed_file, capsys):
        code = main(["-i", "1", "--feed-file", str(feed_file), "ftp://example.org/diffs"])

        assert code == EXIT_ERROR
        assert "Unsupported protocol: ftp:" in capsys.readouterr().err

    def test_missing_feed(self, tmp_path, capsys):
        code = main(["-i", "1", str(tmp_path)])

        assert code == EXIT_ERROR
        assert "a feed is required" in capsys.readouterr().err

    def test_negative_sequence(self, tmp_path, feed_file, capsys):
        code = main(["-i", "-5", "--feed-file", str(feed_file), str(tmp_path)])

        assert code == EXIT_ERROR
        assert "initial_sequence" in capsys.readouterr().err

    def test_env_file(self, tmp_path, feed_file, monkeypatch):
        target = tmp_path / "from-env"
        env_file = tmp_path / "publisher.env"
        env_file.write_text(f"DIFF_PUBLISHER_TARGET={target}\n")
        monkeypatch.setenv("DIFF_PUBLISHER_FEED_FILE", str(feed_file))

        code = main(["--env-file", str(env_file), "-i", "42"])

        assert code == EXIT_OK
        assert (target / "state.yaml").is_file()
        monkeypatch.delenv("DIFF_PUBLISHER_TARGET", raising=False)

    def test_feed_file_overrides_overpass_url(self, tmp_path, feed_file, monkeypatch):
        monkeypatch.setenv("OVERPASS_URL", "https://overpass.example.org/augmented_diffs")
        target = tmp_path / "out"

        code = main(["-i", "42", "--feed-file", str(feed_file), str(target)])

        assert code == EXIT_OK
        assert yaml.safe_load((target / "state.yaml").read_text())["sequence"] == 42

    def test_initial_sequence_overrides_environment_timestamp(self, tmp_path, feed_file, monkeypatch):
        monkeypatch.setenv("DIFF_PUBLISHER_TIMESTAMP", "2024-05-01T12:00:00Z")
        target = tmp_path / "out"

        code = main(["-i", "42", "--feed-file", str(feed_file), str(target)])

        assert code == EXIT_OK
        assert (target / "000/000/042.json.gz").is_file()

    def test_feed_file_resumes_after_state(self, tmp_path, monkeypatch):
        target = tmp_path / "out"
        target.mkdir()
        (target / "state.yaml").write_text("last_run: '2024-05-01T12:00:00Z'\nsequence: 50\n")
        feed = tmp_path / "replay.ndjson"
        events = [start(50), make_change("create", "A"), end(50), start(51), make_change("create", "B"), end(51)]
        feed.write_text("".join(json.dumps(e.to_dict()) + "\n" for e in events))

        code = main(["--once", "--feed-file", str(feed), str(target)])

        assert code == EXIT_OK
        assert not (target / "000/000/050.json.gz").exists()
        assert yaml.safe_load((target / "state.yaml").read_text())["sequence"] == 51
