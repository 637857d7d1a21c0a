"""
Configuration loading: packaged defaults, override file, environment.

Precedence, lowest first: defaults.yaml, the override file, then
DATABASE_URL and CROPCHAIN_LOG_LEVEL.
"""

from datetime import date

import pytest

from cropchain_config import get_active_config
from cropchain_config.loader import compute_checksum, load_yaml_file, merge, parse_config
from cropchain_kernel.domain.statuses import CropBatchStatus
from cropchain_kernel.exceptions import ConfigurationError
from cropchain_services import SupplyChainCommands


@pytest.fixture
def write_yaml(tmp_path):
    def _write(body: str, name: str = "override.yaml"):
        path = tmp_path / name
        path.write_text(body)
        return path

    return _write


class TestDefaults:

    def test_packaged_defaults(self):
        config = get_active_config(environ={})
        assert config.database.url == "sqlite:///:memory:"
        assert config.scheduling.schedulable_statuses == (
            CropBatchStatus.PROCESSED,
            CropBatchStatus.PACKAGED,
        )
        assert config.notifications.harvest_reminder_window_days == 7
        assert config.batch_codes.prefix == "CB"
        assert config.logging.level == "INFO"

    def test_load_logged_with_checksum(self, captured_logs):
        config = get_active_config(environ={})
        [loaded] = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert loaded["checksum"] == config.checksum
        assert loaded["dialect"] == "sqlite"

    def test_checksum_is_stable(self):
        assert get_active_config(environ={}).checksum == get_active_config(environ={}).checksum


class TestOverrides:

    def test_override_file_merges_sections(self, write_yaml):
        path = write_yaml(
            "notifications:\n  harvest_reminder_window_days: 5\n"
            "batch_codes:\n  prefix: LAG\n"
        )
        config = get_active_config(path, environ={})
        assert config.notifications.harvest_reminder_window_days == 5
        assert config.batch_codes.prefix == "LAG"
        assert config.database.pool_size == 20

    def test_override_named_by_environment(self, write_yaml):
        path = write_yaml("logging:\n  level: debug\n")
        config = get_active_config(environ={"CROPCHAIN_CONFIG": str(path)})
        assert config.logging.level == "DEBUG"

    def test_environment_beats_file(self, write_yaml):
        path = write_yaml("database:\n  url: sqlite:///from-file.db\n")
        config = get_active_config(
            path,
            environ={
                "DATABASE_URL": "postgresql://cropchain@db/cropchain",
                "CROPCHAIN_LOG_LEVEL": "warning",
            },
        )
        assert config.database.url == "postgresql://cropchain@db/cropchain"
        assert config.logging.level == "WARNING"

    def test_statuses_are_upper_cased(self, write_yaml):
        path = write_yaml("scheduling:\n  schedulable_statuses: [processed]\n")
        config = get_active_config(path, environ={})
        assert config.scheduling.schedulable_statuses == (CropBatchStatus.PROCESSED,)

    def test_lists_replaced_whole(self):
        merged = merge({"a": {"xs": [1, 2], "k": 1}}, {"a": {"xs": [3]}})
        assert merged == {"a": {"xs": [3], "k": 1}}


class TestInvalidConfig:

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", environ={})

    def test_malformed_yaml(self, write_yaml):
        path = write_yaml("scheduling: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_yaml_file(path)
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_top_level_must_be_mapping(self, write_yaml):
        with pytest.raises(ConfigurationError):
            load_yaml_file(write_yaml("- just\n- a list\n"))

    def test_unknown_status(self, write_yaml):
        path = write_yaml("scheduling:\n  schedulable_statuses: [PROCESSED, TELEPORTED]\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path, environ={})

    @pytest.mark.parametrize(
        "data",
        [
            {"logging": {"level": "LOUD"}},
            {"notifications": {"harvest_reminder_window_days": 0}},
            {"notifications": {"harvest_reminder_window_days": True}},
            {"batch_codes": {"prefix": "  "}},
            {"database": {"url": ""}},
            {"scheduling": {"schedulable_statuses": "PROCESSED"}},
            {"scheduling": "PROCESSED"},
        ],
    )
    def test_bad_values(self, data):
        with pytest.raises(ConfigurationError):
            parse_config(data, source="inline")

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestConfigDrivesCommands:

    def test_prefix_and_window(self, write_yaml, session_factory, identity, clock, world):
        path = write_yaml(
            "batch_codes:\n  prefix: LAG\nnotifications:\n  harvest_reminder_window_days: 10\n"
        )
        commands = SupplyChainCommands(
            session_factory, identity, clock, config=get_active_config(path, environ={})
        )
        result = commands.create_crop_batch(
            "field",
            world.farm_id,
            "Millet",
            "90",
            planting_date=date(2025, 1, 2),
            expected_harvest=date(2025, 3, 9),
        )
        assert result.batch_code == "LAG-2025-001"

        commands.update_crop_status("field", result.batch_id, "GROWING")
        assert commands.send_harvest_reminders("procurement").count == 1
