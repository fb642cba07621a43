"""
Tests for thresholds and ignore regions
"""

import pytest

from regression_toolkit.core.exceptions import ResourceNotFoundError, ValidationError
from regression_toolkit.storage.config_store import ComparisonConfigStore, validate_threshold
from regression_toolkit.visual_testing.regions import IgnoreRegion


class TestThresholds:
    """Test significance thresholds"""

    def test_default_when_unset(self, config_store, suite):
        """Test the system default applies when nothing is stored."""
        assert config_store.get_threshold(suite["id"], "desktop") == 0.10
        assert config_store.get_threshold(suite["id"]) == 0.10

    def test_custom_default(self, database, suite):
        """Test the default can be overridden."""
        store = ComparisonConfigStore(database, default_threshold=0.02)

        assert store.get_threshold(suite["id"], "desktop") == 0.02

    def test_set_and_replace(self, config_store, suite):
        """Test thresholds are stored per viewport and replaced in place."""
        config_store.set_threshold(suite["id"], "mobile", 0.2)
        config_store.set_threshold(suite["id"], "mobile", 0.25)

        assert config_store.get_threshold(suite["id"], "mobile") == 0.25
        assert config_store.get_threshold(suite["id"], "desktop") == 0.10
        assert len(config_store.list_thresholds(suite["id"])) == 1

    @pytest.mark.parametrize("value", [-0.01, 1.01, "0.5", True])
    def test_invalid_threshold_rejected(self, config_store, suite, value):
        """Test thresholds must be numbers in 0.0 - 1.0."""
        with pytest.raises(ValidationError):
            config_store.set_threshold(suite["id"], "desktop", value)

    def test_bounds_accepted(self):
        """Test 0.0 and 1.0 are valid thresholds."""
        assert validate_threshold(0) == 0.0
        assert validate_threshold(1.0) == 1.0

    def test_unknown_suite(self, config_store):
        """Test thresholds need an existing suite."""
        with pytest.raises(ResourceNotFoundError):
            config_store.set_threshold("missing", "desktop", 0.1)


class TestIgnoreRegions:
    """Test ignore region storage"""

    def test_scoping(self, config_store, suite):
        """Test suite-wide, test-wide and exact regions apply as scoped."""
        suite_id = suite["id"]
        config_store.save_ignore_region(suite_id, IgnoreRegion(0, 0, 10, 10, "header"))
        config_store.save_ignore_region(suite_id, IgnoreRegion(1, 1, 5, 5), test_name="login")
        config_store.save_ignore_region(
            suite_id, IgnoreRegion(2, 2, 5, 5), test_name="login", viewport="mobile"
        )
        config_store.save_ignore_region(suite_id, IgnoreRegion(3, 3, 5, 5), test_name="cart")

        login_mobile = config_store.get_ignore_regions(suite_id, "login", "mobile")
        login_desktop = config_store.get_ignore_regions(suite_id, "login", "desktop")
        everything = config_store.get_ignore_regions(suite_id)

        assert [r.x for r in login_mobile] == [0, 1, 2]
        assert [r.x for r in login_desktop] == [0, 1]
        assert len(everything) == 4
        assert login_mobile[0].reason == "header"

    def test_list_and_delete(self, config_store, suite):
        """Test stored regions are listed with ids and can be deleted."""
        saved = config_store.save_ignore_region(suite["id"], IgnoreRegion(0, 0, 4, 4))

        listed = config_store.list_ignore_regions(suite["id"])
        assert [r["id"] for r in listed] == [saved["id"]]

        assert config_store.delete_ignore_region(saved["id"]) is True
        assert config_store.list_ignore_regions(suite["id"]) == []

    def test_delete_unknown(self, config_store):
        """Test deleting a missing region raises."""
        with pytest.raises(ResourceNotFoundError):
            config_store.delete_ignore_region(999)

    def test_zero_area_rejected(self, config_store, suite):
        """Test regions must have a positive size."""
        with pytest.raises(ValidationError):
            config_store.save_ignore_region(suite["id"], IgnoreRegion(0, 0, 0, 4))

    def test_unknown_suite(self, config_store):
        """Test regions need an existing suite."""
        with pytest.raises(ResourceNotFoundError):
            config_store.save_ignore_region("missing", IgnoreRegion(0, 0, 1, 1))
