import pytest
import semver

from tagwatch.models import TrackingMode
from tagwatch.versioning import (
    UNKNOWN_TAG,
    compare_versions,
    determine_tracking_mode,
    find_latest_version,
    parse_version,
    select_representative_tag,
)

# ---------------------------------------------------------------------------
# Tracking mode
# ---------------------------------------------------------------------------


class TestDetermineTrackingMode:
    """Test how tags are mapped to a tracking mode."""

    @pytest.mark.parametrize("tag", ["latest", "stable", "main"])
    def test_floating_tags(self, tag):
        assert determine_tracking_mode(tag) is TrackingMode.LATEST

    @pytest.mark.parametrize("tag", ["1.2.3", "v1.2.3", "2.0.0-rc.1", "v10.20.30-alpine"])
    def test_version_tags(self, tag):
        assert determine_tracking_mode(tag) is TrackingMode.VERSION

    @pytest.mark.parametrize("tag", ["alpine", "1.2", "1", "develop", "2024-01-01", "1.2.3.4"])
    def test_other_tags_default_to_latest(self, tag):
        assert determine_tracking_mode(tag) is TrackingMode.LATEST


# ---------------------------------------------------------------------------
# Parsing and ordering
# ---------------------------------------------------------------------------


class TestParseVersion:
    def test_plain(self):
        assert parse_version("1.2.3") == semver.Version(1, 2, 3)

    def test_v_prefix_and_suffix_are_stripped(self):
        assert parse_version("v2.0.0-rc") == semver.Version(2, 0, 0)

    @pytest.mark.parametrize("tag", ["", None, "latest", "1.2", "1.2.x", "v"])
    def test_unparsable(self, tag):
        assert parse_version(tag) is None


class TestCompareVersions:
    def test_numeric_components(self):
        assert compare_versions("1.10.0", "1.2.0") == 1
        assert compare_versions("1.2.0", "1.10.0") == -1

    def test_equal(self):
        assert compare_versions("1.2.0", "1.2.0") == 0

    def test_missing_component_counts_as_zero(self):
        assert compare_versions("1.2", "1.2.0") == 0
        assert compare_versions("1.2.1", "1.2") == 1

    def test_accepts_parsed_versions(self):
        assert compare_versions(semver.Version(3, 0, 0), "v2.9.9") == 1


class TestFindLatestVersion:
    def test_suffix_is_stripped_before_comparison(self):
        assert find_latest_version(["v1.2.0", "bogus", "2.0.0-rc"]) == semver.Version(2, 0, 0)

    def test_numeric_ordering(self):
        assert str(find_latest_version(["1.9.0", "1.10.0", "1.2.0"])) == "1.10.0"

    def test_nothing_parses(self):
        assert find_latest_version(["latest", "alpine"]) is None
        assert find_latest_version([]) is None


# ---------------------------------------------------------------------------
# Representative tag
# ---------------------------------------------------------------------------


class TestSelectRepresentativeTag:
    def test_exact_version_wins_over_latest(self):
        assert select_representative_tag(["1.2.0", "latest", "1.3.0"], "1.3.0") == "1.3.0"

    def test_floating_tag_precedence(self):
        assert select_representative_tag(["main", "stable", "latest"], "9.9.9") == "latest"
        assert select_representative_tag(["main", "stable"], "9.9.9") == "stable"
        assert select_representative_tag(["x", "main"], None) == "main"

    def test_tag_parsing_to_the_version(self):
        tags = ["alpine", "v1.3.0", "1.2.0"]
        assert select_representative_tag(tags, semver.Version(1, 3, 0)) == "v1.3.0"

    def test_first_tag(self):
        assert select_representative_tag(["alpine", "slim"], "1.0.0") == "alpine"

    def test_empty(self):
        assert select_representative_tag([], "1.0.0") == UNKNOWN_TAG
