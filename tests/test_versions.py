"""Tests for monoflow.versions."""

from __future__ import annotations

import pytest

from monoflow.versions import is_valid_version, parse_version


class TestParseVersion:
    def test_full_version(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_pads_major_only(self) -> None:
        assert str(parse_version("1")) == "1.0.0"

    def test_pads_major_minor(self) -> None:
        assert str(parse_version("1.2")) == "1.2.0"

    def test_prerelease(self) -> None:
        v = parse_version("0.0.0-alpha.1")
        assert v.prerelease == "alpha.1"

    def test_padded_prerelease(self) -> None:
        assert str(parse_version("1.2-rc.1")) == "1.2.0-rc.1"

    def test_build_metadata(self) -> None:
        assert parse_version("1.0+build.5").build == "build.5"

    def test_leading_v(self) -> None:
        assert str(parse_version("v2.0.1")) == "2.0.1"

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_version("latest")


class TestIsValidVersion:
    @pytest.mark.parametrize("version", ["1.0.0", "0.0.0-alpha.1", "2", "v1.2.3"])
    def test_valid(self, version: str) -> None:
        assert is_valid_version(version)

    @pytest.mark.parametrize("version", ["", "latest", "1.x", "workspace:*"])
    def test_invalid(self, version: str) -> None:
        assert not is_valid_version(version)
