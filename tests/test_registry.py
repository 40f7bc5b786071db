"""Tests for the platform registry: lookup, pagination conventions, catalog helpers."""
import importlib

import pytest

from marketintel.platforms.registry import (
    FILTER_NAMES,
    PLATFORMS,
    all_platform_ids,
    resolve_platform,
)


class TestResolvePlatform:
    @pytest.mark.parametrize("platform_id", ["spitogatos", "xe_gr", "tospitimou"])
    def test_known_platforms_resolve(self, platform_id):
        config = resolve_platform(platform_id)
        assert config is not None
        assert config.id == platform_id
        assert config.base_url.startswith("https://")

    def test_unknown_platform_returns_none(self):
        assert resolve_platform("idealista") is None

    def test_empty_id_returns_none(self):
        assert resolve_platform("") is None


class TestPlatformConfig:
    def test_tospitimou_paginates_with_p(self):
        assert resolve_platform("tospitimou").page_param == "p"

    def test_spitogatos_and_xe_paginate_with_page(self):
        assert resolve_platform("spitogatos").page_param == "page"
        assert resolve_platform("xe_gr").page_param == "page"

    def test_first_page_has_no_page_value(self):
        assert resolve_platform("spitogatos").page_value(0) is None

    def test_later_pages_are_one_based(self):
        config = resolve_platform("spitogatos")
        assert config.page_value(1) == "2"
        assert config.page_value(4) == "5"

    def test_supported_filters_are_known_filter_names(self):
        for config in PLATFORMS.values():
            assert config.supported_filters <= FILTER_NAMES

    def test_adapter_modules_import_and_satisfy_protocol(self):
        for config in PLATFORMS.values():
            module = importlib.import_module(config.adapter)
            for name in ("build_request", "parse_page", "map_listing"):
                assert callable(getattr(module, name)), f"{config.id} lacks {name}"

    def test_config_is_immutable(self):
        config = resolve_platform("xe_gr")
        with pytest.raises(Exception):
            config.base_url = "https://evil.example"


class TestCatalog:
    def test_all_platform_ids(self):
        assert all_platform_ids() == ["spitogatos", "xe_gr", "tospitimou"]
