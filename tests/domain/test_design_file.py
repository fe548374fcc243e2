"""Tests for the DesignFile aggregate and catalogue lookups."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from storefront.catalogue.design_file import DesignFile, normalize_hex
from storefront.catalogue.events import DesignFileDeactivated, DesignFileRegistered


def _register(**overrides):
    data = {
        "product_id": "prod-001",
        "file_name": "template.psd",
        "file_url": "https://cdn.test/template.psd",
        "file_type": "psd",
    }
    data.update(overrides)
    return DesignFile.register(**data)


def _store(**overrides):
    design_file = _register(**overrides)
    current_domain.repository_for(DesignFile).add(design_file)
    return design_file


class TestNormalizeHex:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("#ff0000", "#FF0000"),
            ("ff0000", "#FF0000"),
            ("#f00", "#FF0000"),
            ("  #00ff00 ", "#00FF00"),
            ("", None),
            (None, None),
            (16711680, None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_hex(raw) == expected


class TestRegistration:
    def test_general_file(self):
        df = _register()
        assert df.is_active is True
        assert df.is_color_variant is False
        assert df.color_variant_hex is None
        assert isinstance(df._events[-1], DesignFileRegistered)

    def test_file_type_lowercased(self):
        assert _register(file_type="PSD").file_type == "psd"

    def test_unknown_file_type_rejected(self):
        with pytest.raises(ValidationError):
            _register(file_type="exe")

    def test_color_variant_hex_normalized(self):
        df = _register(is_color_variant=True, color_variant_hex="f00")
        assert df.color_variant_hex == "#FF0000"

    def test_color_variant_requires_hex(self):
        with pytest.raises(ValidationError):
            _register(is_color_variant=True)

    def test_malformed_hex_rejected(self):
        with pytest.raises(ValidationError):
            _register(is_color_variant=True, color_variant_hex="#GG0000")

    def test_hex_dropped_for_general_files(self):
        assert _register(color_variant_hex="#FF0000").color_variant_hex is None

    def test_order_file_requires_order_id(self):
        with pytest.raises(ValidationError):
            _register(is_for_order=True)


class TestDeactivation:
    def test_deactivate(self):
        df = _register()
        df._events.clear()
        df.deactivate()
        assert df.is_active is False
        assert isinstance(df._events[-1], DesignFileDeactivated)

    def test_cannot_deactivate_twice(self):
        df = _register()
        df.deactivate()
        with pytest.raises(ValidationError):
            df.deactivate()


class TestFindFiles:
    def test_general_files(self):
        general = _store()
        _store(is_color_variant=True, color_variant_hex="#FF0000")
        found = current_domain.repository_for(DesignFile).find_files("prod-001", is_color_variant=False)
        assert [f.id for f in found] == [general.id]

    def test_color_variant_match_is_case_insensitive(self):
        red = _store(is_color_variant=True, color_variant_hex="#FF0000")
        found = current_domain.repository_for(DesignFile).find_files(
            "prod-001", is_color_variant=True, color_variant_hex="#ff0000"
        )
        assert [f.id for f in found] == [red.id]

    def test_color_lookup_without_hex_finds_nothing(self):
        _store(is_color_variant=True, color_variant_hex="#FF0000")
        repo = current_domain.repository_for(DesignFile)
        assert repo.find_files("prod-001", is_color_variant=True, color_variant_hex=None) == []

    def test_inactive_files_excluded(self):
        df = _store()
        df.deactivate()
        current_domain.repository_for(DesignFile).add(df)
        assert current_domain.repository_for(DesignFile).find_files("prod-001", is_color_variant=False) == []

    def test_order_specific_files_excluded(self):
        _store(is_for_order=True, order_id="order-a")
        repo = current_domain.repository_for(DesignFile)
        assert repo.find_files("prod-001", is_color_variant=False) == []

    def test_other_products_excluded(self):
        _store(product_id="prod-002")
        assert current_domain.repository_for(DesignFile).find_files("prod-001", is_color_variant=False) == []
