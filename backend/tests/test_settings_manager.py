from __future__ import annotations

import orjson
import pytest

from qrswap.services.config.settings_manager import StyleSettingsManager, parse_style_settings
from qrswap.services.markers.models import StyleSpec
from qrswap.utils.exceptions import SettingsFormatError


def test_defaults_match_plain_black_on_white():
    assert StyleSettingsManager().load() == {"color": "#000000", "backgroundColor": "#FFFFFF", "size": 100}


def test_import_without_size_is_rejected_and_state_kept():
    manager = StyleSettingsManager()
    manager.update({"color": "#112233"})
    before = manager.load()

    with pytest.raises(SettingsFormatError, match="size"):
        manager.import_settings(b'{"color": "#FF0000", "backgroundColor": "#00FF00"}')

    assert manager.load() == before


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2, 3]",
        b'{"color": "#FF0000", "backgroundColor": "#00FF00", "size": "120"}',
        b'{"color": "#FF0000", "backgroundColor": "#00FF00", "size": true}',
        b'{"color": "#FF0000", "backgroundColor": "#00FF00", "size": 0}',
        b'{"color": "red", "backgroundColor": "#00FF00", "size": 120}',
    ],
)
def test_malformed_settings_rejected(raw):
    with pytest.raises(SettingsFormatError):
        parse_style_settings(raw)


def test_export_then_import_restores_style():
    source = StyleSettingsManager()
    source.update({"color": "#102030", "backgroundColor": "#fafafa", "size": 140})
    exported = source.export_settings()

    target = StyleSettingsManager()
    target.import_settings(exported)

    assert target.current == StyleSpec((16, 32, 48), (250, 250, 250), 140.0)
    assert orjson.loads(exported) == {"color": "#102030", "backgroundColor": "#FAFAFA", "size": 140}


def test_partial_update_validates_values():
    manager = StyleSettingsManager()

    with pytest.raises(SettingsFormatError):
        manager.update({"size": -5})

    assert manager.update({"size": 150.5, "unknown": 1}) == {
        "color": "#000000",
        "backgroundColor": "#FFFFFF",
        "size": 150.5,
    }


def test_configured_defaults_and_reset():
    manager = StyleSettingsManager({"color": "#333333", "backgroundColor": "#EEEEEE", "size": 80})
    manager.update({"size": 200})

    assert manager.reset() == {"color": "#333333", "backgroundColor": "#EEEEEE", "size": 80}


@pytest.mark.parametrize("size", [float("nan"), float("inf"), -float("inf")])
def test_non_finite_size_rejected(size):
    with pytest.raises(SettingsFormatError):
        StyleSpec.from_settings({"color": "#000000", "backgroundColor": "#FFFFFF", "size": size})
    with pytest.raises(ValueError):
        StyleSpec(size=size)
