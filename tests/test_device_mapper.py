"""Unit tests for physical → logical device id mapping."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from iot_presence.services.device_mapper import map_device_id, resolve_physical_id


class TestMapDeviceId:
    def test_known_physical_id_is_mapped(self):
        assert map_device_id("0a10aced202194944a044df4") == "photon2-pir-01"

    @pytest.mark.parametrize("device_id", ["esp32-hall-01", "photon2-pir-02", "", "unknown", "0A10ACED202194944A044DF4"])
    def test_unmapped_ids_pass_through(self, device_id):
        assert map_device_id(device_id) == device_id

    def test_extra_mapping_extends_builtin_table(self):
        mapping = {"abc123": "esp32-kitchen"}
        assert map_device_id("abc123", mapping) == "esp32-kitchen"
        assert map_device_id("0a10aced202194944a044df4", mapping) == "photon2-pir-01"

    def test_extra_mapping_can_override(self):
        assert map_device_id("0a10aced202194944a044df4", {"0a10aced202194944a044df4": "lobby"}) == "lobby"


class TestResolvePhysicalId:
    def test_str_keys(self):
        assert resolve_physical_id({"iothub-connection-device-id": "esp32-a"}) == "esp32-a"

    def test_bytes_keys_and_values(self):
        props = {b"iothub-connection-device-id": b"esp32-b", b"iothub-enqueuedtime": 1}
        assert resolve_physical_id(props) == "esp32-b"

    @pytest.mark.parametrize("props", [None, {}, {"iothub-connection-device-id": "   "},
                                       {"iothub-connection-device-id": None}])
    def test_missing_or_blank_is_unknown(self, props):
        assert resolve_physical_id(props) == "unknown"
