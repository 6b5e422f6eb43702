"""Unit tests for data models in sunlamp.lib.models."""

import unittest

from sunlamp.lib.models import (
    DEFAULT_LAMP_NAME,
    AdapterState,
    Config,
    LampState,
    SendOutcome,
    SessionState,
    normalize_address,
)


class TestConfigDataclass(unittest.TestCase):
    def test_config_fields(self):
        config = Config(address="AA:BB:CC:DD:EE:FF", name="Lamp", timeout=5.0)
        self.assertEqual(config.address, "aa:bb:cc:dd:ee:ff")
        self.assertEqual(config.name, "Lamp")
        self.assertEqual(config.timeout, 5.0)
        self.assertTrue(config.rescan_on_failure)

    def test_config_defaults(self):
        config = Config(address=" 11:22:33:44:55:66 ")
        self.assertEqual(config.address, "11:22:33:44:55:66")
        self.assertEqual(config.name, DEFAULT_LAMP_NAME)

    def test_missing_address_normalizes_to_empty(self):
        self.assertEqual(normalize_address(None), "")


class TestEnums(unittest.TestCase):
    def test_adapter_state_uses_stack_names(self):
        self.assertIs(AdapterState("poweredOn"), AdapterState.powered_on)
        self.assertIs(AdapterState("poweredOff"), AdapterState.powered_off)

    def test_string_values(self):
        self.assertEqual(SendOutcome.skipped, "skipped")
        self.assertEqual(str(SessionState.ready), "ready")


class TestLampState(unittest.TestCase):
    def test_defaults(self):
        state = LampState()
        self.assertFalse(state.power)
        self.assertEqual((state.hue, state.saturation, state.brightness), (0, 0, 0))


if __name__ == "__main__":
    unittest.main()
