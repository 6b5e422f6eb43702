"""Sunset lamp BLE controller."""
