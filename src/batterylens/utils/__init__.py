"""Shared helpers for BatteryLens."""
