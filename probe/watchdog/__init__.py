"""Offline detection for registered clients."""

from probe.watchdog.scanner import WatchdogScanner, offline_message

__all__ = ["WatchdogScanner", "offline_message"]
