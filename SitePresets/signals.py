"""Application-wide Qt signals for SitePresets.

This module provides:
    - Signals: custom Qt signals for live setting changes and error reporting.

Preset lifecycle signals (added, removed, applied) live on
:class:`SitePresets.presets.lib.PresetsAPI`.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for configuration and logging events."""
    settingChanged = QtCore.Signal(str, str, object)  # Plugin, name, value

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()


signals = Signals()
