"""Presets subpackage: snapshot, compare and apply site configurations.

This package provides:
    - codec: the snapshot data model and the preset document format
    - diff: classification of a snapshot's settings against a target configuration
    - store: SQLite persistence of presets and their application history
    - lib: the PresetsAPI tying export, import, apply and revert together
"""
