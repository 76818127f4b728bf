"""
Settings package: descriptor registry, typed values and the live configuration.

This package provides:

- :mod:`SitePresets.settings.lib` – Setting descriptors, registry and type-aware value rules.
- :mod:`SitePresets.settings.config` – Application paths and the JSON-backed live configuration store.
"""
