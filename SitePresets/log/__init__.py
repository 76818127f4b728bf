"""
Logging subsystem for SitePresets.

Modules:

- :mod:`SitePresets.log.log` – Root logger setup, the in-memory TankHandler and the Qt message bridge.
"""
