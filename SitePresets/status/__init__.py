"""Status codes, messages and the exception taxonomy used across SitePresets.

Modules:

- :mod:`SitePresets.status.status` – Status enum, user-facing messages and status exceptions.
"""
