"""
SitePresets: named, versioned snapshots of a site's configuration settings.

This package provides:

- :mod:`SitePresets.settings` – The setting descriptor registry, typed-value rules and the live configuration store.
- :mod:`SitePresets.presets` – The preset document codec, diff engine, SQLite preset store and application engine.
- :mod:`SitePresets.status` – Status codes and the exception taxonomy.
- :mod:`SitePresets.log` – Logging setup with an in-memory log tank.
- :mod:`SitePresets.cli` – The command line interface.

Use :func:`SitePresets.exec_` to run the command line interface.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('SitePresets requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'SitePresets: export, compare and apply snapshots of site configuration settings.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Run the command line interface and exit with its status code."""
    from . import cli
    sys.exit(cli.main())


if __name__ == '__main__':
    exec_()
