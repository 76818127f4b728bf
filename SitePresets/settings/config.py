"""Application paths and the live configuration store.

Provides:
    - ConfigPaths: resolves the data directory and prepares default files from templates.
    - LiveConfig: the contract the preset engine uses to read and write live settings.
    - ConfigAPI: a JSON-file backed LiveConfig mapping ``(plugin, name)`` to string values.
"""

import abc
import json
import logging
import pathlib
import shutil
from typing import Any, Dict, Iterable, Optional, Tuple

from PySide6 import QtCore

from ..signals import signals
from ..status import status

app_name: str = 'SitePresets'


class ConfigPaths:
    """Manage application file paths and ensure default templates and directories exist.

    Without an explicit root, the writable application data location reported by Qt is
    used.
    """

    def __init__(self, root: Optional[pathlib.Path] = None) -> None:
        """Set up application paths and ensure required directories and templates exist.

        Args:
            root: Optional data directory. Defaults to the Qt application data location.
        """
        if root is None:
            QtCore.QCoreApplication.setApplicationName(app_name)
            QtCore.QCoreApplication.setOrganizationName('')
            logging.debug(f'Setting application name: {app_name}')

            p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
            root = pathlib.Path(p)
        self.root: pathlib.Path = pathlib.Path(root)
        logging.debug(f'Using app data directory: {self.root}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.registry_path: pathlib.Path = self.template_dir / 'registry.json'
        self.config_template: pathlib.Path = self.template_dir / 'config.json.template'

        self.config_dir: pathlib.Path = self.root / 'config'
        self.db_dir: pathlib.Path = self.root / 'db'

        self.config_path: pathlib.Path = self.config_dir / 'config.json'
        self.db_path: pathlib.Path = self.db_dir / 'presets.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify templates exist and prepare the data directories and files.

        Raises:
            FileNotFoundError: If a required template file is missing.
        """
        logging.debug(f'Verifying required templates in {self.template_dir}')
        if not self.registry_path.exists():
            msg: str = f'Missing registry file: {self.registry_path}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.config_template.exists():
            msg = f'Missing config template: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        for d in (self.config_dir, self.db_dir):
            if not d.exists():
                logging.debug(f'Creating directory: {d}')
                d.mkdir(parents=True, exist_ok=True)

        # Ensure a live configuration exists even if the site has not been set up yet
        if not self.config_path.exists():
            logging.debug(f'Copying default config from template to {self.config_path}')
            shutil.copy(self.config_template, self.config_path)


class LiveConfig(abc.ABC):
    """Accessor for the live configuration of a site.

    Values are raw strings keyed by ``(plugin, name)``. Writes may fail, in which case
    implementations raise :class:`status.WriteFailureException`.
    """

    @abc.abstractmethod
    def get(self, plugin: str, name: str) -> Optional[str]:
        """Return the current value, or None if the setting has no value."""
        ...

    @abc.abstractmethod
    def set(self, plugin: str, name: str, value: str) -> None:
        """Write a value."""
        ...

    @abc.abstractmethod
    def unset(self, plugin: str, name: str) -> None:
        """Remove a value."""
        ...

    @abc.abstractmethod
    def values(self) -> Dict[Tuple[str, str], str]:
        """Return a copy of every current value."""
        ...


class ConfigAPI(LiveConfig):
    """
    Live configuration stored in a JSON file of ``{plugin: {name: value}}`` sections.

    Every write is persisted immediately. Settings listed in ``read_only`` reject writes,
    the way settings forced by the site's deployment cannot be changed at runtime.
    """

    def __init__(self, path: pathlib.Path, read_only: Iterable[Tuple[str, str]] = ()) -> None:
        self.path: pathlib.Path = pathlib.Path(path)
        self.read_only: frozenset = frozenset(tuple(k) for k in read_only)
        self._signals_blocked: bool = False
        self.data: Dict[str, Dict[str, str]] = {}
        self.load()

    def __repr__(self) -> str:
        return f'<ConfigAPI path={str(self.path)!r}, settings={len(self.values())}>'

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of settingChanged.

        Args:
            v: True to block signals, False to allow signals to emit.
        """
        self._signals_blocked = v

    def load(self) -> Dict[str, Dict[str, str]]:
        """Load config.json from disk and validate it.

        Returns:
            The loaded configuration data.

        Raises:
            status.ConfigInvalidException: If the file is missing, not JSON, or invalid.
        """
        logging.debug(f'Loading live configuration from "{self.path}"')
        if not self.path.exists():
            raise status.ConfigInvalidException(f'File not found: {self.path}')
        try:
            with self.path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate(data)
        except (OSError, ValueError, TypeError) as ex:
            raise status.ConfigInvalidException(str(ex)) from ex

        self.data = data
        return self.data

    @staticmethod
    def validate(data: Dict[str, Any]) -> None:
        """Validate the ``{plugin: {name: value}}`` structure.

        Raises:
            TypeError: If a section is not a dict or a value is not a string.
        """
        if not isinstance(data, dict):
            msg: str = 'Configuration must be a dict of plugin sections.'
            logging.error(msg)
            raise TypeError(msg)
        for plugin, section in data.items():
            if not isinstance(section, dict):
                msg = f'Section "{plugin}" must be a dict.'
                logging.error(msg)
                raise TypeError(msg)
            for name, value in section.items():
                if not isinstance(value, str):
                    msg = f'Setting "{plugin}/{name}" must be a string, got {type(value)}.'
                    logging.error(msg)
                    raise TypeError(msg)

    def save(self) -> None:
        """Persist the configuration to disk."""
        with self.path.open('w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=4, ensure_ascii=False)

    def get(self, plugin: str, name: str) -> Optional[str]:
        return self.data.get(plugin, {}).get(name)

    def set(self, plugin: str, name: str, value: str) -> None:
        """Write and persist a single value.

        Raises:
            status.WriteFailureException: If the setting is read-only, the value is not a
                string, or the file cannot be written. The in-memory value is left unchanged.
        """
        if (plugin, name) in self.read_only:
            raise status.WriteFailureException(f'"{plugin}/{name}" is read-only.')
        if not isinstance(value, str):
            raise status.WriteFailureException(f'"{plugin}/{name}" must be a string, got {type(value)}.')

        section = self.data.setdefault(plugin, {})
        previous = section.get(name)
        section[name] = value
        try:
            self.save()
        except OSError as ex:
            if previous is None:
                del section[name]
            else:
                section[name] = previous
            raise status.WriteFailureException(f'Could not save "{plugin}/{name}": {ex}') from ex

        logging.debug(f'Set "{plugin}/{name}"')
        if self._signals_blocked:
            return
        signals.settingChanged.emit(plugin, name, value)

    def unset(self, plugin: str, name: str) -> None:
        """Remove and persist a single value. Missing values are ignored.

        Raises:
            status.WriteFailureException: If the setting is read-only or the file cannot be written.
        """
        if (plugin, name) in self.read_only:
            raise status.WriteFailureException(f'"{plugin}/{name}" is read-only.')

        section = self.data.get(plugin, {})
        if name not in section:
            return
        previous = section.pop(name)
        if not section:
            self.data.pop(plugin, None)
        try:
            self.save()
        except OSError as ex:
            self.data.setdefault(plugin, {})[name] = previous
            raise status.WriteFailureException(f'Could not save "{plugin}/{name}": {ex}') from ex

        logging.debug(f'Unset "{plugin}/{name}"')
        if self._signals_blocked:
            return
        signals.settingChanged.emit(plugin, name, None)

    def values(self) -> Dict[Tuple[str, str], str]:
        return {
            (plugin, name): value
            for plugin, section in self.data.items()
            for name, value in section.items()
        }
