"""Setting descriptor registry and typed-value rules.

Provides:
    - SettingType and SettingDescriptor: the declared shape of every known setting.
    - Schema validation for descriptor files shipped by the system and by plugins.
    - SettingsRegistry: lookup and enumeration of the currently installed settings.
    - normalize / values_equal / visible_value: how a raw stored string is read for each type.

Raw values stay plain strings everywhere else in the package. They are only interpreted
here, through the descriptor registered for their ``(plugin, name)`` pair.
"""

import dataclasses
import enum
import json
import logging
import pathlib
from typing import Any, Dict, List, Optional, Tuple

from ..status import status

CORE_PLUGIN: str = 'core'

BOOLEAN_TRUE: str = '1'
BOOLEAN_FALSE: str = '0'
BOOLEAN_TRUE_VALUES: Tuple[str, ...] = ('1', 'true', 'yes', 'on')
BOOLEAN_FALSE_VALUES: Tuple[str, ...] = ('0', 'false', 'no', 'off', '')

MULTISELECT_SEPARATOR: str = ','
MASKED_VALUE: str = '********'


class SettingType(enum.StrEnum):
    """Declared kind of a setting value."""
    Text = 'text'
    Boolean = 'boolean'
    Select = 'select'
    Password = 'password'
    MultiSelect = 'multiselect'


SETTING_TYPES: List[str] = [t.value for t in SettingType]

DESCRIPTOR_SCHEMA: Dict[str, Any] = {
    'name': {'type': str, 'required': True},
    'type': {'type': str, 'required': True, 'allowed_values': SETTING_TYPES},
    'default': {'type': str, 'required': True},
    'sensitive': {'type': bool, 'required': False},
    'choices': {'type': dict, 'required': False},
    'visible_name': {'type': str, 'required': False},
}


@dataclasses.dataclass(frozen=True)
class SettingDescriptor:
    """Registry metadata for a single setting.

    Attributes:
        plugin: Owning component, ``'core'`` for the system itself.
        name: Setting name, unique within the plugin.
        type: Declared kind used to interpret stored values.
        default: Default raw value.
        sensitive: Excluded from exports unless explicitly requested.
        choices: Allowed raw values mapped to their labels (select and multiselect).
        visible_name: Human-readable setting name.
    """
    plugin: str
    name: str
    type: SettingType
    default: str = ''
    sensitive: bool = False
    choices: Tuple[Tuple[str, str], ...] = ()
    visible_name: str = ''

    @property
    def key(self) -> Tuple[str, str]:
        return self.plugin, self.name

    @property
    def label(self) -> str:
        return self.visible_name or self.name

    def choice_map(self) -> Dict[str, str]:
        return dict(self.choices)


def _validate_descriptor(plugin: str, data: Dict[str, Any]) -> None:
    """Validate a single descriptor entry read from a descriptor file.

    Args:
        plugin: The plugin the entry belongs to.
        data: Raw descriptor mapping.

    Raises:
        TypeError: If the entry or one of its fields has the wrong type.
        ValueError: If a required field is missing or a value is not allowed.
    """
    if not isinstance(data, dict):
        msg: str = f'Descriptor in "{plugin}" must be a dict, got {type(data)}.'
        logging.error(msg)
        raise TypeError(msg)

    for field, specs in DESCRIPTOR_SCHEMA.items():
        if specs['required'] and field not in data:
            msg = f'Descriptor in "{plugin}" missing "{field}".'
            logging.error(msg)
            raise ValueError(msg)
        if field not in data:
            continue
        if not isinstance(data[field], specs['type']):
            msg = (
                f'Descriptor "{plugin}/{data.get("name")}" field "{field}" must be {specs["type"]}, '
                f'got {type(data[field])}.'
            )
            logging.error(msg)
            raise TypeError(msg)
        if 'allowed_values' in specs and data[field] not in specs['allowed_values']:
            msg = (
                f'Descriptor "{plugin}/{data.get("name")}" field "{field}" must be one of '
                f'{specs["allowed_values"]}, got "{data[field]}".'
            )
            logging.error(msg)
            raise ValueError(msg)

    unknown = set(data) - set(DESCRIPTOR_SCHEMA)
    if unknown:
        msg = f'Descriptor "{plugin}/{data["name"]}" has unknown fields: {sorted(unknown)}.'
        logging.error(msg)
        raise ValueError(msg)

    if data['type'] in (SettingType.Select, SettingType.MultiSelect):
        choices = data.get('choices')
        if not choices:
            msg = f'Descriptor "{plugin}/{data["name"]}" of type "{data["type"]}" must declare choices.'
            logging.error(msg)
            raise ValueError(msg)
        for k, v in choices.items():
            if not isinstance(v, str):
                msg = f'Choice label for "{k}" in "{plugin}/{data["name"]}" must be a string.'
                logging.error(msg)
                raise TypeError(msg)
            if data['type'] == SettingType.MultiSelect and MULTISELECT_SEPARATOR in k:
                msg = (
                    f'Choice "{k}" in "{plugin}/{data["name"]}" must not contain '
                    f'"{MULTISELECT_SEPARATOR}".'
                )
                logging.error(msg)
                raise ValueError(msg)


def descriptor_from_dict(plugin: str, data: Dict[str, Any]) -> SettingDescriptor:
    """Build a SettingDescriptor from a validated descriptor mapping.

    Password settings are always sensitive. The default must be a valid value of the
    declared type.

    Raises:
        TypeError: See :func:`_validate_descriptor`.
        ValueError: See :func:`_validate_descriptor`, or if the default cannot be normalized.
    """
    _validate_descriptor(plugin, data)
    _type = SettingType(data['type'])
    descriptor = SettingDescriptor(
        plugin=plugin,
        name=data['name'],
        type=_type,
        default=data['default'],
        sensitive=data.get('sensitive', False) or _type == SettingType.Password,
        choices=tuple(data.get('choices', {}).items()),
        visible_name=data.get('visible_name', ''),
    )
    try:
        normalize(descriptor, descriptor.default)
    except ValueError as ex:
        msg = f'Default of "{plugin}/{descriptor.name}" is invalid: {ex}'
        logging.error(msg)
        raise ValueError(msg) from ex
    return descriptor


def _split_tokens(raw: str) -> List[str]:
    return [t.strip() for t in raw.split(MULTISELECT_SEPARATOR) if t.strip()]


def normalize(descriptor: SettingDescriptor, raw: str) -> str:
    """Return the canonical form of a raw value under the descriptor's type.

    Args:
        descriptor: Descriptor used to interpret the value.
        raw: Raw stored value.

    Returns:
        str: Canonical raw value. Booleans become ``'1'``/``'0'``; multiselect values are
        de-duplicated and sorted.

    Raises:
        ValueError: If the value cannot be coerced to the declared type.
    """
    if not isinstance(raw, str):
        raise ValueError(f'Expected a string value, got {type(raw)}.')

    if descriptor.type == SettingType.Boolean:
        v = raw.strip().lower()
        if v in BOOLEAN_TRUE_VALUES:
            return BOOLEAN_TRUE
        if v in BOOLEAN_FALSE_VALUES:
            return BOOLEAN_FALSE
        raise ValueError(f'"{raw}" is not a boolean value.')

    if descriptor.type == SettingType.Select:
        choices = descriptor.choice_map()
        if choices and raw not in choices:
            raise ValueError(f'"{raw}" is not one of {list(choices)}.')
        return raw

    if descriptor.type == SettingType.MultiSelect:
        choices = descriptor.choice_map()
        tokens = _split_tokens(raw)
        invalid = [t for t in tokens if choices and t not in choices]
        if invalid:
            raise ValueError(f'{invalid} are not among {list(choices)}.')
        return MULTISELECT_SEPARATOR.join(sorted(set(tokens)))

    # Text and password values are opaque strings
    return raw


def values_equal(descriptor: SettingDescriptor, a: Optional[str], b: Optional[str]) -> bool:
    """Type-aware equality of two raw values.

    ``None`` (no value) only equals ``None``. Otherwise both sides are normalized and
    compared; if either side cannot be normalized the raw strings are compared instead.
    """
    if a is None or b is None:
        return a is None and b is None
    try:
        return normalize(descriptor, a) == normalize(descriptor, b)
    except ValueError:
        return a == b


def visible_value(descriptor: SettingDescriptor, raw: Optional[str]) -> str:
    """Human-readable rendering of a raw value.

    Values that cannot be normalized are shown as-is.
    """
    if raw is None:
        return ''
    if descriptor.sensitive:
        return MASKED_VALUE if raw else ''

    try:
        canonical = normalize(descriptor, raw)
    except ValueError:
        return raw

    if descriptor.type == SettingType.Boolean:
        return 'Yes' if canonical == BOOLEAN_TRUE else 'No'
    if descriptor.type == SettingType.Select:
        return descriptor.choice_map().get(canonical, canonical)
    if descriptor.type == SettingType.MultiSelect:
        choices = descriptor.choice_map()
        return ', '.join(choices.get(t, t) for t in _split_tokens(canonical))
    return canonical


class SettingsRegistry:
    """
    Enumerates the settings of the system and of every installed plugin.

    Descriptors are kept in registration order: the system's own settings first, then
    each plugin in the order it was installed. :meth:`all` always reflects the currently
    installed plugins.
    """

    def __init__(self, descriptors: Optional[List[SettingDescriptor]] = None) -> None:
        self._descriptors: Dict[Tuple[str, str], SettingDescriptor] = {}
        for descriptor in descriptors or []:
            self.register(descriptor)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._descriptors

    def __repr__(self) -> str:
        return f'<SettingsRegistry plugins={self.plugins()!r}, settings={len(self)}>'

    @classmethod
    def from_file(cls, path: pathlib.Path) -> 'SettingsRegistry':
        """Load a registry from a JSON descriptor file.

        The file maps plugin names to lists of descriptor entries.

        Args:
            path: Path to the descriptor file.

        Returns:
            SettingsRegistry: Registry holding every descriptor of the file.

        Raises:
            status.RegistryInvalidException: If the file is missing, not valid JSON, or
                contains invalid descriptors.
        """
        path = pathlib.Path(path)
        logging.debug(f'Loading setting registry from "{path}"')
        if not path.exists():
            raise status.RegistryInvalidException(f'Descriptor file not found: {path}')

        try:
            with path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (OSError, json.JSONDecodeError) as ex:
            raise status.RegistryInvalidException(f'Could not read {path}: {ex}') from ex

        if not isinstance(data, dict):
            raise status.RegistryInvalidException(f'{path} must contain a mapping of plugins.')

        registry = cls()
        try:
            for plugin, entries in data.items():
                if not isinstance(entries, list):
                    raise TypeError(f'Descriptors of "{plugin}" must be a list.')
                registry.register_plugin(plugin, [descriptor_from_dict(plugin, e) for e in entries])
        except (TypeError, ValueError) as ex:
            raise status.RegistryInvalidException(str(ex)) from ex

        logging.debug(f'Loaded {len(registry)} setting descriptors from {len(registry.plugins())} plugins.')
        return registry

    def register(self, descriptor: SettingDescriptor) -> None:
        """Add a descriptor.

        Raises:
            ValueError: If the ``(plugin, name)`` pair is already registered.
        """
        if descriptor.key in self._descriptors:
            msg = f'Setting "{descriptor.plugin}/{descriptor.name}" is already registered.'
            logging.error(msg)
            raise ValueError(msg)
        self._descriptors[descriptor.key] = descriptor

    def register_plugin(self, plugin: str, descriptors: List[SettingDescriptor]) -> None:
        """Install the settings of a plugin."""
        for descriptor in descriptors:
            if descriptor.plugin != plugin:
                raise ValueError(f'Descriptor "{descriptor.name}" belongs to "{descriptor.plugin}", not "{plugin}".')
            self.register(descriptor)
        logging.debug(f'Registered {len(descriptors)} settings for "{plugin}".')

    def unregister_plugin(self, plugin: str) -> int:
        """Remove every setting of a plugin.

        Returns:
            int: Number of removed descriptors.
        """
        keys = [k for k in self._descriptors if k[0] == plugin]
        for k in keys:
            del self._descriptors[k]
        logging.debug(f'Unregistered {len(keys)} settings of "{plugin}".')
        return len(keys)

    def lookup(self, plugin: str, name: str) -> Optional[SettingDescriptor]:
        """Return the descriptor of a setting, or None if it is not installed."""
        return self._descriptors.get((plugin, name))

    def all(self) -> Tuple[SettingDescriptor, ...]:
        """Return the currently installed descriptors in registration order."""
        return tuple(self._descriptors.values())

    def plugins(self) -> List[str]:
        """Return the installed plugin names in registration order."""
        return list(dict.fromkeys(k[0] for k in self._descriptors))
