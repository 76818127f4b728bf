"""Snapshot data model and the preset document codec.

A preset document is a JSON text with a metadata block and an ordered settings block::

    {
        "format": "sitepresets/1",
        "metadata": {"name": ..., "comments": ..., "author": ..., "exported_at": ..., "source_version": ...},
        "settings": [
            {"plugin": "core", "name": "sitename", "value": "My site", "visible_value": "My site"},
            {"plugin": "core", "name": "smtppass", "value": null, "visible_value": ""}
        ]
    }

A ``null`` value marks a sensitive setting that was withheld at encode time. That decision
is final: decoding cannot recover the value.

Documents can also be written to and read from a ZIP archive holding a single
``preset.json`` member.
"""

import dataclasses
import datetime
import json
import logging
import pathlib
import zipfile
from typing import Any, Dict, Optional, Tuple, Union

from ..settings import lib
from ..status import status

DOCUMENT_FORMAT: str = 'sitepresets/1'
ARCHIVE_FORMAT: str = 'zip'
ARCHIVE_MEMBER: str = 'preset.json'

METADATA_KEYS: Tuple[str, ...] = ('name', 'comments', 'author', 'exported_at', 'source_version')


def now_str() -> str:
    """Return current UTC date and time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclasses.dataclass(frozen=True)
class SettingValue:
    """A captured setting value.

    Attributes:
        plugin: Owning plugin, ``'core'`` for the system.
        name: Setting name.
        value: Raw stored value, or None if it was withheld at encode time.
        visible_value: Human-readable rendering of the value.
    """
    plugin: str
    name: str
    value: Optional[str]
    visible_value: str = ''

    @property
    def key(self) -> Tuple[str, str]:
        return self.plugin, self.name

    @property
    def omitted(self) -> bool:
        return self.value is None


@dataclasses.dataclass(frozen=True)
class SnapshotMetadata:
    name: str
    comments: str = ''
    author: str = ''
    exported_at: str = ''
    source_version: str = ''


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """An immutable, ordered collection of setting values plus metadata."""
    metadata: SnapshotMetadata
    values: Tuple[SettingValue, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable but always store a tuple
        object.__setattr__(self, 'values', tuple(self.values))

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    @property
    def name(self) -> str:
        return self.metadata.name


def encode(snapshot: Snapshot,
           registry: Optional[lib.SettingsRegistry] = None,
           include_sensitive: bool = False) -> str:
    """Serialize a snapshot into a preset document.

    Args:
        snapshot: The snapshot to serialize.
        registry: Used to find sensitive settings. Required unless ``include_sensitive``.
        include_sensitive: Keep the values of sensitive settings in the document.

    Returns:
        str: The JSON document.

    Raises:
        ValueError: If sensitive values must be withheld but no registry was given.
    """
    if not include_sensitive and registry is None:
        raise ValueError('A registry is required to withhold sensitive values.')

    rows = []
    withheld = 0
    for item in snapshot.values:
        value = item.value
        visible = item.visible_value
        if not include_sensitive and value is not None:
            descriptor = registry.lookup(item.plugin, item.name)
            if descriptor is not None and descriptor.sensitive:
                value = None
                visible = ''
                withheld += 1
        rows.append({
            'plugin': item.plugin,
            'name': item.name,
            'value': value,
            'visible_value': visible,
        })

    if withheld:
        logging.debug(f'Withheld {withheld} sensitive values from "{snapshot.name}".')

    md = snapshot.metadata
    document: Dict[str, Any] = {
        'format': DOCUMENT_FORMAT,
        'metadata': {k: getattr(md, k) for k in METADATA_KEYS},
        'settings': rows,
    }
    return json.dumps(document, indent=4, ensure_ascii=False)


def _require_str(data: Dict[str, Any], key: str, where: str, optional: bool = False) -> Optional[str]:
    if key not in data:
        if optional:
            return None
        raise status.MalformedDocumentException(f'{where} is missing "{key}".')
    v = data[key]
    if not isinstance(v, str):
        raise status.MalformedDocumentException(f'{where} field "{key}" must be a string, got {type(v)}.')
    return v


def decode(document: Union[str, bytes]) -> Snapshot:
    """Parse a preset document into a Snapshot.

    Entries are not checked against any registry: settings unknown to this site are carried
    through unchanged.

    Args:
        document: The JSON document, as text or UTF-8 bytes.

    Returns:
        Snapshot: The decoded snapshot, rows in document order.

    Raises:
        status.MalformedDocumentException: If the document is not valid JSON, has the wrong
            format marker, misses metadata fields, or holds unparsable setting rows.
    """
    if isinstance(document, (bytes, bytearray)):
        try:
            document = document.decode('utf-8')
        except UnicodeDecodeError as ex:
            raise status.MalformedDocumentException(f'Document is not UTF-8: {ex}') from ex

    try:
        data = json.loads(document)
    except (TypeError, json.JSONDecodeError) as ex:
        raise status.MalformedDocumentException(f'Invalid JSON: {ex}') from ex

    if not isinstance(data, dict):
        raise status.MalformedDocumentException('Document must be a JSON object.')
    if data.get('format') != DOCUMENT_FORMAT:
        raise status.MalformedDocumentException(
            f'Unsupported format "{data.get("format")}", expected "{DOCUMENT_FORMAT}".'
        )

    md = data.get('metadata')
    if not isinstance(md, dict):
        raise status.MalformedDocumentException('Missing "metadata" block.')
    metadata = SnapshotMetadata(**{k: _require_str(md, k, 'Metadata') for k in METADATA_KEYS})

    rows = data.get('settings')
    if not isinstance(rows, list):
        raise status.MalformedDocumentException('Missing "settings" block.')

    values = []
    for idx, row in enumerate(rows):
        where = f'Setting #{idx}'
        if not isinstance(row, dict):
            raise status.MalformedDocumentException(f'{where} must be an object.')
        plugin = _require_str(row, 'plugin', where)
        name = _require_str(row, 'name', where)
        if not plugin or not name:
            raise status.MalformedDocumentException(f'{where} has an empty plugin or name.')
        if 'value' not in row:
            raise status.MalformedDocumentException(f'{where} is missing "value".')
        value = row['value']
        if value is not None and not isinstance(value, str):
            raise status.MalformedDocumentException(
                f'{where} value must be a string or null, got {type(value)}.'
            )
        visible = _require_str(row, 'visible_value', where, optional=True) or ''
        values.append(SettingValue(plugin=plugin, name=name, value=value, visible_value=visible))

    logging.debug(f'Decoded "{metadata.name}" with {len(values)} settings.')
    return Snapshot(metadata=metadata, values=tuple(values))


def write_file(path: pathlib.Path, document: str) -> pathlib.Path:
    """Write a document to disk, as a ZIP archive if the path ends in ``.zip``.

    Returns:
        pathlib.Path: The written path.
    """
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == f'.{ARCHIVE_FORMAT}':
        with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(ARCHIVE_MEMBER, document)
    else:
        path.write_text(document, encoding='utf-8')
    logging.debug(f'Wrote preset document to {path}')
    return path


def read_file(path: pathlib.Path) -> str:
    """Read a document from a plain file or from a ZIP archive.

    Raises:
        FileNotFoundError: If the path does not exist.
        status.MalformedDocumentException: If the archive is corrupt or lacks the document,
            or the file is not UTF-8 text.
    """
    path = pathlib.Path(path)
    if not path.exists():
        raise FileNotFoundError(f'File not found: {path}')

    if zipfile.is_zipfile(path):
        try:
            with zipfile.ZipFile(path, 'r') as zf:
                if zf.testzip() or ARCHIVE_MEMBER not in zf.namelist():
                    raise status.MalformedDocumentException(f'Missing or corrupt {ARCHIVE_MEMBER} in {path}')
                raw = zf.read(ARCHIVE_MEMBER)
        except zipfile.BadZipFile as ex:
            raise status.MalformedDocumentException(f'Corrupt archive {path}: {ex}') from ex
    else:
        raw = path.read_bytes()

    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError as ex:
        raise status.MalformedDocumentException(f'{path} is not UTF-8 text: {ex}') from ex
