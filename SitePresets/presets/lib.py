import dataclasses
import logging
from typing import List, Optional, Union

from PySide6 import QtCore

from ..settings import config as config_module
from ..settings import lib
from ..status import status
from . import codec
from .diff import Classification, DiffEngine, DiffEntry
from .store import AppliedItem, ApplicationRecord, Preset, PresetStore, PresetSummary


@dataclasses.dataclass
class ApplicationResult:
    """
    Outcome of applying a preset.

    ``applied`` holds the entries that were written, or would have been written when
    simulating. ``skipped`` holds every other entry with its classification. Both keep the
    order of the preset's settings.
    """
    applied: List[DiffEntry] = dataclasses.field(default_factory=list)
    skipped: List[DiffEntry] = dataclasses.field(default_factory=list)
    simulate: bool = False
    application_id: Optional[int] = None

    @property
    def status(self) -> status.Status:
        return status.Status.Okay if self.applied else status.Status.NothingToDo

    def failed(self) -> List[DiffEntry]:
        return [e for e in self.skipped if e.classification is Classification.SkippedWriteFailed]


class PresetsAPI(QtCore.QObject):
    """
    Exports, stores, imports, compares and applies presets.

    The registry, live configuration and store are passed in explicitly, so the same engine
    runs against a real site or against test fixtures.
    """

    presetAdded = QtCore.Signal(int)
    presetRemoved = QtCore.Signal(int)
    presetAboutToBeApplied = QtCore.Signal(int)
    presetApplied = QtCore.Signal(int)

    def __init__(self,
                 registry: lib.SettingsRegistry,
                 config: config_module.LiveConfig,
                 store: PresetStore,
                 site_version: Optional[str] = None) -> None:
        super().__init__()
        self.registry = registry
        self.config = config
        self.store = store
        self.site_version = site_version
        self.diff_engine = DiffEngine(registry)

    @classmethod
    def from_paths(cls, paths: config_module.ConfigPaths, read_only=()) -> 'PresetsAPI':
        """Create an API wired to the registry, live configuration and database of ``paths``."""
        return cls(
            registry=lib.SettingsRegistry.from_file(paths.registry_path),
            config=config_module.ConfigAPI(paths.config_path, read_only=read_only),
            store=PresetStore(paths.db_path),
        )

    def _get(self, preset_id: int) -> Preset:
        preset = self.store.get(preset_id)
        if preset is None:
            raise status.PresetNotFoundException(f'No preset with id {preset_id}.')
        return preset

    def _source_version(self) -> str:
        from .. import __version__
        return self.site_version or self.config.get(lib.CORE_PLUGIN, 'version') or __version__

    def capture(self) -> List[codec.SettingValue]:
        """Return the live value of every registered setting that has one, in registry order."""
        live = self.config.values()
        values = []
        for descriptor in self.registry.all():
            value = live.get(descriptor.key)
            if value is None:
                continue
            values.append(codec.SettingValue(
                plugin=descriptor.plugin,
                name=descriptor.name,
                value=value,
                visible_value=lib.visible_value(descriptor, value),
            ))
        return values

    def export(self,
               name: Optional[str] = None,
               comments: Optional[str] = None,
               author: Optional[str] = None,
               include_sensitive: bool = False) -> int:
        """Store the current configuration as a new preset.

        Sensitive values are withheld unless ``include_sensitive`` is set. Withheld values
        are gone for good: the stored preset cannot restore them.

        Returns:
            int: The new preset id.
        """
        exported_at = codec.now_str()
        metadata = codec.SnapshotMetadata(
            name=name or f'Preset {exported_at[:19]}',
            comments=comments or '',
            author=author or '',
            exported_at=exported_at,
            source_version=self._source_version(),
        )
        snapshot = codec.Snapshot(metadata=metadata, values=tuple(self.capture()))
        document = codec.encode(snapshot, registry=self.registry, include_sensitive=include_sensitive)
        preset_id = self.store.create(codec.decode(document), metadata.name)

        logging.info(f'Exported preset {preset_id} "{metadata.name}" ({len(snapshot)} settings).')
        self.presetAdded.emit(preset_id)
        return preset_id

    def download(self, preset_id: int) -> bytes:
        """Return the preset document of a stored preset.

        Raises:
            status.PresetNotFoundException: If the preset does not exist.
        """
        preset = self._get(preset_id)
        # Sensitive values were already withheld when the preset was stored
        return codec.encode(preset.snapshot, include_sensitive=True).encode('utf-8')

    def import_(self, document: Union[str, bytes], name: Optional[str] = None) -> Preset:
        """Store a preset document as a new preset.

        The document is fully decoded before anything is stored.

        Args:
            document: The preset document.
            name: Preset name. Defaults to the name stored in the document.

        Raises:
            status.MalformedDocumentException: If the document cannot be decoded.
        """
        snapshot = codec.decode(document)
        preset_id = self.store.create(snapshot, name or snapshot.name)
        preset = self._get(preset_id)

        logging.info(f'Imported preset {preset_id} "{preset.name}" ({len(snapshot)} settings).')
        self.presetAdded.emit(preset_id)
        return preset

    def delete(self, preset_id: int) -> bool:
        """Permanently delete a preset.

        Raises:
            status.PresetNotFoundException: If the preset does not exist.
        """
        if not self.store.delete(preset_id):
            raise status.PresetNotFoundException(f'No preset with id {preset_id}.')
        logging.info(f'Deleted preset {preset_id}.')
        self.presetRemoved.emit(preset_id)
        return True

    def list(self, id: Optional[int] = None, name: Optional[str] = None) -> List[PresetSummary]:
        """Return preset summaries, optionally filtered by id and/or name."""
        return self.store.list(id=id, name=name)

    def compare(self, preset_id: int) -> List[DiffEntry]:
        """Diff a preset against the live configuration without applying anything.

        Raises:
            status.PresetNotFoundException: If the preset does not exist.
        """
        return self.diff_engine.diff(self._get(preset_id).snapshot, self.config.values())

    def apply(self, preset_id: int, simulate: bool = False) -> ApplicationResult:
        """Apply a preset to the live configuration.

        Each applicable setting is written on its own. A rejected write moves that setting to
        ``skipped`` as ``SkippedWriteFailed`` and the remaining settings are still attempted;
        settings written before it stay written. If the application cannot be recorded in
        the store, the result is still returned with ``application_id`` set to None.

        Args:
            preset_id: The preset to apply.
            simulate: Classify only. Nothing is written and no history is recorded.

        Returns:
            ApplicationResult: The applied and skipped settings.

        Raises:
            status.PresetNotFoundException: If the preset does not exist.
            status.StoreUnavailableException: If the preset cannot be loaded.
        """
        preset = self._get(preset_id)
        if not simulate:
            self.presetAboutToBeApplied.emit(preset_id)

        entries = self.diff_engine.diff(preset.snapshot, self.config.values())
        result = ApplicationResult(simulate=simulate)
        history: List[AppliedItem] = []

        for entry in entries:
            if not entry.is_applicable:
                result.skipped.append(entry)
                continue
            if simulate:
                result.applied.append(entry)
                continue

            try:
                self.config.set(entry.plugin, entry.name, entry.new_value)
            except Exception as ex:  # Any rejected write is reported per setting
                logging.warning(f'Could not apply "{entry.plugin}/{entry.name}": {ex}')
                result.skipped.append(dataclasses.replace(
                    entry,
                    classification=Classification.SkippedWriteFailed,
                    reason=str(ex),
                ))
                continue

            result.applied.append(entry)
            history.append(AppliedItem(entry.plugin, entry.name, entry.old_value, entry.new_value))

        if history:
            # Live writes are already done at this point
            try:
                result.application_id = self.store.record_application(preset_id, history)
            except status.StoreUnavailableException as ex:
                logging.error(f'Applied preset {preset_id} but could not record the application: {ex}')

        logging.info(
            f'{"Simulated" if simulate else "Applied"} preset {preset_id} "{preset.name}": '
            f'{len(result.applied)} applied, {len(result.skipped)} skipped.'
        )
        if not simulate:
            self.presetApplied.emit(preset_id)
        return result

    def applications(self, preset_id: int) -> List[ApplicationRecord]:
        """Return the application history of a preset, oldest first.

        Raises:
            status.PresetNotFoundException: If the preset does not exist.
        """
        self._get(preset_id)
        return self.store.applications(preset_id)

    def revert(self, application_id: int) -> ApplicationResult:
        """Write back the values a recorded application replaced.

        Settings that had no value before the application are unset again. Settings that no
        longer exist or already hold the previous value are skipped.

        Raises:
            status.ApplicationNotFoundException: If the application record does not exist.
        """
        record = self.store.application(application_id)
        if record is None:
            raise status.ApplicationNotFoundException(f'No application with id {application_id}.')

        result = ApplicationResult()
        for item in record.items:
            current = self.config.get(item.plugin, item.name)
            descriptor = self.registry.lookup(item.plugin, item.name)

            def _entry(classification: Classification, reason: str = '') -> DiffEntry:
                render = (lambda v: lib.visible_value(descriptor, v)) if descriptor else (lambda v: v or '')
                return DiffEntry(
                    plugin=item.plugin,
                    name=item.name,
                    old_value=current,
                    new_value=item.old_value,
                    old_visible_value=render(current),
                    new_visible_value=render(item.old_value),
                    classification=classification,
                    reason=reason,
                    visible_name=descriptor.label if descriptor else item.name,
                )

            if descriptor is None:
                result.skipped.append(_entry(Classification.SkippedUnknownSetting))
                continue
            if lib.values_equal(descriptor, current, item.old_value):
                result.skipped.append(_entry(Classification.SkippedIdentical))
                continue

            try:
                if item.old_value is None:
                    self.config.unset(item.plugin, item.name)
                else:
                    self.config.set(item.plugin, item.name, item.old_value)
            except Exception as ex:  # Any rejected write is reported per setting
                logging.warning(f'Could not revert "{item.plugin}/{item.name}": {ex}')
                result.skipped.append(_entry(Classification.SkippedWriteFailed, str(ex)))
                continue
            result.applied.append(_entry(Classification.Applicable))

        logging.info(
            f'Reverted application {application_id} of preset {record.preset_id}: '
            f'{len(result.applied)} restored, {len(result.skipped)} skipped.'
        )
        return result
