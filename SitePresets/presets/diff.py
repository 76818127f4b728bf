"""Setting-level differences between a snapshot and a target configuration.

Each source row is classified, in this order:

1. ``SkippedUnknownSetting`` – the setting is not installed on this site.
2. ``SkippedSensitive`` – the value was withheld when the document was encoded.
3. ``SkippedIdentical`` – the target already holds an equal value (type-aware).
4. ``SkippedIncompatibleType`` – the value cannot be read as the declared type.
5. ``Applicable`` – everything else.

``SkippedWriteFailed`` is never produced here: the application engine assigns it when
the live configuration rejects a write.
"""

import dataclasses
import enum
import logging
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd

from ..settings import lib
from .codec import SettingValue, Snapshot

REPORT_COLUMNS: List[str] = [
    'classification', 'plugin', 'visible_name', 'new_visible_value', 'old_visible_value', 'reason',
]


class Classification(enum.StrEnum):
    """Applicability of a single setting difference."""
    Applicable = 'Applicable'
    SkippedUnknownSetting = 'SkippedUnknownSetting'
    SkippedSensitive = 'SkippedSensitive'
    SkippedIdentical = 'SkippedIdentical'
    SkippedIncompatibleType = 'SkippedIncompatibleType'
    SkippedWriteFailed = 'SkippedWriteFailed'


@dataclasses.dataclass(frozen=True)
class DiffEntry:
    plugin: str
    name: str
    old_value: Optional[str]
    new_value: Optional[str]
    old_visible_value: str
    new_visible_value: str
    classification: Classification
    reason: str = ''
    visible_name: str = ''

    @property
    def key(self) -> Tuple[str, str]:
        return self.plugin, self.name

    @property
    def is_applicable(self) -> bool:
        return self.classification is Classification.Applicable


class DiffEngine:
    """Compares snapshots against a target using a setting registry."""

    def __init__(self, registry: lib.SettingsRegistry) -> None:
        self.registry = registry

    def diff(self,
             source: Snapshot,
             target: Mapping[Tuple[str, str], str]) -> List[DiffEntry]:
        """Classify every setting of ``source`` against ``target``.

        Args:
            source: Snapshot holding the proposed values.
            target: Current values keyed by ``(plugin, name)``. Missing keys mean the
                setting currently has no value.

        Returns:
            list[DiffEntry]: One entry per distinct ``(plugin, name)``, in source order. If a
            key repeats, its last value is used at the position of its first occurrence.
        """
        rows: Dict[Tuple[str, str], SettingValue] = {}
        for item in source.values:
            if item.key in rows:
                logging.warning(f'"{item.plugin}/{item.name}" appears more than once in "{source.name}".')
            rows[item.key] = item

        entries = [self._classify(item, target.get(item.key)) for item in rows.values()]

        counts = {c: 0 for c in Classification}
        for e in entries:
            counts[e.classification] += 1
        logging.debug(
            f'Diff of "{source.name}": '
            + ', '.join(f'{c.value}={n}' for c, n in counts.items() if n)
        )
        return entries

    def _classify(self, item: SettingValue, current: Optional[str]) -> DiffEntry:
        descriptor = self.registry.lookup(item.plugin, item.name)

        if descriptor is None:
            return DiffEntry(
                plugin=item.plugin,
                name=item.name,
                old_value=current,
                new_value=item.value,
                old_visible_value=current or '',
                new_visible_value=item.visible_value,
                classification=Classification.SkippedUnknownSetting,
                visible_name=item.name,
            )

        old_visible = lib.visible_value(descriptor, current)

        def _entry(classification: Classification, reason: str = '') -> DiffEntry:
            return DiffEntry(
                plugin=item.plugin,
                name=item.name,
                old_value=current,
                new_value=item.value,
                old_visible_value=old_visible,
                new_visible_value=lib.visible_value(descriptor, item.value),
                classification=classification,
                reason=reason,
                visible_name=descriptor.label,
            )

        if item.omitted:
            return _entry(Classification.SkippedSensitive)

        if lib.values_equal(descriptor, item.value, current):
            return _entry(Classification.SkippedIdentical)

        try:
            lib.normalize(descriptor, item.value)
        except ValueError as ex:
            return _entry(Classification.SkippedIncompatibleType, str(ex))

        return _entry(Classification.Applicable)


def to_frame(entries: List[DiffEntry]) -> pd.DataFrame:
    """Render diff entries as a report table.

    Args:
        entries: Entries to render, in display order.

    Returns:
        pd.DataFrame: One row per entry with the columns of :data:`REPORT_COLUMNS`.
    """
    if not entries:
        return pd.DataFrame(columns=REPORT_COLUMNS)
    frame = pd.DataFrame([dataclasses.asdict(e) for e in entries])
    frame['classification'] = frame['classification'].astype(str)
    return frame[REPORT_COLUMNS].reset_index(drop=True)
