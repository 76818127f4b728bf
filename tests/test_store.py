# tests/test_store.py
"""
Unit tests for SitePresets.presets.store

Run with:
    python -m unittest tests.test_store
"""
import sqlite3

from SitePresets.presets.store import AppliedItem, PresetStore, Table
from SitePresets.status import status
from tests.base import BaseTestCase, make_snapshot, mute_signals

ROWS = [
    ('core', 'sitename', 'My site'),
    ('core', 'smtppass', None),
    ('local_unknown', 'foo', 'bar'),
]


class PresetStoreTests(BaseTestCase):

    def test_schema_created(self):
        with sqlite3.connect(self.config_paths.db_path) as conn:
            tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        for table in Table:
            self.assertIn(table.value, tables)

    def test_reopen_existing_database(self):
        preset_id = self.store.create(make_snapshot(ROWS))
        store = PresetStore(self.config_paths.db_path)
        self.assertIsNotNone(store.get(preset_id))

    def test_create_and_get(self):
        snapshot = make_snapshot(ROWS, name='Stored')
        preset_id = self.store.create(snapshot)
        preset = self.store.get(preset_id)

        self.assertEqual(preset.id, preset_id)
        self.assertEqual(preset.name, 'Stored')
        self.assertTrue(preset.created_at)
        self.assertEqual(preset.snapshot, snapshot)
        self.assertIsNone(preset.snapshot.values[1].value)

    def test_record_name_overrides_snapshot_name(self):
        preset_id = self.store.create(make_snapshot(ROWS, name='Original'), name='Renamed')
        preset = self.store.get(preset_id)
        self.assertEqual(preset.name, 'Renamed')
        self.assertEqual(preset.snapshot.name, 'Renamed')

    def test_get_missing(self):
        self.assertIsNone(self.store.get(42))

    def test_empty_snapshot(self):
        preset_id = self.store.create(make_snapshot([]))
        self.assertEqual(len(self.store.get(preset_id).snapshot), 0)
        self.assertEqual(self.store.list(id=preset_id)[0].setting_count, 0)

    def test_ids_are_never_reused(self):
        first = self.store.create(make_snapshot(ROWS))
        second = self.store.create(make_snapshot(ROWS))
        self.assertGreater(second, first)

        self.assertTrue(self.store.delete(second))
        third = self.store.create(make_snapshot(ROWS))
        self.assertGreater(third, second)

    def test_list(self):
        a = self.store.create(make_snapshot(ROWS, name='A'))
        b = self.store.create(make_snapshot(ROWS[:1], name='B'))
        c = self.store.create(make_snapshot(ROWS, name='A'))

        self.assertEqual([p.id for p in self.store.list()], [a, b, c])
        self.assertEqual([p.id for p in self.store.list(name='A')], [a, c])
        self.assertEqual([p.id for p in self.store.list(id=b)], [b])
        self.assertEqual(self.store.list(id=b)[0].setting_count, 1)
        self.assertEqual(self.store.list(id=a, name='B'), [])
        self.assertEqual(self.store.list(id=999), [])

    def test_delete(self):
        preset_id = self.store.create(make_snapshot(ROWS))
        self.assertTrue(self.store.delete(preset_id))
        self.assertIsNone(self.store.get(preset_id))
        self.assertFalse(self.store.delete(preset_id))

    def test_applications(self):
        preset_id = self.store.create(make_snapshot(ROWS))
        items = [
            AppliedItem('core', 'sitename', 'Old', 'My site'),
            AppliedItem('core', 'smtphosts', None, 'mail.example.com'),
        ]
        first = self.store.record_application(preset_id, items)
        second = self.store.record_application(preset_id, items[:1])

        record = self.store.application(first)
        self.assertEqual(record.preset_id, preset_id)
        self.assertTrue(record.applied_at)
        self.assertEqual(record.items, tuple(items))

        self.assertEqual([r.id for r in self.store.applications(preset_id)], [first, second])
        self.assertIsNone(self.store.application(999))

    def test_delete_removes_history(self):
        preset_id = self.store.create(make_snapshot(ROWS))
        application_id = self.store.record_application(
            preset_id, [AppliedItem('core', 'sitename', 'Old', 'My site')]
        )
        self.store.delete(preset_id)
        self.assertIsNone(self.store.application(application_id))
        self.assertEqual(self.store.applications(preset_id), [])

    def test_not_a_database(self):
        path = self.root / 'garbage.db'
        path.write_bytes(b'x' * 1024)
        with mute_signals():
            with self.assertRaises(status.StoreUnavailableException):
                PresetStore(path)

    def test_incompatible_schema(self):
        path = self.root / 'old.db'
        conn = sqlite3.connect(path)
        conn.execute(f'CREATE TABLE {Table.Presets.value} (id INTEGER PRIMARY KEY, title TEXT)')
        conn.commit()
        conn.close()

        with mute_signals():
            with self.assertRaises(status.StoreUnavailableException):
                PresetStore(path)
