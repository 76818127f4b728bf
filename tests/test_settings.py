# tests/test_settings.py
"""
Unit tests for SitePresets.settings.lib and SitePresets.settings.config

Run with:
    python -m unittest tests.test_settings
"""
import json

from SitePresets.settings import lib
from SitePresets.settings.config import ConfigAPI
from SitePresets.signals import signals
from SitePresets.status import status
from tests.base import BaseTestCase, SignalSpy, mute_signals


class RegistryTests(BaseTestCase):

    def test_shipped_registry_loads(self):
        self.assertEqual(len(self.registry), 16)
        self.assertEqual(self.registry.plugins(), ['core', 'auth_ldap', 'mod_forum'])

    def test_lookup(self):
        d = self.registry.lookup('core', 'lang')
        self.assertIsNotNone(d)
        self.assertEqual(d.type, lib.SettingType.Select)
        self.assertEqual(d.default, 'en')
        self.assertEqual(d.label, 'Default language')
        self.assertEqual(d.choice_map()['de'], 'Deutsch')

    def test_lookup_unknown_returns_none(self):
        self.assertIsNone(self.registry.lookup('core', 'doesnotexist'))
        self.assertIsNone(self.registry.lookup('local_missing', 'sitename'))

    def test_password_is_always_sensitive(self):
        self.assertTrue(self.registry.lookup('core', 'smtppass').sensitive)
        self.assertTrue(self.registry.lookup('auth_ldap', 'bind_pw').sensitive)

    def test_sensitive_flag(self):
        self.assertTrue(self.registry.lookup('mod_forum', 'apikey').sensitive)
        self.assertFalse(self.registry.lookup('core', 'sitename').sensitive)

    def test_all_keeps_registration_order(self):
        keys = [d.key for d in self.registry.all()]
        self.assertEqual(keys[0], ('core', 'sitename'))
        self.assertEqual(keys[-1], ('mod_forum', 'apikey'))
        core = [k for k in keys if k[0] == 'core']
        self.assertEqual(keys[:len(core)], core)

    def test_all_reflects_plugin_changes(self):
        before = self.registry.all()
        self.assertEqual(self.registry.unregister_plugin('auth_ldap'), 4)
        after = self.registry.all()

        self.assertEqual(len(before), 16)
        self.assertEqual(len(after), 12)
        self.assertIsNone(self.registry.lookup('auth_ldap', 'host_url'))

        self.registry.register_plugin('local_new', [
            lib.SettingDescriptor('local_new', 'flag', lib.SettingType.Boolean, '0'),
        ])
        self.assertEqual(self.registry.all()[-1].key, ('local_new', 'flag'))
        self.assertIn('local_new', self.registry.plugins())

    def test_register_duplicate_raises(self):
        with self.assertRaises(ValueError):
            self.registry.register(lib.SettingDescriptor('core', 'sitename', lib.SettingType.Text))

    def test_register_plugin_rejects_foreign_descriptor(self):
        with self.assertRaises(ValueError):
            self.registry.register_plugin('local_a', [
                lib.SettingDescriptor('local_b', 'x', lib.SettingType.Text),
            ])

    def _write_registry(self, data) -> None:
        self.path = self.root / 'registry.json'
        with self.path.open('w', encoding='utf-8') as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)

    def test_from_file_rejects_invalid_files(self):
        cases = {
            'not json': 'oops',
            'not a mapping': [],
            'entries not a list': {'core': {'name': 'x'}},
            'missing type': {'core': [{'name': 'x', 'default': ''}]},
            'unknown type': {'core': [{'name': 'x', 'type': 'float', 'default': ''}]},
            'default not a string': {'core': [{'name': 'x', 'type': 'text', 'default': 1}]},
            'select without choices': {'core': [{'name': 'x', 'type': 'select', 'default': 'a'}]},
            'default outside choices': {
                'core': [{'name': 'x', 'type': 'select', 'default': 'z', 'choices': {'a': 'A'}}]
            },
            'invalid boolean default': {'core': [{'name': 'x', 'type': 'boolean', 'default': 'maybe'}]},
            'separator in multiselect choice': {
                'core': [{'name': 'x', 'type': 'multiselect', 'default': '', 'choices': {'a,b': 'AB'}}]
            },
            'unknown field': {'core': [{'name': 'x', 'type': 'text', 'default': '', 'widget': 'big'}]},
            'duplicate setting': {
                'core': [
                    {'name': 'x', 'type': 'text', 'default': ''},
                    {'name': 'x', 'type': 'text', 'default': ''},
                ]
            },
        }
        for label, data in cases.items():
            with self.subTest(label):
                self._write_registry(data)
                with mute_signals():
                    with self.assertRaises(status.RegistryInvalidException):
                        lib.SettingsRegistry.from_file(self.path)

    def test_from_file_missing(self):
        with mute_signals():
            with self.assertRaises(status.RegistryInvalidException):
                lib.SettingsRegistry.from_file(self.root / 'missing.json')


class TypedValueTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.boolean = self.registry.lookup('core', 'enablewebservices')
        self.select = self.registry.lookup('core', 'lang')
        self.multi = self.registry.lookup('core', 'allowedmimetypes')
        self.text = self.registry.lookup('core', 'sitename')
        self.password = self.registry.lookup('core', 'smtppass')

    def test_normalize_boolean(self):
        for raw in ('1', 'true', 'TRUE', ' yes ', 'on'):
            self.assertEqual(lib.normalize(self.boolean, raw), '1', raw)
        for raw in ('0', 'false', 'No', 'off', ''):
            self.assertEqual(lib.normalize(self.boolean, raw), '0', raw)
        with self.assertRaises(ValueError):
            lib.normalize(self.boolean, 'maybe')

    def test_normalize_select(self):
        self.assertEqual(lib.normalize(self.select, 'fr'), 'fr')
        with self.assertRaises(ValueError):
            lib.normalize(self.select, 'xx')

    def test_normalize_multiselect(self):
        self.assertEqual(lib.normalize(self.multi, 'png, pdf,png'), 'pdf,png')
        self.assertEqual(lib.normalize(self.multi, ''), '')
        with self.assertRaises(ValueError):
            lib.normalize(self.multi, 'pdf,exe')

    def test_normalize_text_is_verbatim(self):
        self.assertEqual(lib.normalize(self.text, ' My site '), ' My site ')
        self.assertEqual(lib.normalize(self.password, 'p@ss'), 'p@ss')

    def test_normalize_rejects_non_strings(self):
        with self.assertRaises(ValueError):
            lib.normalize(self.text, 1)  # type: ignore[arg-type]

    def test_values_equal(self):
        self.assertTrue(lib.values_equal(self.boolean, '1', 'true'))
        self.assertTrue(lib.values_equal(self.boolean, 'off', '0'))
        self.assertFalse(lib.values_equal(self.boolean, '1', '0'))
        self.assertTrue(lib.values_equal(self.multi, 'pdf,png', 'png,pdf'))
        self.assertFalse(lib.values_equal(self.text, 'a', 'A'))
        self.assertTrue(lib.values_equal(self.text, None, None))
        self.assertFalse(lib.values_equal(self.text, None, ''))
        self.assertFalse(lib.values_equal(self.boolean, '0', None))

    def test_values_equal_falls_back_to_raw_strings(self):
        self.assertTrue(lib.values_equal(self.select, 'zz', 'zz'))
        self.assertFalse(lib.values_equal(self.select, 'zz', 'en'))

    def test_visible_value(self):
        self.assertEqual(lib.visible_value(self.select, 'de'), 'Deutsch')
        self.assertEqual(lib.visible_value(self.select, 'zz'), 'zz')
        self.assertEqual(lib.visible_value(self.boolean, 'true'), 'Yes')
        self.assertEqual(lib.visible_value(self.boolean, '0'), 'No')
        self.assertEqual(lib.visible_value(self.multi, 'png,pdf'), 'PDF document, PNG image')
        self.assertEqual(lib.visible_value(self.text, 'My site'), 'My site')
        self.assertEqual(lib.visible_value(self.text, None), '')

    def test_visible_value_masks_sensitive(self):
        self.assertEqual(lib.visible_value(self.password, 'secret'), lib.MASKED_VALUE)
        self.assertEqual(lib.visible_value(self.password, ''), '')


class ConfigAPITests(BaseTestCase):

    def test_template_values(self):
        self.assertEqual(self.config.get('core', 'lang'), 'en')
        self.assertEqual(self.config.get('mod_forum', 'maxattachments'), '9')
        self.assertIsNone(self.config.get('core', 'smtppass'))
        self.assertIsNone(self.config.get('local_missing', 'x'))
        self.assertEqual(self.config.values()[('core', 'theme')], 'boost')

    def test_set_persists(self):
        self.config.set('core', 'sitename', 'My site')
        self.config.set('local_new', 'flag', '1')
        reloaded = self.reload_config()
        self.assertEqual(reloaded.get('core', 'sitename'), 'My site')
        self.assertEqual(reloaded.get('local_new', 'flag'), '1')

    def test_values_is_a_copy(self):
        values = self.config.values()
        values[('core', 'lang')] = 'de'
        self.assertEqual(self.config.get('core', 'lang'), 'en')

    def test_unset(self):
        self.config.unset('core', 'sitename')
        self.assertIsNone(self.config.get('core', 'sitename'))
        self.assertIsNone(self.reload_config().get('core', 'sitename'))
        # Missing values are ignored
        self.config.unset('core', 'sitename')

    def test_read_only_rejects_writes(self):
        api = ConfigAPI(self.config_paths.config_path, read_only=[('core', 'theme')])
        with mute_signals():
            with self.assertRaises(status.WriteFailureException):
                api.set('core', 'theme', 'classic')
            with self.assertRaises(status.WriteFailureException):
                api.unset('core', 'theme')
        self.assertEqual(api.get('core', 'theme'), 'boost')
        self.assertEqual(self.reload_config().get('core', 'theme'), 'boost')

    def test_set_rejects_non_strings(self):
        with mute_signals():
            with self.assertRaises(status.WriteFailureException):
                self.config.set('core', 'sitename', 42)  # type: ignore[arg-type]
        self.assertEqual(self.config.get('core', 'sitename'), '')

    def test_set_emits_setting_changed(self):
        spy = SignalSpy(signals.settingChanged)
        try:
            self.config.set('core', 'lang', 'fr')
            self.config.unset('core', 'lang')
        finally:
            spy.disconnect()
        self.assertEqual(spy.calls, [('core', 'lang', 'fr'), ('core', 'lang', None)])

    def test_block_signals(self):
        spy = SignalSpy(signals.settingChanged)
        try:
            self.config.block_signals(True)
            self.config.set('core', 'lang', 'fr')
        finally:
            self.config.block_signals(False)
            spy.disconnect()
        self.assertEqual(spy.calls, [])

    def test_invalid_files(self):
        cases = {
            'not json': 'oops',
            'not a mapping': '[]',
            'section not a dict': '{"core": "x"}',
            'value not a string': '{"core": {"x": 1}}',
        }
        for label, text in cases.items():
            with self.subTest(label):
                self.config_paths.config_path.write_text(text, encoding='utf-8')
                with mute_signals():
                    with self.assertRaises(status.ConfigInvalidException):
                        ConfigAPI(self.config_paths.config_path)

    def test_missing_file(self):
        with mute_signals():
            with self.assertRaises(status.ConfigInvalidException):
                ConfigAPI(self.root / 'missing.json')
