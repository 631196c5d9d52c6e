import json
import os
import tempfile
import unittest

from config_manager import ConfigManager
from models.config_models import ConfigSection, ConfigUpdateRequest


class ConfigManagerTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.path = os.path.join(self.tmp.name, 'config.json')

    def test_defaults_are_created(self):
        manager = ConfigManager(self.path)
        self.assertTrue(os.path.exists(self.path))
        self.assertEqual(manager.matching.header_scan_rows, 30)
        self.assertTrue(manager.matching.enable_vector_fallback)
        self.assertEqual(manager.batch.max_concurrency, 3)

    def test_update_is_persisted(self):
        manager = ConfigManager(self.path)
        ok = manager.update_config(ConfigUpdateRequest(section=ConfigSection.MATCHING,
                                                       values={'header_scan_rows': 50}))
        self.assertTrue(ok)

        with open(self.path, encoding='utf-8') as f:
            self.assertEqual(json.load(f)['matching']['header_scan_rows'], 50)
        self.assertEqual(ConfigManager(self.path).matching.header_scan_rows, 50)

    def test_invalid_value_leaves_config_untouched(self):
        manager = ConfigManager(self.path)
        ok = manager.update_config(ConfigUpdateRequest(section='batch', values={'max_concurrency': 0}))
        self.assertFalse(ok)
        self.assertEqual(manager.batch.max_concurrency, 3)

    def test_unknown_key_is_rejected(self):
        manager = ConfigManager(self.path)
        ok = manager.update_config(ConfigUpdateRequest(section='matching', values={'nope': 1}))
        self.assertFalse(ok)

    def test_reset_to_defaults(self):
        manager = ConfigManager(self.path)
        manager.update_config(ConfigUpdateRequest(section='batch', values={'output_suffix': '_priced'}))
        self.assertEqual(manager.batch.output_suffix, '_priced')

        self.assertTrue(manager.reset_to_defaults())
        self.assertEqual(manager.batch.output_suffix, '_filled')
        self.assertEqual(ConfigManager(self.path).batch.output_suffix, '_filled')

    def test_broken_file_falls_back_to_defaults(self):
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write('{not json')
        manager = ConfigManager(self.path)
        self.assertEqual(manager.matching.header_scan_rows, 30)

    def test_summary(self):
        summary = ConfigManager(self.path).get_config_summary()
        self.assertEqual(summary['matching']['thresholds']['strong_similarity'], 0.9)
        self.assertEqual(summary['batch']['progress_interval_ms'], 500)


if __name__ == '__main__':
    unittest.main()
