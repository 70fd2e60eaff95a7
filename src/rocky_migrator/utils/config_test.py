#!/usr/bin/env python3
"""
Tests for the configuration manager
"""

import os
import json
import unittest
import tempfile

from rocky_migrator.utils.config import Config, parse_value, DEFAULT_BACKUP_DIR


class TestConfig(unittest.TestCase):
    """Test Config against a temporary file"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "rocky-migrator", "config.json")

    def tearDown(self):
        self.tmp.cleanup()

    def test_defaults_without_file(self):
        """Test defaults are used and nothing is written on load"""
        config = Config(self.path)

        self.assertEqual(config.get_backup_dir(), DEFAULT_BACKUP_DIR)
        self.assertEqual(config.get("root_dir"), "/")
        self.assertFalse(config.get("include_user_data"))
        self.assertFalse(os.path.exists(self.path))

    def test_file_overrides_defaults(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w') as f:
            json.dump({"backup_dir": "/srv/backup", "include_user_data": True}, f)

        config = Config(self.path)

        self.assertEqual(config.get_backup_dir(), "/srv/backup")
        self.assertTrue(config.get("include_user_data"))
        self.assertEqual(config.get("root_dir"), "/")

    def test_unknown_keys_ignored(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w') as f:
            json.dump({"colour": "blue", "root_dir": "/mnt/sysimage"}, f)

        config = Config(self.path)

        self.assertIsNone(config.get("colour"))
        self.assertEqual(config.get("root_dir"), "/mnt/sysimage")

    def test_corrupt_file_falls_back(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w') as f:
            f.write("{not json")

        config = Config(self.path)

        self.assertEqual(config.get_backup_dir(), DEFAULT_BACKUP_DIR)

    def test_set_persists(self):
        config = Config(self.path)

        self.assertTrue(config.set("state_file", "/tmp/state.json"))

        with open(self.path, 'r') as f:
            self.assertEqual(json.load(f)["state_file"], "/tmp/state.json")
        self.assertEqual(Config(self.path).get("state_file"), "/tmp/state.json")

    def test_set_backup_dir_creates_directory(self):
        config = Config(self.path)
        backup_dir = os.path.join(self.tmp.name, "backups")

        self.assertTrue(config.set_backup_dir(backup_dir))

        self.assertTrue(os.path.isdir(backup_dir))
        self.assertEqual(config.get_backup_dir(), backup_dir)

    def test_parse_value(self):
        self.assertTrue(parse_value("include_user_data", "yes"))
        self.assertFalse(parse_value("include_user_data", "false"))
        self.assertEqual(parse_value("extra_backup_paths", "/etc/motd, /opt/app/"), ["/etc/motd", "/opt/app/"])
        self.assertEqual(parse_value("backup_dir", "/srv"), "/srv")


if __name__ == '__main__':
    unittest.main()
