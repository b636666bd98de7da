import os
import tempfile
import unittest

import yaml

from alarmsync.core.exceptions import RuleConfigError
from alarmsync.core.rule_config import RuleDefaults, load_rules_config, save_rules_config, validate_rules_config
from alarmsync.schemas.rule_schemas import Duration, MasterRule, RateRule, SimpleRule

SAMPLE_CONFIG = """
ruleSets:
  diRules:
    enabled: true
    rules:
      - tag: 1
        condition: equals
        value: 1
        description: Lamp failure
        alarmType: MAJOR
        prerequisite:
          tag: Tag6
          value: 1
        duration: 5m
  aiRules:
    enabled: true
    rules:
      - tag: Tag3
        condition: lt
        value: 180
        description: Low voltage
        thresholdPercent: 60
        windowHours: 12
        duration:
          value: 2h
          mode: continuous
masterRules:
  - tag: Tag16
    value: 0
    priority: 1
    description: Power failure
  - tag: Tag8
    value: 0
    priority: 2
    description: Communication failure
    duration: 30m
closedStatuses: [closed, resolved]
"""


class TestRuleConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "sync-config.yaml")
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(SAMPLE_CONFIG)

    def tearDown(self):
        self.tmp.cleanup()

    def test_load_parses_rule_variants(self):
        config = load_rules_config(self.path)
        simple, rate = list(config.rule_sets.active_rules())
        self.assertIsInstance(simple, SimpleRule)
        self.assertEqual(simple.tag, "1")
        self.assertEqual(simple.duration.to_timedelta().total_seconds(), 300)
        self.assertIsInstance(rate, RateRule)
        self.assertEqual((rate.threshold_percent, rate.window_hours), (60, 12))
        self.assertEqual(str(rate.duration), "2h")
        self.assertTrue(all(isinstance(r, MasterRule) for r in config.master_rules))
        self.assertTrue(config.master_rules[0].is_blocking)
        self.assertEqual(config.closed_statuses, ["CLOSED", "RESOLVED"])

    def test_derived_tag_sets(self):
        config = load_rules_config(self.path)
        self.assertEqual(config.tags_of_interest(), {"1", "Tag6", "Tag3", "Tag16", "Tag8"})
        self.assertEqual(config.analog_tags(), {"Tag3"})
        self.assertEqual(config.max_window_hours(), 12)
        self.assertEqual(config.master_rule_for_tag("Tag8").priority, 2)

    def test_defaults(self):
        config = validate_rules_config({})
        self.assertEqual(config.winner_policy, "single")
        self.assertEqual(config.closed_statuses, list(RuleDefaults.CLOSED_STATUSES))
        self.assertEqual(config.computed_faults.communication.tag, RuleDefaults.COMM_TAG)
        self.assertEqual(config.max_window_hours(), 0)

    def test_missing_file(self):
        with self.assertRaises(RuleConfigError):
            load_rules_config(os.path.join(self.tmp.name, "absent.yaml"))

    def test_invalid_content(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("masterRules:\n  - tag: Tag8\n    value: 0\n    condition: sometimes\n")
        with self.assertRaises(RuleConfigError):
            load_rules_config(self.path)
        with self.assertRaises(RuleConfigError):
            validate_rules_config(["not", "a", "mapping"])

    def test_bad_duration(self):
        with self.assertRaises(ValueError):
            Duration.model_validate("soon")

    def test_save_round_trip_keeps_aliases(self):
        with open(self.path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        target = os.path.join(self.tmp.name, "nested", "rules.yaml")
        save_rules_config(target, raw)

        with open(target, encoding="utf-8") as f:
            written = yaml.safe_load(f)
        self.assertIn("masterRules", written)
        self.assertEqual(written["ruleSets"]["aiRules"]["rules"][0]["thresholdPercent"], 60)
        self.assertEqual(load_rules_config(target).master_rules[1].duration, Duration.model_validate("30m"))

    def test_save_rejects_invalid_without_writing(self):
        target = os.path.join(self.tmp.name, "rejected.yaml")
        with self.assertRaises(RuleConfigError):
            save_rules_config(target, {"winnerPolicy": "everything"})
        self.assertFalse(os.path.exists(target))


if __name__ == '__main__':
    unittest.main()
