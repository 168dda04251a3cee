"""Tests for operator settings validation."""

import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from kubescan.core.config import Settings


class TestSettings(unittest.TestCase):
    """Defaults and environment parsing."""

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.DEFAULT_PLUGINS_NAMESPACE, "zora-system")
        self.assertEqual(settings.DEFAULT_PLUGINS_NAMES, ["popeye"])
        self.assertEqual(settings.RECONCILE_INTERVAL_SEC, 300.0)
        self.assertEqual(settings.SERVICE_ACCOUNT_NAME, "zora-plugins")

    def test_plugin_names_from_comma_string(self) -> None:
        with patch.dict(os.environ, {"DEFAULT_PLUGINS_NAMES": "popeye, kubescape"}, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.DEFAULT_PLUGINS_NAMES, ["popeye", "kubescape"])

    def test_log_level_normalized(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}, clear=True):
            self.assertEqual(Settings(_env_file=None).LOG_LEVEL, "DEBUG")

    def test_invalid_values(self) -> None:
        for env in (
            {"LOG_LEVEL": "loud"},
            {"DEFAULT_PLUGINS_NAMES": " , "},
            {"RECONCILE_INTERVAL_SEC": "1"},
            {"RETRY_BACKOFF_SEC": "0"},
            {"SERVICE_ACCOUNT_NAME": " "},
        ):
            with patch.dict(os.environ, env, clear=True):
                with self.assertRaises(ValidationError):
                    Settings(_env_file=None)
