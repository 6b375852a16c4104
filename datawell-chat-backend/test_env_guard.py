"""
Tests for the startup checks.
"""

import os
import unittest
from contextlib import redirect_stdout
from io import StringIO
from unittest.mock import patch

from env_guard import (
    mask,
    validate_database_url,
    validate_env_vars,
    validate_environment,
    validate_packages,
)

VALID_ENV = {"GROQ_API_KEY": "gsk_abcdefghijklmnop", "DATABASE_URL": "sqlite://"}


class TestEnvGuard(unittest.TestCase):

    def test_packages_importable(self):
        errors, info = validate_packages()
        self.assertEqual(errors, [])
        self.assertTrue(any("sqlparse" in line for line in info))

    def test_missing_variables(self):
        with patch.dict(os.environ, {}, clear=True):
            errors = validate_env_vars()
        self.assertEqual(len(errors), 2)
        self.assertIn("GROQ_API_KEY", errors[0])

    def test_groq_key_format(self):
        with patch.dict(os.environ, {**VALID_ENV, "GROQ_API_KEY": "sk-wrong"}, clear=True):
            errors = validate_env_vars()
        self.assertEqual(len(errors), 1)
        self.assertIn("INVALID GROQ_API_KEY FORMAT", errors[0])

    def test_database_url(self):
        self.assertIsNone(validate_database_url("postgresql://user:pw@localhost:5432/datawell"))
        self.assertIn("INVALID DATABASE_URL", validate_database_url("not a url"))
        self.assertIn("UNSUPPORTED DATABASE BACKEND: mysql", validate_database_url("mysql://localhost/datawell"))

    def test_strict_raises(self):
        with patch.dict(os.environ, {}, clear=True), redirect_stdout(StringIO()):
            with self.assertRaises(EnvironmentError):
                validate_environment(strict=True)
            self.assertFalse(validate_environment(strict=False))

    def test_valid_environment(self):
        with patch.dict(os.environ, VALID_ENV, clear=True), redirect_stdout(StringIO()) as out:
            self.assertTrue(validate_environment())
        self.assertIn("gsk_...mnop", out.getvalue())
        self.assertIn("ALL CHECKS PASSED", out.getvalue())

    def test_mask(self):
        self.assertEqual(mask("short"), "***")


if __name__ == "__main__":
    unittest.main()
