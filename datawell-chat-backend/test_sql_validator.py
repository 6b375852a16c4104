"""
SQL Validator Tests
===================

Rule order: mutating keywords, SELECT structure, schema identifiers,
bare bmi references.

Run with: python -m unittest test_sql_validator.py
"""

import unittest

from bmi import BMI_SELECT_SQL
from sql_generator import AVERAGE_BMI_SQL, BMI_COUNT_SQL, bmi_listing_sql
from sql_validator import SQLValidator, ValidationResult, validate_sql


class TestMutatingStatements(unittest.TestCase):

    def test_drop_and_update_rejected(self):
        for sql in ("DROP TABLE users", "UPDATE users SET age=1", "delete from users"):
            result = validate_sql(sql)
            self.assertFalse(result.valid, sql)
            self.assertEqual(result.error, "Dangerous operation detected")

    def test_keyword_inside_select_rejected(self):
        result = validate_sql("SELECT * FROM users; DROP TABLE users")
        self.assertFalse(result.valid)

    def test_substring_match_is_lexical(self):
        # 'Walterboro' contains ALTER; accepted over-rejection
        result = validate_sql("SELECT * FROM users WHERE city = 'Walterboro'")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "Dangerous operation detected")


class TestStructure(unittest.TestCase):

    def test_must_start_with_select(self):
        result = validate_sql("WITH x AS (SELECT 1) SELECT * FROM x")
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "Query must start with SELECT")

    def test_empty_statement(self):
        self.assertFalse(validate_sql("").valid)


class TestSchemaIdentifiers(unittest.TestCase):

    def test_disallowed_pseudo_columns(self):
        result = validate_sql("SELECT first_name, email FROM users")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "Invalid column(s): email, first_name")

    def test_pseudo_column_as_whole_word_only(self):
        self.assertTrue(validate_sql("SELECT occupation FROM users WHERE occupation = 'Engineer'").valid)

    def test_unknown_column(self):
        result = validate_sql("SELECT favourite_color FROM users")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "Unknown column(s): favourite_color")

    def test_unknown_table(self):
        result = validate_sql("SELECT * FROM patients")
        self.assertFalse(result.valid)
        self.assertIn("patients", result.error)

    def test_functions_aliases_and_literals(self):
        valid = [
            "SELECT COUNT(*) FROM users WHERE smoking = 'Yes'",
            "SELECT AVG(weight) AS avg FROM users WHERE gender = 'Male'",
            "SELECT age AS age_years FROM users ORDER BY age_years DESC LIMIT 5",
            "SELECT u.age FROM users u WHERE u.smoking = 'No'",
            "SELECT gender, COUNT(*) AS total FROM users GROUP BY gender",
        ]
        for sql in valid:
            self.assertTrue(validate_sql(sql).valid, sql)


class TestBareBMI(unittest.TestCase):

    def test_bare_bmi_rejected(self):
        result = validate_sql("SELECT bmi FROM users")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "Invalid column reference: bmi")
        self.assertIn("ROUND(weight / ((height/100.0) * (height/100.0)), 1) AS bmi", result.suggestion)

    def test_computed_alias_accepted(self):
        sql = "SELECT ROUND(weight/((height/100.0)*(height/100.0)),1) AS bmi FROM users"
        self.assertTrue(validate_sql(sql).valid)

    def test_alias_reference_after_declaration(self):
        sql = f"SELECT *, {BMI_SELECT_SQL} FROM users ORDER BY bmi DESC LIMIT 10"
        self.assertTrue(validate_sql(sql).valid)

    def test_bare_references_helper(self):
        self.assertEqual(SQLValidator.bare_bmi_references("SELECT x AS bmi FROM users"), [])
        self.assertEqual(SQLValidator.bare_bmi_references("SELECT bmi, BMI FROM users"), ["bmi", "BMI"])
        self.assertEqual(SQLValidator.bare_bmi_references("SELECT bmi(1)"), [])


class TestDeterministicStatements(unittest.TestCase):

    def test_builtin_statements_pass(self):
        for sql in (AVERAGE_BMI_SQL, BMI_COUNT_SQL, bmi_listing_sql(10), bmi_listing_sql(5, 20)):
            self.assertTrue(validate_sql(sql).valid, sql)

    def test_simple_listing(self):
        self.assertTrue(validate_sql("SELECT * FROM users LIMIT 10").valid)


class TestExplain(unittest.TestCase):

    def test_rejection_text(self):
        text = validate_sql("DROP TABLE users").explain()
        self.assertIn("🔍 **What went wrong:** Dangerous operation detected", text)
        self.assertIn("💡 **Why:** I can only help with SELECT queries for data exploration", text)
        self.assertIn("🔧 **How to fix:** Ask me to show or analyze data instead of modifying it", text)
        self.assertIn('• "How many users are there?"', text)

    def test_valid_result_has_no_explanation(self):
        self.assertEqual(ValidationResult(valid=True, sql="SELECT 1").explain(), "")


if __name__ == "__main__":
    unittest.main()
