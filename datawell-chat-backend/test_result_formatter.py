"""
Tests for chat-text formatting of executed rows.
"""

import unittest
from decimal import Decimal

from result_formatter import format_bmi_listing_footer, format_pagination_footer, format_query_result


def record(**overrides):
    row = {
        "id": "1", "age": 30, "gender": "Male", "height": 170, "weight": 80,
        "city": "Austin", "country": "USA", "zip": "73301", "occupation": "Teacher",
        "education": "Bachelors", "smoking": "No", "drinks_per_week": 2,
    }
    row.update(overrides)
    return row


class TestAggregates(unittest.TestCase):

    def test_empty(self):
        self.assertEqual(format_query_result([]), "No data found.")

    def test_count(self):
        self.assertEqual(format_query_result([{"count": 33}]), "Found 33 records matching your criteria.")

    def test_avg_two_decimals(self):
        self.assertEqual(format_query_result([{"avg": Decimal("71.456")}]), "Average: 71.46")
        self.assertEqual(format_query_result([{"avg": None}]), "Average: N/A")

    def test_average_bmi_one_decimal(self):
        self.assertEqual(format_query_result([{"average_bmi": 24.04}]), "Average BMI: 24.0")

    def test_sum_max_min(self):
        self.assertEqual(format_query_result([{"sum": 120}]), "Total: 120")
        self.assertEqual(format_query_result([{"max": 64}]), "Maximum: 64")
        self.assertEqual(format_query_result([{"min": 18}]), "Minimum: 18")

    def test_grouped_counts_are_listed(self):
        rows = [{"gender": "Male", "count": 2}, {"gender": "Female", "count": 2}]
        text = format_query_result(rows)
        self.assertTrue(text.startswith("Found 2 records:\n\n1. Male, N/A years old"))
        self.assertNotIn("matching your criteria", text)

    def test_key_order(self):
        self.assertEqual(format_query_result([{"avg": 2, "count": 5}]), "Found 5 records matching your criteria.")


class TestRecordListing(unittest.TestCase):

    def test_single_record_layout(self):
        text = format_query_result([record()])
        expected = (
            "Found 1 records:\n\n"
            "1. Male, 30 years old\n"
            "   Location: Austin, USA\n"
            "   Job: Teacher | Education: Bachelors\n"
            "   Height: 170cm, Weight: 80kg\n"
            "   BMI: 27.7 (Overweight)\n"
            "   Smoking: No | Drinks/week: 2\n\n"
            "Quick Stats:\n"
            "• Average Age: 30.0\n"
            "• Male: 1, Female: 0\n"
            "• Smokers: 0/1 (0%)\n"
            "• Average BMI: 27.7\n"
            "• BMI Categories: Overweight: 1\n"
        )
        self.assertEqual(text, expected)

    def test_missing_values_show_na(self):
        text = format_query_result([record(gender=None, age=0, height=None, drinks_per_week=0)])
        self.assertIn("1. N/A, N/A years old", text)
        self.assertIn("Height: N/Acm, Weight: 80kg", text)
        self.assertIn("Drinks/week: N/A", text)
        self.assertNotIn("BMI:", text.split("Quick Stats")[0])
        self.assertNotIn("Average BMI", text)

    def test_precomputed_bmi_used_without_height(self):
        text = format_query_result([record(height=None, bmi=22.1)])
        self.assertIn("   BMI: 22.1 (Normal weight)", text)

    def test_negative_height_gets_no_bmi_line(self):
        text = format_query_result([record(height=-170, weight=70, bmi=24.2)])
        self.assertIn("Height: -170cm, Weight: 70kg", text)
        self.assertNotIn("BMI:", text.split("Quick Stats")[0])
        self.assertNotIn("BMI Categories", text)

    def test_start_index_numbers_records(self):
        text = format_query_result([record(id="11"), record(id="12")], start_index=11)
        self.assertIn("11. Male, 30 years old", text)
        self.assertIn("12. Male, 30 years old", text)
        self.assertNotIn("\n1. ", text)

    def test_quick_stats_split(self):
        rows = [record(smoking="Yes"), record(gender="Female", age=20), record(gender="Other", age=40)]
        text = format_query_result(rows)
        self.assertIn("• Male: 1, Female: 1", text)
        self.assertIn("• Smokers: 1/3 (33%)", text)
        self.assertIn("• Average Age: 30.0", text)

    def test_more_than_ten_rows(self):
        rows = [record(id=str(i)) for i in range(12)]
        text = format_query_result(rows)
        self.assertTrue(text.startswith("Found 12 records. Here are the first 10:\n\nFound 10 records:"))
        self.assertIn("10. Male", text)
        self.assertNotIn("11. Male", text)

    def test_deterministic(self):
        rows = [record(), record(gender="Female")]
        self.assertEqual(format_query_result(rows), format_query_result(rows))


class TestFooters(unittest.TestCase):

    def test_pagination_footer(self):
        footer = format_pagination_footer(11, 20, 33)
        self.assertIn("📊 **Showing users 11-20 of 33 users with BMI data**", footer)
        self.assertIn('• "Show me users with BMI from 21-30"', footer)

    def test_listing_footer_only_when_more(self):
        self.assertEqual(format_bmi_listing_footer(10, 10), "")
        footer = format_bmi_listing_footer(10, 25)
        self.assertIn("📊 **Showing 10 of 25 users with BMI data**", footer)
        self.assertIn('• "Show me users with BMI from 11-20"', footer)


if __name__ == "__main__":
    unittest.main()
