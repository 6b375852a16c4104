"""
Tests for follow-up detection, anchoring and pagination windows.
"""

import unittest

from context_resolver import ContextResolver, FollowUpDetector, Page, is_deflected_question


def turns(*pairs):
    return tuple({"role": role, "content": content} for role, content in pairs)


class TestFollowUpDetector(unittest.TestCase):

    def setUp(self):
        self.detector = FollowUpDetector()

    def test_context_phrase_must_be_whole_message(self):
        self.assertTrue(self.detector.is_context_phrase("  Show them "))
        self.assertFalse(self.detector.is_context_phrase("show them all to me please"))

    def test_detect_kinds(self):
        self.assertEqual(self.detector.detect("How many of them smoke?"), "reference")
        self.assertEqual(self.detector.detect("what about those in Canada"), "reference")
        self.assertEqual(self.detector.detect("users 11-20"), "pagination")
        self.assertEqual(self.detector.detect("show me more"), "pagination")
        self.assertIsNone(self.detector.detect("How many users are there?"))

    def test_extract_explicit_range(self):
        self.assertEqual(self.detector.extract_page("Show me users with BMI from 11-20"), Page(11, 20, 10, 10))
        self.assertEqual(self.detector.extract_page("from 21 to 25"), Page(21, 25, 5, 20))

    def test_extract_next_block(self):
        self.assertEqual(self.detector.extract_page("next page"), Page(11, 20, 10, 10))

    def test_invalid_range(self):
        self.assertIsNone(self.detector.extract_page("users 20-11"))
        self.assertIsNone(self.detector.extract_page("users 0-5"))


class TestContextResolver(unittest.TestCase):

    def setUp(self):
        self.resolver = ContextResolver()

    def test_no_history_declines(self):
        self.assertIsNone(self.resolver.resolve("how many of them smoke", ()))

    def test_not_a_follow_up_declines(self):
        history = turns(("user", "Show me users from California"), ("assistant", "Found 2 records:"))
        self.assertIsNone(self.resolver.resolve("What's the average age?", history))

    def test_anchor_is_latest_substantive_question(self):
        history = turns(
            ("user", "How many users are there?"),
            ("assistant", "Found 33 records matching your criteria."),
            ("user", "Show me users from California"),
            ("assistant", "Found 2 records:"),
        )
        resolution = self.resolver.resolve("How many of them smoke?", history)

        self.assertEqual(resolution.anchor, "Show me users from California")
        self.assertEqual(resolution.kind, "reference")
        self.assertFalse(resolution.is_pagination)
        self.assertIsNone(resolution.page)

    def test_deflected_and_bare_follow_ups_are_skipped(self):
        history = turns(
            ("user", "Show me users who smoke"),
            ("assistant", "Found 4 records:"),
            ("user", "What is their salary?"),
            ("assistant", "I don't have salary or income data in this database."),
            ("user", "show them"),
        )
        resolution = self.resolver.resolve("how many of those are male", history)
        self.assertEqual(resolution.anchor, "Show me users who smoke")

    def test_assistant_turns_never_anchor(self):
        history = turns(("assistant", "Hello! I'm your DataWell assistant."))
        self.assertIsNone(self.resolver.resolve("show them", history))

    def test_pagination_resolution(self):
        history = turns(("user", "Calculate BMI for all users"), ("assistant", "Found 10 records:"))
        resolution = self.resolver.resolve("Show me users with BMI from 11-20", history)

        self.assertTrue(resolution.is_pagination)
        self.assertEqual(resolution.page.limit, 10)
        self.assertEqual(resolution.page.offset, 10)
        self.assertEqual(resolution.page.start, 11)

    def test_pagination_without_window_becomes_reference(self):
        history = turns(("user", "Calculate BMI for all users"),)
        resolution = self.resolver.resolve("users 30-12", history)
        self.assertEqual(resolution.kind, "reference")

    def test_deflection_patterns(self):
        self.assertTrue(is_deflected_question("What is the last name of user 3?"))
        self.assertTrue(is_deflected_question("average income"))
        self.assertFalse(is_deflected_question("average age"))


if __name__ == "__main__":
    unittest.main()
