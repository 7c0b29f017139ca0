import random
import unittest

from issuebridge.issue_keys import (
    extract_from_texts,
    extract_issue_keys,
    extract_project_keys,
    project_key_of,
)

_SPECIAL_CHARS = list(" !\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~\n\t")


class ExtractIssueKeysTests(unittest.TestCase):
    def test_incorrect_types_return_empty_list(self) -> None:
        for value in (2, "", [], {}, None, 4.2, b"JRA-123"):
            self.assertEqual(extract_issue_keys(value), [])

    def test_different_casing_yields_one_upper_key(self) -> None:
        for value in ("JRA-123", "jra-123", "jRa-123"):
            self.assertEqual(extract_issue_keys(value), ["JRA-123"])

    def test_project_key_starting_with_number_is_rejected(self) -> None:
        for value in ("2PAC-123", "42-123"):
            self.assertEqual(extract_issue_keys(value), [])

    def test_digits_allowed_after_first_character(self) -> None:
        self.assertEqual(extract_issue_keys("J42-123"), ["J42-123"])
        self.assertEqual(extract_issue_keys("b4l-123"), ["B4L-123"])
        self.assertEqual(extract_issue_keys("Ja9-123"), ["JA9-123"])

    def test_alphanumeric_key_from_branch(self) -> None:
        self.assertEqual(extract_issue_keys("feature/J3-123-my-feature"), ["J3-123"])

    def test_single_character_project_key_is_rejected(self) -> None:
        self.assertEqual(extract_issue_keys("F-67-my-feature"), [])

    def test_same_issue_is_not_extracted_twice(self) -> None:
        self.assertEqual(
            extract_issue_keys("JRA-123 with suffix spaces and JRA-123 TBD-123"),
            ["JRA-123", "TBD-123"],
        )
        self.assertEqual(extract_issue_keys("jra-123 then JRA-123"), ["JRA-123"])

    def test_keys_wrapped_in_special_characters(self) -> None:
        rng = random.Random(1234)
        for char in _SPECIAL_CHARS:
            other = rng.choice(_SPECIAL_CHARS)
            with self.subTest(char=char):
                self.assertEqual(extract_issue_keys(f"{char}JRA-123{char}"), ["JRA-123"])
                self.assertEqual(extract_issue_keys(f"{other}JRA-123{char}"), ["JRA-123"])
                self.assertEqual(extract_issue_keys(f"{char}JRA-123{other}"), ["JRA-123"])

    def test_unicode_keys_including_non_latin(self) -> None:
        cases = {
            "tête-123": "TÊTE-123",
            # RTL scripts as escapes so the text direction stays readable
            "b\u063A\u062E-123": "B\u063A\u062E-123",
            "c\u05E7-123": "C\u05E7-123",
            "tกฒ-123": "Tกฒ-123",
            "シtヌ-123": "シTヌ-123",
            "r汉字-123": "R汉字-123",
            "шъ-123": "ШЪ-123",
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(extract_issue_keys(text), [expected])

    def test_key_inside_longer_string(self) -> None:
        for value in (
            "feature-branch/JRA-123",
            "prefix-kebab-JRA-123",
            "JRA-123-suffix-kebab",
            "JRA-123 with suffix spaces",
            "prefix spaces with JRA-123",
        ):
            with self.subTest(value=value):
                self.assertEqual(extract_issue_keys(value), ["JRA-123"])

    def test_key_glued_to_letters_is_not_extracted(self) -> None:
        self.assertEqual(extract_issue_keys("2JRA-123"), [])
        self.assertEqual(extract_issue_keys("JRA-123abc"), [])

    def test_multiple_keys_in_first_occurrence_order(self) -> None:
        self.assertEqual(
            extract_issue_keys("JRA-123 Jra-456-jra-901\n[bah-001]"),
            ["JRA-123", "JRA-456", "JRA-901", "BAH-001"],
        )


class ProjectKeyTests(unittest.TestCase):
    def test_project_key_of_strips_number(self) -> None:
        self.assertEqual(project_key_of("J42-123"), "J42")
        self.assertEqual(project_key_of("jra-9"), "JRA")

    def test_extract_project_keys_is_distinct_and_ordered(self) -> None:
        self.assertEqual(
            extract_project_keys(["TBD-1", "JRA-2", "TBD-3"]),
            ["TBD", "JRA"],
        )

    def test_extract_from_texts_dedupes_across_fields(self) -> None:
        self.assertEqual(
            extract_from_texts("JRA-1 fix", None, "feature/jra-1-and-TBD-2", ""),
            ["JRA-1", "TBD-2"],
        )


if __name__ == "__main__":
    unittest.main()
