import random
import re
import string
import unittest

from src.common.naming import MAX_NAME_LENGTH, claim_name, sanitize_name

DNS_LABEL = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
NOISY_ALPHABET = string.ascii_letters + string.digits + "-_./~ :@ÄßÉ" + "--__"


def _random_part(max_len: int = 40) -> str:
    return "".join(random.choices(NOISY_ALPHABET, k=random.randint(0, max_len)))


class SanitizeNameTests(unittest.TestCase):
    def test_already_valid_name_is_unchanged(self) -> None:
        self.assertEqual(sanitize_name("pvc-ns1-web-0-data"), "pvc-ns1-web-0-data")

    def test_lowercases_and_replaces_underscores(self) -> None:
        self.assertEqual(sanitize_name("My_Pod_Name"), "my-pod-name")

    def test_invalid_characters_become_single_hyphens(self) -> None:
        self.assertEqual(sanitize_name("a.b//c  d"), "a-b-c-d")

    def test_leading_and_trailing_hyphens_are_trimmed(self) -> None:
        self.assertEqual(sanitize_name("--_data_--"), "data")

    def test_empty_and_symbol_only_inputs_give_empty_name(self) -> None:
        self.assertEqual(sanitize_name(""), "")
        self.assertEqual(sanitize_name(None), "")
        self.assertEqual(sanitize_name("___"), "")

    def test_truncation_strips_hyphen_exposed_by_cut(self) -> None:
        value = "a" * 62 + "-bbbb"
        result = sanitize_name(value)
        self.assertEqual(result, "a" * 62)
        self.assertTrue(DNS_LABEL.match(result))

    def test_truncation_happens_after_collapsing(self) -> None:
        value = "a" + "-" * 100 + "b"
        self.assertEqual(sanitize_name(value), "a-b")

    def test_no_limit_keeps_full_length(self) -> None:
        value = "x" * 100
        self.assertEqual(sanitize_name(value, max_length=None), value)

    def test_random_inputs_always_yield_valid_bounded_names(self) -> None:
        random.seed(1234)
        for _ in range(500):
            value = _random_part(120)
            result = sanitize_name(value)
            self.assertLessEqual(len(result), MAX_NAME_LENGTH)
            if result:
                self.assertRegex(result, DNS_LABEL)


class ClaimNameTests(unittest.TestCase):
    def test_short_names_follow_prefix_convention(self) -> None:
        self.assertEqual(claim_name("ns1", "web-0", "data"), "pvc-ns1-web-0-data")

    def test_derivation_is_deterministic(self) -> None:
        first = claim_name("Team_A", "Web.Server-0", "cache_dir")
        second = claim_name("Team_A", "Web.Server-0", "cache_dir")
        self.assertEqual(first, second)
        self.assertEqual(first, "pvc-team-a-web-server-0-cache-dir")

    def test_long_names_are_bounded_and_valid(self) -> None:
        name = claim_name("namespace", "p" * 80, "data")
        self.assertEqual(len(name), MAX_NAME_LENGTH)
        self.assertRegex(name, DNS_LABEL)
        self.assertTrue(name.startswith("pvc-namespace-ppp"))

    def test_long_names_sharing_a_prefix_do_not_collide(self) -> None:
        pod = "statefulset-with-a-really-long-generated-name-0123456789"
        self.assertNotEqual(claim_name("ns", pod, "data"), claim_name("ns", pod, "logs"))

    def test_symbol_only_parts_still_yield_valid_claim_name(self) -> None:
        name = claim_name("___", "...", "~~")
        self.assertEqual(name, "pvc")
        self.assertRegex(name, DNS_LABEL)

    def test_random_parts_always_yield_valid_claim_names(self) -> None:
        random.seed(99)
        for _ in range(300):
            name = claim_name(_random_part(), _random_part(80), _random_part())
            self.assertLessEqual(len(name), MAX_NAME_LENGTH)
            self.assertRegex(name, DNS_LABEL)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
