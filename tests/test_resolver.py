"""Tests for image/flavor/network reference resolution."""

from __future__ import annotations

import unittest

from services.base import ResourceRef
from services.resolver import resolve_reference, resolve_references


class ResolveReferenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.images = [ResourceRef("111", "ubuntu"), ResourceRef("222", "fedora")]
        self.flavors = [ResourceRef("1", "tiny"), ResourceRef("2", "small")]

    def test_exact_id_match(self) -> None:
        self.assertEqual("111", resolve_reference("111", self.images))

    def test_exact_name_match(self) -> None:
        self.assertEqual("222", resolve_reference("fedora", self.images))
        self.assertEqual("2", resolve_reference("small", self.flavors))

    def test_regex_name_match(self) -> None:
        self.assertEqual("222", resolve_reference("/edo/", self.images))
        self.assertEqual("1", resolve_reference("/in/", self.flavors))

    def test_regex_returns_first_match_in_listing_order(self) -> None:
        self.assertEqual("111", resolve_reference("/u|e/", self.images))

    def test_id_match_beats_name_match(self) -> None:
        candidates = [ResourceRef("a", "b"), ResourceRef("b", "c")]

        self.assertEqual("b", resolve_reference("b", candidates))

    def test_name_match_beats_regex_match(self) -> None:
        candidates = [ResourceRef("1", "xx"), ResourceRef("2", "/x/")]

        self.assertEqual("2", resolve_reference("/x/", candidates))

    def test_unmatched_reference_is_passed_through(self) -> None:
        self.assertEqual("debian", resolve_reference("debian", self.images))
        self.assertEqual("/arch/", resolve_reference("/arch/", self.images))

    def test_invalid_pattern_is_passed_through(self) -> None:
        self.assertEqual("/[/", resolve_reference("/[/", self.images))

    def test_single_slash_is_not_a_pattern(self) -> None:
        self.assertEqual("/", resolve_reference("/", self.images))

    def test_resolve_references_keeps_order(self) -> None:
        networks = [ResourceRef("1", "vlan1"), ResourceRef("2", "vlan2")]

        self.assertEqual(["2", "1", "99"], resolve_references(["vlan2", "1", "99"], networks))


if __name__ == "__main__":  # pragma: no cover - convenience
    unittest.main()
