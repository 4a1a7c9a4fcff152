"""Tests for order text normalization and drink resolution."""

import pytest

from barqueue.services.catalog import DrinkCatalog
from barqueue.services.resolver import DrinkResolver, normalize


class TestNormalize:
    """The prefix/apostrophe/terminator/case pipeline."""

    def test_strips_polite_prefix(self):
        result = normalize("I'd like to order the Margarita!")
        assert result.stripped == "Margarita!"
        assert result.key == "margarita"

    def test_prefix_without_apostrophe_and_curly_apostrophe(self):
        assert normalize("Id like to order the Mojito").key == "mojito"
        assert normalize("I’d like to order the Mojito").key == "mojito"

    def test_removes_apostrophes_inside_text(self):
        assert normalize("Bartender's Choice").key == "bartenders choice"

    def test_strips_trailing_terminators(self):
        assert normalize("Mojito!!! ").key == "mojito"
        assert normalize("mojito ?!.").key == "mojito"
        assert normalize("mojito~").key == "mojito"

    def test_empty_input(self):
        result = normalize("")
        assert result.stripped == ""
        assert result.key == ""


class TestResolve:
    """Exact and substring matching against the catalog."""

    @pytest.mark.parametrize("text", ["Margarita", "MARGARITA", "margarita.", "Margarita!"])
    def test_display_name_any_case_and_punctuation(self, resolver: DrinkResolver, text: str):
        entry = resolver.resolve(text)
        assert entry is not None
        assert entry.canonical_id == "margarita"

    def test_every_display_name_resolves_to_its_entry(self, resolver: DrinkResolver, catalog: DrinkCatalog):
        for entry in catalog.snapshot():
            assert resolver.resolve(entry.display_name) == entry
            assert resolver.resolve(entry.display_name.upper() + "!") == entry

    def test_alias_key(self, resolver: DrinkResolver):
        assert resolver.resolve("marg").canonical_id == "margarita"
        assert resolver.resolve("G&T").canonical_id == "gin_tonic"

    def test_polite_prefix_resolves(self, resolver: DrinkResolver):
        assert resolver.resolve("I'd like to order the Old Fashioned!").canonical_id == "old_fashioned"

    def test_substring_match_on_canonical_id(self, resolver: DrinkResolver):
        assert resolver.resolve("two mojito please").canonical_id == "mojito"

    def test_substring_tie_breaks_by_catalog_order(self, resolver: DrinkResolver):
        # Both drinks appear; margarita comes first in the catalog
        assert resolver.resolve("a mojito and a margarita").canonical_id == "margarita"

    def test_no_match(self, resolver: DrinkResolver):
        assert resolver.resolve("asdf no such drink") is None
        assert resolver.resolve("") is None

    def test_uses_reloaded_snapshot(self, catalog: DrinkCatalog):
        resolver = DrinkResolver(catalog)
        catalog.replace([])
        assert resolver.resolve("Margarita") is None


class TestNoise:

    def test_onboarding_phrase_is_noise(self, resolver: DrinkResolver):
        assert resolver.is_noise("Please take a minute to read our menu")

    def test_order_is_not_noise(self, resolver: DrinkResolver):
        assert not resolver.is_noise("Margarita")
