"""
Tests for catalog ranking, the weight table and address lookup.
"""

import json

import pytest

from orderdesk.ordering.catalog import (
    DEFAULT_WEIGHTS,
    AddressEntry,
    CatalogItem,
    MatchProfile,
    MatchWeights,
    load_weights,
    rank_addresses,
    rank_catalog,
    resolve_address,
    score_item,
    threshold_for,
)


class TestRankCatalog:

    def test_single_item_scores_high(self):
        """A brand plus grade query finds the one matching item."""
        catalog = [CatalogItem(code="A", memo="Mobil Delvac MX 15W40 Galon")]
        result = rank_catalog("mobil 15w40", catalog)
        assert len(result) == 1
        assert result[0].item.code == "A"
        assert result[0].score >= 0.7

    def test_best_match_first(self, catalog):
        result = rank_catalog("mobil 15w40", catalog)
        assert result[0].item.code == "MOIL15W40"

    def test_sorted_and_capped(self, catalog):
        result = rank_catalog("aceite", catalog)
        assert len(result) == DEFAULT_WEIGHTS.max_results
        scores = [c.score for c in result]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.parametrize("profile", list(MatchProfile))
    def test_everything_above_threshold(self, catalog, profile):
        query = "delo 15w40"
        limit = threshold_for(query, profile)
        result = rank_catalog(query, catalog, profile)
        assert result
        assert all(c.score > limit for c in result)

    def test_raised_threshold_excludes(self, catalog):
        strict = MatchWeights(search_threshold=1.0)
        result = rank_catalog("mobil 15w40", catalog, MatchProfile.SEARCH, strict)
        codes = [c.item.code for c in result]
        assert "MOIL15W40" in codes
        # "Mobil Super 5W30 Galon" scores 0.7
        assert "MOIL5W30" not in codes
        assert all(c.score > 1.0 for c in result)

    def test_ties_keep_catalog_order(self):
        catalog = [CatalogItem(code="A", memo="Delo"), CatalogItem(code="B", memo="Delo")]
        result = rank_catalog("delo", catalog)
        assert [c.item.code for c in result] == ["A", "B"]

    def test_blank_query(self, catalog):
        assert rank_catalog("   ", catalog) == []


class TestProfiles:

    def test_code_only_counts_for_search(self):
        item = CatalogItem(code="CBXM", memo="Caja de Mistyk")
        assert rank_catalog("cbxm", [item], MatchProfile.SEARCH)
        assert rank_catalog("cbxm", [item], MatchProfile.ADD) == []

    def test_special_keywords_only_for_quick(self):
        item = CatalogItem(memo="Mobil Delvac 1300 Synthetic")
        quick = score_item("synthetic", item, MatchProfile.QUICK)
        add = score_item("synthetic", item, MatchProfile.ADD)
        assert quick - add == pytest.approx(DEFAULT_WEIGHTS.special_keyword_bonus)

    def test_adaptive_threshold(self):
        assert threshold_for("ab", MatchProfile.ADD) == DEFAULT_WEIGHTS.short_query_threshold
        assert threshold_for("delo 400", MatchProfile.QUICK) == DEFAULT_WEIGHTS.long_query_threshold
        assert threshold_for("ab", MatchProfile.SEARCH) == DEFAULT_WEIGHTS.search_threshold


class TestWeights:

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "weights.json"
        path.write_text(json.dumps({"max_results": 3, "brand_keywords": ["delo"]}), encoding="utf-8")
        weights = load_weights(path)
        assert weights.max_results == 3
        assert weights.brand_keywords == ["delo"]
        assert weights.keyword_bonus == DEFAULT_WEIGHTS.keyword_bonus

    def test_missing_file_means_defaults(self, tmp_path):
        assert load_weights(tmp_path / "nope.json") is DEFAULT_WEIGHTS
        assert load_weights(None) is DEFAULT_WEIGHTS


class TestAddresses:

    def test_contained_name(self, addresses):
        assert resolve_address("ABC Trucking Co", addresses) == "123 Main St, Austin, TX"

    def test_word_overlap_in_any_order(self, addresses):
        assert resolve_address("Rapida Logistica SA", addresses) == "789 Pine Ave, Dallas, TX"

    def test_no_match(self, addresses):
        assert resolve_address("zzqx", addresses) == ""
        assert resolve_address("", addresses) == ""

    def test_ranked_descending(self):
        directory = [
            AddressEntry(customer_name="Transportes Norte", address="1"),
            AddressEntry(customer_name="Transportes XYZ", address="2"),
        ]
        ranked = rank_addresses("transportes xyz", directory)
        assert [e.address for e, _ in ranked] == ["2", "1"]
