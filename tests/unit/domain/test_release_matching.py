"""Tests for the release matching rules (candidates + scoring rubric)."""

import pytest

from bitrot.domain.entities import MatchStatus
from bitrot.domain.value_objects.release_matching import (
    artist_candidates,
    decide_status,
    normalize,
    parse_hit_title,
    pick_best_hit,
    score_hit,
    split_artists,
    strip_artist_prefix,
    title_candidates,
)


class TestNormalize:
    """Test string normalization for comparisons."""

    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize("Boards Of Canada!") == "boards of canada"

    def test_removes_discogs_disambiguator(self) -> None:
        assert normalize("Burial (2)") == "burial"

    def test_collapses_whitespace(self) -> None:
        assert normalize("  Double   Cup  ") == "double cup"

    def test_empty_values(self) -> None:
        assert normalize(None) == ""
        assert normalize("") == ""


class TestArtistCandidates:
    """Test multi-artist splitting."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Burial + Four Tet", ["Burial", "Four Tet"]),
            ("Moodymann & Theo Parrish", ["Moodymann", "Theo Parrish"]),
            ("A, B / C", ["A", "B", "C"]),
            ("Skee Mask x Zenker Brothers", ["Skee Mask", "Zenker Brothers"]),
            ("Rian Treanor feat. Ryan Trainor", ["Rian Treanor", "Ryan Trainor"]),
            ("Kode9 featuring Spaceape", ["Kode9", "Spaceape"]),
            ("Actress w/ Sampha", ["Actress", "Sampha"]),
        ],
    )
    def test_split_on_separators(self, raw: str, expected: list[str]) -> None:
        assert split_artists(raw) == expected

    def test_x_inside_a_name_is_not_a_separator(self) -> None:
        assert split_artists("Xiu Xiu") == ["Xiu Xiu"]

    def test_dedupes_case_insensitively(self) -> None:
        assert split_artists("Burial & burial") == ["Burial"]

    def test_raw_artist_comes_first(self) -> None:
        assert artist_candidates("Burial + Four Tet") == ["Burial + Four Tet", "Burial", "Four Tet"]

    def test_single_artist_has_one_candidate(self) -> None:
        assert artist_candidates("Burial") == ["Burial"]


class TestTitleCandidates:
    """Test title variant generation."""

    def test_strips_artist_prefix(self) -> None:
        assert strip_artist_prefix("Burial", "Burial - Untrue") == "Untrue"
        assert strip_artist_prefix("Burial", "burial: Untrue") == "Untrue"
        assert strip_artist_prefix("Burial", "Untrue") == "Untrue"

    def test_raw_title_first_then_stripped(self) -> None:
        candidates = title_candidates("Burial - Untrue", "Burial")
        assert candidates[0] == "Burial - Untrue"
        assert "Untrue" in candidates

    def test_soundtrack_markers_removed(self) -> None:
        candidates = title_candidates("Annihilation OST", "Ben Salisbury")
        assert candidates == ["Annihilation OST", "Annihilation"]

    def test_digital_suffix_removed(self) -> None:
        candidates = title_candidates("Rave Tools (Digital)", "Mike Dehnert")
        assert candidates == ["Rave Tools (Digital)", "Rave Tools"]

    def test_no_empty_or_duplicate_variants(self) -> None:
        candidates = title_candidates("OST", "Someone")
        assert "" not in candidates
        assert len(candidates) == len(set(candidates))

    def test_empty_title(self) -> None:
        assert title_candidates("  ", "Burial") == []


class TestScoring:
    """Test the fixed scoring rubric."""

    def test_exact_title_artist_and_year_is_matched(self) -> None:
        hit = {"title": "Boards Of Canada - Geogaddi", "year": 2002}
        score = score_hit("Boards of Canada", "Geogaddi", 2002, hit)

        assert score == 80
        assert decide_status(score) is MatchStatus.MATCHED

    def test_partial_substring_scoring_is_rejected(self) -> None:
        hit = {"title": "Rashad - Double Cup LP"}
        score = score_hit("DJ Rashad", "Double Cup", None, hit)

        assert score == 40
        assert decide_status(score) is MatchStatus.REJECTED

    def test_exact_without_year_is_suggested_not_matched(self) -> None:
        hit = {"title": "Boards Of Canada - Geogaddi", "year": 1999}
        score = score_hit("Boards of Canada", "Geogaddi", 2002, hit)

        assert score == 70
        assert decide_status(score) is MatchStatus.SUGGESTED

    def test_year_as_string_counts(self) -> None:
        hit = {"title": "Burial - Untrue", "year": "2007"}
        assert score_hit("Burial", "Untrue", 2007, hit) == 80

    def test_hit_without_separator_has_no_artist(self) -> None:
        assert parse_hit_title({"title": "Untrue"}) == ("", "Untrue")
        assert score_hit("Burial", "Untrue", None, {"title": "Untrue"}) == 40

    def test_splits_on_first_separator_only(self) -> None:
        assert parse_hit_title({"title": "Burial - Street Halo - EP"}) == (
            "Burial",
            "Street Halo - EP",
        )

    @pytest.mark.parametrize(
        ("score", "status"),
        [
            (100, MatchStatus.MATCHED),
            (75, MatchStatus.MATCHED),
            (74, MatchStatus.SUGGESTED),
            (50, MatchStatus.SUGGESTED),
            (49, MatchStatus.REJECTED),
            (0, MatchStatus.REJECTED),
        ],
    )
    def test_thresholds(self, score: int, status: MatchStatus) -> None:
        assert decide_status(score) is status

    def test_best_hit_wins_and_ties_keep_first(self) -> None:
        hits = [
            {"id": 1, "title": "Burial - Untrue (Remastered)"},
            {"id": 2, "title": "Burial - Untrue", "year": 2007},
            {"id": 3, "title": "Burial - Untrue", "year": 2007},
        ]
        best = pick_best_hit("Burial", "Untrue", 2007, hits)

        assert best is not None
        hit, score = best
        assert hit["id"] == 2
        assert score == 80

    def test_no_hits(self) -> None:
        assert pick_best_hit("Burial", "Untrue", 2007, []) is None
