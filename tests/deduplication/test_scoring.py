# SPDX-License-Identifier: MIT
"""Tests for completeness scoring and keeper ranking."""

from datetime import datetime

from venue_catalog.deduplication.scoring import rank_members, score_venue
from venue_catalog.models import VenueRecord


def bare_venue(**overrides) -> VenueRecord:
    data = {"id": "v1", "name": "Booth", "slug": "booth", "city": "Springfield", "country": "US"}
    data.update(overrides)
    return VenueRecord(**data)


class TestScoreVenue:
    """Test score_venue()."""

    def test_bare_record_scores_original_slug_only(self):
        assert score_venue(bare_venue()) == 12

    def test_numbered_slug_loses_bonus(self):
        assert score_venue(bare_venue(slug="booth-2")) == 0

    def test_address_quality(self):
        # digit 15, differs from name 10, 20 chars -> 2
        venue = bare_venue(address="123 Main Street, Spr")
        assert score_venue(venue) == 12 + 15 + 10 + 2

    def test_address_length_bonus_is_capped(self):
        venue = bare_venue(address="x" * 500)
        assert score_venue(venue) == 12 + 10 + 10

    def test_content_fields(self):
        venue = bare_venue(
            description="Nice",
            photo_exterior_url="https://img/ext.jpg",
            photo_interior_url="https://img/int.jpg",
            photo_sample_strips=["https://img/strip.jpg"],
        )
        assert score_venue(venue) == 12 + 20 + 15 + 10 + 15

    def test_location_and_machine_fields(self):
        venue = bare_venue(
            latitude=40.0,
            longitude=-74.0,
            postal_code="12345",
            state="IL",
            machine_type="analog",
            photo_type="black-and-white",
            machine_model="Model 11",
            machine_manufacturer="Photo-Me",
            hours="9-5",
            cost="$5",
            features=["wheelchair"],
            geocoded_at=datetime(2024, 1, 1),
        )
        assert score_venue(venue) == 12 + 10 + 3 + 2 + 8 + 5 + 8 + 5 + 7 + 5 + 5 + 5

    def test_source_urls_capped(self):
        assert score_venue(bare_venue(source_urls=["a"])) == 12 + 3
        assert score_venue(bare_venue(source_urls=list("abcdef"))) == 12 + 10

    def test_deterministic(self, make_venue):
        venue = make_venue(description="Booth", latitude=1.0, longitude=2.0)
        assert score_venue(venue) == score_venue(venue)


class TestRankMembers:
    """Test keeper selection and tie-breaks."""

    def test_highest_score_first(self, make_venue):
        poor = make_venue()
        rich = make_venue(description="Has a description")

        ranked = rank_members([poor, rich])

        assert ranked[0].venue is rich

    def test_tie_prefers_original_slug(self):
        # hours 7 + cost 5 make up for the missing slug bonus
        copy = bare_venue(id="a", slug="booth-2", hours="9-5", cost="$5")
        original = bare_venue(id="b", slug="booth")
        assert score_venue(copy) == score_venue(original)

        ranked = rank_members([copy, original])

        assert ranked[0].venue is original

    def test_tie_prefers_earliest_created(self):
        later = bare_venue(id="a", created_at=datetime(2024, 6, 1))
        earlier = bare_venue(id="b", created_at=datetime(2024, 1, 1))

        ranked = rank_members([later, earlier])

        assert ranked[0].venue is earlier

    def test_missing_timestamp_ranks_last(self):
        undated = bare_venue(id="a", created_at=None)
        dated = bare_venue(id="b", created_at=datetime(2024, 1, 1))

        assert rank_members([undated, dated])[0].venue is dated

    def test_tie_falls_back_to_id(self):
        b = bare_venue(id="b")
        a = bare_venue(id="a")

        assert [s.venue.id for s in rank_members([b, a])] == ["a", "b"]

    def test_order_independent(self, make_venue):
        members = [make_venue(), make_venue(description="d"), make_venue(cost="$1")]

        forward = [s.venue.id for s in rank_members(members)]
        backward = [s.venue.id for s in rank_members(list(reversed(members)))]

        assert forward == backward
