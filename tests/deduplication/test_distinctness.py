# SPDX-License-Identifier: MIT
"""Tests for the distinctness classifier."""

from venue_catalog.deduplication.distinctness import (
    DistinctnessClassifier,
    DistinctnessRule,
    Verdict,
    divergent_descriptions,
    divergent_machine_attributes,
    missing_street_detail,
)


class TestDefaultPolicy:
    """Test the standard ordered rule set."""

    def test_plain_duplicates(self, make_venue):
        members = [make_venue(), make_venue()]

        result = DistinctnessClassifier().classify(members)

        assert result.verdict is Verdict.DUPLICATE
        assert result.rule is None
        assert not result.is_distinct

    def test_numbered_venues_are_distinct(self, make_venue):
        """'Arcade I' and 'Arcade II' at one address are two machines."""
        members = [make_venue(name="Arcade I"), make_venue(name="Arcade II")]

        result = DistinctnessClassifier().classify(members)

        assert result.is_distinct
        assert result.rule == "enumerated_names"

    def test_one_enumerated_member_is_enough(self, make_venue):
        members = [make_venue(name="Photo Booth"), make_venue(name="Photo Booth #2")]

        assert DistinctnessClassifier().classify(members).is_distinct

    def test_different_machine_types(self, make_venue):
        members = [
            make_venue(machine_type="analog"),
            make_venue(machine_type="digital"),
        ]

        result = DistinctnessClassifier().classify(members)

        assert result.rule == "divergent_machine_attributes"

    def test_different_machine_models(self, make_venue):
        members = [
            make_venue(machine_model="Model 11"),
            make_venue(machine_model="Model 21"),
        ]

        assert DistinctnessClassifier().classify(members).is_distinct

    def test_divergent_descriptions(self, make_venue):
        members = [
            make_venue(description="Vintage booth."),
            make_venue(description="A restored chemical booth in the back room, four strips for five dollars."),
        ]

        result = DistinctnessClassifier().classify(members)

        assert result.rule == "divergent_descriptions"

    def test_city_only_addresses_are_duplicates(self, make_venue):
        """Without street detail the distinctness signals are not trusted."""
        members = [
            make_venue(name="Beauty Bar", address="Springfield", machine_type="analog"),
            make_venue(name="Beauty Bar", address="Springfield", machine_type="digital"),
        ]

        result = DistinctnessClassifier().classify(members)

        assert result.verdict is Verdict.DUPLICATE
        assert result.rule == "missing_street_detail"

    def test_numbered_venues_without_street_stay_apart(self, make_venue):
        """Different names at a city-only address are not merged by default."""
        members = [
            make_venue(name="Arcade I", address="Springfield"),
            make_venue(name="Arcade II", address="Springfield"),
        ]

        result = DistinctnessClassifier().classify(members)

        assert result.verdict is Verdict.DISTINCT
        assert result.rule == "enumerated_names"

    def test_street_rule_needs_shared_name(self, make_venue):
        members = [
            make_venue(name="Beauty Bar", address="Springfield"),
            make_venue(name="Mamas Bar", address="Springfield"),
        ]

        assert not missing_street_detail(members)
        assert DistinctnessClassifier().classify(members).rule != "missing_street_detail"

    def test_callable(self, make_venue):
        classifier = DistinctnessClassifier()
        members = [make_venue(name="Arcade I"), make_venue(name="Arcade II")]

        assert classifier(members).is_distinct

    def test_from_settings(self, dedup_settings, make_venue):
        dedup_settings.description_divergence_ratio = 10.0
        classifier = DistinctnessClassifier.from_settings(dedup_settings)
        members = [
            make_venue(description="Short."),
            make_venue(description="A much longer description of the same booth."),
        ]

        assert not classifier.classify(members).is_distinct


class TestPredicates:
    """Test individual predicates."""

    def test_machine_attributes_ignore_case_and_blanks(self, make_venue):
        members = [
            make_venue(machine_type="Analog"),
            make_venue(machine_type="analog "),
            make_venue(machine_type=None),
        ]

        assert not divergent_machine_attributes(members)

    def test_descriptions_within_ratio(self, make_venue):
        members = [
            make_venue(description="x" * 100),
            make_venue(description="y" * 140),
        ]

        assert not divergent_descriptions(members, ratio=0.5)

    def test_single_description(self, make_venue):
        members = [make_venue(description="Only one."), make_venue(description=None)]

        assert not divergent_descriptions(members)


class TestCustomRules:
    """Test classifiers with custom rule lists."""

    def test_first_matching_rule_wins(self, make_venue):
        rules = [
            DistinctnessRule("always_duplicate", Verdict.DUPLICATE, lambda members: True),
            DistinctnessRule("always_distinct", Verdict.DISTINCT, lambda members: True),
        ]

        result = DistinctnessClassifier(rules).classify([make_venue(), make_venue()])

        assert result.rule == "always_duplicate"

    def test_empty_rule_list_defaults_to_duplicate(self, make_venue):
        result = DistinctnessClassifier([]).classify([make_venue(), make_venue()])

        assert result.verdict is Verdict.DUPLICATE
