"""Unit tests for enumerated case-field normalization."""

from __future__ import annotations

import pytest

from cinecrm.canonical.case_fields import (
    normalize_call_status,
    normalize_rma_status,
    normalize_rma_type,
    normalize_severity,
)


class TestCallStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Observation", "open"),
            ("Waiting Cust Responses", "in_progress"),
            ("RMA Part return to CDS", "closed"),
            ("In Progress", "in_progress"),
            ("closed", "closed"),
            ("ESCALATED", "escalated"),
        ],
    )
    def test_maps_known_values(self, raw, expected):
        assert normalize_call_status(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "pending parts"])
    def test_unknown_defaults_to_open(self, raw):
        assert normalize_call_status(raw) == "open"


class TestSeverity:
    def test_major_minor(self):
        assert normalize_severity("Major") == "high"
        assert normalize_severity("minor") == "medium"

    def test_allowed_values_pass_through(self):
        assert normalize_severity("Critical") == "critical"
        assert normalize_severity("low") == "low"

    def test_unrecognized_falls_back_to_medium(self):
        assert normalize_severity("urgent") == "medium"
        assert normalize_severity(None) == "medium"


class TestRMAType:
    @pytest.mark.parametrize("raw", ["RMA CI", "RMA_CI", "RMA CL", "RMA_CL"])
    def test_cl_typos(self, raw):
        assert normalize_rma_type(raw) == "RMA_CL"

    def test_allowed_values(self):
        assert normalize_rma_type("SRMA") == "SRMA"
        assert normalize_rma_type("Lamps") == "Lamps"

    @pytest.mark.parametrize("raw", [None, "", "Warranty"])
    def test_unknown_forced_to_rma(self, raw):
        assert normalize_rma_type(raw) == "RMA"


class TestRMAStatus:
    def test_hyphens_and_spaces_become_underscores(self):
        assert normalize_rma_status("RMA Raised - Yet to Deliver") == "rma_raised_yet_to_deliver"

    def test_known_bad_values(self):
        assert normalize_rma_status("RMA Part Return to CDS") == "faulty_in_transit_to_cds"
        assert normalize_rma_status("faulty in transit to ascomp") == "faulty_in_transit_to_cds"

    def test_unknown_defaults_to_open(self):
        assert normalize_rma_status("lost") == "open"
        assert normalize_rma_status(None) == "open"
