"""Tests for contact normalization, including hypothesis properties."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from giveaways.core.errors import INVALID_CONTACT, ValidationError
from giveaways.services.contacts import (
    is_valid_phone,
    normalize_contact,
    normalize_email,
    normalize_phone,
    normalize_state,
    parse_states,
)


class TestPhone:
    @pytest.mark.parametrize(
        "raw",
        ["(555) 123-4567", "555.123.4567", "+1 555 123 4567", "15551234567", "555-123-4567"],
    )
    def test_formats_collapse_to_ten_digits(self, raw: str) -> None:
        assert normalize_phone(raw) == "5551234567"

    def test_short_number_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc:
            normalize_contact("555-1234", "phone")
        assert exc.value.code == INVALID_CONTACT

    def test_empty(self) -> None:
        assert normalize_phone(None) == ""
        assert normalize_phone("") == ""


@given(digits=st.text(alphabet="0123456789", min_size=10, max_size=10), noise=st.sampled_from(
    ["", " ", "-", ".", "(", ")"]
))
@settings(max_examples=200)
def test_phone_normalization_is_idempotent(digits: str, noise: str) -> None:
    raw = noise.join([digits[:3], digits[3:6], digits[6:]])
    once = normalize_phone(raw)
    assert once == digits
    assert normalize_phone(once) == once
    assert is_valid_phone(once)


@given(raw=st.text(max_size=30))
@settings(max_examples=200)
def test_phone_normalization_never_exceeds_ten_digits(raw: str) -> None:
    out = normalize_phone(raw)
    assert len(out) <= 10
    assert out == "" or out.isdigit()


class TestEmail:
    def test_lowercased_and_trimmed(self) -> None:
        assert normalize_contact("  Jane.Doe@Example.COM ", "email") == "jane.doe@example.com"

    @pytest.mark.parametrize("raw", ["no-at-sign", "a@b", "a b@c.com", "@example.com"])
    def test_malformed_rejected(self, raw: str) -> None:
        with pytest.raises(ValidationError) as exc:
            normalize_contact(raw, "email")
        assert exc.value.code == INVALID_CONTACT

    def test_unknown_contact_type(self) -> None:
        with pytest.raises(ValidationError) as exc:
            normalize_contact("x@example.com", "fax")
        assert exc.value.code == INVALID_CONTACT

    @given(local=st.from_regex(r"[A-Za-z0-9._]{1,12}", fullmatch=True))
    @settings(max_examples=100)
    def test_case_never_matters(self, local: str) -> None:
        assert normalize_email(f"{local.upper()}@Example.com") == normalize_email(
            f"{local.lower()}@EXAMPLE.COM"
        )


class TestStates:
    def test_state_uppercased(self) -> None:
        assert normalize_state(" ny ") == "NY"

    def test_dc_is_a_state(self) -> None:
        assert normalize_state("dc") == "DC"

    def test_unknown_state(self) -> None:
        with pytest.raises(ValidationError):
            normalize_state("ZZ")

    def test_parse_stored_states(self) -> None:
        assert parse_states("NY, fl,,RI") == ["NY", "FL", "RI"]
        assert parse_states(None) == []
        assert parse_states(["ny"]) == ["NY"]
