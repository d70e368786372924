"""Tests for movement normalization.

GIVEN: Raw descriptions and amounts from statement parsers
WHEN: Normalizing them into candidates
THEN: Hash-relevant fields are canonical and required fields are checked
"""

from datetime import date
from decimal import Decimal

from tests.factories import MovementCandidateFactory, ParsedMovementFactory
from treasury_ingest.models import Movement, MovementStatus, TransferState
from treasury_ingest.services.normalization import (
    candidate_from_movement,
    candidate_from_parsed,
    format_amount,
    normalize_description,
    quantize_amount,
    significant_words,
)


class TestNormalizeDescription:
    def test_collapses_whitespace_and_uppercases(self):
        assert normalize_description("  pago   iberdrola    energia ") == "PAGO IBERDROLA ENERGIA"

    def test_strips_punctuation(self):
        assert normalize_description("PAGO, IBERDROLA. (ENERGIA)!") == "PAGO IBERDROLA ENERGIA"

    def test_drops_stop_words(self):
        assert normalize_description("Recibo de la luz y el gas") == "RECIBO LUZ GAS"
        assert normalize_description("The rent and fees") == "RENT FEES"

    def test_keeps_accents(self):
        """GIVEN: Descriptions differing only by an accent
        WHEN: Normalizing both
        THEN: They stay distinct"""
        assert normalize_description("energía") == "ENERGÍA"
        assert normalize_description("energía") != normalize_description("energia")

    def test_empty_values(self):
        assert normalize_description(None) == ""
        assert normalize_description("   ") == ""

    def test_underscores_are_removed(self):
        assert normalize_description("PAGO_TARJETA") == "PAGOTARJETA"


class TestAmounts:
    def test_quantize_half_up(self):
        assert quantize_amount(Decimal("1.005")) == Decimal("1.01")
        assert quantize_amount(Decimal("-1.005")) == Decimal("-1.01")

    def test_quantize_float_goes_through_str(self):
        assert quantize_amount(0.1) == Decimal("0.10")

    def test_format_amount_two_decimals(self):
        assert format_amount(Decimal("-123.4")) == "-123.40"
        assert format_amount(Decimal("5")) == "5.00"


def test_significant_words_min_length():
    assert significant_words("Pago de la LUZ mensual") == ["pago", "mensual"]
    assert significant_words(None) == []


class TestMovementCandidate:
    def test_normalized_description_is_derived(self):
        candidate = MovementCandidateFactory.build(description="Pago   de  luz")
        assert candidate.normalized_description == "PAGO LUZ"

    def test_missing_fields(self):
        candidate = MovementCandidateFactory.build(account_id=0, txn_date=None, amount=None, description="  ")
        assert candidate.missing_fields() == ["account_id", "txn_date", "amount", "description"]
        assert not candidate.is_valid

    def test_valid_candidate(self):
        assert MovementCandidateFactory.build().is_valid

    def test_defaults_to_unplanned(self):
        candidate = MovementCandidateFactory.build()
        assert candidate.status == MovementStatus.NO_PLANIFICADO
        assert candidate.is_transfer is False


class TestCandidateConversion:
    def test_from_parsed(self):
        """GIVEN: A parser line with messy spacing and a float-like amount
        WHEN: Building a candidate
        THEN: Description, reference and amount are cleaned"""
        parsed = ParsedMovementFactory.build(
            txn_date=date(2025, 3, 1),
            amount=Decimal("-42.5"),
            description="  COMPRA   MERCADONA ",
            reference=" REF9 ",
            counterparty="   ",
        )
        candidate = candidate_from_parsed(parsed, account_id=4, row_index=7)

        assert candidate.account_id == 4
        assert candidate.amount == Decimal("-42.50")
        assert candidate.description == "COMPRA MERCADONA"
        assert candidate.reference == "REF9"
        assert candidate.counterparty is None
        assert candidate.row_index == 7

    def test_from_parsed_keeps_parser_row_index(self):
        parsed = ParsedMovementFactory.build(amount=Decimal("1"), description="X", row_index=12)
        assert candidate_from_parsed(parsed, 1, row_index=3).row_index == 12

    def test_from_movement(self):
        movement = Movement(
            id=9,
            account_id=2,
            txn_date=date(2025, 3, 1),
            amount=Decimal("500.00"),
            description="TRASPASO",
            normalized_description="TRASPASO",
            status=MovementStatus.CONFIRMADO,
            match_confidence=Decimal("70.00"),
            is_transfer=True,
            transfer_group_id="TRF-2025-03-01-500.00",
            transfer_state=TransferState.PENDING,
            dedup_hash="abc",
        )
        candidate = candidate_from_movement(movement)

        assert candidate.id == 9
        assert candidate.amount == Decimal("500.00")
        assert candidate.match_confidence == 70.0
        assert candidate.transfer_state == TransferState.PENDING
        assert candidate.dedup_hash == "abc"
