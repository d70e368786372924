"""Tests for IBAN extraction and account resolution.

GIVEN: Parsed statements and the registered accounts
WHEN: Resolving the destination account from IBAN hints
THEN: A single active account is chosen or the user is asked to select one
"""

from tests.factories import MAIN_IBAN, ParsedStatementFactory
from treasury_ingest.models import Account
from treasury_ingest.services.iban_matching import (
    IbanExtraction,
    extract_iban_from_statement,
    extract_iban_from_text,
    is_valid_iban,
    mask_iban,
    match_account_by_iban,
    normalize_iban,
)


class TestIbanHelpers:
    def test_normalize(self):
        assert normalize_iban("es91 2100-0418 4502 0005 1332") == MAIN_IBAN

    def test_valid_checksum(self):
        assert is_valid_iban(MAIN_IBAN)
        assert not is_valid_iban("ES9121000418450200051333")
        assert not is_valid_iban("ES91210004184502")

    def test_mask(self):
        assert mask_iban(MAIN_IBAN) == "ES91 **** **** 1332"
        assert mask_iban("ES91") == "ES91"


class TestExtractIbanFromText:
    def test_spaced_iban(self):
        extraction = extract_iban_from_text("IBAN: ES91 2100 0418 4502 0005 1332")
        assert extraction.iban == MAIN_IBAN
        assert extraction.last4 == "1332"

    def test_masked_iban(self):
        extraction = extract_iban_from_text("Cuenta: ES91 **** **** 1332")
        assert extraction.iban is None
        assert extraction.last4 == "1332"

    def test_bare_digits_only_when_allowed(self):
        assert extract_iban_from_text("Saldo 1332 EUR") is None
        assert extract_iban_from_text("extracto_1332.csv", allow_bare_digits=True).last4 == "1332"

    def test_years_are_not_account_digits(self):
        assert extract_iban_from_text("extracto_2025_03.csv", allow_bare_digits=True) is None

    def test_empty(self):
        assert extract_iban_from_text(None) is None
        assert extract_iban_from_text("") is None


class TestExtractIbanFromStatement:
    def test_header_first(self):
        statement = ParsedStatementFactory.with_rows(
            header_lines=["Extracto de cuenta", "IBAN ES91 2100 0418 4502 0005 1332"],
            detected_iban="ES7921000813610123456789",
        )
        extraction = extract_iban_from_statement(statement, "extracto.csv")

        assert extraction.iban == MAIN_IBAN
        assert extraction.source == "header"
        assert extraction.confidence == 0.9

    def test_column(self):
        statement = ParsedStatementFactory.with_rows({"description": "X", "detected_iban": MAIN_IBAN})
        extraction = extract_iban_from_statement(statement, "extracto.csv")

        assert extraction.iban == MAIN_IBAN
        assert extraction.source == "column"
        assert extraction.confidence == 0.8

    def test_filename(self):
        extraction = extract_iban_from_statement(ParsedStatementFactory.with_rows(), "movimientos_1332.xlsx")

        assert extraction.last4 == "1332"
        assert extraction.source == "filename"
        assert extraction.confidence == 0.7

    def test_nothing_found(self):
        extraction = extract_iban_from_statement(ParsedStatementFactory.with_rows(), "movimientos.csv")
        assert not extraction.found
        assert extraction.source == "none"


class TestMatchAccountByIban:
    def test_exact_match(self, accounts):
        result = match_account_by_iban(IbanExtraction(iban=MAIN_IBAN, last4="1332"), accounts)

        assert result.account_id == 1
        assert result.match_type == "exact"
        assert result.confidence == 0.95
        assert not result.requires_selection

    def test_last4_match(self, accounts):
        result = match_account_by_iban(IbanExtraction(last4="6789"), accounts)

        assert result.account_id == 2
        assert result.match_type == "last4"
        assert result.confidence == 0.7

    def test_ambiguous_last4(self, accounts):
        """GIVEN: Two active accounts ending in the same four digits
        WHEN: Only the last four digits are known
        THEN: Selection is required between those two accounts"""
        twin = Account(id=3, name="Cuenta empresa", iban="ES0000000000000000001332", is_active=True)
        result = match_account_by_iban(IbanExtraction(last4="1332"), [*accounts, twin])

        assert result.requires_selection
        assert result.account_id is None
        assert sorted(c.id for c in result.candidates) == [1, 3]
        assert "1332" in result.reason

    def test_inactive_accounts_are_ignored(self, accounts):
        accounts[0].is_active = False
        result = match_account_by_iban(IbanExtraction(iban=MAIN_IBAN, last4="1332"), accounts)

        assert result.requires_selection
        assert [c.id for c in result.candidates] == [2]

    def test_unknown_iban(self, accounts):
        result = match_account_by_iban(IbanExtraction(last4="0000"), accounts)

        assert result.requires_selection
        assert len(result.candidates) == 2
        assert result.reason.startswith("No se encontró")
        assert result.candidates[0].iban_masked == "ES91 **** **** 1332"

    def test_no_iban_detected(self, accounts):
        result = match_account_by_iban(IbanExtraction(), accounts)

        assert result.requires_selection
        assert result.reason.startswith("No se detectó")
