"""Pruebas del motor de conciliación (funciones puras)."""

from decimal import Decimal

from reconciliation import LedgerTotals, missing_declarations, reconcile
from utils.tenders import TENDER_TYPES

D = Decimal


def _totals(**kwargs):
    return LedgerTotals(**kwargs)


class TestExpectedAmounts:

    def test_balanced_cash(self):
        totals = _totals(sales={"cash": D("250.00")}, refunds={"cash": D("10.00")})

        result = reconcile(D("100.00"), totals, {"cash": D("340.00")})

        assert result.expected["cash"] == D("340.00")
        assert result.differences["cash"] == D("0.00")
        assert result.difference_total == D("0.00")
        assert result.balanced

    def test_cash_shortage(self):
        totals = _totals(sales={"cash": D("250.00")}, refunds={"cash": D("10.00")})

        result = reconcile(D("100.00"), totals, {"cash": D("335.00")})

        assert result.differences["cash"] == D("-5.00")
        assert result.difference_total == D("-5.00")
        assert not result.balanced

    def test_withdrawals_and_supplies_only_move_cash(self):
        totals = _totals(
            sales={"cash": D("50.00"), "card_debit": D("80.00")},
            withdrawals_count=1,
            withdrawals_amount=D("30.00"),
            supplies_count=1,
            supplies_amount=D("20.00"),
        )

        result = reconcile(D("100.00"), totals, {})

        # 100 + 50 - 30 + 20
        assert result.expected["cash"] == D("140.00")
        assert result.expected["card_debit"] == D("80.00")

    def test_non_cash_refunds_reduce_expected(self):
        totals = _totals(
            sales={"card_credit": D("300.00"), "pix": D("45.50")},
            refunds={"card_credit": D("100.00")},
        )

        result = reconcile(D("0.00"), totals, {"card_credit": D("200.00"), "pix": D("45.50")})

        assert result.expected["card_credit"] == D("200.00")
        assert result.expected["pix"] == D("45.50")
        assert result.difference_total == D("0.00")


class TestDifferences:

    def test_undeclared_tender_counts_as_zero(self):
        totals = _totals(sales={"pix": D("12.00")})

        result = reconcile(D("0.00"), totals, {"pix": None})

        assert result.counted["pix"] == D("0.00")
        assert result.differences["pix"] == D("-12.00")

    def test_surplus_is_positive(self):
        result = reconcile(D("10.00"), _totals(), {"cash": D("12.50")})
        assert result.differences["cash"] == D("2.50")

    def test_total_is_sum_of_tender_differences(self):
        totals = _totals(
            sales={"cash": D("10.00"), "card_debit": D("20.00"), "other": D("5.00")},
        )
        counted = {"cash": D("9.99"), "card_debit": D("20.02"), "other": D("4.00")}

        result = reconcile(D("0.00"), totals, counted)

        assert result.difference_total == sum(result.differences.values())
        assert result.difference_total == D("-0.99")
        for tender in TENDER_TYPES:
            assert result.differences[tender] == result.counted[tender] - result.expected[tender]

    def test_totals_across_tenders(self):
        totals = _totals(sales={"cash": D("50.00"), "pix": D("20.00")})

        result = reconcile(D("10.00"), totals, {"cash": D("58.00"), "pix": D("20.00")})

        assert result.expected_total == D("80.00")
        assert result.counted_total == D("78.00")
        assert result.counted_total - result.expected_total == result.difference_total

    def test_no_binary_drift_on_cents(self):
        # 0.10 + 0.20 en float daria 0.30000000000000004
        totals = _totals(sales={"cash": D("0.10") + D("0.20")})

        result = reconcile(D("0.00"), totals, {"cash": D("0.30")})

        assert result.differences["cash"] == D("0.00")
        assert str(result.expected["cash"]) == "0.30"

    def test_zero_difference_is_never_negative_zero(self):
        result = reconcile(D("0.00"), _totals(), {"cash": D("-0.00")})
        assert str(result.differences["cash"]) == "0.00"
        assert str(result.difference_total) == "0.00"

    def test_as_columns_uses_session_column_names(self):
        result = reconcile(D("100.00"), _totals(), {"cash": D("100.00")})
        columns = result.as_columns()

        assert columns["closing_amount_cash"] == D("100.00")
        assert columns["expected_cash"] == D("100.00")
        assert columns["difference_cash"] == D("0.00")
        assert columns["difference_total"] == D("0.00")
        assert len(columns) == 3 * len(TENDER_TYPES) + 1


class TestMissingDeclarations:

    def test_used_tender_without_count_is_reported(self):
        totals = _totals(sales={"card_debit": D("15.00")})

        assert missing_declarations(D("0.00"), totals, {"card_debit": None}) == ["card_debit"]

    def test_declared_zero_is_a_declaration(self):
        totals = _totals(sales={"card_debit": D("15.00")})

        assert missing_declarations(D("0.00"), totals, {"card_debit": D("0.00")}) == []

    def test_opening_float_requires_cash_count(self):
        assert missing_declarations(D("50.00"), _totals(), {}) == ["cash"]

    def test_idle_session_requires_nothing(self):
        assert missing_declarations(D("0.00"), _totals(), {}) == []

    def test_refund_only_tender_is_used(self):
        totals = _totals(refunds={"pix": D("3.00")})
        assert totals.used_tenders == ["pix"]
