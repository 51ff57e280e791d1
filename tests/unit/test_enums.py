"""Tests for cs_common.enums — must match DB CHECK constraints."""

from src.cs_common.enums import LedgerOperation, ProviderStatus, SessionMode


class TestLedgerOperation:
    def test_values_match_db_check(self) -> None:
        assert {op.value for op in LedgerOperation} == {
            "deposit",
            "withdraw",
            "bet",
            "win",
            "cancelbet",
            "cancelwin",
        }

    def test_debits(self) -> None:
        assert LedgerOperation.WITHDRAW.is_debit
        assert LedgerOperation.BET.is_debit
        assert LedgerOperation.CANCEL_WIN.is_debit

    def test_credits(self) -> None:
        assert not LedgerOperation.DEPOSIT.is_debit
        assert not LedgerOperation.WIN.is_debit
        assert not LedgerOperation.CANCEL_BET.is_debit


class TestProviderStatus:
    def test_wire_values(self) -> None:
        assert ProviderStatus.OK.value == "1"
        assert ProviderStatus.ERROR.value == "0"


class TestSessionMode:
    def test_from_string(self) -> None:
        assert SessionMode("fun") is SessionMode.FUN
