"""Tests for cs_common.identity — username derivation."""

from src.cs_common.identity import extract_username, username_from_wallet

WALLET = "Gz3ZKi9ARmqjbhBnxx3jQm1pUuFhXcwd9YkT8sPvLbEw"


class TestUsernameFromWallet:
    def test_truncates_to_twenty(self) -> None:
        assert username_from_wallet(WALLET) == "Gz3ZKi9ARmqjbhBnxx3j"

    def test_short_wallet_unchanged(self) -> None:
        assert username_from_wallet("abc") == "abc"


class TestExtractUsername:
    def test_user_prefix(self) -> None:
        assert extract_username("user_Gz3ZKi9ARmqjbhBnxx3j") == "Gz3ZKi9ARmqjbhBnxx3j"

    def test_staging_operator_user_prefix(self) -> None:
        assert extract_username("stg_u241_user_4M38DeTShLeXqV25rcgj") == "4M38DeTShLeXqV25rcgj"

    def test_staging_short_prefix(self) -> None:
        assert extract_username("stg_u_EZaMupaW3cwcFFvaCL8L") == "EZaMupaW3cwcFFvaCL8L"

    def test_operator_staging_prefix(self) -> None:
        assert extract_username("u241_stg_4M38DeTShLeXqV25rcgj") == "4M38DeTShLeXqV25rcgj"

    def test_staging_operator_prefix(self) -> None:
        assert extract_username("stg_u241_4M38DeTShLeXqV25rcgj") == "4M38DeTShLeXqV25rcgj"

    def test_operator_prefix(self) -> None:
        assert extract_username("u241_4M38DeTShLeXqV25rcgj") == "4M38DeTShLeXqV25rcgj"

    def test_custom_operator_id(self) -> None:
        assert extract_username("u999_abc", operator_id="999") == "abc"
        assert extract_username("u999_abc") == "u999_abc"

    def test_only_first_prefix_stripped(self) -> None:
        assert extract_username("user_user_abc") == "user_abc"

    def test_no_prefix_returns_login(self) -> None:
        assert extract_username("Gz3ZKi9ARmqjbhBnxx3j") == "Gz3ZKi9ARmqjbhBnxx3j"

    def test_empty(self) -> None:
        assert extract_username("") == ""

    def test_round_trip_with_user_login(self) -> None:
        username = username_from_wallet(WALLET)
        assert extract_username(f"user_{username}") == username
