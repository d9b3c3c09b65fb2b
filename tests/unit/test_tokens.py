"""Tests for pm_common.tokens display helpers."""

from src.pm_common.tokens import (
    format_odds,
    format_percentage,
    format_tokens,
    format_usd,
    is_valid_token_amount,
    round_half_up,
)


class TestRoundHalfUp:
    def test_half_rounds_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1

    def test_below_half_rounds_down(self) -> None:
        assert round_half_up(159.49) == 159

    def test_float_noise_does_not_leak(self) -> None:
        # 100 * 1.6 == 160.00000000000003 in binary floating point
        assert round_half_up(100 * 1.6) == 160


class TestFormatTokens:
    def test_thousands(self) -> None:
        assert format_tokens(2500) == "2.5K"

    def test_thousands_round_half_up(self) -> None:
        assert format_tokens(3250) == "3.3K"

    def test_millions(self) -> None:
        assert format_tokens(1_250_000) == "1.3M"

    def test_small_integer_plain(self) -> None:
        assert format_tokens(999) == "999"
        assert format_tokens(0) == "0"

    def test_negative(self) -> None:
        assert format_tokens(-2500) == "-2.5K"


class TestOtherFormats:
    def test_odds(self) -> None:
        assert format_odds(1.6) == "1.60x"
        assert format_odds(2) == "2.00x"

    def test_percentage(self) -> None:
        assert format_percentage(0.125) == "12.5%"

    def test_usd(self) -> None:
        assert format_usd(1234.5) == "$1,234.50"
        assert format_usd(0) == "$0.00"


class TestIsValidTokenAmount:
    def test_positive_int(self) -> None:
        assert is_valid_token_amount(10)

    def test_whole_float(self) -> None:
        assert is_valid_token_amount(10.0)

    def test_rejects_fraction_zero_bool_str(self) -> None:
        assert not is_valid_token_amount(10.5)
        assert not is_valid_token_amount(0)
        assert not is_valid_token_amount(True)
        assert not is_valid_token_amount("10")
