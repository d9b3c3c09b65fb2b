"""Tests for option_id <-> position mapping and target resolution."""

from datetime import UTC, datetime

import pytest

from src.pm_commitment.domain.option_mapping import (
    locate_option,
    position_for_index,
    position_to_option_id,
    resolve_target,
)
from src.pm_common.enums import MarketStatus, Position
from src.pm_common.errors import OptionNotFoundError
from src.pm_common.validation import ValidationResult
from src.pm_market.domain.models import Market, MarketOption, default_binary_options


def _market(*texts: str) -> Market:
    options = [MarketOption(id=f"opt-{i}", text=t) for i, t in enumerate(texts)]
    return Market(
        id="mkt-1",
        title="Will they stay together?",
        status=MarketStatus.ACTIVE,
        ends_at=datetime(2030, 1, 1, tzinfo=UTC),
        options=options,
    )


class TestBinaryMapping:
    def test_first_option_is_yes(self) -> None:
        m = _market("Stay together", "Break up")
        index, option = locate_option(m, "opt-1")
        assert option.text == "Break up"
        assert position_for_index(locate_option(m, "opt-0")[0]) == Position.YES
        assert position_for_index(index) == Position.NO

    def test_position_to_option(self) -> None:
        m = Market(id="m", title="t", status=MarketStatus.ACTIVE, ends_at=None,
                   options=default_binary_options())
        assert position_to_option_id(m, Position.YES) == "yes"
        assert position_to_option_id(m, Position.NO) == "no"

    def test_single_option_market_maps_both_sides(self) -> None:
        m = _market("Only")
        assert position_to_option_id(m, Position.NO) == "opt-0"

    def test_unknown_option_raises(self) -> None:
        with pytest.raises(OptionNotFoundError) as exc_info:
            locate_option(_market("Yes", "No"), "missing")
        assert exc_info.value.code == 3003


class TestResolveTarget:
    def test_option_id_wins(self) -> None:
        result = ValidationResult()
        target = resolve_target(_market("Yes", "No"), "opt-1", None, result)
        assert target is not None
        assert target.position == Position.NO
        assert result.is_valid

    def test_binary_mismatch_is_error(self) -> None:
        result = ValidationResult()
        assert resolve_target(_market("Yes", "No"), "opt-1", Position.YES, result) is None
        assert result.error_codes() == ["POSITION_MISMATCH"]

    def test_multi_option_mismatch_is_warning(self) -> None:
        result = ValidationResult()
        target = resolve_target(_market("A", "B", "C"), "opt-2", Position.YES, result)
        assert target is not None
        assert target.option.id == "opt-2"
        assert [w.code for w in result.warnings] == ["POSITION_IGNORED"]

    def test_no_target_is_error(self) -> None:
        result = ValidationResult()
        assert resolve_target(_market("Yes", "No"), None, None, result) is None
        assert result.error_codes() == ["TARGET_REQUIRED"]

    def test_unknown_option_id(self) -> None:
        result = ValidationResult()
        assert resolve_target(_market("Yes", "No"), "nope", None, result) is None
        assert result.error_codes() == ["OPTION_NOT_FOUND"]

    def test_binary_position_only(self) -> None:
        result = ValidationResult()
        target = resolve_target(_market("Stay", "Split"), None, Position.NO, result)
        assert target is not None
        assert target.option.id == "opt-1"

    def test_multi_option_unambiguous_keyword(self) -> None:
        result = ValidationResult()
        m = _market("Yes, they will", "Undecided", "Something else")
        target = resolve_target(m, None, Position.YES, result)
        assert target is not None
        assert target.option.id == "opt-0"
        assert [w.code for w in result.warnings] == ["POSITION_MAPPED"]

    def test_multi_option_ambiguous_keyword(self) -> None:
        result = ValidationResult()
        m = _market("Yes", "True love wins", "Other")
        assert resolve_target(m, None, Position.YES, result) is None
        assert result.error_codes() == ["AMBIGUOUS_POSITION"]

    def test_multi_option_no_side_off_first_slot(self) -> None:
        result = ValidationResult()
        # "No" keyword matched on the first option contradicts the first-option-is-yes rule
        m = _market("No way", "Maybe", "Later")
        assert resolve_target(m, None, Position.NO, result) is None
        assert result.error_codes() == ["AMBIGUOUS_POSITION"]
