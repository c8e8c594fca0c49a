"""Tests for credit cost calculation."""

import pytest

from creditmeter.exceptions import InvalidOperationError
from creditmeter.models.credits import OperationKind
from creditmeter.operations.credits.cost_calculator import (
  get_cost_table,
  get_operation_cost,
  parse_operation_kind,
)


class TestGetOperationCost:
  @pytest.mark.unit
  @pytest.mark.parametrize(
    "kind,expected",
    [
      (OperationKind.STORY, 2),
      (OperationKind.VIDEO, 5),
      (OperationKind.POLISH, 10),
      (OperationKind.MUSIC, 2),
    ],
  )
  def test_fixed_costs(self, kind, expected):
    assert get_operation_cost(kind) == expected
    # Parameters never change a fixed cost
    assert get_operation_cost(kind, {"image_count": 9}) == expected

  @pytest.mark.unit
  def test_image_cost_scales_per_image(self):
    assert get_operation_cost(OperationKind.IMAGE, {"image_count": 2}) == 6
    assert get_operation_cost(OperationKind.IMAGE, {"image_count": 5}) == 15

  @pytest.mark.unit
  @pytest.mark.parametrize(
    "text_length,expected", [(1, 1), (100, 1), (101, 2), (250, 3), (0, 0)]
  )
  def test_narration_cost_per_started_block(self, text_length, expected):
    assert (
      get_operation_cost(OperationKind.NARRATION, {"text_length": text_length})
      == expected
    )

  @pytest.mark.unit
  def test_missing_scaling_parameter_counts_one_unit(self):
    assert get_operation_cost(OperationKind.IMAGE) == 3
    assert get_operation_cost(OperationKind.NARRATION, {"text_length": None}) == 1

  @pytest.mark.unit
  def test_accepts_string_kinds(self):
    assert get_operation_cost("image", {"image_count": 3}) == 9

  @pytest.mark.unit
  def test_unknown_kind_is_invalid_operation(self):
    with pytest.raises(InvalidOperationError) as exc_info:
      get_operation_cost("teleport")
    assert exc_info.value.details["operation_kind"] == "teleport"

  @pytest.mark.unit
  @pytest.mark.parametrize("bad", [-1, 2.5, "3", True])
  def test_malformed_parameters_are_invalid_operation(self, bad):
    with pytest.raises(InvalidOperationError):
      get_operation_cost(OperationKind.IMAGE, {"image_count": bad})

  @pytest.mark.unit
  def test_is_deterministic(self):
    params = {"text_length": 420}
    costs = {get_operation_cost(OperationKind.NARRATION, params) for _ in range(5)}
    assert costs == {5}


class TestHelpers:
  @pytest.mark.unit
  def test_parse_operation_kind(self):
    assert parse_operation_kind("music") is OperationKind.MUSIC
    assert parse_operation_kind(OperationKind.VIDEO) is OperationKind.VIDEO

  @pytest.mark.unit
  def test_cost_table_lists_every_kind_in_order(self):
    table = get_cost_table()
    assert [row["operation_kind"] for row in table] == [k.value for k in OperationKind]
    image = next(row for row in table if row["operation_kind"] == "image")
    assert image == {
      "operation_kind": "image",
      "base_cost": 3,
      "scaling": "per_unit",
      "param": "image_count",
      "unit_size": 1,
    }
