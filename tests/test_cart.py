import random
from dataclasses import replace
from decimal import Decimal

import pytest

from cashdesk.core.cart import Cart
from cashdesk.core.errors import (
    AlreadyWeighed,
    DuplicateLine,
    InsufficientStock,
    InvalidOperation,
    InvalidPrice,
    InvalidQuantity,
    LineNotFound,
    NotWeighable,
)
from cashdesk.core.models import LineMode


def test_quantity_line_total(apple):
    cart = Cart()
    line = cart.add_quantity_item(apple, 3)
    assert line.mode is LineMode.QUANTITY
    assert line.quantity == 3
    assert line.line_total == Decimal("8.97")
    assert cart.compute_total() == Decimal("8.97")


def test_weighed_line_derives_weight(chicken):
    cart = Cart()
    line = cart.add_weighed_item(chicken, Decimal("25.00"))
    assert line.mode is LineMode.WEIGHED
    assert line.quantity == 1
    assert line.derived_weight == Decimal("2.503")
    assert line.line_total == Decimal("25.00")
    assert line.item.unit_price == Decimal("9.99")


def test_first_add_above_stock_is_capped(bread):
    cart = Cart()
    line = cart.add_quantity_item(bread, 10)
    assert line.quantity == 5
    assert line.line_total == Decimal("17.45")


def test_increment_is_capped_to_stock(apple):
    cart = Cart()
    cart.add_quantity_item(apple, 100)
    line = cart.add_quantity_item(apple, 100)
    assert line.quantity == 150
    assert len(cart) == 1


def test_increment_merges_into_existing_line(apple):
    cart = Cart()
    cart.add_quantity_item(apple)
    cart.add_quantity_item(apple, 2)
    assert cart.get_line("A").quantity == 3


def test_reject_policy_raises_on_first_add(bread):
    cart = Cart(stock_policy="reject")
    with pytest.raises(InsufficientStock):
        cart.add_quantity_item(bread, 10)
    assert cart.is_empty


def test_reject_policy_raises_on_increment(bread):
    cart = Cart(stock_policy="reject")
    cart.add_quantity_item(bread, 4)
    with pytest.raises(InsufficientStock):
        cart.add_quantity_item(bread, 2)
    assert cart.get_line("B").quantity == 4


def test_weighed_items_by_count_are_exempt_from_reject(chicken):
    cart = Cart(stock_policy="reject")
    line = cart.add_quantity_item(chicken, 60)
    assert line.quantity == 50


def test_out_of_stock_item_cannot_be_added(apple):
    empty = replace(apple, stock_quantity=Decimal("0"))
    with pytest.raises(InsufficientStock):
        Cart().add_quantity_item(empty, 1)


def test_fractional_stock_caps_to_whole_units(apple):
    item = replace(apple, stock_quantity=Decimal("2.7"))
    assert Cart().add_quantity_item(item, 5).quantity == 2


@pytest.mark.parametrize("qty", [0, -1, 1.5, True, "2", None])
def test_invalid_quantity(apple, qty):
    with pytest.raises(InvalidQuantity):
        Cart().add_quantity_item(apple, qty)


def test_quantity_add_on_weighed_line_fails(chicken):
    cart = Cart()
    cart.add_weighed_item(chicken, "10")
    with pytest.raises(AlreadyWeighed):
        cart.add_quantity_item(chicken, 1)


def test_weighing_requires_weighable_item(apple):
    with pytest.raises(NotWeighable):
        Cart().add_weighed_item(apple, Decimal("5"))


@pytest.mark.parametrize("price", [0, Decimal("-5"), "abc"])
def test_weighing_requires_positive_price(chicken, price):
    with pytest.raises(InvalidPrice):
        Cart().add_weighed_item(chicken, price)


def test_weighing_item_without_price_per_kg(chicken):
    free = replace(chicken, unit_price=Decimal("0"))
    with pytest.raises(InvalidPrice):
        Cart().add_weighed_item(free, Decimal("5"))


def test_weighing_twice_is_a_duplicate(chicken):
    cart = Cart()
    cart.add_weighed_item(chicken, Decimal("5"))
    with pytest.raises(DuplicateLine):
        cart.add_weighed_item(chicken, Decimal("6"))


def test_weighing_item_already_counted_is_a_duplicate(chicken):
    cart = Cart()
    cart.add_quantity_item(chicken, 1)
    with pytest.raises(DuplicateLine):
        cart.add_weighed_item(chicken, Decimal("6"))


def test_update_quantity(apple):
    cart = Cart()
    cart.add_quantity_item(apple, 1)
    line = cart.update_quantity("A", 7)
    assert line.quantity == 7
    assert cart.compute_total() == Decimal("20.93")


def test_update_quantity_to_zero_removes_line(apple):
    cart = Cart()
    cart.add_quantity_item(apple, 1)
    assert cart.update_quantity("A", 0) is None
    assert cart.get_line("A") is None
    assert cart.is_empty


def test_update_quantity_errors(apple, bread, chicken):
    cart = Cart()
    with pytest.raises(LineNotFound):
        cart.update_quantity("A", 1)

    cart.add_weighed_item(chicken, Decimal("5"))
    with pytest.raises(InvalidOperation):
        cart.update_quantity("M", 2)

    cart.add_quantity_item(bread, 1)
    with pytest.raises(InsufficientStock):
        cart.update_quantity("B", 6)
    assert cart.get_line("B").quantity == 1

    with pytest.raises(InvalidQuantity):
        cart.update_quantity("B", 2.5)


def test_remove_line_is_idempotent(apple):
    cart = Cart()
    cart.add_quantity_item(apple, 1)
    cart.remove_line("A")
    cart.remove_line("A")
    cart.remove_line("never-added")
    assert cart.is_empty


def test_lines_keep_insertion_order(apple, bread, chicken):
    cart = Cart()
    cart.add_quantity_item(bread, 1)
    cart.add_weighed_item(chicken, Decimal("3"))
    cart.add_quantity_item(apple, 1)
    cart.update_quantity("B", 2)
    assert cart.item_ids == ["B", "M", "A"]


def test_empty_cart_total_is_zero():
    total = Cart().compute_total()
    assert total == Decimal("0")
    assert isinstance(total, Decimal)


def test_total_is_sum_of_line_totals(apple, bread, chicken):
    cart = Cart()
    cart.add_quantity_item(apple, 3)
    cart.add_quantity_item(bread, 2)
    cart.add_weighed_item(chicken, Decimal("25.00"))
    assert cart.compute_total() == sum(line.line_total for line in cart.lines)
    assert cart.compute_total() == Decimal("40.95")


def test_clear(apple):
    cart = Cart()
    cart.add_quantity_item(apple, 1)
    cart.clear()
    assert cart.is_empty
    assert cart.compute_total() == 0


def test_unknown_policy():
    with pytest.raises(ValueError):
        Cart(stock_policy="maybe")


@pytest.mark.parametrize("policy", ["clamp", "reject"])
def test_quantity_never_exceeds_stock(bread, policy):
    rnd = random.Random(1234)
    cart = Cart(stock_policy=policy)
    for _ in range(200):
        try:
            cart.add_quantity_item(bread, rnd.randint(1, 4))
        except InsufficientStock:
            pass
        line = cart.get_line("B")
        assert line is not None
        assert line.quantity <= bread.stock_quantity
        if rnd.random() < 0.1:
            cart.remove_line("B")
            cart.add_quantity_item(bread, 1)
