"""Shared BDD fixtures and step definitions for order delivery."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then
from storefront.access.order_design_file import OrderDesignFile
from storefront.catalogue.design_file import DesignFile
from storefront.notifier.templates.kinds import NotificationKind
from storefront.order.order import Order


@pytest.fixture()
def cart():
    """Item dicts collected by Given steps, placed as one order by a When step."""
    return []


@pytest.fixture()
def passes():
    """Fulfillment results, in the order the When steps produced them."""
    return []


def _load(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a general design file for product "{product_id}"'))
def general_design_file(product_id):
    current_domain.repository_for(DesignFile).add(
        DesignFile.register(
            product_id=product_id,
            file_name=f"{product_id}.psd",
            file_url=f"https://cdn.test/{product_id}.psd",
            file_type="psd",
        )
    )


@given(parsers.cfparse('a "{name}" colour variant file with hex "{hex_value}" for product "{product_id}"'))
def color_variant_file(name, hex_value, product_id):
    current_domain.repository_for(DesignFile).add(
        DesignFile.register(
            product_id=product_id,
            file_name=f"{product_id}-{name.lower()}.psd",
            file_url=f"https://cdn.test/{product_id}/{name.lower()}.psd",
            file_type="psd",
            is_color_variant=True,
            color_variant_hex=hex_value,
        )
    )


@given(parsers.cfparse('the cart contains product "{product_id}"'))
def plain_product(cart, product_id):
    cart.append(
        {
            "product_id": product_id,
            "product_name": product_id.replace("prod-", "").title(),
            "unit_price": 10.0,
            "enable_customizations": False,
        }
    )


@given(parsers.cfparse('the cart contains colours "{colours}" of product "{product_id}"'))
def coloured_product(cart, colours, product_id):
    choices = []
    for pair in colours.split(","):
        name, hex_value = pair.strip().split("=")
        choices.append({"name": name, "hex": hex_value})
    cart.append(
        {
            "product_id": product_id,
            "product_name": product_id.replace("prod-", "").title(),
            "unit_price": 10.0,
            "enable_customizations": False,
            "customizations": {"colors": choices},
        }
    )


@given(parsers.cfparse('the cart contains customizable product "{product_id}" with notes "{notes}"'))
def customized_product(cart, product_id, notes):
    cart.append(
        {
            "product_id": product_id,
            "product_name": product_id.replace("prod-", "").title(),
            "unit_price": 10.0,
            "enable_customizations": True,
            "customizations": {"customization_notes": notes},
        }
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order_id, status):
    assert _load(order_id).order_status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def payment_status_is(order_id, status):
    assert _load(order_id).payment_status == status


@then(parsers.cfparse('item {index:d} is "{status}"'))
def item_status_is(order_id, index, status):
    assert _load(order_id).item_at(index).delivery_status == status


@then(parsers.cfparse('the notes of item {index:d} mention "{text}"'))
def item_notes_mention(order_id, index, text):
    assert text in (_load(order_id).item_at(index).delivery_notes or "")


@then(parsers.cfparse("{count:d} download grants exist"))
def download_grants_exist(order_id, count):
    assert len(current_domain.repository_for(OrderDesignFile).for_order(order_id)) == count


@then(parsers.cfparse('the "{kind}" email is sent {count:d} times'))
def email_sent(notifier, kind, count):
    assert len(notifier.sent_of_kind(NotificationKind(kind))) == count


@then(parsers.cfparse('the second pass reports "{outcome}"'))
def second_pass_reports(passes, outcome):
    assert passes[1].outcome.value == outcome
