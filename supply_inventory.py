"""Stock level transitions for supply inventory items."""
import metrics
from errors import InsufficientStockError


def create_item(item_input):
    item = dict(item_input)
    item.setdefault('current_stock', 0.0)
    item['total_purchased_cost'] = 0.0
    item['total_purchased_quantity'] = 0.0
    return item


def update_details(item, item_input):
    """Rename/recategorise an item. Stock only moves through events."""
    updated = dict(item)
    updated.update({k: v for k, v in item_input.items() if k != 'current_stock'})
    return updated


def consume(item, quantity):
    available = item.get('current_stock', 0)
    if quantity > available:
        raise InsufficientStockError(quantity, available, item.get('id'))
    return dict(item, current_stock=metrics.round_kg(available - quantity))


def revert_consumption(item, quantity):
    return dict(item, current_stock=metrics.round_kg(item.get('current_stock', 0) + quantity))


def restock(item, quantity, cost=0.0):
    updated = dict(item)
    updated['current_stock'] = metrics.round_kg(item.get('current_stock', 0) + quantity)
    updated['total_purchased_quantity'] = metrics.round_kg(item.get('total_purchased_quantity', 0) + quantity)
    updated['total_purchased_cost'] = metrics.round_money(item.get('total_purchased_cost', 0) + cost)
    return updated


def revert_restock(item, quantity, cost=0.0):
    """Undo a purchase. Fails rather than clamp when the stock was already used."""
    available = item.get('current_stock', 0)
    if quantity > available:
        raise InsufficientStockError(quantity, available, item.get('id'))
    updated = dict(item)
    updated['current_stock'] = metrics.round_kg(available - quantity)
    updated['total_purchased_quantity'] = metrics.round_kg(
        max(0.0, item.get('total_purchased_quantity', 0) - quantity))
    updated['total_purchased_cost'] = metrics.round_money(max(0.0, item.get('total_purchased_cost', 0) - cost))
    return updated


def is_low_stock(item):
    return metrics.is_low_stock(item.get('current_stock', 0), item.get('buffer_stock', 0))
