"""
Derived metrics for broiler batches, sales and supply items.

All functions are pure. Money and percentages are rounded to 2 decimals,
kilogram quantities to 3, using round-half-away-from-zero.
"""
from decimal import Decimal, ROUND_HALF_UP

SHRINK_FACTOR = 0.95

PAID = 'Paid'
PARTIALLY_PAID = 'Partially Paid'
UNPAID = 'Unpaid'

COGS_KEYWORDS = ('feed', 'chick', 'livestock', 'day-old', 'medication', 'vaccine')
CHICK_KEYWORDS = ('chick', 'livestock', 'day-old')


def round_half_up(value, digits=2):
    if value is None:
        return 0.0
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_money(value):
    return round_half_up(value, 2)


def round_kg(value):
    return round_half_up(value, 3)


def safe_div(num, den):
    if den and den > 0:
        return num / den
    return 0.0


def mortality_rate(total_mortality, initial_total):
    """Cumulative mortality as a percentage of the initial population."""
    return round_half_up(safe_div(total_mortality, initial_total) * 100)


def feed_conversion_ratio(feed_consumed, current_weight, current_count):
    """Feed kg over live kg; 0 while there is no live mass to divide by."""
    live_mass = (current_weight or 0) * (current_count or 0)
    return round_half_up(safe_div(feed_consumed or 0, live_mass), 3)


def estimated_sales_revenue(current_count, proposed_price_per_bird):
    return round_money(current_count * proposed_price_per_bird * SHRINK_FACTOR)


def estimated_profit_loss(estimated_revenue, chick_price, purchased_chick_count, estimated_feed_cost):
    return round_money(estimated_revenue - chick_price * purchased_chick_count - estimated_feed_cost)


def actual_profit_loss(total_revenue, total_costs):
    return round_money(total_revenue - total_costs)


def sale_total(quantity, price_per_bird):
    return round_money(quantity * price_per_bird)


def balance_due(total_revenue, amount_received):
    return round_money(total_revenue - amount_received)


def payment_status(total_revenue, amount_received):
    if amount_received >= total_revenue:
        return PAID
    if amount_received > 0:
        return PARTIALLY_PAID
    return UNPAID


def is_low_stock(current_stock, buffer_stock):
    """Reorder signal; items without a buffer never raise it."""
    if not buffer_stock or buffer_stock <= 0:
        return False
    return (current_stock or 0) <= buffer_stock


def reporting_category(declared_category, item_category=None, item_name=None):
    """
    Category an expense is grouped under in cost-of-goods reports.

    Purchases of a feed-like supply item are grouped by the item's name so
    different feeds show up separately; everything else keeps the category
    the user entered. The stored category is never rewritten.
    """
    if item_name and item_category and 'feed' in item_category.lower():
        return item_name
    return declared_category or 'Uncategorized'


def _has_keyword(text, keywords):
    text = (text or '').lower()
    return any(keyword in text for keyword in keywords)


def is_cogs(*categories):
    return any(_has_keyword(category, COGS_KEYWORDS) for category in categories)


def is_chick_cost(expense):
    if expense.get('is_chick_purchase'):
        return True
    return _has_keyword(expense.get('category'), CHICK_KEYWORDS)


def unit_cost(supply_item):
    """Weighted average purchase cost per unit of a supply item."""
    if not supply_item:
        return 0.0
    return safe_div(supply_item.get('total_purchased_cost', 0),
                    supply_item.get('total_purchased_quantity', 0))


def batch_financials(batch, expenses, consumption_records, supply_items):
    """
    Actual cost and profit/loss of one batch.

    consumption_records are the batch's feed and health records; each is
    costed at its supply item's average purchase cost. supply_items maps id
    to item.
    """
    batch_expenses = [e for e in expenses if e.get('batch_id') == batch['id']]

    chick_cost = sum(e.get('amount', 0) for e in batch_expenses if is_chick_cost(e))

    consumption_cost = 0.0
    for record in consumption_records:
        item = supply_items.get(record.get('supply_item_id'))
        quantity = record.get('quantity_kg', record.get('quantity_used', 0)) or 0
        consumption_cost += unit_cost(item) * quantity

    other_cost = 0.0
    for expense in batch_expenses:
        if is_chick_cost(expense):
            continue
        item = supply_items.get(expense.get('supply_item_id')) or {}
        if is_cogs(expense.get('category'), item.get('category')):
            continue
        other_cost += expense.get('amount', 0)

    total_cost = chick_cost + consumption_cost + other_cost
    revenue = batch.get('total_sales_revenue', 0)
    return {
        'batch_id': batch['id'],
        'total_sales_revenue': round_money(revenue),
        'chick_cost': round_money(chick_cost),
        'consumption_cost': round_money(consumption_cost),
        'other_cost': round_money(other_cost),
        'total_cost': round_money(total_cost),
        'actual_profit_loss': actual_profit_loss(revenue, total_cost),
        'estimated_profit_loss': batch.get('estimated_profit_loss', 0),
    }
