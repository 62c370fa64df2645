"""
Batch aggregate state transitions.

Every function takes the stored batch dict and returns a new dict; the input
is never mutated. The engine persists the result inside its transaction.

Population invariant kept by every transition:
    current_count + total_mortality + total_birds_sold == initial_total
"""
import metrics
from errors import InsufficientPopulationError, ValidationError
from ledger import BATCH_ACTIVE, BATCH_CLOSED

# fields the user may edit after creation
STATIC_FIELDS = (
    'name', 'breed', 'hatch_date', 'purchase_date', 'purchased_chick_count',
    'free_chick_count', 'chick_price', 'proposed_selling_price_per_bird',
    'estimated_feed_cost', 'notes',
)


def _estimate(batch):
    revenue = metrics.estimated_sales_revenue(
        batch['current_count'], batch['proposed_selling_price_per_bird'])
    batch['estimated_sales_revenue'] = revenue
    batch['estimated_profit_loss'] = metrics.estimated_profit_loss(
        revenue, batch['chick_price'], batch['purchased_chick_count'], batch['estimated_feed_cost'])


def _refresh(batch):
    batch['current_mortality_rate'] = metrics.mortality_rate(batch['total_mortality'], batch['initial_total'])
    batch['feed_conversion_ratio'] = metrics.feed_conversion_ratio(
        batch['feed_consumed'], batch['current_weight'], batch['current_count'])


def _take_birds(batch, count):
    if count > batch['current_count']:
        raise InsufficientPopulationError(count, batch['current_count'], batch.get('id'))
    batch['current_count'] -= count


def _return_birds(batch, count, from_field):
    if count > batch[from_field] or batch['current_count'] + count > batch['initial_total']:
        raise ValidationError(
            f'Cannot return {count} birds: batch only records {batch[from_field]} in {from_field}',
            batch_id=batch.get('id'), field=from_field)
    batch['current_count'] += count
    batch[from_field] -= count


def create_batch(batch_input):
    """Build a new Active batch from validated static attributes."""
    batch = dict(batch_input)
    initial_total = batch['purchased_chick_count'] + batch['free_chick_count']
    if initial_total <= 0:
        raise ValidationError('A batch needs at least one chick', field='purchased_chick_count')
    batch.update({
        'initial_total': initial_total,
        'current_count': initial_total,
        'total_mortality': 0,
        'total_birds_sold': 0,
        'total_sales_revenue': 0.0,
        'feed_consumed': 0.0,
        'current_weight': 0.0,
        'status': BATCH_ACTIVE,
    })
    _estimate(batch)
    _refresh(batch)
    return batch


def update_static(batch, batch_input):
    """Apply edited static attributes; counts already recorded are kept."""
    updated = dict(batch)
    updated.update({field: batch_input[field] for field in STATIC_FIELDS if field in batch_input})
    initial_total = updated['purchased_chick_count'] + updated['free_chick_count']
    accounted = updated['total_mortality'] + updated['total_birds_sold']
    if initial_total < accounted:
        raise InsufficientPopulationError(accounted, initial_total, batch.get('id'))
    updated['initial_total'] = initial_total
    updated['current_count'] = initial_total - accounted
    _estimate(updated)
    _refresh(updated)
    return updated


def set_status(batch, status):
    if status not in (BATCH_ACTIVE, BATCH_CLOSED):
        raise ValidationError(f'Unknown batch status "{status}"', field='status')
    return dict(batch, status=status)


def apply_mortality(batch, count):
    updated = dict(batch)
    _take_birds(updated, count)
    updated['total_mortality'] += count
    _estimate(updated)
    _refresh(updated)
    return updated


def revert_mortality(batch, count):
    updated = dict(batch)
    _return_birds(updated, count, 'total_mortality')
    _estimate(updated)
    _refresh(updated)
    return updated


def apply_sale(batch, quantity, revenue):
    # sales leave the estimate unchanged
    updated = dict(batch)
    _take_birds(updated, quantity)
    updated['total_birds_sold'] += quantity
    updated['total_sales_revenue'] = metrics.round_money(updated['total_sales_revenue'] + revenue)
    _refresh(updated)
    return updated


def revert_sale(batch, quantity, revenue):
    updated = dict(batch)
    _return_birds(updated, quantity, 'total_birds_sold')
    updated['total_sales_revenue'] = metrics.round_money(updated['total_sales_revenue'] - revenue)
    _refresh(updated)
    return updated


def apply_feed(batch, quantity_kg):
    updated = dict(batch)
    updated['feed_consumed'] = metrics.round_kg(updated['feed_consumed'] + quantity_kg)
    _refresh(updated)
    return updated


def revert_feed(batch, quantity_kg):
    updated = dict(batch)
    remaining = metrics.round_kg(updated['feed_consumed'] - quantity_kg)
    if remaining < 0:
        raise ValidationError(
            f'Cannot remove {quantity_kg} kg: batch only records {updated["feed_consumed"]} kg of feed',
            batch_id=batch.get('id'), field='feed_consumed')
    updated['feed_consumed'] = remaining
    _refresh(updated)
    return updated


def apply_weight_sample(batch, average_weight):
    updated = dict(batch)
    updated['current_weight'] = average_weight
    _refresh(updated)
    return updated


def revert_weight_sample(batch, fallback_weight=0.0):
    """Undo a latest sample by falling back to the next-latest one (0 if none)."""
    return apply_weight_sample(batch, fallback_weight or 0.0)


def population_balanced(batch):
    return (batch['current_count'] + batch['total_mortality'] + batch['total_birds_sold']
            == batch['initial_total'] and 0 <= batch['current_count'] <= batch['initial_total'])
