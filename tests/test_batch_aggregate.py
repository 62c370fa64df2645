import pytest

import batch_aggregate
import supply_inventory
from errors import InsufficientPopulationError, InsufficientStockError, ValidationError


@pytest.fixture
def new_batch():
    batch = batch_aggregate.create_batch({
        'name': 'Batch 1',
        'purchase_date': '2024-03-01',
        'purchased_chick_count': 500,
        'free_chick_count': 10,
        'chick_price': 0.5,
        'proposed_selling_price_per_bird': 6.0,
        'estimated_feed_cost': 300.0,
    })
    batch['id'] = 'b1'
    return batch


def test_create_batch_initialises_counts_and_estimates(new_batch):
    assert new_batch['initial_total'] == 510
    assert new_batch['current_count'] == 510
    assert new_batch['total_mortality'] == 0
    assert new_batch['total_birds_sold'] == 0
    assert new_batch['status'] == 'Active'
    assert new_batch['estimated_sales_revenue'] == 2907.0
    assert new_batch['estimated_profit_loss'] == 2357.0
    assert batch_aggregate.population_balanced(new_batch)


def test_create_batch_needs_a_chick():
    with pytest.raises(ValidationError):
        batch_aggregate.create_batch({
            'purchased_chick_count': 0, 'free_chick_count': 0, 'chick_price': 0.5,
            'proposed_selling_price_per_bird': 6.0, 'estimated_feed_cost': 0.0,
        })


def test_transitions_do_not_mutate_input(new_batch):
    before = dict(new_batch)
    batch_aggregate.apply_mortality(new_batch, 5)
    batch_aggregate.apply_sale(new_batch, 5, 30.0)
    batch_aggregate.apply_feed(new_batch, 12.5)
    assert new_batch == before


@pytest.mark.parametrize('apply, revert', [
    (lambda b: batch_aggregate.apply_mortality(b, 10), lambda b: batch_aggregate.revert_mortality(b, 10)),
    (lambda b: batch_aggregate.apply_sale(b, 50, 300.0), lambda b: batch_aggregate.revert_sale(b, 50, 300.0)),
    (lambda b: batch_aggregate.apply_feed(b, 25.0), lambda b: batch_aggregate.revert_feed(b, 25.0)),
])
def test_revert_undoes_apply(new_batch, apply, revert):
    assert revert(apply(new_batch)) == new_batch


def test_mortality_recomputes_estimate_and_rate(new_batch):
    batch = batch_aggregate.apply_mortality(new_batch, 10)
    assert batch['current_count'] == 500
    assert batch['current_mortality_rate'] == 1.96
    assert batch['estimated_sales_revenue'] == 2850.0
    assert batch['estimated_profit_loss'] == 2300.0


def test_sale_leaves_estimate_alone(new_batch):
    batch = batch_aggregate.apply_sale(new_batch, 50, 300.0)
    assert batch['current_count'] == 460
    assert batch['total_sales_revenue'] == 300.0
    assert batch['estimated_sales_revenue'] == new_batch['estimated_sales_revenue']


def test_taking_every_bird_is_allowed(new_batch):
    batch = batch_aggregate.apply_mortality(new_batch, 510)
    assert batch['current_count'] == 0
    assert batch_aggregate.population_balanced(batch)


def test_taking_more_birds_than_present_fails(new_batch):
    with pytest.raises(InsufficientPopulationError) as excinfo:
        batch_aggregate.apply_sale(new_batch, 511, 3066.0)
    assert excinfo.value.context == {'requested': 511, 'available': 510, 'batch_id': 'b1'}


def test_reverting_more_than_recorded_fails(new_batch):
    with pytest.raises(ValidationError):
        batch_aggregate.revert_mortality(new_batch, 1)
    with pytest.raises(ValidationError):
        batch_aggregate.revert_feed(new_batch, 0.5)


def test_fcr_follows_feed_and_weight(new_batch):
    batch = batch_aggregate.apply_feed(new_batch, 25.0)
    assert batch['feed_conversion_ratio'] == 0.0
    batch = batch_aggregate.apply_weight_sample(batch, 2.5)
    assert batch['feed_conversion_ratio'] == 0.02
    batch = batch_aggregate.revert_weight_sample(batch)
    assert batch['current_weight'] == 0.0
    assert batch['feed_conversion_ratio'] == 0.0


def test_update_static_keeps_recorded_events(new_batch):
    batch = batch_aggregate.apply_mortality(new_batch, 10)
    batch = batch_aggregate.apply_sale(batch, 100, 600.0)

    updated = batch_aggregate.update_static(batch, {
        'purchased_chick_count': 600, 'free_chick_count': 0, 'proposed_selling_price_per_bird': 7.0,
    })

    assert updated['initial_total'] == 600
    assert updated['current_count'] == 490
    assert updated['total_mortality'] == 10
    assert updated['total_birds_sold'] == 100
    assert updated['estimated_sales_revenue'] == 3258.5
    assert batch_aggregate.population_balanced(updated)


def test_update_static_cannot_shrink_below_recorded_events(new_batch):
    batch = batch_aggregate.apply_mortality(new_batch, 100)
    with pytest.raises(InsufficientPopulationError):
        batch_aggregate.update_static(batch, {'purchased_chick_count': 50, 'free_chick_count': 0})


def test_set_status_rejects_unknown_status(new_batch):
    assert batch_aggregate.set_status(new_batch, 'Closed')['status'] == 'Closed'
    with pytest.raises(ValidationError):
        batch_aggregate.set_status(new_batch, 'Archived')


class TestSupplyInventory:
    @pytest.fixture
    def item(self):
        item = supply_inventory.create_item({'name': 'Starter', 'category': 'Feed', 'current_stock': 100.0})
        item['id'] = 'feed'
        return item

    def test_consume_and_revert(self, item):
        used = supply_inventory.consume(item, 25.0)
        assert used['current_stock'] == 75.0
        assert supply_inventory.revert_consumption(used, 25.0) == item

    def test_consume_more_than_stock_fails(self, item):
        with pytest.raises(InsufficientStockError) as excinfo:
            supply_inventory.consume(item, 100.5)
        assert excinfo.value.context['supply_item_id'] == 'feed'

    def test_restock_tracks_cost_basis(self, item):
        restocked = supply_inventory.restock(item, 50.0, 100.0)
        assert restocked['current_stock'] == 150.0
        assert restocked['total_purchased_quantity'] == 50.0
        assert restocked['total_purchased_cost'] == 100.0
        assert supply_inventory.revert_restock(restocked, 50.0, 100.0) == item

    def test_revert_restock_of_used_stock_fails(self, item):
        restocked = supply_inventory.consume(supply_inventory.restock(item, 50.0, 100.0), 120.0)
        with pytest.raises(InsufficientStockError):
            supply_inventory.revert_restock(restocked, 50.0, 100.0)

    def test_update_details_ignores_stock(self, item):
        updated = supply_inventory.update_details(item, {'name': 'Grower', 'current_stock': 999})
        assert updated['name'] == 'Grower'
        assert updated['current_stock'] == 100.0
