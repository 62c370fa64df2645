"""
Reconciliation engine.

Every create/edit/delete of a ledger record runs as one store transaction
that reads the batch and supply items it touches, re-validates the event
against that fresh state, and writes the record together with the updated
aggregates. Edits revert the old record's effect and apply the new one;
deletes revert and remove. Nothing is written unless the whole operation
succeeds.

Each operation returns a dict:

    record        the created/edited record (absent on delete)
    batches       batch snapshots written by the operation
    supply_items  supply item snapshots written by the operation
    warnings      tolerated problems, e.g. a record pointing at a deleted batch
"""
import logging

import batch_aggregate
import ledger
import metrics
import supply_inventory
from errors import NotFoundError, ReconciliationError, ValidationError
from firebase_store import utc_now
from ledger import (
    BATCHES, EXPENSES, FEED_RECORDS, HEALTH_RECORDS, MORTALITY_RECORDS,
    FINANCIAL_TRANSACTIONS, SALES_RECORDS, SUPPLY_CONSUMPTION, SUPPLY_INVENTORY, WEIGHT_RECORDS,
)

logger = logging.getLogger(__name__)

BATCH_LINKED_COLLECTIONS = (
    MORTALITY_RECORDS, FEED_RECORDS, WEIGHT_RECORDS, SALES_RECORDS, HEALTH_RECORDS, EXPENSES,
)
ITEM_LINKED_COLLECTIONS = (FEED_RECORDS, HEALTH_RECORDS, EXPENSES)


def _require(txn, collection, record_id):
    record = txn.get(collection, record_id)
    if record is None:
        raise NotFoundError(collection, record_id)
    return record


def _result(record=None, batches=(), supply_items=(), warnings=()):
    result = {
        'batches': [b for b in batches if b],
        'supply_items': [i for i in supply_items if i],
        'warnings': list(warnings),
    }
    if record is not None:
        result['record'] = record
    return result


def _orphan_warning(collection, record_id, missing_collection, missing_id):
    return (f'{collection} record {record_id} referenced {missing_collection} '
            f'"{missing_id}" which no longer exists; its effect could not be reverted')


def _weight_key(record):
    return (record.get('date') or '', record.get('created_at') or '', record.get('id') or '')


def _latest_weight(records):
    if not records:
        return 0.0
    return max(records, key=_weight_key)['average_weight']


def _reread_pair(txn, collection, old_id, new_id, allow_missing_new=False):
    """Read the old and (if different) new referenced entity of an edit."""
    old = _require(txn, collection, old_id) if old_id else None
    if new_id == old_id:
        return old, old
    if not new_id:
        return old, None
    new = txn.get(collection, new_id)
    if new is None and not allow_missing_new:
        raise NotFoundError(collection, new_id)
    return old, new


def _swap(old_entity, new_entity, revert, apply):
    """
    Revert the old effect and apply the new one.

    When both point at the same entity the two steps are chained on one
    snapshot, so the amount being returned counts towards what is available.
    """
    if old_entity is not None and new_entity is not None and old_entity['id'] == new_entity['id']:
        return [apply(revert(old_entity))]
    updated = []
    if old_entity is not None:
        updated.append(revert(old_entity))
    if new_entity is not None:
        updated.append(apply(new_entity))
    return updated


class ReconciliationEngine:
    """Atomic event application for one owner's batches and supply inventory"""

    def __init__(self, store):
        self.store = store

    def _run(self, operation, body):
        try:
            result = self.store.run_transaction(body)
        except ReconciliationError as e:
            logger.warning('%s aborted (%s): %s', operation, e.error_type, e.message)
            raise
        record = result.get('record') or {}
        logger.info('%s committed: record=%s batches=%s supply_items=%s', operation,
                    record.get('id'), [b['id'] for b in result['batches']],
                    [i['id'] for i in result['supply_items']])
        for warning in result['warnings']:
            logger.warning('%s: %s', operation, warning)
        return result

    # ---------- Batches ----------

    def create_batch(self, data):
        batch = batch_aggregate.create_batch(ledger.batch_input(data))

        def body(txn):
            saved = txn.set(BATCHES, txn.generate_key(), batch)
            return _result(record=saved, batches=[saved])

        return self._run('create_batch', body)

    def update_batch(self, batch_id, changes):
        def body(txn):
            batch = _require(txn, BATCHES, batch_id)
            batch_in = ledger.batch_input(ledger.merge_edit(batch, changes))
            saved = txn.set(BATCHES, batch_id, batch_aggregate.update_static(batch, batch_in))
            return _result(record=saved, batches=[saved])

        return self._run('update_batch', body)

    def _set_batch_status(self, operation, batch_id, status):
        def body(txn):
            batch = _require(txn, BATCHES, batch_id)
            saved = txn.set(BATCHES, batch_id, batch_aggregate.set_status(batch, status))
            return _result(record=saved, batches=[saved])

        return self._run(operation, body)

    def close_batch(self, batch_id):
        return self._set_batch_status('close_batch', batch_id, ledger.BATCH_CLOSED)

    def reopen_batch(self, batch_id):
        return self._set_batch_status('reopen_batch', batch_id, ledger.BATCH_ACTIVE)

    def delete_batch(self, batch_id):
        """Delete a batch; its ledger records are kept and reported as orphans."""
        def body(txn):
            _require(txn, BATCHES, batch_id)
            warnings = []
            for collection in BATCH_LINKED_COLLECTIONS:
                dependents = txn.list(collection, {'batch_id': batch_id})
                if dependents:
                    warnings.append(f'{len(dependents)} {collection} records still reference '
                                    f'deleted batch {batch_id}')
            linked = txn.list(FINANCIAL_TRANSACTIONS, {'related_batch_id': batch_id})
            if linked:
                warnings.append(f'{len(linked)} {FINANCIAL_TRANSACTIONS} records still reference '
                                f'deleted batch {batch_id}')
            txn.delete(BATCHES, batch_id)
            return _result(warnings=warnings)

        return self._run('delete_batch', body)

    # ---------- Mortality ----------

    def record_mortality(self, data):
        record = ledger.mortality_record(data)

        def body(txn):
            batch = _require(txn, BATCHES, record['batch_id'])
            updated = batch_aggregate.apply_mortality(batch, record['count'])
            saved = txn.set(MORTALITY_RECORDS, txn.generate_key(), record)
            return _result(record=saved, batches=[txn.set(BATCHES, batch['id'], updated)])

        return self._run('record_mortality', body)

    def edit_mortality(self, record_id, changes):
        def body(txn):
            old = _require(txn, MORTALITY_RECORDS, record_id)
            new = ledger.mortality_record(ledger.merge_edit(old, changes))
            old_batch, new_batch = _reread_pair(txn, BATCHES, old['batch_id'], new['batch_id'])
            updated = _swap(
                old_batch, new_batch,
                lambda b: batch_aggregate.revert_mortality(b, old['count']),
                lambda b: batch_aggregate.apply_mortality(b, new['count']),
            )
            saved = txn.set(MORTALITY_RECORDS, record_id, new)
            return _result(record=saved, batches=[txn.set(BATCHES, b['id'], b) for b in updated])

        return self._run('edit_mortality', body)

    def delete_mortality(self, record_id):
        def body(txn):
            old = _require(txn, MORTALITY_RECORDS, record_id)
            batch = txn.get(BATCHES, old['batch_id'])
            warnings = []
            updated = None
            if batch is None:
                warnings.append(_orphan_warning(MORTALITY_RECORDS, record_id, BATCHES, old['batch_id']))
            else:
                updated = batch_aggregate.revert_mortality(batch, old['count'])
            txn.delete(MORTALITY_RECORDS, record_id)
            batches = [txn.set(BATCHES, updated['id'], updated)] if updated else []
            return _result(batches=batches, warnings=warnings)

        return self._run('delete_mortality', body)

    # ---------- Feed ----------

    def _consumption_entry(self, collection, record_id, record, quantity, direction):
        return {
            'source_collection': collection,
            'source_id': record_id,
            'supply_item_id': record['supply_item_id'],
            'batch_id': record.get('batch_id') or None,
            'quantity': quantity,
            'direction': direction,
            'date': record['date'],
        }

    def record_feed(self, data):
        record = ledger.feed_record(data)

        def body(txn):
            batch = _require(txn, BATCHES, record['batch_id'])
            item = _require(txn, SUPPLY_INVENTORY, record['supply_item_id'])
            updated_item = supply_inventory.consume(item, record['quantity_kg'])
            updated_batch = batch_aggregate.apply_feed(batch, record['quantity_kg'])

            record_id = txn.generate_key()
            saved = txn.set(FEED_RECORDS, record_id, record)
            txn.set(SUPPLY_CONSUMPTION, record_id, self._consumption_entry(
                FEED_RECORDS, record_id, record, record['quantity_kg'], 'consume'))
            return _result(
                record=saved,
                batches=[txn.set(BATCHES, batch['id'], updated_batch)],
                supply_items=[txn.set(SUPPLY_INVENTORY, item['id'], updated_item)],
            )

        return self._run('record_feed', body)

    def edit_feed(self, record_id, changes):
        def body(txn):
            old = _require(txn, FEED_RECORDS, record_id)
            new = ledger.feed_record(ledger.merge_edit(old, changes))
            old_batch, new_batch = _reread_pair(txn, BATCHES, old['batch_id'], new['batch_id'])
            old_item, new_item = _reread_pair(txn, SUPPLY_INVENTORY, old['supply_item_id'], new['supply_item_id'])

            batches = _swap(
                old_batch, new_batch,
                lambda b: batch_aggregate.revert_feed(b, old['quantity_kg']),
                lambda b: batch_aggregate.apply_feed(b, new['quantity_kg']),
            )
            items = _swap(
                old_item, new_item,
                lambda i: supply_inventory.revert_consumption(i, old['quantity_kg']),
                lambda i: supply_inventory.consume(i, new['quantity_kg']),
            )

            saved = txn.set(FEED_RECORDS, record_id, new)
            txn.set(SUPPLY_CONSUMPTION, record_id, self._consumption_entry(
                FEED_RECORDS, record_id, new, new['quantity_kg'], 'consume'))
            return _result(
                record=saved,
                batches=[txn.set(BATCHES, b['id'], b) for b in batches],
                supply_items=[txn.set(SUPPLY_INVENTORY, i['id'], i) for i in items],
            )

        return self._run('edit_feed', body)

    def delete_feed(self, record_id):
        def body(txn):
            old = _require(txn, FEED_RECORDS, record_id)
            batch = txn.get(BATCHES, old['batch_id'])
            item = txn.get(SUPPLY_INVENTORY, old['supply_item_id'])

            warnings = []
            updated_batch = updated_item = None
            if batch is None:
                warnings.append(_orphan_warning(FEED_RECORDS, record_id, BATCHES, old['batch_id']))
            else:
                updated_batch = batch_aggregate.revert_feed(batch, old['quantity_kg'])
            if item is None:
                warnings.append(_orphan_warning(FEED_RECORDS, record_id, SUPPLY_INVENTORY, old['supply_item_id']))
            else:
                updated_item = supply_inventory.revert_consumption(item, old['quantity_kg'])

            txn.delete(FEED_RECORDS, record_id)
            txn.delete(SUPPLY_CONSUMPTION, record_id)
            return _result(
                batches=[txn.set(BATCHES, updated_batch['id'], updated_batch)] if updated_batch else [],
                supply_items=[txn.set(SUPPLY_INVENTORY, updated_item['id'], updated_item)] if updated_item else [],
                warnings=warnings,
            )

        return self._run('delete_feed', body)

    # ---------- Weight samples ----------

    def _reweigh(self, batch, samples):
        """Batch with current_weight taken from the latest remaining sample."""
        latest = _latest_weight(samples)
        if latest:
            return batch_aggregate.apply_weight_sample(batch, latest)
        return batch_aggregate.revert_weight_sample(batch)

    def record_weight(self, data):
        record = ledger.weight_record(data)
        record['created_at'] = utc_now()

        def body(txn):
            batch = _require(txn, BATCHES, record['batch_id'])
            samples = txn.list(WEIGHT_RECORDS, {'batch_id': batch['id']})

            record_id = txn.generate_key()
            updated = self._reweigh(batch, samples + [dict(record, id=record_id)])
            saved = txn.set(WEIGHT_RECORDS, record_id, record)
            return _result(record=saved, batches=[txn.set(BATCHES, batch['id'], updated)])

        return self._run('record_weight', body)

    def edit_weight(self, record_id, changes):
        def body(txn):
            old = _require(txn, WEIGHT_RECORDS, record_id)
            new = ledger.weight_record(ledger.merge_edit(old, changes))
            new['created_at'] = old.get('created_at')
            old_batch, new_batch = _reread_pair(txn, BATCHES, old['batch_id'], new['batch_id'])

            updated = []
            for batch in {b['id']: b for b in (old_batch, new_batch)}.values():
                samples = [s for s in txn.list(WEIGHT_RECORDS, {'batch_id': batch['id']})
                           if s['id'] != record_id]
                if batch['id'] == new['batch_id']:
                    samples.append(dict(new, id=record_id))
                updated.append(self._reweigh(batch, samples))

            saved = txn.set(WEIGHT_RECORDS, record_id, new)
            return _result(record=saved, batches=[txn.set(BATCHES, b['id'], b) for b in updated])

        return self._run('edit_weight', body)

    def delete_weight(self, record_id):
        def body(txn):
            old = _require(txn, WEIGHT_RECORDS, record_id)
            batch = txn.get(BATCHES, old['batch_id'])
            warnings = []
            updated = None
            if batch is None:
                warnings.append(_orphan_warning(WEIGHT_RECORDS, record_id, BATCHES, old['batch_id']))
            else:
                remaining = [s for s in txn.list(WEIGHT_RECORDS, {'batch_id': batch['id']})
                             if s['id'] != record_id]
                updated = self._reweigh(batch, remaining)
            txn.delete(WEIGHT_RECORDS, record_id)
            batches = [txn.set(BATCHES, updated['id'], updated)] if updated else []
            return _result(batches=batches, warnings=warnings)

        return self._run('delete_weight', body)

    # ---------- Sales ----------

    def record_sale(self, data):
        record = ledger.sales_record(data)

        def body(txn):
            batch = _require(txn, BATCHES, record['batch_id'])
            updated = batch_aggregate.apply_sale(batch, record['quantity'], record['total_revenue'])
            saved = txn.set(SALES_RECORDS, txn.generate_key(), record)
            return _result(record=saved, batches=[txn.set(BATCHES, batch['id'], updated)])

        return self._run('record_sale', body)

    def edit_sale(self, record_id, changes):
        def body(txn):
            old = _require(txn, SALES_RECORDS, record_id)
            merged = ledger.merge_edit(old, changes)
            was_credit = str(old.get('sale_type')).title() != 'Cash'
            if ('amount_received' not in changes and str(merged.get('sale_type')).title() == 'Cash'
                    and (was_credit or old['balance_due'] == 0)):
                # a settled cash sale stays settled in full; partial payments are kept
                merged.pop('amount_received', None)
            new = ledger.sales_record(merged)
            old_batch, new_batch = _reread_pair(txn, BATCHES, old['batch_id'], new['batch_id'])
            updated = _swap(
                old_batch, new_batch,
                lambda b: batch_aggregate.revert_sale(b, old['quantity'], old['total_revenue']),
                lambda b: batch_aggregate.apply_sale(b, new['quantity'], new['total_revenue']),
            )
            saved = txn.set(SALES_RECORDS, record_id, new)
            return _result(record=saved, batches=[txn.set(BATCHES, b['id'], b) for b in updated])

        return self._run('edit_sale', body)

    def record_payment(self, record_id, amount):
        """Add a payment against a sale's outstanding balance."""
        amount = ledger.parse_money(amount, 'amount', strictly_positive=True)

        def body(txn):
            sale = _require(txn, SALES_RECORDS, record_id)
            if amount > sale['balance_due']:
                raise ValidationError(
                    f'Payment of {amount} exceeds the balance due of {sale["balance_due"]}',
                    field='amount', balance_due=sale['balance_due'])
            received = metrics.round_money(sale['amount_received'] + amount)
            sale.update({
                'amount_received': received,
                'balance_due': metrics.balance_due(sale['total_revenue'], received),
                'payment_status': metrics.payment_status(sale['total_revenue'], received),
            })
            return _result(record=txn.set(SALES_RECORDS, record_id, sale))

        return self._run('record_payment', body)

    def delete_sale(self, record_id):
        def body(txn):
            old = _require(txn, SALES_RECORDS, record_id)
            batch = txn.get(BATCHES, old['batch_id'])
            warnings = []
            updated = None
            if batch is None:
                warnings.append(_orphan_warning(SALES_RECORDS, record_id, BATCHES, old['batch_id']))
            else:
                updated = batch_aggregate.revert_sale(batch, old['quantity'], old['total_revenue'])
            txn.delete(SALES_RECORDS, record_id)
            batches = [txn.set(BATCHES, updated['id'], updated)] if updated else []
            return _result(batches=batches, warnings=warnings)

        return self._run('delete_sale', body)

    # ---------- Health records ----------

    def _sync_consumption(self, txn, collection, record_id, record, quantity, direction):
        if record.get('supply_item_id'):
            txn.set(SUPPLY_CONSUMPTION, record_id, self._consumption_entry(
                collection, record_id, record, quantity, direction))
        else:
            txn.delete(SUPPLY_CONSUMPTION, record_id)

    def record_health(self, data):
        record = ledger.health_record(data)

        def body(txn):
            if record['batch_id']:
                _require(txn, BATCHES, record['batch_id'])
            updated_item = None
            if record['supply_item_id']:
                item = _require(txn, SUPPLY_INVENTORY, record['supply_item_id'])
                updated_item = supply_inventory.consume(item, record['quantity_used'])

            record_id = txn.generate_key()
            saved = txn.set(HEALTH_RECORDS, record_id, record)
            self._sync_consumption(txn, HEALTH_RECORDS, record_id, record, record['quantity_used'], 'consume')
            items = [txn.set(SUPPLY_INVENTORY, updated_item['id'], updated_item)] if updated_item else []
            return _result(record=saved, supply_items=items)

        return self._run('record_health', body)

    def edit_health(self, record_id, changes):
        def body(txn):
            old = _require(txn, HEALTH_RECORDS, record_id)
            new = ledger.health_record(ledger.merge_edit(old, changes))
            if new['batch_id'] and new['batch_id'] != old.get('batch_id'):
                _require(txn, BATCHES, new['batch_id'])
            old_item, new_item = _reread_pair(
                txn, SUPPLY_INVENTORY, old.get('supply_item_id') or None, new['supply_item_id'] or None)
            items = _swap(
                old_item, new_item,
                lambda i: supply_inventory.revert_consumption(i, old.get('quantity_used', 0)),
                lambda i: supply_inventory.consume(i, new['quantity_used']),
            )
            saved = txn.set(HEALTH_RECORDS, record_id, new)
            self._sync_consumption(txn, HEALTH_RECORDS, record_id, new, new['quantity_used'], 'consume')
            return _result(record=saved, supply_items=[txn.set(SUPPLY_INVENTORY, i['id'], i) for i in items])

        return self._run('edit_health', body)

    def delete_health(self, record_id):
        def body(txn):
            old = _require(txn, HEALTH_RECORDS, record_id)
            warnings = []
            updated_item = None
            if old.get('supply_item_id'):
                item = txn.get(SUPPLY_INVENTORY, old['supply_item_id'])
                if item is None:
                    warnings.append(_orphan_warning(
                        HEALTH_RECORDS, record_id, SUPPLY_INVENTORY, old['supply_item_id']))
                else:
                    updated_item = supply_inventory.revert_consumption(item, old.get('quantity_used', 0))
            txn.delete(HEALTH_RECORDS, record_id)
            txn.delete(SUPPLY_CONSUMPTION, record_id)
            items = [txn.set(SUPPLY_INVENTORY, updated_item['id'], updated_item)] if updated_item else []
            return _result(supply_items=items, warnings=warnings)

        return self._run('delete_health', body)

    # ---------- Expenses ----------

    def record_expense(self, data):
        record = ledger.expense_record(data)

        def body(txn):
            if record['batch_id']:
                _require(txn, BATCHES, record['batch_id'])
            updated_item = None
            if record['supply_item_id']:
                item = _require(txn, SUPPLY_INVENTORY, record['supply_item_id'])
                updated_item = supply_inventory.restock(item, record['quantity_purchased'], record['amount'])

            record_id = txn.generate_key()
            saved = txn.set(EXPENSES, record_id, record)
            self._sync_consumption(txn, EXPENSES, record_id, record, record['quantity_purchased'], 'restock')
            items = [txn.set(SUPPLY_INVENTORY, updated_item['id'], updated_item)] if updated_item else []
            return _result(record=self.expense_view(saved, updated_item), supply_items=items)

        return self._run('record_expense', body)

    def edit_expense(self, record_id, changes):
        def body(txn):
            old = _require(txn, EXPENSES, record_id)
            new = ledger.expense_record(ledger.merge_edit(old, changes))
            if new['batch_id'] and new['batch_id'] != old.get('batch_id'):
                _require(txn, BATCHES, new['batch_id'])
            old_item, new_item = _reread_pair(
                txn, SUPPLY_INVENTORY, old.get('supply_item_id') or None, new['supply_item_id'] or None)
            items = _swap(
                old_item, new_item,
                lambda i: supply_inventory.revert_restock(i, old.get('quantity_purchased', 0), old['amount']),
                lambda i: supply_inventory.restock(i, new['quantity_purchased'], new['amount']),
            )
            saved = txn.set(EXPENSES, record_id, new)
            self._sync_consumption(txn, EXPENSES, record_id, new, new['quantity_purchased'], 'restock')
            written = [txn.set(SUPPLY_INVENTORY, i['id'], i) for i in items]
            linked = next((i for i in written if i['id'] == new['supply_item_id']), None)
            return _result(record=self.expense_view(saved, linked), supply_items=written)

        return self._run('edit_expense', body)

    def delete_expense(self, record_id):
        def body(txn):
            old = _require(txn, EXPENSES, record_id)
            warnings = []
            updated_item = None
            if old.get('supply_item_id'):
                item = txn.get(SUPPLY_INVENTORY, old['supply_item_id'])
                if item is None:
                    warnings.append(_orphan_warning(EXPENSES, record_id, SUPPLY_INVENTORY, old['supply_item_id']))
                else:
                    updated_item = supply_inventory.revert_restock(
                        item, old.get('quantity_purchased', 0), old['amount'])
            txn.delete(EXPENSES, record_id)
            txn.delete(SUPPLY_CONSUMPTION, record_id)
            items = [txn.set(SUPPLY_INVENTORY, updated_item['id'], updated_item)] if updated_item else []
            return _result(supply_items=items, warnings=warnings)

        return self._run('delete_expense', body)

    @staticmethod
    def expense_view(expense, supply_item=None):
        """Expense with its derived reporting_category (never stored)."""
        supply_item = supply_item or {}
        return dict(expense, reporting_category=metrics.reporting_category(
            expense.get('category'), supply_item.get('category'), supply_item.get('name')))

    # ---------- Financial transactions ----------

    def record_financial_transaction(self, data):
        record = ledger.financial_transaction(data)

        def body(txn):
            if record['related_batch_id']:
                _require(txn, BATCHES, record['related_batch_id'])
            saved = txn.set(FINANCIAL_TRANSACTIONS, txn.generate_key(), record)
            return _result(record=saved)

        return self._run('record_financial_transaction', body)

    def edit_financial_transaction(self, record_id, changes):
        def body(txn):
            old = _require(txn, FINANCIAL_TRANSACTIONS, record_id)
            new = ledger.financial_transaction(ledger.merge_edit(old, changes))
            if new['related_batch_id'] and new['related_batch_id'] != old.get('related_batch_id'):
                _require(txn, BATCHES, new['related_batch_id'])
            return _result(record=txn.set(FINANCIAL_TRANSACTIONS, record_id, new))

        return self._run('edit_financial_transaction', body)

    def delete_financial_transaction(self, record_id):
        def body(txn):
            _require(txn, FINANCIAL_TRANSACTIONS, record_id)
            txn.delete(FINANCIAL_TRANSACTIONS, record_id)
            return _result()

        return self._run('delete_financial_transaction', body)

    # ---------- Supply inventory ----------

    def create_supply_item(self, data):
        item = supply_inventory.create_item(ledger.supply_item_input(data))

        def body(txn):
            saved = txn.set(SUPPLY_INVENTORY, txn.generate_key(), item)
            return _result(record=saved, supply_items=[saved])

        return self._run('create_supply_item', body)

    def update_supply_item(self, item_id, changes):
        def body(txn):
            item = _require(txn, SUPPLY_INVENTORY, item_id)
            details = ledger.supply_item_input(ledger.merge_edit(item, changes), include_stock=False)
            saved = txn.set(SUPPLY_INVENTORY, item_id, supply_inventory.update_details(item, details))
            return _result(record=saved, supply_items=[saved])

        return self._run('update_supply_item', body)

    def delete_supply_item(self, item_id):
        def body(txn):
            _require(txn, SUPPLY_INVENTORY, item_id)
            warnings = []
            for collection in ITEM_LINKED_COLLECTIONS:
                dependents = txn.list(collection, {'supply_item_id': item_id})
                if dependents:
                    warnings.append(f'{len(dependents)} {collection} records still reference '
                                    f'deleted supply item {item_id}')
            txn.delete(SUPPLY_INVENTORY, item_id)
            return _result(warnings=warnings)

        return self._run('delete_supply_item', body)

    # ---------- Read-side queries ----------

    def low_stock_items(self):
        items = self.store.get_records(SUPPLY_INVENTORY, order_by='name')
        return [dict(item, low_stock=True) for item in items if supply_inventory.is_low_stock(item)]

    def batch_summary(self, batch_id):
        batch = self.store.get_record(BATCHES, batch_id)
        if batch is None:
            raise NotFoundError(BATCHES, batch_id)
        items = {item['id']: item for item in self.store.get_records(SUPPLY_INVENTORY)}
        consumption = (self.store.get_records(FEED_RECORDS, {'batch_id': batch_id})
                       + self.store.get_records(HEALTH_RECORDS, {'batch_id': batch_id}))
        expenses = self.store.get_records(EXPENSES, {'batch_id': batch_id})
        return {
            'batch': batch,
            'financials': metrics.batch_financials(batch, expenses, consumption, items),
        }
