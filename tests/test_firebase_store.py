import pytest

from errors import NotFoundError, TransactionConflictError, ValidationError
from firebase_store import MockDatabase, RecordStore, SimpleFirebaseConfig, Transaction


def test_development_mode_uses_in_memory_database():
    firebase = SimpleFirebaseConfig({'DEVELOPMENT_MODE': True, 'TRANSACTION_MAX_RETRIES': 5})
    assert isinstance(firebase.admin_db, MockDatabase)
    assert firebase.admin_db.max_retries == 5


def test_store_requires_an_owner(database):
    with pytest.raises(ValidationError):
        RecordStore(database, 'test-app', '')


def test_records_are_scoped_to_app_and_owner(database, store):
    record_id = store.create_record('batches', {'name': 'Batch 1'})

    raw = database.reference(f'artifacts/test-app/users/owner-1/batches/{record_id}').get()
    assert raw['name'] == 'Batch 1'
    assert 'created_at' in raw

    other = RecordStore(database, 'test-app', 'owner-2')
    assert other.get_records('batches') == []
    assert other.get_record('batches', record_id) is None


def test_crud(store):
    record_id = store.create_record('supply_inventory', {'name': 'Starter', 'notes': None})
    record = store.get_record('supply_inventory', record_id)
    assert record['id'] == record_id
    assert 'notes' not in record

    store.update_record('supply_inventory', record_id, {'name': 'Grower'})
    record = store.get_record('supply_inventory', record_id)
    assert record['name'] == 'Grower'
    assert 'updated_at' in record

    store.delete_record('supply_inventory', record_id)
    assert store.get_record('supply_inventory', record_id) is None


def test_get_records_filters_and_orders(store):
    store.create_record('mortality_records', {'batch_id': 'b1', 'date': '2024-03-05'})
    store.create_record('mortality_records', {'batch_id': 'b2', 'date': '2024-03-01'})
    store.create_record('mortality_records', {'batch_id': 'b1', 'date': '2024-03-02'})

    records = store.get_records('mortality_records', {'batch_id': 'b1'}, order_by='date')
    assert [r['date'] for r in records] == ['2024-03-02', '2024-03-05']

    records = store.get_records('mortality_records', order_by='date', reverse=True)
    assert [r['date'] for r in records] == ['2024-03-05', '2024-03-02', '2024-03-01']


class TestRunTransaction:
    def test_commits_all_writes_together(self, store):
        def body(txn):
            txn.set('batches', 'b1', {'name': 'Batch 1'})
            txn.set('mortality_records', 'm1', {'batch_id': 'b1', 'count': 3})
            return 'done'

        assert store.run_transaction(body) == 'done'
        assert store.get_record('batches', 'b1')['name'] == 'Batch 1'
        assert store.get_record('mortality_records', 'm1')['count'] == 3

    def test_exception_writes_nothing(self, store):
        def body(txn):
            txn.set('batches', 'b1', {'name': 'Batch 1'})
            raise ValidationError('nope')

        with pytest.raises(ValidationError):
            store.run_transaction(body)
        assert store.get_records('batches') == []

    def test_reads_after_writes_are_rejected(self, store):
        def body(txn):
            txn.set('batches', 'b1', {'name': 'Batch 1'})
            txn.get('batches', 'b1')

        with pytest.raises(RuntimeError):
            store.run_transaction(body)
        assert store.get_records('batches') == []

    def test_retries_when_another_writer_commits_first(self, store):
        calls = []

        def body(txn):
            calls.append(1)
            if len(calls) == 1:
                store.reference('batches', 'other').set({'name': 'Concurrent'})
            txn.set('batches', 'b1', {'name': 'Batch 1'})

        store.run_transaction(body)

        assert len(calls) == 2
        names = sorted(r['name'] for r in store.get_records('batches'))
        assert names == ['Batch 1', 'Concurrent']

    def test_gives_up_after_max_retries(self):
        database = MockDatabase(max_retries=3)
        store = RecordStore(database, 'test-app', 'owner-1')
        calls = []

        def body(txn):
            calls.append(1)
            store.reference('noise').set(len(calls))
            txn.set('batches', 'b1', {'name': 'Batch 1'})

        with pytest.raises(TransactionConflictError):
            store.run_transaction(body)
        assert len(calls) == 3
        assert store.get_record('batches', 'b1') is None


class TestTransaction:
    def test_set_stamps_timestamps_and_drops_nulls(self):
        txn = Transaction({})
        created = txn.set('batches', 'b1', {'id': 'ignored', 'name': 'Batch 1', 'breed': None})
        assert created['id'] == 'b1'
        assert 'breed' not in created
        assert 'created_at' in created
        assert 'updated_at' not in created

        updated = txn.set('batches', 'b1', {'name': 'Batch 2'})
        assert updated['created_at'] == created['created_at']
        assert 'updated_at' in updated
        assert txn.snapshot()['batches']['b1']['name'] == 'Batch 2'

    def test_reads_return_copies(self):
        txn = Transaction({'batches': {'b1': {'name': 'Batch 1'}}})
        record = txn.get('batches', 'b1')
        record['name'] = 'changed'
        assert txn.get('batches', 'b1')['name'] == 'Batch 1'

    def test_list_filters_by_equality(self):
        txn = Transaction({'sales_records': {
            's1': {'batch_id': 'b1'}, 's2': {'batch_id': 'b2'}, 's3': {'batch_id': 'b1'},
        }})
        assert sorted(r['id'] for r in txn.list('sales_records', {'batch_id': 'b1'})) == ['s1', 's3']
        assert txn.list('weight_records') == []

    def test_update_of_missing_record_fails(self):
        txn = Transaction({})
        with pytest.raises(NotFoundError):
            txn.update('batches', 'missing', {'name': 'x'})
