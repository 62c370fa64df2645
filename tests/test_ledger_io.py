from io import BytesIO

import pandas as pd
import pytest

import ledger_io
from errors import NotFoundError, ValidationError


def test_normalize_columns_maps_export_headers():
    df = pd.DataFrame(columns=['Date', 'Quantity (kg)', 'Supply Item ID', 'Avg Weight (kg)', ' Notes '])
    assert list(ledger_io.normalize_columns(df).columns) == [
        'date', 'quantity_kg', 'supply_item_id', 'average_weight', 'notes',
    ]


def test_import_records_reports_failed_rows(engine, store, batch, feed_item):
    df = pd.DataFrame({
        'Date': ['2024-03-06', '2024-03-07', '2024-03-08'],
        'Quantity (kg)': [20, 500, 30],
        'Supply Item ID': [feed_item['id']] * 3,
    })

    result = ledger_io.import_records(engine, 'feed', df, {'batch_id': batch['id']})

    assert result['imported'] == 2
    assert len(result['record_ids']) == 2
    assert result['failed'][0]['row'] == 3
    assert result['failed'][0]['error'] == 'insufficient_stock'
    assert store.get_record('supply_inventory', feed_item['id'])['current_stock'] == 50.0
    assert store.get_record('batches', batch['id'])['feed_consumed'] == 50.0


def test_import_skips_empty_cells(engine, store, batch):
    df = pd.DataFrame({
        'Date': ['2024-03-10', '2024-03-11'],
        'Avg Weight (kg)': [1.2, 1.4],
        'Notes': ['first weighing', None],
    })

    result = ledger_io.import_records(engine, 'weight', df, {'batch_id': batch['id']})

    assert result['imported'] == 2
    assert store.get_record('batches', batch['id'])['current_weight'] == 1.4


def test_import_unknown_event_type(engine):
    with pytest.raises(ValidationError):
        ledger_io.import_records(engine, 'eggs', pd.DataFrame())


def test_export_round_trips_through_import(engine, store, batch, batch_data):
    engine.record_mortality({'batch_id': batch['id'], 'date': '2024-03-05', 'count': 10, 'reason': 'Disease'})
    engine.record_sale({'batch_id': batch['id'], 'date': '2024-04-10', 'quantity': 20, 'price_per_bird': 6})

    sheets = pd.read_excel(ledger_io.export_batch_workbook(store, batch['id']), sheet_name=None)
    assert list(sheets) == ['Batch Summary', 'Mortality', 'Feed', 'Weights', 'Sales']
    assert sheets['Batch Summary']['Current Birds'].tolist() == [480]

    copy = engine.create_batch(dict(batch_data, name='Copy'))['record']
    ledger_io.import_records(engine, 'mortality', sheets['Mortality'], {'batch_id': copy['id']})
    ledger_io.import_records(engine, 'sales', sheets['Sales'], {'batch_id': copy['id']})

    restored = store.get_record('batches', copy['id'])
    assert restored['current_count'] == 480
    assert restored['total_sales_revenue'] == 120.0


def test_export_missing_batch(store):
    with pytest.raises(NotFoundError):
        ledger_io.export_batch_workbook(store, 'missing')


def test_read_table_by_extension():
    class Upload(BytesIO):
        filename = 'rows.csv'

    df = ledger_io.read_table(Upload(b'Date,Count\n2024-03-05,3\n'))
    assert df['Count'].tolist() == [3]

    Upload.filename = 'rows.pdf'
    with pytest.raises(ValidationError):
        ledger_io.read_table(Upload(b''))

    # legacy .xls workbooks need a reader that is not installed
    Upload.filename = 'rows.xls'
    with pytest.raises(ValidationError):
        ledger_io.read_table(Upload(b''))


def test_import_financial_transactions(engine, store, batch):
    df = pd.DataFrame({
        'Date': ['2024-02-20', '2024-02-21', '2024-02-22'],
        'Transaction Type': ['Capital Injection', 'Loan Repayment', 'Gift'],
        'Amount': [5000, 250.5, 10],
        'Description': ['Owner capital', 'Bank loan', 'Unknown'],
    })

    result = ledger_io.import_records(engine, 'financial_transactions', df, {'related_batch_id': batch['id']})

    assert result['imported'] == 2
    assert [f['row'] for f in result['failed']] == [4]
    records = store.get_records('financial_transactions', order_by='date')
    assert [r['financial_impact'] for r in records] == ['income', 'income']
    assert {r['related_batch_id'] for r in records} == {batch['id']}
