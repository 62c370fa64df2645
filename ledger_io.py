"""
Spreadsheet import and export of ledger records.

Imports go row by row through the reconciliation engine so every imported
event updates its batch and supply item exactly like one entered by hand.
"""
import logging
from io import BytesIO

import pandas as pd

from errors import NotFoundError, ReconciliationError, ValidationError
from ledger import (
    BATCHES, EXPENSES, FEED_RECORDS, HEALTH_RECORDS, MORTALITY_RECORDS,
    SALES_RECORDS, WEIGHT_RECORDS,
)

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    ('name', 'Batch Name'),
    ('breed', 'Breed'),
    ('purchase_date', 'Purchase Date'),
    ('hatch_date', 'Hatch Date'),
    ('status', 'Status'),
    ('initial_total', 'Initial Birds'),
    ('current_count', 'Current Birds'),
    ('total_mortality', 'Total Mortality'),
    ('current_mortality_rate', 'Mortality Rate (%)'),
    ('total_birds_sold', 'Birds Sold'),
    ('feed_consumed', 'Feed Consumed (kg)'),
    ('current_weight', 'Avg Weight (kg)'),
    ('feed_conversion_ratio', 'FCR'),
    ('total_sales_revenue', 'Sales Revenue'),
    ('estimated_sales_revenue', 'Estimated Revenue'),
    ('estimated_profit_loss', 'Estimated Profit/Loss'),
]

EXPORT_SHEETS = [
    ('Mortality', MORTALITY_RECORDS, [
        ('date', 'Date'), ('count', 'Count'), ('reason', 'Reason'), ('notes', 'Notes'),
    ]),
    ('Feed', FEED_RECORDS, [
        ('date', 'Date'), ('supply_item_id', 'Supply Item'), ('quantity_kg', 'Quantity (kg)'), ('notes', 'Notes'),
    ]),
    ('Weights', WEIGHT_RECORDS, [
        ('date', 'Date'), ('average_weight', 'Avg Weight (kg)'), ('notes', 'Notes'),
    ]),
    ('Sales', SALES_RECORDS, [
        ('date', 'Date'), ('quantity', 'Quantity'), ('price_per_bird', 'Price per Bird'),
        ('total_revenue', 'Total Revenue'), ('sale_type', 'Sale Type'), ('customer_name', 'Customer'),
        ('amount_received', 'Amount Received'), ('balance_due', 'Balance Due'),
        ('payment_status', 'Payment Status'),
    ]),
]

# header label -> record field, for re-importing exported sheets
COLUMN_ALIASES = {label.lower(): field for _, _, columns in EXPORT_SHEETS for field, label in columns}
COLUMN_ALIASES.update({
    'supply item id': 'supply_item_id',
    'customer name': 'customer_name',
    'event type': 'event_type',
    'quantity used': 'quantity_used',
    'quantity purchased': 'quantity_purchased',
    'transaction type': 'transaction_type',
    'related batch id': 'related_batch_id',
})

EVENT_TYPES = {
    'mortality': 'record_mortality',
    'feed': 'record_feed',
    'weight': 'record_weight',
    'sales': 'record_sale',
    'health': 'record_health',
    'expenses': 'record_expense',
    'financial_transactions': 'record_financial_transaction',
}


def _rows(records, columns):
    return [{label: record.get(field) for field, label in columns} for record in records]


def export_batch_workbook(store, batch_id):
    """Excel workbook with the batch summary and one sheet per ledger"""
    batch = store.get_record(BATCHES, batch_id)
    if batch is None:
        raise NotFoundError(BATCHES, batch_id)

    output = BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        summary_df = pd.DataFrame(_rows([batch], SUMMARY_COLUMNS))
        summary_df.to_excel(writer, sheet_name='Batch Summary', index=False)

        for sheet_name, collection, columns in EXPORT_SHEETS:
            records = store.get_records(collection, {'batch_id': batch_id}, order_by='date')
            df = pd.DataFrame(_rows(records, columns), columns=[label for _, label in columns])
            df.to_excel(writer, sheet_name=sheet_name, index=False)

    output.seek(0)
    return output


def read_table(file_storage):
    """Load an uploaded .csv or .xlsx file into a DataFrame"""
    filename = (file_storage.filename or '').lower()
    if filename.endswith('.csv'):
        return pd.read_csv(BytesIO(file_storage.read()))
    if filename.endswith('.xlsx'):
        return pd.read_excel(BytesIO(file_storage.read()))
    raise ValidationError('Please upload an Excel (.xlsx) or CSV (.csv) file.', field='file')


def normalize_columns(df):
    renamed = {}
    for column in df.columns:
        key = str(column).strip().lower()
        renamed[column] = COLUMN_ALIASES.get(key, key.replace(' ', '_'))
    return df.rename(columns=renamed)


def import_records(engine, event_type, df, defaults=None):
    """
    Record every row of df as an event of event_type.

    Rows that fail validation or business rules are skipped and reported;
    the others are committed one transaction each.
    """
    method_name = EVENT_TYPES.get(event_type)
    if method_name is None:
        raise ValidationError(f'Unknown event type "{event_type}"', field='event_type',
                              allowed=sorted(EVENT_TYPES))
    record_event = getattr(engine, method_name)

    imported = []
    failed = []
    for index, row in normalize_columns(df).iterrows():
        payload = dict(defaults or {})
        payload.update({k: v for k, v in row.to_dict().items() if not pd.isna(v)})
        try:
            result = record_event(payload)
        except ReconciliationError as e:
            # spreadsheet row numbers start at 2 below the header
            failed.append({'row': index + 2, **e.to_dict()})
            continue
        imported.append(result['record']['id'])

    logger.info('Imported %d %s rows, %d failed', len(imported), event_type, len(failed))
    return {'imported': len(imported), 'record_ids': imported, 'failed': failed}
