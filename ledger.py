"""
Event ledger records: input validation and normalisation.

Each builder takes a loose payload (form fields, JSON body, spreadsheet row)
and returns the record exactly as it is stored, or raises ValidationError.
Builders never look at stored state; checks against the current batch or
supply item belong to the reconciliation engine.
"""
from datetime import date, datetime

import metrics
from errors import ValidationError

BATCHES = 'batches'
MORTALITY_RECORDS = 'mortality_records'
FEED_RECORDS = 'feed_records'
WEIGHT_RECORDS = 'weight_records'
SALES_RECORDS = 'sales_records'
EXPENSES = 'expenses'
SUPPLY_INVENTORY = 'supply_inventory'
HEALTH_RECORDS = 'health_records'
SUPPLY_CONSUMPTION = 'supply_consumption'
FINANCIAL_TRANSACTIONS = 'financial_transactions'

SALE_TYPES = ('Cash', 'Credit')
BATCH_ACTIVE = 'Active'
BATCH_CLOSED = 'Closed'

# transaction type -> financial impact
FINANCIAL_TRANSACTION_TYPES = {
    'Capital Injection': 'income',
    'Capital Withdrawal': 'expense',
    'Loan Disbursed': 'expense',
    'Loan Repayment': 'income',
    'Expense': 'expense',
    'Sale': 'income',
    'Other Income': 'income',
}


def _missing(value):
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    # pandas hands empty spreadsheet cells over as NaN
    return isinstance(value, float) and value != value


def parse_date(value, field='date', required=True):
    """Return the value as an ISO 'YYYY-MM-DD' string so dates sort correctly."""
    if _missing(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if hasattr(value, 'date') and callable(value.date):
        return value.date().isoformat()
    try:
        return datetime.fromisoformat(str(value).strip()).date().isoformat()
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format', field=field, value=str(value))


def parse_number(value, field, required=True, default=0.0, minimum=0.0, strictly_positive=False, digits=None):
    """Parse a finite number. With digits, the value is rounded before the range checks."""
    if _missing(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number', field=field, value=str(value))
    if number != number or number in (float('inf'), float('-inf')):
        raise ValidationError(f'{field} must be a finite number', field=field)
    if digits is not None:
        number = metrics.round_half_up(number, digits)
    if strictly_positive and number <= 0:
        raise ValidationError(f'{field} must be greater than 0', field=field, value=number)
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must not be negative', field=field, value=number)
    return number


def parse_count(value, field, required=True, default=0, strictly_positive=False):
    number = parse_number(value, field, required=required, default=default,
                          strictly_positive=strictly_positive)
    if number != int(number):
        raise ValidationError(f'{field} must be a whole number', field=field, value=number)
    return int(number)


def parse_money(value, field, **kwargs):
    return parse_number(value, field, digits=2, **kwargs)


def parse_kg(value, field, **kwargs):
    return parse_number(value, field, digits=3, **kwargs)


def parse_text(value, field=None, required=False, default=''):
    if _missing(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return default
    return str(value).strip()


def parse_flag(value):
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value) and not _missing(value)


def batch_input(data):
    return {
        'name': parse_text(data.get('name'), 'name', required=True),
        'breed': parse_text(data.get('breed')),
        'hatch_date': parse_date(data.get('hatch_date'), 'hatch_date', required=False),
        'purchase_date': parse_date(data.get('purchase_date'), 'purchase_date'),
        'purchased_chick_count': parse_count(data.get('purchased_chick_count'), 'purchased_chick_count'),
        'free_chick_count': parse_count(data.get('free_chick_count'), 'free_chick_count', required=False),
        'chick_price': parse_money(data.get('chick_price'), 'chick_price'),
        'proposed_selling_price_per_bird': parse_money(
            data.get('proposed_selling_price_per_bird'), 'proposed_selling_price_per_bird'),
        'estimated_feed_cost': parse_money(data.get('estimated_feed_cost'), 'estimated_feed_cost'),
        'notes': parse_text(data.get('notes')),
    }


def mortality_record(data):
    return {
        'batch_id': parse_text(data.get('batch_id'), 'batch_id', required=True),
        'date': parse_date(data.get('date')),
        'count': parse_count(data.get('count'), 'count', strictly_positive=True),
        'reason': parse_text(data.get('reason')),
        'notes': parse_text(data.get('notes')),
    }


def feed_record(data):
    return {
        'batch_id': parse_text(data.get('batch_id'), 'batch_id', required=True),
        'supply_item_id': parse_text(data.get('supply_item_id'), 'supply_item_id', required=True),
        'date': parse_date(data.get('date')),
        'quantity_kg': parse_kg(data.get('quantity_kg'), 'quantity_kg', strictly_positive=True),
        'notes': parse_text(data.get('notes')),
    }


def weight_record(data):
    return {
        'batch_id': parse_text(data.get('batch_id'), 'batch_id', required=True),
        'date': parse_date(data.get('date')),
        'average_weight': parse_kg(data.get('average_weight'), 'average_weight', strictly_positive=True),
        'notes': parse_text(data.get('notes')),
    }


def sales_record(data):
    sale_type = parse_text(data.get('sale_type'), 'sale_type', default='Cash').title()
    if sale_type not in SALE_TYPES:
        raise ValidationError('sale_type must be Cash or Credit', field='sale_type', value=sale_type)

    quantity = parse_count(data.get('quantity'), 'quantity', strictly_positive=True)
    price = parse_money(data.get('price_per_bird'), 'price_per_bird', strictly_positive=True)
    total = metrics.sale_total(quantity, price)

    customer_name = parse_text(data.get('customer_name'))
    if sale_type == 'Credit' and not customer_name:
        raise ValidationError('customer_name is required for credit sales', field='customer_name')

    default_received = total if sale_type == 'Cash' else 0.0
    received = parse_money(data.get('amount_received'), 'amount_received', required=False,
                           default=default_received)
    if received > total:
        raise ValidationError('amount_received cannot exceed the sale total',
                              field='amount_received', value=received, total_revenue=total)

    return {
        'batch_id': parse_text(data.get('batch_id'), 'batch_id', required=True),
        'date': parse_date(data.get('date')),
        'quantity': quantity,
        'price_per_bird': price,
        'total_revenue': total,
        'total_weight_sold': parse_kg(data.get('total_weight_sold'), 'total_weight_sold', required=False),
        'sale_type': sale_type,
        'customer_name': customer_name,
        'amount_received': received,
        'balance_due': metrics.balance_due(total, received),
        'payment_status': metrics.payment_status(total, received),
        'notes': parse_text(data.get('notes')),
    }


def expense_record(data):
    supply_item_id = parse_text(data.get('supply_item_id'))
    quantity = parse_kg(data.get('quantity_purchased'), 'quantity_purchased', required=False)
    if supply_item_id and quantity <= 0:
        raise ValidationError('quantity_purchased must be greater than 0 for a supply purchase',
                              field='quantity_purchased')
    if quantity > 0 and not supply_item_id:
        raise ValidationError('quantity_purchased needs a supply_item_id', field='supply_item_id')

    is_chick_purchase = parse_flag(data.get('is_chick_purchase'))
    batch_id = parse_text(data.get('batch_id'))
    if is_chick_purchase and not batch_id:
        raise ValidationError('a chick purchase must name its batch', field='batch_id')

    return {
        'date': parse_date(data.get('date')),
        'category': parse_text(data.get('category'), default='Uncategorized'),
        'description': parse_text(data.get('description'), 'description', required=True),
        'amount': parse_money(data.get('amount'), 'amount', strictly_positive=True),
        'batch_id': batch_id,
        'supply_item_id': supply_item_id,
        'quantity_purchased': quantity,
        'is_chick_purchase': is_chick_purchase,
        'notes': parse_text(data.get('notes')),
    }


def health_record(data):
    supply_item_id = parse_text(data.get('supply_item_id'))
    quantity = parse_kg(data.get('quantity_used'), 'quantity_used', required=False)
    if supply_item_id and quantity <= 0:
        raise ValidationError('quantity_used must be greater than 0 when a supply item is used',
                              field='quantity_used')
    if quantity > 0 and not supply_item_id:
        raise ValidationError('quantity_used needs a supply_item_id', field='supply_item_id')

    return {
        'batch_id': parse_text(data.get('batch_id')),
        'date': parse_date(data.get('date')),
        'event_type': parse_text(data.get('event_type'), 'event_type', required=True),
        'description': parse_text(data.get('description')),
        'supply_item_id': supply_item_id,
        'quantity_used': quantity,
        'notes': parse_text(data.get('notes')),
    }


def financial_transaction(data):
    """Capital, loan and other money movements outside batch sales and expenses."""
    transaction_type = parse_text(data.get('transaction_type'), 'transaction_type', required=True)
    if transaction_type not in FINANCIAL_TRANSACTION_TYPES:
        raise ValidationError(f'Unknown transaction_type "{transaction_type}"', field='transaction_type',
                              allowed=sorted(FINANCIAL_TRANSACTION_TYPES))

    return {
        'date': parse_date(data.get('date')),
        'transaction_type': transaction_type,
        'financial_impact': FINANCIAL_TRANSACTION_TYPES[transaction_type],
        'category': parse_text(data.get('category'), default='Uncategorized'),
        'amount': parse_money(data.get('amount'), 'amount', strictly_positive=True),
        'description': parse_text(data.get('description'), 'description', required=True),
        'related_batch_id': parse_text(data.get('related_batch_id')),
        'notes': parse_text(data.get('notes')),
    }


def supply_item_input(data, include_stock=True):
    item = {
        'name': parse_text(data.get('name'), 'name', required=True),
        'unit': parse_text(data.get('unit'), default='kg'),
        'category': parse_text(data.get('category'), 'category', required=True),
        'buffer_stock': parse_kg(data.get('buffer_stock'), 'buffer_stock', required=False),
    }
    if include_stock:
        item['current_stock'] = parse_kg(data.get('current_stock'), 'current_stock', required=False)
    return item


def merge_edit(old_record, changes):
    """Edits are partial; unspecified fields keep their stored values."""
    merged = {k: v for k, v in old_record.items() if k not in ('id', 'created_at', 'updated_at')}
    merged.update(changes)
    return merged
