from flask import Flask, request, jsonify, send_file, session, g, current_app
from datetime import datetime, timezone
from functools import wraps
import logging

from config import Config
from errors import (
    ReconciliationError, ValidationError, NotFoundError, InsufficientPopulationError,
    InsufficientStockError, TransactionConflictError,
)
from firebase_store import SimpleFirebaseConfig, RecordStore
from reconciliation import ReconciliationEngine
import ledger
import ledger_io

logger = logging.getLogger(__name__)

# URL segment -> (collection, engine operation suffix)
EVENT_TYPES = {
    'mortality': (ledger.MORTALITY_RECORDS, 'mortality'),
    'feed': (ledger.FEED_RECORDS, 'feed'),
    'weight': (ledger.WEIGHT_RECORDS, 'weight'),
    'sales': (ledger.SALES_RECORDS, 'sale'),
    'health': (ledger.HEALTH_RECORDS, 'health'),
    'expenses': (ledger.EXPENSES, 'expense'),
    'financial-transactions': (ledger.FINANCIAL_TRANSACTIONS, 'financial_transaction'),
}

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    InsufficientPopulationError: 409,
    InsufficientStockError: 409,
    TransactionConflictError: 503,
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    logging.basicConfig(level=app.config['LOG_LEVEL'])

    app.register_error_handler(ReconciliationError, handle_reconciliation_error)
    register_routes(app)
    return app


def get_firebase(app):
    """Firebase connection, created on first use"""
    firebase = app.extensions.get('firebase')
    if firebase is None:
        firebase = SimpleFirebaseConfig(app.config)
        app.extensions['firebase'] = firebase
    return firebase


def get_owner_id():
    # identity is established upstream; the gateway forwards the user id
    return request.headers.get('X-User-Id') or session.get('user_id')


def owner_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        owner_id = get_owner_id()
        if not owner_id:
            return jsonify({'error': 'unauthorized', 'message': 'Missing X-User-Id header.'}), 401
        firebase = get_firebase(current_app)
        g.store = RecordStore(firebase.admin_db, current_app.config['APP_ID'], owner_id)
        g.engine = ReconciliationEngine(g.store)
        return f(*args, **kwargs)
    return decorated_function


def handle_reconciliation_error(error):
    status = ERROR_STATUS.get(type(error), 400)
    body = error.to_dict()
    if isinstance(error, TransactionConflictError):
        body['retryable'] = True
    return jsonify(body), status


def get_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def event_type_or_404(event_type):
    if event_type not in EVENT_TYPES:
        raise NotFoundError('event_types', event_type)
    return EVENT_TYPES[event_type]


def register_routes(app):

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'time': datetime.now(timezone.utc).isoformat()})

    # ---------- Batches ----------

    @app.route('/api/batches', methods=['GET'])
    @owner_required
    def list_batches():
        filters = {'status': request.args['status']} if request.args.get('status') else None
        return jsonify(g.store.get_records(ledger.BATCHES, filters, order_by='purchase_date', reverse=True))

    @app.route('/api/batches', methods=['POST'])
    @owner_required
    def create_batch():
        return jsonify(g.engine.create_batch(get_payload())), 201

    @app.route('/api/batches/<batch_id>', methods=['GET'])
    @owner_required
    def get_batch(batch_id):
        batch = g.store.get_record(ledger.BATCHES, batch_id)
        if batch is None:
            raise NotFoundError(ledger.BATCHES, batch_id)
        return jsonify(batch)

    @app.route('/api/batches/<batch_id>', methods=['PATCH'])
    @owner_required
    def update_batch(batch_id):
        return jsonify(g.engine.update_batch(batch_id, get_payload()))

    @app.route('/api/batches/<batch_id>', methods=['DELETE'])
    @owner_required
    def delete_batch(batch_id):
        return jsonify(g.engine.delete_batch(batch_id))

    @app.route('/api/batches/<batch_id>/close', methods=['POST'])
    @owner_required
    def close_batch(batch_id):
        return jsonify(g.engine.close_batch(batch_id))

    @app.route('/api/batches/<batch_id>/reopen', methods=['POST'])
    @owner_required
    def reopen_batch(batch_id):
        return jsonify(g.engine.reopen_batch(batch_id))

    @app.route('/api/batches/<batch_id>/summary')
    @owner_required
    def batch_summary(batch_id):
        return jsonify(g.engine.batch_summary(batch_id))

    @app.route('/api/batches/<batch_id>/export')
    @owner_required
    def export_batch(batch_id):
        """Export a batch and its ledgers to Excel"""
        output = ledger_io.export_batch_workbook(g.store, batch_id)
        filename = f"batch_{batch_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
        return send_file(
            output, as_attachment=True, download_name=filename,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')

    # ---------- Supply inventory ----------

    @app.route('/api/supply-items', methods=['GET'])
    @owner_required
    def list_supply_items():
        return jsonify(g.store.get_records(ledger.SUPPLY_INVENTORY, order_by='name'))

    @app.route('/api/supply-items', methods=['POST'])
    @owner_required
    def create_supply_item():
        return jsonify(g.engine.create_supply_item(get_payload())), 201

    @app.route('/api/supply-items/low-stock')
    @owner_required
    def low_stock_items():
        return jsonify(g.engine.low_stock_items())

    @app.route('/api/supply-items/<item_id>', methods=['PATCH'])
    @owner_required
    def update_supply_item(item_id):
        return jsonify(g.engine.update_supply_item(item_id, get_payload()))

    @app.route('/api/supply-items/<item_id>', methods=['DELETE'])
    @owner_required
    def delete_supply_item(item_id):
        return jsonify(g.engine.delete_supply_item(item_id))

    # ---------- Ledger events ----------

    @app.route('/api/<event_type>', methods=['GET'])
    @owner_required
    def list_events(event_type):
        collection, _ = event_type_or_404(event_type)
        batch_field = 'related_batch_id' if collection == ledger.FINANCIAL_TRANSACTIONS else 'batch_id'
        filters = {batch_field: request.args['batch_id']} if request.args.get('batch_id') else None
        records = g.store.get_records(collection, filters, order_by='date', reverse=True)
        if collection == ledger.EXPENSES:
            items = {i['id']: i for i in g.store.get_records(ledger.SUPPLY_INVENTORY)}
            records = [g.engine.expense_view(r, items.get(r.get('supply_item_id'))) for r in records]
        return jsonify(records)

    @app.route('/api/<event_type>', methods=['POST'])
    @owner_required
    def record_event(event_type):
        _, suffix = event_type_or_404(event_type)
        return jsonify(getattr(g.engine, f'record_{suffix}')(get_payload())), 201

    @app.route('/api/<event_type>/<record_id>', methods=['PATCH'])
    @owner_required
    def edit_event(event_type, record_id):
        _, suffix = event_type_or_404(event_type)
        return jsonify(getattr(g.engine, f'edit_{suffix}')(record_id, get_payload()))

    @app.route('/api/<event_type>/<record_id>', methods=['DELETE'])
    @owner_required
    def delete_event(event_type, record_id):
        _, suffix = event_type_or_404(event_type)
        return jsonify(getattr(g.engine, f'delete_{suffix}')(record_id))

    @app.route('/api/sales/<record_id>/payments', methods=['POST'])
    @owner_required
    def record_payment(record_id):
        return jsonify(g.engine.record_payment(record_id, get_payload().get('amount')))

    @app.route('/api/import/<event_type>', methods=['POST'])
    @owner_required
    def import_data(event_type):
        """Import ledger rows from an uploaded spreadsheet"""
        file = request.files.get('file')
        if file is None or file.filename == '':
            raise ValidationError('No file selected', field='file')

        defaults = {}
        if request.form.get('batch_id'):
            batch_field = 'related_batch_id' if event_type == 'financial_transactions' else 'batch_id'
            defaults[batch_field] = request.form['batch_id']
        df = ledger_io.read_table(file)
        return jsonify(ledger_io.import_records(g.engine, event_type, df, defaults))


app = create_app()

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=8080, debug=True)
