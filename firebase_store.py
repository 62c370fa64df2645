"""
Firebase record store.

Records live in the Realtime Database under a tenant/owner scope:

    artifacts/{app_id}/users/{owner_id}/{collection}/{record_id}

Multi-record atomic updates run as one ``Reference.transaction`` on the owner
scope, so every collection of one owner is covered by the same optimistic
transaction. In development mode an in-memory database with the same
reference API stands in for Firebase and nothing is persisted.
"""
import copy
import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone

import firebase_admin
from firebase_admin import credentials, db as admin_db

from errors import NotFoundError, TransactionConflictError, ValidationError

logger = logging.getLogger(__name__)


def utc_now():
    return datetime.now(timezone.utc).isoformat()


class SimpleFirebaseConfig:
    """
    Firebase Admin SDK connection, or the in-memory database in development mode.

    config is a mapping such as Flask's app.config.
    """

    def __init__(self, config):
        self.config = config
        self.admin_db = None
        self.initialize_firebase()

    def initialize_firebase(self):
        if self.config.get('DEVELOPMENT_MODE'):
            logger.info('Development mode - using in-memory database, data will not be persisted')
            self.admin_db = MockDatabase(max_retries=self.config.get('TRANSACTION_MAX_RETRIES', 25))
            return

        if not firebase_admin._apps:
            service_account_key = self.config.get('FIREBASE_SERVICE_ACCOUNT_KEY')
            if service_account_key:
                cred = credentials.Certificate(json.loads(service_account_key))
            elif os.path.exists(self.config['FIREBASE_SERVICE_ACCOUNT_PATH']):
                cred = credentials.Certificate(self.config['FIREBASE_SERVICE_ACCOUNT_PATH'])
            else:
                cred = credentials.ApplicationDefault()

            firebase_admin.initialize_app(cred, {
                'databaseURL': self.config['FIREBASE_DATABASE_URL']
            })

        self.admin_db = admin_db
        logger.info('Firebase initialized for %s', self.config['FIREBASE_DATABASE_URL'])


class MockDatabase:
    """In-memory stand-in for firebase_admin.db used in development and tests"""

    def __init__(self, data=None, max_retries=25):
        self.data = data or {}
        self.lock = threading.RLock()
        self.version = 0
        self.max_retries = max_retries

    def reference(self, path='/'):
        return MockReference(self, path)


class MockReference:
    """Subset of firebase_admin.db.Reference backed by MockDatabase"""

    def __init__(self, database, path):
        self._db = database
        self.path = '/'.join(part for part in path.split('/') if part)

    @property
    def key(self):
        return self.path.split('/')[-1] if self.path else None

    def _parts(self):
        return self.path.split('/') if self.path else []

    def child(self, path):
        return MockReference(self._db, f'{self.path}/{path}')

    def _read(self):
        current = self._db.data
        for part in self._parts():
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return copy.deepcopy(current)

    def _write(self, value):
        parts = self._parts()
        if not parts:
            self._db.data = copy.deepcopy(value) if value else {}
            self._db.version += 1
            return
        current = self._db.data
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        if value is None:
            current.pop(parts[-1], None)
        else:
            current[parts[-1]] = copy.deepcopy(value)
        self._db.version += 1

    def get(self):
        with self._db.lock:
            return self._read()

    def set(self, value):
        with self._db.lock:
            self._write(value)

    def update(self, value):
        with self._db.lock:
            current = self._read() or {}
            current.update(value)
            self._write(current)

    def push(self, value):
        key = uuid.uuid4().hex
        ref = self.child(key)
        ref.set(value)
        return ref

    def delete(self):
        with self._db.lock:
            self._write(None)

    def transaction(self, transaction_update):
        """Optimistic read-modify-write, retried while another writer got in first."""
        for _ in range(self._db.max_retries):
            with self._db.lock:
                version = self._db.version
                current = self._read()
            new_value = transaction_update(current)
            with self._db.lock:
                if self._db.version == version:
                    self._write(new_value)
                    return new_value
        raise admin_db.TransactionAbortedError('Transaction aborted after failed retries.')


def _clean(data):
    # the Realtime Database does not store null values
    return {k: v for k, v in data.items() if v is not None and k != 'id'}


class Transaction:
    """
    View of one owner scope inside a store transaction.

    Reads return copies; writes are collected on the snapshot and committed
    together when the transaction function returns. All reads must happen
    before the first write.
    """

    def __init__(self, data, key_factory=None):
        self._data = data if isinstance(data, dict) else {}
        self._key_factory = key_factory or (lambda: uuid.uuid4().hex)
        self._writing = False

    def _records(self, collection):
        records = self._data.get(collection)
        return records if isinstance(records, dict) else {}

    def _check_read(self):
        if self._writing:
            raise RuntimeError('Transaction reads must happen before the first write')

    def generate_key(self):
        return self._key_factory()

    def get(self, collection, record_id):
        self._check_read()
        record = self._records(collection).get(record_id) if record_id else None
        if record is None:
            return None
        return {'id': record_id, **copy.deepcopy(record)}

    def list(self, collection, filters=None):
        self._check_read()
        records = []
        for record_id, record in self._records(collection).items():
            if filters and any(record.get(k) != v for k, v in filters.items()):
                continue
            records.append({'id': record_id, **copy.deepcopy(record)})
        return records

    def set(self, collection, record_id, data):
        self._writing = True
        records = self._data.setdefault(collection, {})
        if not isinstance(records, dict):
            records = self._data[collection] = {}
        existing = records.get(record_id)
        record = _clean(data)
        now = utc_now()
        if existing:
            record['created_at'] = existing.get('created_at', now)
            record['updated_at'] = now
        else:
            record.setdefault('created_at', now)
        records[record_id] = record
        return {'id': record_id, **copy.deepcopy(record)}

    def update(self, collection, record_id, partial):
        existing = self._records(collection).get(record_id)
        if existing is None:
            raise NotFoundError(collection, record_id)
        return self.set(collection, record_id, {**existing, **partial})

    def delete(self, collection, record_id):
        self._writing = True
        self._records(collection).pop(record_id, None)

    def snapshot(self):
        return self._data


class RecordStore:
    """CRUD and transactions over the collections of one tenant/owner scope"""

    def __init__(self, admin_db, app_id, owner_id):
        if not owner_id:
            raise ValidationError('An owner id is required to open the record store', field='owner_id')
        self.admin_db = admin_db
        self.app_id = app_id
        self.owner_id = owner_id
        self.root = f'artifacts/{app_id}/users/{owner_id}'

    def reference(self, collection=None, record_id=None):
        path = self.root
        if collection:
            path = f'{path}/{collection}'
        if record_id:
            path = f'{path}/{record_id}'
        return self.admin_db.reference(path)

    def generate_key(self):
        """Generate a unique key for new records"""
        return uuid.uuid4().hex

    def create_record(self, collection, data):
        record_id = self.generate_key()
        self.reference(collection, record_id).set({**_clean(data), 'created_at': utc_now()})
        return record_id

    def get_record(self, collection, record_id):
        data = self.reference(collection, record_id).get()
        if data is None:
            return None
        return {'id': record_id, **data}

    def get_records(self, collection, filters=None, order_by=None, reverse=False):
        """Get the records of a collection, optionally filtered by equality and sorted"""
        data = self.reference(collection).get() or {}
        records = []
        for record_id, record_data in data.items():
            if filters and any(record_data.get(k) != v for k, v in filters.items()):
                continue
            records.append({'id': record_id, **record_data})
        if order_by:
            records.sort(key=lambda r: (r.get(order_by) or '', r.get('created_at') or ''), reverse=reverse)
        return records

    def update_record(self, collection, record_id, data):
        self.reference(collection, record_id).update({**_clean(data), 'updated_at': utc_now()})

    def delete_record(self, collection, record_id):
        self.reference(collection, record_id).delete()

    def run_transaction(self, fn):
        """
        Run fn(txn) atomically over this owner scope and return its result.

        fn may run more than once when another writer commits first, so it
        must only read and write through txn. Exceptions raised by fn abort
        the transaction without writing anything.
        """
        outcome = {}

        def transaction_update(current):
            txn = Transaction(copy.deepcopy(current) if current else {}, self.generate_key)
            outcome['result'] = fn(txn)
            return txn.snapshot()

        try:
            self.reference().transaction(transaction_update)
        except admin_db.TransactionAbortedError as e:
            logger.warning('Transaction on %s aborted: %s', self.root, e)
            raise TransactionConflictError(
                'The records changed while saving; retry the operation', scope=self.root)
        return outcome['result']
