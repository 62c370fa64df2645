"""
Failure types raised by the reconciliation engine.

Every operation either succeeds completely or raises exactly one of these.
"""


class ReconciliationError(Exception):
    """Base class; carries a message and the state context the caller needs."""

    error_type = 'reconciliation_error'

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self):
        return {
            'error': self.error_type,
            'message': self.message,
            'context': self.context,
        }


class ValidationError(ReconciliationError):
    """Malformed or out-of-range input. Never retried."""

    error_type = 'validation_error'


class InsufficientPopulationError(ReconciliationError):
    """More birds requested than the batch currently holds."""

    error_type = 'insufficient_population'

    def __init__(self, requested, available, batch_id=None):
        super().__init__(
            f'Requested {requested} birds but only {available} available',
            requested=requested,
            available=available,
            batch_id=batch_id,
        )


class InsufficientStockError(ReconciliationError):
    """More stock requested than the supply item currently holds."""

    error_type = 'insufficient_stock'

    def __init__(self, requested, available, supply_item_id=None):
        super().__init__(
            f'Requested {requested} units but only {available} in stock',
            requested=requested,
            available=available,
            supply_item_id=supply_item_id,
        )


class NotFoundError(ReconciliationError):
    error_type = 'not_found'

    def __init__(self, collection, record_id):
        super().__init__(
            f'{collection} record "{record_id}" not found',
            collection=collection,
            record_id=record_id,
        )


class TransactionConflictError(ReconciliationError):
    """The store gave up on an optimistic transaction. Safe to retry from scratch."""

    error_type = 'transaction_conflict'
