from .quotes import ProductConfiguration, QuoteRequest, PaymentHistoryEntry, SequenceCounter

__all__ = [
    'ProductConfiguration', 'QuoteRequest', 'PaymentHistoryEntry', 'SequenceCounter',
]
