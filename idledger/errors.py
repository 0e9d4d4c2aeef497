class IdLedgerError(Exception):
    pass


class InputError(IdLedgerError):
    pass


class ValidationError(IdLedgerError):
    pass


class NotFoundError(IdLedgerError):
    pass


class StoreError(IdLedgerError):
    pass
