class PastureError(Exception):
    """Base class for pasture management errors"""


class PersistenceError(PastureError):
    """The database is unreachable or rejected the query"""


class LedgerConflict(PastureError):
    """A second current rotation or active rest period would be opened for a pasture"""


class MapEditorError(PastureError):
    """A map drawing event could not be routed to a save operation"""
