from __future__ import annotations


class OrderingError(Exception):
    """Base class for failures raised by the ordering core."""


class EmptyOrderError(OrderingError):
    """An order cannot be finalized without at least one line."""


class MissingUserError(OrderingError):
    """An order cannot be finalized without the submitting user."""


class CatalogLoadError(OrderingError):
    """The catalog or address directory could not be read."""


class OrderStoreError(OrderingError):
    """The order store failed or the requested order does not exist."""


class SessionStateError(OrderingError):
    """A session reached a step without the data that step needs."""
