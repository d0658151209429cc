class CartError(Exception):
    """Base for every recoverable register error. The message is shown to the cashier."""


class ItemNotFound(CartError):
    pass


class InvalidQuantity(CartError):
    pass


class InvalidPrice(CartError):
    pass


class InsufficientStock(CartError):
    pass


class NotWeighable(CartError):
    pass


class AlreadyWeighed(CartError):
    pass


class DuplicateLine(CartError):
    pass


class InvalidOperation(CartError):
    pass


class LineNotFound(CartError):
    pass


class EmptyCart(CartError):
    pass
