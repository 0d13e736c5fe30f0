"""
Error types raised by the coffee graph core and query path
"""


class CoffeeGraphError(Exception):
    """Base exception for coffee graph errors"""
    pass


class NotFoundError(CoffeeGraphError):
    """A referenced product does not exist in the graph"""
    pass


class InvalidArgumentError(CoffeeGraphError, ValueError):
    """Unknown query type, category, axis or malformed request"""
    pass


class QueryTimeoutError(CoffeeGraphError):
    """A query exceeded the caller-provided time budget"""
    pass


class TaxonomyError(CoffeeGraphError):
    """The flavor lexicon failed validation at load time"""
    pass
