"""
Exceptions raised inside the visual search pipeline.

The engine in components/similarity_search.py is the boundary that turns
these into empty results and log lines; nothing below it swallows them.
"""


class VisualSearchError(Exception):
    """Base exception for all visual search errors."""
    pass


class InitializationFailure(VisualSearchError):
    """
    The embedding model or the vector store could not be brought up.
    
    Raised when:
    - The bundled model weight file is missing or unreadable
    - The weights do not match the configured architecture
    - The database file cannot be opened or the schema cannot be created
    """
    
    def __init__(self, message: str, resource: str = None):
        super().__init__(message)
        self.resource = resource


class DecodeFailure(VisualSearchError):
    """Image bytes could not be read or decoded."""
    pass


class InferenceFailure(VisualSearchError):
    """The model failed to produce a feature vector for a tensor."""
    pass


class StoreWriteFailure(VisualSearchError):
    """An upsert or delete against the vector store failed."""
    
    def __init__(self, message: str, entity_id: str = None):
        super().__init__(message)
        self.entity_id = entity_id


class StoreReadFailure(VisualSearchError):
    """Reading rows from the vector store failed."""
    pass


class DimensionMismatch(VisualSearchError):
    """Two vectors of different length were compared."""
    
    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector length mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
