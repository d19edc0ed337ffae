class TrafficInsightsError(Exception):
    """Base exception for all service errors."""
    pass

class PredictorError(TrafficInsightsError):
    """Raised when the signal timing predictor fails or returns garbage."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr

class PredictorTimeoutError(PredictorError):
    """Raised when the predictor does not answer within its timeout."""
    pass

class StoreError(TrafficInsightsError):
    """Raised when a persistence operation fails."""
    pass
