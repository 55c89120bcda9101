"""
Custom exception classes for the Call Options service.
"""


class CallOptionsException(Exception):
    """Base exception for all call options errors."""
    pass


class SanityCheckFailed(CallOptionsException):
    """Raised when a call event is malformed and the pipeline must abort."""
    
    def __init__(self, reason: str):
        """
        Initialize sanity check failure.
        
        Args:
            reason: Why the event was rejected
        """
        super().__init__(reason)
        self.reason = reason


class PolicyStoreUnavailable(CallOptionsException):
    """Exception raised for policy store connection or query errors."""
    pass


class InvalidIdentity(CallOptionsException):
    """Exception raised when a caller id must be all digits and is not."""
    
    def __init__(self, message: str, caller_number: str = None):
        super().__init__(message)
        self.caller_number = caller_number


class ConfigurationException(CallOptionsException):
    """Exception raised for configuration errors."""
    pass
