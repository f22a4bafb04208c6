from cascade_be.error_codes import ErrorCodes

class AppException(Exception):
    def __init__(self, error_code, status_message, status_code, details=None, action_button=None):
        super().__init__(status_message)
        self.error_code = error_code
        self.status_message = status_message
        self.status_code = status_code
        self.details = details if details is not None else {}
        self.action_button = action_button if action_button is not None else {}

class ValidationException(AppException):
    def __init__(self, status_message="Validation failed", details=None, action_button=None,
                 error_code=ErrorCodes.VALIDATION_ERROR):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=422,
            details=details,
            action_button=action_button
        )

class InsufficientFundsException(AppException):
    def __init__(self, status_message="Insufficient funds", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.INSUFFICIENT_FUNDS,
            status_message=status_message,
            status_code=400,
            details=details,
            action_button=action_button
        )

class GameLogicException(AppException):
    def __init__(self, status_message="Game logic error", details=None, action_button=None, status_code=400,
                 error_code=ErrorCodes.GAME_LOGIC_ERROR):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=status_code, # 400 for bad moves, 409 for a spin already resolving
            details=details,
            action_button=action_button
        )

class InternalServerErrorException(AppException):
    def __init__(self, status_message="Internal server error", details=None, action_button=None,
                 error_code=ErrorCodes.INTERNAL_SERVER_ERROR):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=500,
            details=details,
            action_button=action_button
        )

class InvalidConfigurationException(InternalServerErrorException):
    """Slot configuration cannot drive the engine (bad JSON, empty pools, scatter with a paytable)."""
    def __init__(self, status_message="Invalid slot configuration", details=None, action_button=None):
        super().__init__(
            status_message=status_message,
            details=details,
            action_button=action_button,
            error_code=ErrorCodes.SLOT_CONFIG_ERROR
        )

class CascadeLimitExceededException(InternalServerErrorException):
    """A single spin kept paying past the configured cascade ceiling."""
    def __init__(self, status_message="Cascade iteration limit exceeded", details=None, action_button=None):
        super().__init__(
            status_message=status_message,
            details=details,
            action_button=action_button,
            error_code=ErrorCodes.INTERNAL_CONSISTENCY_FAULT
        )

class FreeSpinChainLimitExceededException(InternalServerErrorException):
    """Retriggers extended a free-spin chain past the configured ceiling."""
    def __init__(self, status_message="Free spin chain limit exceeded", details=None, action_button=None):
        super().__init__(
            status_message=status_message,
            details=details,
            action_button=action_button,
            error_code=ErrorCodes.INTERNAL_CONSISTENCY_FAULT
        )
