class ErrorCodes:
    GENERIC_ERROR = "GENERIC_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Slot play
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_BET = "INVALID_BET"
    GAME_LOGIC_ERROR = "GAME_LOGIC_ERROR"
    SPIN_IN_PROGRESS = "SPIN_IN_PROGRESS"

    # Configuration / engine faults
    SLOT_CONFIG_ERROR = "SLOT_CONFIG_ERROR"
    INTERNAL_CONSISTENCY_FAULT = "INTERNAL_CONSISTENCY_FAULT"
