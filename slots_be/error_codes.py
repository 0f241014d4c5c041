class ErrorCodes:
    GENERIC_ERROR = "BE_GEN_000"
    VALIDATION_ERROR = "BE_GEN_001"
    NOT_FOUND = "BE_GEN_004"
    INTERNAL_SERVER_ERROR = "BE_GEN_500"

    # Game flow
    INSUFFICIENT_FUNDS = "BE_GAME_001"
    GAME_LOGIC_ERROR = "BE_GAME_002"
    GAME_NOT_FOUND = "BE_GAME_003"
    SLOT_CONFIG_ERROR = "BE_GAME_004"
    INVALID_BET = "BE_GAME_005"
    INVALID_SPIN_OUTCOME = "BE_GAME_006"
    SPIN_IN_PROGRESS = "BE_GAME_007"
    SPIN_RATE_LIMITED = "BE_GAME_008"
    FEATURE_UNAVAILABLE = "BE_GAME_009"
