import os


class Config:
    # Server
    HOST = os.environ.get("TICTACROOM_HOST", "0.0.0.0")
    PORT = int(os.environ.get("TICTACROOM_PORT", "8000"))
    LOG_LEVEL = os.environ.get("TICTACROOM_LOG_LEVEL", "INFO").upper()

    # Single player
    AI_THINK_DELAY_SEC = int(os.environ.get("TICTACROOM_AI_DELAY_MS", "600")) / 1000.0
    DEFAULT_DIFFICULTY = os.environ.get("TICTACROOM_DEFAULT_DIFFICULTY", "MEDIUM").upper()
