import os
import time

# Debug logging
CONFIG_DIR = os.environ.get("OPENPORTS_CONFIG_DIR") or os.path.expanduser("~/.config/openports")
DEBUG_LOG_PATH = os.environ.get("OPENPORTS_DEBUG_LOG") or os.path.join(CONFIG_DIR, "debug.log")


def debug_log(msg):
    """Write a timestamped message to the debug log."""
    try:
        os.makedirs(os.path.dirname(DEBUG_LOG_PATH), exist_ok=True)
        with open(DEBUG_LOG_PATH, "a") as f:
            f.write(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {msg}\n")
    except OSError:
        pass
