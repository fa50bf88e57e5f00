import logging
import shutil
import time
import os
from datetime import datetime
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Load the .env file from the current directory if there is one


# Root folder of the system log, one sub-folder per day
SYSTEM_LOG_DIRECTORY = os.getenv("SYSTEM_LOG_DIRECTORY", "log/system_log")
SYSTEM_LOG_MAX_DAYS = int(os.getenv("SYSTEM_LOG_MAX_DAYS", "30"))

Path(SYSTEM_LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)


def _remove_old_logs(logs_root=SYSTEM_LOG_DIRECTORY, max_days=SYSTEM_LOG_MAX_DAYS):
    """
    Delete day folders older than max_days.
    Folders whose name is not a DD-MM-YY date are left alone.
    """
    try:
        if not os.path.exists(logs_root):
            return

        now = datetime.now()
        for entry in os.listdir(logs_root):
            entry_path = os.path.join(logs_root, entry)
            if not os.path.isdir(entry_path):
                continue
            try:
                folder_date = datetime.strptime(entry, "%d-%m-%y")
            except ValueError:
                continue

            if (now - folder_date).days > max_days:
                shutil.rmtree(entry_path)
                system_logger.info("Removed system log folder: %s", entry_path)
    except OSError as e:
        system_logger.error("Failed to clean up system log folders: %s", e)


_formatter = logging.Formatter(
    '%(asctime)s %(levelname)s:\t %(filename)s - Line: %(lineno)d message: %(message)s',
    datefmt='%d/%m/%Y %H:%M:%S %p'
)


def _log_file_path(day_str=None):
    day_str = day_str or datetime.now().strftime("%d-%m-%y")
    log_dir = os.path.join(SYSTEM_LOG_DIRECTORY, day_str)
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, "system_log.log")


# Application logger; a background thread swaps the file handler when the day changes
system_logger = logging.getLogger("fusion_gate.system")
system_logger.setLevel(logging.INFO)

_current_day = datetime.now().strftime("%d-%m-%y")
_file_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
_file_handler.setFormatter(_formatter)
system_logger.addHandler(_file_handler)

# Warnings and errors also go to stdout so container logs show them
_console = logging.StreamHandler()
_console.setLevel(logging.WARNING)
_console.setFormatter(_formatter)
system_logger.addHandler(_console)


def _rotate_if_new_day():
    global _current_day, _file_handler
    day_now = datetime.now().strftime("%d-%m-%y")
    if day_now == _current_day:
        return

    _current_day = day_now
    new_log_path = _log_file_path(_current_day)

    system_logger.removeHandler(_file_handler)
    _file_handler.close()

    new_handler = logging.FileHandler(new_log_path, encoding="utf-8")
    new_handler.setFormatter(_formatter)
    system_logger.addHandler(new_handler)
    _file_handler = new_handler

    _remove_old_logs()


def _rotation_thread():
    """
    Background loop: check once an hour whether a new day started.
    Started once from main, never from this module (every import would start another thread).
    """
    while True:
        try:
            _rotate_if_new_day()
        except OSError as e:
            system_logger.error("System log rotation failed: %s", e)
        time.sleep(3600)
