import logging
import datetime as _dt
import os
import time
import threading
import shutil
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


# Root folder of the access log (one request per line, one sub-folder per day)
LOG_DIRECTORY = os.getenv("LOG_DIRECTORY", "log")
ACCESS_LOG_MAX_DAYS = int(os.getenv("ACCESS_LOG_MAX_DAYS", "30"))

Path(LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)


class AccessLogFilter(logging.Filter):
    """
    Fill every access-log field the formatter expects, so a record logged
    without one of them still formats ("None" instead of a KeyError).
    """
    FIELDS = (
        "ip", "method", "api_name", "params", "result", "status",
        "duration_ms", "user_agent", "correlation_id", "request_body",
        "rate_limit_remaining",
    )

    def filter(self, record):
        for field in self.FIELDS:
            setattr(record, field, getattr(record, field, "None"))
        return True


def _today_str():
    # Day folders are named DD-MM-YY
    return _dt.datetime.now().strftime("%d-%m-%y")


def _log_file_path(day_str=None):
    """
    Create <LOG_DIRECTORY>/<DD-MM-YY>/ when missing and return the access log file inside it.
    Falls back to <LOG_DIRECTORY>/fallback when the day folder cannot be created.
    """
    try:
        day = day_str or _today_str()
        log_dir = os.path.join(LOG_DIRECTORY, day)
        os.makedirs(log_dir, exist_ok=True)
        return os.path.join(log_dir, "access_log.log")

    except OSError:
        fb_dir = os.path.join(LOG_DIRECTORY, "fallback")
        os.makedirs(fb_dir, exist_ok=True)
        return os.path.join(fb_dir, "access_log.log")


def _remove_old_logs(logs_root=LOG_DIRECTORY, max_days=ACCESS_LOG_MAX_DAYS):
    """
    Delete day folders older than max_days; anything not named like a date is skipped.
    """
    if not os.path.exists(logs_root):
        return

    now = _dt.datetime.now()
    for entry in os.listdir(logs_root):
        entry_path = os.path.join(logs_root, entry)
        if not os.path.isdir(entry_path):
            continue
        try:
            folder_date = _dt.datetime.strptime(entry, "%d-%m-%y")
        except ValueError:
            continue

        if (now - folder_date).days > max_days:
            shutil.rmtree(entry_path, ignore_errors=True)


_formatter = logging.Formatter(
    "%(asctime)s - %(ip)s - %(method)s %(api_name)s - "
    "status: %(status)s - duration: %(duration_ms)s ms - cid: %(correlation_id)s - ua: %(user_agent)s - "
    "rl_remaining: %(rate_limit_remaining)s - params: %(params)s - request_body: %(request_body)s - result: %(result)s",
    datefmt="%d-%m-%Y %H:%M:%S",
)

logger = logging.getLogger("fusion_gate.access")
logger.setLevel(logging.INFO)
logger.propagate = False  # Access lines stay out of the root logger

_file_handler_lock = threading.Lock()
_current_day = _today_str()
_file_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
_file_handler.addFilter(AccessLogFilter())
_file_handler.setFormatter(_formatter)
logger.addHandler(_file_handler)


def _rotate_if_new_day():
    """
    On a new day: detach and close the old handler, clean old folders,
    attach a handler for the new day. The lock protects the swap.
    """
    global _current_day, _file_handler
    day_now = _today_str()
    if day_now == _current_day:
        return

    with _file_handler_lock:
        if day_now == _current_day:
            return

        logger.removeHandler(_file_handler)
        _file_handler.close()

        _remove_old_logs()

        _current_day = day_now
        new_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
        new_handler.addFilter(AccessLogFilter())
        new_handler.setFormatter(_formatter)
        logger.addHandler(new_handler)
        _file_handler = new_handler


def _rotation_thread():
    """
    Background loop checking for a new day once an hour.
    """
    while True:
        try:
            _rotate_if_new_day()
        except OSError:
            logging.getLogger("fusion_gate.system").exception("Access log rotation failed")

        time.sleep(3600)
