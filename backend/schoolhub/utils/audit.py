import os
from datetime import datetime

from flask import current_app

DEFAULT_AUDIT_LOG_FILE = os.path.join("logs", "audit.log")

def log_event(event_type, school_id=None, description=None, level="INFO", print_to_console=False):
    """
    Appends a lifecycle or audit-related event to the audit log file.

    Parameters:
        event_type (str): The type of the event (e.g., ACADEMIC_YEAR_CLOSED).
        school_id (int|None): The tenant the event belongs to, if any.
        description (str|None): Additional context.
        level (str): Log level (e.g., INFO, WARNING, ERROR).
        print_to_console (bool): Optionally print to stdout (for debugging/dev).
    """
    path = current_app.config.get("AUDIT_LOG_FILE", DEFAULT_AUDIT_LOG_FILE)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S')
    log_entry = (
        f"[{timestamp}] [{level.upper()}] EVENT: {event_type} | "
        f"SCHOOL: {school_id or 'N/A'} | DESC: {description or 'N/A'}\n"
    )

    with open(path, "a") as log_file:
        log_file.write(log_entry)

    if print_to_console:
        print(log_entry.strip())
