# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Keep SMTP credentials in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKFLOW_APP_NAME": "App display name (default: taskflow).",
    "TASKFLOW_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "TASKFLOW_DATA_DIR": "Local data directory (default: .local/taskflow).",
    "TASKFLOW_TASKS_DB_PATH": "TaskStore SQLite path (default: <data_dir>/tasks.sqlite3).",
    # Console
    "TASKFLOW_CONSOLE_ENABLED": "Enable console REPL (true/false, default: true).",
    "TASKFLOW_CONSOLE_OWNER_ID": "Owner id used for tasks created from the console (default: local).",
    # Sweep
    "TASKFLOW_SWEEP_ENABLED": "Run the periodic sweep in the background (true/false, default: true).",
    "TASKFLOW_SWEEP_INTERVAL_SECONDS": "Seconds between sweep ticks (default: 60).",
    "TASKFLOW_SWEEP_SINGLE_FLIGHT": "Skip a tick while the previous one is still running (default: true).",
    "TASKFLOW_DUE_SOON_HOURS": "Tasks due within this many hours are escalated to p1 (default: 24).",
    "TASKFLOW_AGING_DAYS": "Open p3 tasks older than this many days are aged to p2 (default: 7).",
    # Email reminders (unprefixed names are accepted as fallbacks)
    "TASKFLOW_EMAIL_ENABLED": "Send reminders by email (default: true when an SMTP host is set).",
    "TASKFLOW_EMAIL_HOST": "SMTP host (fallback: EMAIL_HOST).",
    "TASKFLOW_EMAIL_PORT": "SMTP port (fallback: EMAIL_PORT, default: 587).",
    "TASKFLOW_EMAIL_USER": "SMTP login (fallback: EMAIL_USER).",
    "TASKFLOW_EMAIL_PASS": "SMTP password (fallback: EMAIL_PASS).",
    "TASKFLOW_EMAIL_SECURE": "Use implicit TLS instead of STARTTLS (fallback: EMAIL_SECURE).",
    "TASKFLOW_FROM_NAME": "Sender display name (fallback: FROM_NAME, default: app name).",
    "TASKFLOW_FROM_EMAIL": "Sender address (fallback: FROM_EMAIL, default: SMTP login).",
    "TASKFLOW_REMINDER_EMAIL": "Recipient when the task owner id is not an email address.",
}
