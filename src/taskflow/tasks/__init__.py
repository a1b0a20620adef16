"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, Priority, Recurrence)
- task_store.py: SQLite-backed storage + query/update helpers
- task_transitions.py: completion/recurrence logic applied on every update
- task_sweeper.py: periodic sweep (auto-priority, aging, reminders)
- task_api.py: boundary helpers (payload parsing, create/list/update/delete)
"""
