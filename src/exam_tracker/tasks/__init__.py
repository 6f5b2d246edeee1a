"""
Job tracking subsystem.

Components:
- task_models.py: data structures (Job, JobStatus, Question, wire entries)
- task_store.py: in-memory, observable job store (monotonic status merges)
- task_scheduler.py: polling scheduler that reconciles pending jobs
- task_api.py: submission handler used by connectors
"""
