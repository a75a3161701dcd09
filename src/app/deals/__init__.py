"""Deal automation -- email intake, team assignment and deal scaffolding.

Provides SQLAlchemy models (users, profiles, deals, milestones, tasks,
email-deal records, deal context, notifications, task suggestions, intake
jobs), Pydantic schemas, DealRepository for async CRUD and live workload
counts, and the engine components: TeamScorer, DealExtractor,
MilestoneGenerator, DealContextRecorder, DealMemoSender,
TaskSuggestionGenerator, EmailIntakeOrchestrator and IntakeScheduler.
"""
