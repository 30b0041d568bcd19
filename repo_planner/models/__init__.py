"""Core domain models for the planning bot.

Key Models:
    - ParsedCommand / Resolution: Intent resolution results
    - RepositorySummary: Size-capped repository context
    - PlanAnalysis: Structured analysis of a repository
    - IssueTemplate: Work item before creation
    - Milestone / Issue / Comment: Normalized platform objects
    - AttachmentResult / CreationReport: Milestone link verification
"""
