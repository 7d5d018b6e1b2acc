"""
Triage Engine

Core of the installations admin tool:
- Ticket board ordering (pending first, urgent on top)
- Drag-and-drop ordering persisted as dense indices
- Work order checklists with completion percentage
- Architect discount accrual on work order creation
"""

__version__ = "0.1.0"
