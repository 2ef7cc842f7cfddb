"""Repository layer for the Ignis CRM store.

Provides CRUD, dedup, and query methods for core CRM entities:
- leads: add_lead, list_leads_by_board, update_lead, move_lead_stage,
         delete_lead, get_lead, get_by_username
- tasks: add_task, complete_task, snooze_task, get_tasks_for_lead, get_due_tasks
- events: get_by_lead, get_by_day
- metrics: get/upsert/close/reopen daily metrics, compute_rates, sheets_row,
           get_week_metrics
"""
