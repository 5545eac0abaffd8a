"""Repository layer for the auto-answer pipeline.

Provides CRUD, dedup, and query methods for:
- questions: get_by_question_id, has_prior_question, create, apply_remote_answer,
             store_draft, mark_auto_answered, mark_post_failed, update_approval,
             list_waiting, list_auto_answerable, list_pending, get_stats
- settings: get_settings, save_settings
- jobs: record_job_start, finish_job, get_job_logs
- rate_limits: get_config, upsert_config, record_api_call, get_api_stats
"""
