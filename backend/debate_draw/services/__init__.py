"""
Services Layer

Draw engine and draw lifecycle services:
- Engine modules (format_catalog, swing_teams, clash_optimizer,
  judge_allocator, pairing_engine) are pure: no sessions, no I/O
- Store-backed modules accept a Session and never commit on their own;
  draw_orchestrator owns the transaction boundary
- Nothing here depends on HTTP request/response objects
"""
